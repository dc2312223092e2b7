# src/tradegate/infrastructure/redis_store.py
"""
Redis implementation of AlertStore.

Layout (all keys under `prefix`):
  fp:<fingerprint>    -> alert id
  alert:seq           -> id counter
  alert:<id>          -> hash (fingerprint, status, status_reason, payload, meta, timestamps)
  status:<STATUS>     -> set of alert ids currently in that status
  alert:<id>:trades   -> list of JSON-encoded trades
  pnl                 -> hash of ISO day -> realized P&L

Admission and status changes run as Lua scripts so each is a single atomic
step on the server. Meta merges are a WATCH/MULTI transaction on the alert hash.
"""

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from functools import wraps
from typing import Any, Dict, Iterable, List, Optional, Tuple

import redis

from tradegate.domain.entities import Alert, AlertStatus, Trade, TradeStatus, utcnow
from tradegate.domain.errors import StoreUnavailable
from .store import AlertStore, TransitionResult, allowed_sources

log = logging.getLogger(__name__)


def _redis_guard(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except redis.RedisError as e:
            log.error("Redis operation %s failed: %s", func.__name__, e)
            raise StoreUnavailable(f"{func.__name__} failed: {e.__class__.__name__}") from e
    return wrapper


class RedisAlertStore(AlertStore):
    ADMIT_LUA = """
    local existing = redis.call("GET", KEYS[1])
    if existing then
        return {0, tonumber(existing)}
    end
    local id = redis.call("INCR", KEYS[2])
    redis.call("SET", KEYS[1], id)
    local key = ARGV[1] .. id
    redis.call("HSET", key,
        "id", id,
        "fingerprint", ARGV[2],
        "payload", ARGV[3],
        "status", ARGV[4],
        "status_reason", "",
        "meta", "{}",
        "created_at", ARGV[5],
        "updated_at", ARGV[5])
    redis.call("SADD", ARGV[6] .. ARGV[4], id)
    return {1, id}
    """

    TRANSITION_LUA = """
    local current = redis.call("HGET", KEYS[1], "status")
    if not current then
        return {0, ""}
    end
    for expected in string.gmatch(ARGV[1], "[^,]+") do
        if current == expected then
            redis.call("HSET", KEYS[1], "status", ARGV[2], "status_reason", ARGV[3], "updated_at", ARGV[4])
            redis.call("SMOVE", ARGV[5] .. current, ARGV[5] .. ARGV[2], ARGV[6])
            return {1, ARGV[2]}
        end
    end
    return {0, current}
    """

    def __init__(self, client: redis.Redis, prefix: str = "tradegate"):
        self._redis = client
        self.prefix = prefix
        self._admit = client.register_script(self.ADMIT_LUA)
        self._transition = client.register_script(self.TRANSITION_LUA)

    # --- keys ---

    def _fp_key(self, fingerprint: str) -> str:
        return f"{self.prefix}:fp:{fingerprint}"

    def _alert_prefix(self) -> str:
        return f"{self.prefix}:alert:"

    def _alert_key(self, alert_id: int) -> str:
        return f"{self._alert_prefix()}{alert_id}"

    def _status_prefix(self) -> str:
        return f"{self.prefix}:status:"

    def _trades_key(self, alert_id: int) -> str:
        return f"{self._alert_key(alert_id)}:trades"

    def _pnl_key(self) -> str:
        return f"{self.prefix}:pnl"

    # --- decoding ---

    @staticmethod
    def _decode_alert(data: Dict[str, str]) -> Alert:
        return Alert.from_payload(
            json.loads(data["payload"]),
            fingerprint=data["fingerprint"],
            id=int(data["id"]),
            status=AlertStatus(data["status"]),
            status_reason=data.get("status_reason") or None,
            meta=json.loads(data.get("meta") or "{}"),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )

    @staticmethod
    def _encode_trade(trade: Trade) -> str:
        return json.dumps({
            "id": trade.id,
            "alert_id": trade.alert_id,
            "router": trade.router,
            "symbol": trade.symbol,
            "side": trade.side,
            "entry": str(trade.entry),
            "stop": str(trade.stop),
            "targets": [str(t) for t in trade.targets],
            "units": str(trade.units),
            "status": trade.status.value,
            "order_id": trade.order_id,
            "client_order_id": trade.client_order_id,
            "raw_response": trade.raw_response,
            "error": trade.error,
            "attempts": trade.attempts,
            "created_at": trade.created_at.isoformat(),
        }, default=str)

    @staticmethod
    def _decode_trade(raw: str) -> Trade:
        d = json.loads(raw)
        return Trade(
            id=d["id"],
            alert_id=int(d["alert_id"]),
            router=d["router"],
            symbol=d["symbol"],
            side=d["side"],
            entry=Decimal(d["entry"]),
            stop=Decimal(d["stop"]),
            targets=[Decimal(t) for t in d.get("targets", [])],
            units=Decimal(d["units"]),
            status=TradeStatus(d["status"]),
            order_id=d.get("order_id"),
            client_order_id=d.get("client_order_id"),
            raw_response=d.get("raw_response") or {},
            error=d.get("error"),
            attempts=int(d.get("attempts", 0)),
            created_at=datetime.fromisoformat(d["created_at"]),
        )

    # --- AlertStore ---

    @_redis_guard
    def insert_if_absent(self, fingerprint: str, payload: Dict[str, Any]) -> Tuple[bool, int]:
        created, alert_id = self._admit(
            keys=[self._fp_key(fingerprint), f"{self.prefix}:alert:seq"],
            args=[
                self._alert_prefix(),
                fingerprint,
                json.dumps(payload, sort_keys=True),
                AlertStatus.PENDING.value,
                utcnow().isoformat(),
                self._status_prefix(),
            ],
        )
        return bool(int(created)), int(alert_id)

    @_redis_guard
    def get(self, alert_id: int) -> Optional[Alert]:
        data = self._redis.hgetall(self._alert_key(alert_id))
        return self._decode_alert(data) if data else None

    @_redis_guard
    def get_by_fingerprint(self, fingerprint: str) -> Optional[Alert]:
        alert_id = self._redis.get(self._fp_key(fingerprint))
        if alert_id is None:
            return None
        return self.get(int(alert_id))

    @_redis_guard
    def update_status(
        self,
        alert_id: int,
        expected: Iterable[AlertStatus],
        new: AlertStatus,
        reason: Optional[str] = None,
    ) -> TransitionResult:
        sources = allowed_sources(expected, new)
        changed, status = self._transition(
            keys=[self._alert_key(alert_id)],
            args=[
                ",".join(s.value for s in sources),
                new.value,
                reason or "",
                utcnow().isoformat(),
                self._status_prefix(),
                str(alert_id),
            ],
        )
        return TransitionResult(bool(int(changed)), AlertStatus(status) if status else None)

    @_redis_guard
    def update_meta(self, alert_id: int, patch: Dict[str, Any]) -> None:
        key = self._alert_key(alert_id)
        encoded = json.loads(json.dumps(patch, default=str))

        def _merge(pipe) -> bool:
            raw = pipe.hget(key, "meta")
            if raw is None:
                return False
            meta = json.loads(raw)
            meta.update(encoded)
            pipe.multi()
            pipe.hset(key, mapping={"meta": json.dumps(meta), "updated_at": utcnow().isoformat()})
            return True

        if not self._redis.transaction(_merge, key, value_from_callable=True):
            log.warning("update_meta: alert %s not found", alert_id)

    @_redis_guard
    def list_by_status(self, status: AlertStatus) -> List[Alert]:
        ids = sorted(int(i) for i in self._redis.smembers(f"{self._status_prefix()}{status.value}"))
        alerts = []
        for alert_id in ids:
            alert = self.get(alert_id)
            if alert is not None and alert.status == status:
                alerts.append(alert)
        return alerts

    @_redis_guard
    def insert_trade(self, trade: Trade) -> None:
        self._redis.rpush(self._trades_key(trade.alert_id), self._encode_trade(trade))

    @_redis_guard
    def list_trades(self, alert_id: int) -> List[Trade]:
        return [self._decode_trade(raw) for raw in self._redis.lrange(self._trades_key(alert_id), 0, -1)]

    @_redis_guard
    def upsert_daily_counter(self, day: date, delta: Decimal) -> Decimal:
        total = self._redis.hincrbyfloat(self._pnl_key(), day.isoformat(), str(delta))
        return Decimal(str(total))

    @_redis_guard
    def get_daily_counter(self, day: date) -> Decimal:
        value = self._redis.hget(self._pnl_key(), day.isoformat())
        return Decimal("0") if value is None else Decimal(str(value))

    def close(self) -> None:
        try:
            self._redis.close()
        except redis.RedisError as e:
            log.warning("Error closing Redis client: %s", e)
