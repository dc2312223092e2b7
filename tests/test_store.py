import pytest
import uuid
from datetime import date
from decimal import Decimal

from tradegate.domain.entities import AlertStatus, Trade, TradeStatus
from tradegate.domain.errors import StoreUnavailable
from tradegate.infrastructure.db.base import make_engine, make_session_factory
from tradegate.infrastructure.db.repository import AlertRepository
from tradegate.infrastructure.db.sql_store import SqlAlchemyAlertStore


def _admit(store, alert):
    return store.insert_if_absent(alert.fingerprint, alert.to_payload())


def test_insert_if_absent_admits_once(store, make_alert):
    alert = make_alert()
    is_new, alert_id = _admit(store, alert)
    again, same_id = _admit(store, make_alert())

    assert is_new is True
    assert again is False
    assert same_id == alert_id

    stored = store.get(alert_id)
    assert stored.status == AlertStatus.PENDING
    assert stored.symbol.value == "BTCUSDT"
    assert stored.entry.value == Decimal("100")
    assert [t.value for t in stored.targets] == [Decimal("110"), Decimal("120")]
    assert store.get_by_fingerprint(alert.fingerprint).id == alert_id


def test_distinct_fingerprints_get_distinct_ids(store, make_alert):
    _, first = _admit(store, make_alert())
    _, second = _admit(store, make_alert(entry="101"))
    assert first != second


def test_update_status_is_compare_and_set(store, make_alert):
    _, alert_id = _admit(store, make_alert())

    moved = store.update_status(alert_id, [AlertStatus.PENDING], AlertStatus.AWAITING_DECISION)
    assert moved.changed and moved.status == AlertStatus.AWAITING_DECISION

    won = store.update_status(alert_id, [AlertStatus.AWAITING_DECISION], AlertStatus.CONFIRMED, "operator confirm")
    lost = store.update_status(alert_id, [AlertStatus.AWAITING_DECISION], AlertStatus.CANCELLED)

    assert won.changed is True
    assert lost.changed is False
    assert lost.status == AlertStatus.CONFIRMED
    assert store.get(alert_id).status_reason == "operator confirm"


def test_terminal_status_is_final(store, make_alert):
    _, alert_id = _admit(store, make_alert())
    store.update_status(alert_id, [AlertStatus.PENDING], AlertStatus.BLOCKED, "DEGENERATE_STOP")

    result = store.update_status(alert_id, [AlertStatus.PENDING], AlertStatus.AWAITING_DECISION)
    assert result.changed is False
    assert result.status == AlertStatus.BLOCKED

    with pytest.raises(ValueError):
        store.update_status(alert_id, [AlertStatus.BLOCKED], AlertStatus.EXECUTED)


def test_update_status_on_missing_alert(store):
    result = store.update_status(12345, [AlertStatus.PENDING], AlertStatus.ERROR)
    assert result.changed is False
    assert result.status is None


def test_update_meta_merges(store, make_alert):
    _, alert_id = _admit(store, make_alert())
    store.update_meta(alert_id, {"message": {"chat_id": -1, "message_id": 7}})
    store.update_meta(alert_id, {"venue": "crypto"})

    meta = store.get(alert_id).meta
    assert meta["message"] == {"chat_id": -1, "message_id": 7}
    assert meta["venue"] == "crypto"


def test_list_by_status(store, make_alert):
    _, a = _admit(store, make_alert())
    _, b = _admit(store, make_alert(entry="101"))
    store.update_status(b, [AlertStatus.PENDING], AlertStatus.AWAITING_DECISION)

    assert [x.id for x in store.list_by_status(AlertStatus.PENDING)] == [a]
    assert [x.id for x in store.list_by_status(AlertStatus.AWAITING_DECISION)] == [b]


def test_trades_are_recorded_per_alert(store, make_alert):
    _, alert_id = _admit(store, make_alert())
    trade = Trade(
        id=uuid.uuid4().hex, alert_id=alert_id, router="binance", symbol="BTCUSDT", side="BUY",
        entry=Decimal("100"), stop=Decimal("95"), targets=[Decimal("110")], units=Decimal("600"),
        status=TradeStatus.PAPER_SIMULATED, client_order_id="tg-1-abc", raw_response={"simulated": True},
    )
    store.insert_trade(trade)

    trades = store.list_trades(alert_id)
    assert len(trades) == 1
    assert trades[0].units == Decimal("600")
    assert trades[0].targets == [Decimal("110")]
    assert trades[0].status == TradeStatus.PAPER_SIMULATED
    assert trades[0].raw_response == {"simulated": True}
    assert store.list_trades(alert_id + 1) == []


def test_daily_counter_accumulates(store):
    day = date(2026, 1, 2)
    assert store.get_daily_counter(day) == Decimal("0")
    assert store.upsert_daily_counter(day, Decimal("-100")) == Decimal("-100")
    assert store.upsert_daily_counter(day, Decimal("40.5")) == Decimal("-59.5")
    assert store.get_daily_counter(day) == Decimal("-59.5")
    assert store.get_daily_counter(date(2026, 1, 3)) == Decimal("0")


def test_backend_fault_surfaces_as_store_unavailable(make_alert):
    # No tables created: every statement fails inside SQLAlchemy.
    engine = make_engine("sqlite://")
    broken = SqlAlchemyAlertStore(make_session_factory(engine))
    try:
        with pytest.raises(StoreUnavailable):
            broken.insert_if_absent("f" * 64, make_alert().to_payload())
        with pytest.raises(StoreUnavailable):
            broken.get(1)
    finally:
        engine.dispose()


def test_losing_concurrent_insert_returns_the_winner(store, make_alert, monkeypatch):
    alert = make_alert()
    _, winner_id = _admit(store, alert)

    # A second writer that checked before the winner committed: its lookup
    # misses, so its insert runs into the unique fingerprint constraint.
    lookup = AlertRepository.find_id_by_fingerprint
    calls = []

    def _stale_first_lookup(self, fingerprint):
        calls.append(fingerprint)
        if len(calls) == 1:
            return None
        return lookup(self, fingerprint)

    monkeypatch.setattr(AlertRepository, "find_id_by_fingerprint", _stale_first_lookup)
    is_new, alert_id = _admit(store, make_alert())

    assert is_new is False
    assert alert_id == winner_id
    assert [a.id for a in store.list_by_status(AlertStatus.PENDING)] == [winner_id]
