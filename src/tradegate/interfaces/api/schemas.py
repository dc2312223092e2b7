# src/tradegate/interfaces/api/schemas.py
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class AlertIn(BaseModel):
    """TradingView alert body. Accepts the short aliases TradingView templates commonly use."""
    model_config = ConfigDict(extra="ignore")

    symbol: str
    timeframe: str = Field(validation_alias=AliasChoices("timeframe", "tf"))
    side: str
    entry: Decimal
    stop: Decimal = Field(validation_alias=AliasChoices("stop", "sl"))
    targets: List[Decimal] = Field(default_factory=list, validation_alias=AliasChoices("targets", "tp"))
    confidence: Optional[float] = Field(default=None, validation_alias=AliasChoices("confidence", "conviction"))
    rationale: Optional[str] = Field(default=None, validation_alias=AliasChoices("rationale", "why"))
    risk_pct: Optional[Decimal] = Field(
        default=None, validation_alias=AliasChoices("riskPercentOverride", "risk_pct")
    )

    @field_validator("targets", mode="before")
    @classmethod
    def _single_target(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, (str, int, float, Decimal)):
            return [v]
        return v

    @field_validator("entry", "stop", "risk_pct")
    @classmethod
    def _finite(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        if v is not None and not v.is_finite():
            raise ValueError("must be a finite number")
        return v

    @field_validator("targets")
    @classmethod
    def _finite_targets(cls, v: List[Decimal]) -> List[Decimal]:
        if any(not t.is_finite() for t in v):
            raise ValueError("targets must be finite numbers")
        return v


class AlertAccepted(BaseModel):
    ok: bool = True
    id: int
    dedup: bool = False
    fingerprint: Optional[str] = None


class HealthOut(BaseModel):
    mode: str
    daily_pnl: str
    drawdown_limit_fraction: str
    drawdown_limit_usd: str
    equity: str
    ts: str


class PnlAdjustIn(BaseModel):
    delta: Decimal

    @field_validator("delta")
    @classmethod
    def _finite(cls, v: Decimal) -> Decimal:
        if not v.is_finite():
            raise ValueError("delta must be a finite number")
        return v


class PnlAdjustOut(BaseModel):
    day: str
    daily_pnl: str
