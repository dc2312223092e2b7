import pytest
from decimal import Decimal

from tradegate.application.services.risk_service import (
    AccountState, Admit, Block, RiskGate, DEGENERATE_STOP, DRAWDOWN_EXCEEDED,
)
from tradegate.domain.errors import RiskBlocked


@pytest.fixture
def gate() -> RiskGate:
    return RiskGate(default_risk_pct=Decimal("3"))


def _account(pnl="0", limit="0.05", equity="100000") -> AccountState:
    return AccountState(equity=Decimal(equity), daily_realized_pnl=Decimal(pnl), drawdown_limit=Decimal(limit))


def test_size_from_equity_and_stop_distance(gate, make_alert):
    # 100000 * 3% = 3000 at risk over a 5.0 stop distance
    decision = gate.check_and_size(make_alert(entry="100", stop="95"), _account())
    assert isinstance(decision, Admit)
    assert decision.size.units == Decimal("600")
    assert decision.size.risk_amount == Decimal("3000")
    assert decision.size.stop_distance == Decimal("5")


def test_short_side_uses_absolute_distance(gate, make_alert):
    decision = gate.check_and_size(make_alert(side="SHORT", entry="95", stop="100"), _account())
    assert decision.size.units == Decimal("600")


def test_per_alert_risk_override(gate, make_alert):
    decision = gate.check_and_size(make_alert(risk_pct="1"), _account())
    assert decision.size.units == Decimal("200")
    assert decision.size.risk_pct == Decimal("1")


def test_units_are_not_rounded(gate, make_alert):
    decision = gate.check_and_size(make_alert(entry="100", stop="97"), _account())
    assert decision.size.units == Decimal("3000") / Decimal("3")


def test_degenerate_stop_is_blocked(gate, make_alert):
    decision = gate.check_and_size(make_alert(entry="100", stop="100"), _account())
    assert isinstance(decision, Block)
    assert decision.reason == DEGENERATE_STOP


def test_drawdown_blocks_at_the_limit(gate, make_alert):
    # limit is 5% of 100000 = 5000
    assert isinstance(gate.check_and_size(make_alert(), _account(pnl="-4999.99")), Admit)
    decision = gate.check_and_size(make_alert(), _account(pnl="-5000"))
    assert isinstance(decision, Block)
    assert decision.reason == DRAWDOWN_EXCEEDED


def test_profit_never_trips_drawdown(gate, make_alert):
    assert isinstance(gate.check_and_size(make_alert(), _account(pnl="25000")), Admit)


def test_zero_drawdown_limit_blocks_everything(gate, make_alert):
    decision = gate.check_and_size(make_alert(), _account(pnl="0", limit="0"))
    assert isinstance(decision, Block)
    assert decision.reason == DRAWDOWN_EXCEEDED


def test_degenerate_stop_checked_before_drawdown(gate, make_alert):
    decision = gate.check_and_size(make_alert(entry="100", stop="100"), _account(pnl="-99999"))
    assert decision.reason == DEGENERATE_STOP


def test_size_or_raise_carries_block_reason(gate, make_alert):
    assert gate.size_or_raise(make_alert(), _account()).units == Decimal("600")
    with pytest.raises(RiskBlocked) as exc:
        gate.size_or_raise(make_alert(), _account(pnl="-5000"))
    assert exc.value.reason == DRAWDOWN_EXCEEDED
    assert "5000" in exc.value.detail
