import asyncio
import pytest
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

from tradegate.application.services.pipeline_service import STALLED_AFTER_CONFIRM
from tradegate.domain.entities import AlertStatus, Decision, TradeStatus, utcnow
from tradegate.domain.errors import DuplicateAlert, StoreUnavailable


@pytest.mark.asyncio
async def test_confirmed_alert_is_executed_once(pipeline, ledger, notifier, make_alert):
    alert = make_alert()
    admission = await pipeline.submit(alert)
    assert admission.is_new
    assert pipeline.idempotency.get(admission.alert_id).status == AlertStatus.AWAITING_DECISION

    outcome = await pipeline.handle_decision(admission.alert_id, Decision.CONFIRM)
    assert outcome.accepted

    stored = pipeline.idempotency.get(admission.alert_id)
    assert stored.status == AlertStatus.EXECUTED
    assert stored.status_reason == TradeStatus.PAPER_SIMULATED.value

    trades = ledger.list_trades(admission.alert_id)
    assert len(trades) == 1
    assert trades[0].units == Decimal("600")
    assert stored.meta["trade_id"] == trades[0].id

    # One outcome message; the card is closed on confirm and again on execution.
    notifier.send_text.assert_awaited_once()
    assert "Trade Executed" in notifier.send_text.await_args.args[0]
    assert notifier.close_card.await_count == 2


@pytest.mark.asyncio
async def test_repeat_confirm_does_not_route_again(pipeline, ledger, make_alert):
    admission = await pipeline.submit(make_alert())
    await pipeline.handle_decision(admission.alert_id, Decision.CONFIRM)
    again = await pipeline.handle_decision(admission.alert_id, Decision.CONFIRM)

    assert again.accepted is False
    assert again.status == AlertStatus.EXECUTED
    assert len(ledger.list_trades(admission.alert_id)) == 1


@pytest.mark.asyncio
async def test_duplicate_alert_has_no_side_effects(pipeline, notifier, make_alert):
    first = await pipeline.submit(make_alert(rationale="first delivery"))
    second = await pipeline.submit(make_alert(rationale="redelivery"))

    assert first.is_new and not second.is_new
    assert second.alert_id == first.alert_id
    notifier.send_alert_card.assert_awaited_once()


@pytest.mark.asyncio
async def test_degenerate_stop_is_never_presented(pipeline, notifier, make_alert):
    admission = await pipeline.submit(make_alert(entry="100", stop="100"))

    stored = pipeline.idempotency.get(admission.alert_id)
    assert stored.status == AlertStatus.BLOCKED
    assert stored.status_reason == "DEGENERATE_STOP"
    notifier.send_alert_card.assert_not_awaited()
    notifier.send_text.assert_awaited_once()


@pytest.mark.asyncio
async def test_drawdown_is_rechecked_after_confirmation(pipeline, ledger, notifier, make_alert):
    admission = await pipeline.submit(make_alert())
    # Loss booked while the card was waiting: 5% of 100000.
    pipeline.adjust_pnl(Decimal("-5000"))

    await pipeline.handle_decision(admission.alert_id, Decision.CONFIRM)

    stored = pipeline.idempotency.get(admission.alert_id)
    assert stored.status == AlertStatus.BLOCKED
    assert stored.status_reason == "DRAWDOWN_EXCEEDED"
    assert ledger.list_trades(admission.alert_id) == []
    notifier.send_text.assert_awaited_once()


@pytest.mark.asyncio
async def test_drawdown_blocks_before_presentation(pipeline, notifier, make_alert):
    pipeline.adjust_pnl(Decimal("-6000"))
    admission = await pipeline.submit(make_alert())

    assert pipeline.idempotency.get(admission.alert_id).status == AlertStatus.BLOCKED
    notifier.send_alert_card.assert_not_awaited()


@pytest.mark.asyncio
async def test_index_symbol_ends_in_error_without_trade(pipeline, ledger, make_alert):
    admission = await pipeline.submit(make_alert(symbol="SPX", entry="5000", stop="4950"))
    await pipeline.handle_decision(admission.alert_id, Decision.CONFIRM)

    stored = pipeline.idempotency.get(admission.alert_id)
    assert stored.status == AlertStatus.ERROR
    assert "No executor" in stored.status_reason
    assert ledger.list_trades(admission.alert_id) == []


@pytest.mark.asyncio
async def test_failed_routing_ends_in_error(pipeline, ledger, make_alert):
    # Rounds to zero at the equities lot step of 1.
    admission = await pipeline.submit(make_alert(symbol="AAPL", entry="200", stop="100", risk_pct="0.05"))
    await pipeline.handle_decision(admission.alert_id, Decision.CONFIRM)

    assert pipeline.idempotency.get(admission.alert_id).status == AlertStatus.ERROR
    assert ledger.list_trades(admission.alert_id)[0].status == TradeStatus.FAILED


@pytest.mark.asyncio
async def test_undeliverable_card_ends_in_error(pipeline, notifier, make_alert):
    notifier.send_alert_card = AsyncMock(return_value=None)
    admission = await pipeline.submit(make_alert())

    stored = pipeline.idempotency.get(admission.alert_id)
    assert stored.status == AlertStatus.ERROR
    assert stored.status_reason == "PRESENTATION_FAILED"


@pytest.mark.asyncio
async def test_cancel_is_terminal(pipeline, ledger, notifier, make_alert):
    admission = await pipeline.submit(make_alert())
    await pipeline.handle_decision(admission.alert_id, Decision.CANCEL)
    late = await pipeline.handle_decision(admission.alert_id, Decision.CONFIRM)

    assert pipeline.idempotency.get(admission.alert_id).status == AlertStatus.CANCELLED
    assert late.accepted is False
    assert ledger.list_trades(admission.alert_id) == []
    notifier.send_text.assert_awaited_once()


@pytest.mark.asyncio
async def test_status_report(pipeline):
    pipeline.adjust_pnl(Decimal("-250"))
    report = pipeline.status_report()
    assert report["mode"] == "paper"
    assert Decimal(report["daily_pnl"]) == Decimal("-250")
    assert Decimal(report["drawdown_limit_usd"]) == Decimal("5000")


# --- confirmed alerts always reach a terminal status ---

@pytest.mark.asyncio
async def test_read_failure_after_confirm_moves_alert_to_error(pipeline, store, notifier, ledger, make_alert, monkeypatch):
    admission = await pipeline.submit(make_alert())

    read = store.get

    def _unavailable_once_decided(alert_id):
        alert = read(alert_id)
        if alert is not None and alert.status != AlertStatus.AWAITING_DECISION:
            raise StoreUnavailable("connection reset")
        return alert

    monkeypatch.setattr(store, "get", _unavailable_once_decided)
    outcome = await pipeline.handle_decision(admission.alert_id, Decision.CONFIRM)
    monkeypatch.undo()

    assert outcome.accepted
    stored = pipeline.idempotency.get(admission.alert_id)
    assert stored.status == AlertStatus.ERROR
    assert stored.status_reason == "INTERNAL_ERROR"
    assert ledger.list_trades(admission.alert_id) == []
    notifier.send_text.assert_awaited_once()
    assert f"alert #{admission.alert_id}" in notifier.send_text.await_args.args[0]

    retry = await pipeline.handle_decision(admission.alert_id, Decision.CONFIRM)
    assert retry.accepted is False
    assert retry.status == AlertStatus.ERROR


@pytest.mark.asyncio
async def test_stalled_confirmation_is_recovered_once(pipeline, notifier, ledger, make_alert):
    admission = await pipeline.submit(make_alert())
    # Confirmed, but the process died before routing.
    await pipeline.decide(admission.alert_id, Decision.CONFIRM)

    assert await pipeline.recover_stalled() == 0
    assert pipeline.idempotency.get(admission.alert_id).status == AlertStatus.CONFIRMED

    later = utcnow() + timedelta(seconds=601)
    assert await pipeline.recover_stalled(now=later) == 1
    stored = pipeline.idempotency.get(admission.alert_id)
    assert stored.status == AlertStatus.ERROR
    assert stored.status_reason == STALLED_AFTER_CONFIRM
    assert ledger.list_trades(admission.alert_id) == []
    notifier.send_text.assert_awaited_once()

    assert await pipeline.recover_stalled(now=later) == 0
    notifier.send_text.assert_awaited_once()


@pytest.mark.asyncio
async def test_stalled_confirmation_with_placed_trade_is_executed(pipeline, router, make_alert):
    admission = await pipeline.submit(make_alert())
    outcome = await pipeline.decide(admission.alert_id, Decision.CONFIRM)
    # The order went out but the process died before the final transition.
    result = await router.execute(outcome.alert, pipeline.risk.check_and_size(outcome.alert, pipeline.account_state()).size)

    await pipeline.sweep(now=utcnow() + timedelta(seconds=601))

    stored = pipeline.idempotency.get(admission.alert_id)
    assert stored.status == AlertStatus.EXECUTED
    assert stored.meta["trade_id"] == result.trade.id


@pytest.mark.asyncio
async def test_background_routing_is_not_recovered_while_running(pipeline, router, make_alert):
    admission = await pipeline.submit(make_alert())
    release = asyncio.Event()
    execute = router.execute

    async def _slow_execute(alert, size):
        await release.wait()
        return await execute(alert, size)

    router.execute = _slow_execute
    outcome = await pipeline.decide(admission.alert_id, Decision.CONFIRM)
    task = pipeline.dispatch_decision(admission.alert_id, outcome)
    await asyncio.sleep(0)

    assert await pipeline.recover_stalled(now=utcnow() + timedelta(seconds=601)) == 0
    assert pipeline.idempotency.get(admission.alert_id).status == AlertStatus.CONFIRMED

    release.set()
    assert await task == AlertStatus.EXECUTED
    await pipeline.shutdown()


@pytest.mark.asyncio
async def test_admit_raises_duplicate_for_known_fingerprint(pipeline, make_alert):
    first = pipeline.admit(make_alert())
    with pytest.raises(DuplicateAlert) as exc:
        pipeline.admit(make_alert(confidence=0.9))
    assert exc.value.alert_id == first.alert_id
