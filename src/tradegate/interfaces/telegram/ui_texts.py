# src/tradegate/interfaces/telegram/ui_texts.py
"""HTML text builders for alert cards and operator notifications."""

import html
from decimal import Decimal
from typing import Any, Dict, Optional

from tradegate.domain.entities import Alert, AlertStatus, SizeInfo, Trade, Venue

DIVIDER = "────────────────"

_STATUS_BANNERS = {
    AlertStatus.EXECUTED: "🚀 <b>EXECUTED</b>",
    AlertStatus.CANCELLED: "❌ <b>CANCELLED</b>",
    AlertStatus.EXPIRED: "⌛ <b>EXPIRED</b>",
    AlertStatus.BLOCKED: "⛔ <b>BLOCKED</b>",
    AlertStatus.ERROR: "⚠️ <b>ERROR</b>",
    AlertStatus.CONFIRMED: "✅ <b>CONFIRMED</b>, routing...",
}


def _fmt(value: Any) -> str:
    if isinstance(value, Decimal):
        text = format(value.normalize(), "f")
        return text.rstrip("0").rstrip(".") if "." in text else text
    return html.escape(str(value))


def _header(alert: Alert) -> str:
    icon = "🟢" if alert.side.is_long else "🔴"
    return f"{icon} <b>#{alert.symbol.value}</b> • {alert.side.value} • {html.escape(alert.timeframe)}"


def build_alert_card_text(alert: Alert, size: SizeInfo, venue: Venue) -> str:
    parts = [
        "🔔 <b>TradingView Alert</b>",
        _header(alert),
        DIVIDER,
        f"🚪 Entry: <code>{alert.entry}</code>",
        f"🛑 Stop : <code>{alert.stop}</code> (distance {_fmt(size.stop_distance)})",
    ]
    if alert.targets:
        parts.append("🎯 TPs: " + ", ".join(f"<code>{t}</code>" for t in alert.targets))
    parts += [
        DIVIDER,
        f"Risk per trade: {_fmt(size.risk_pct)}% (≈ {_fmt(size.risk_amount.quantize(Decimal('0.01')))})",
        f"Units: <b>{_fmt(size.units)}</b>",
        f"Venue: {venue.value}",
    ]
    if alert.confidence is not None:
        parts.append(f"Conviction: {_fmt(alert.confidence)}")
    if alert.rationale:
        parts.append(f"📝 {html.escape(alert.rationale[:300])}")
    return "\n".join(parts)


def build_closed_card_text(alert: Alert, status: AlertStatus, reason: Optional[str] = None) -> str:
    """The alert card after a decision: same header, outcome banner, no buttons."""
    lines = [
        _header(alert),
        f"Entry <code>{alert.entry}</code> • Stop <code>{alert.stop}</code>",
        DIVIDER,
        _STATUS_BANNERS.get(status, f"<b>{status.value}</b>"),
    ]
    if reason:
        lines.append(f"<i>{html.escape(reason)}</i>")
    return "\n".join(lines)


def build_outcome_text(alert: Alert, status: AlertStatus, reason: Optional[str] = None) -> str:
    lines = [f"{_STATUS_BANNERS.get(status, status.value)} alert #{alert.id}", _header(alert)]
    if reason:
        lines.append(f"Reason: <code>{html.escape(reason)}</code>")
    return "\n".join(lines)


def build_unresolved_outcome_text(alert_id: int, status: AlertStatus, reason: Optional[str] = None) -> str:
    """Outcome line for an alert whose record could not be read back."""
    text = f"{_STATUS_BANNERS.get(status, status.value)} alert #{alert_id}"
    if reason:
        text += f"\nReason: <code>{html.escape(reason)}</code>"
    return text


def build_trade_executed_text(trade: Trade) -> str:
    lines = [
        "📣 <b>Trade Executed</b>",
        f"Symbol: <b>{html.escape(trade.symbol)}</b>",
        f"Router: {html.escape(trade.router)}",
        f"Side: {html.escape(trade.side)}",
        f"Units: {_fmt(trade.units)}",
        f"Entry: <code>{_fmt(trade.entry)}</code>",
        f"SL: <code>{_fmt(trade.stop)}</code>",
    ]
    if trade.targets:
        lines.append("TP: " + ", ".join(_fmt(t) for t in trade.targets))
    lines.append(f"Status: <b>{trade.status.value}</b>")
    if trade.order_id:
        lines.append(f"Order: <code>{html.escape(trade.order_id)}</code>")
    return "\n".join(lines)


def build_status_text(report: Dict[str, Any]) -> str:
    return "\n".join([
        "📊 <b>Status</b>",
        f"Mode: <b>{html.escape(str(report['mode']))}</b>",
        f"Equity: {html.escape(str(report['equity']))}",
        f"Daily P&amp;L: {html.escape(str(report['daily_pnl']))}",
        f"Drawdown limit: {html.escape(str(report['drawdown_limit_fraction']))} "
        f"({html.escape(str(report['drawdown_limit_usd']))})",
        f"<i>{html.escape(str(report['ts']))}</i>",
    ])
