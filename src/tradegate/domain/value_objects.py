# src/tradegate/domain/value_objects.py
"""
Value objects for the alert domain. Immutable, validated on construction.

Symbol normalization:
- Accepts "BASE/QUOTE", "BASE-QUOTE", "BASE:QUOTE", "BASE QUOTE" or a single
  token such as "BTCUSDT" and normalizes to an upper-case ticker.
- Exchange prefixes used by TradingView ("BINANCE:BTCUSDT", "OANDA:EURUSD")
  are dropped.
- Long names are mapped to tickers through _SYMBOL_LOOKUP, in pairs and on
  their own. A lone long name gets its usual quote from _DEFAULT_QUOTES.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

_SYMBOL_LOOKUP = {
    "BITCOIN": "BTC",
    "ETHEREUM": "ETH",
    "SOLANA": "SOL",
    "TETHER": "USDT",
    "TETHERUS": "USDT",
    "GOLD": "XAU",
    "SILVER": "XAG",
}

# Quote assumed when a long name is given without one ("GOLD" -> XAUUSD).
_DEFAULT_QUOTES = {"XAU": "USD", "XAG": "USD", "BTC": "USDT", "ETH": "USDT", "SOL": "USDT"}

_EXCHANGE_PREFIXES = {"BINANCE", "BITGET", "BYBIT", "OANDA", "FX", "NASDAQ", "NYSE", "AMEX", "TVC", "CAPITALCOM"}

_SYMBOL_RE = re.compile(r"^[A-Z0-9]{1,20}$")


class Symbol:
    """A trading symbol label. Always upper-case, separators removed."""

    def __init__(self, value: str) -> None:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("Symbol value must be a non-empty string.")
        normalized = self._normalize(value)
        if not _SYMBOL_RE.match(normalized):
            raise ValueError(f"Invalid symbol format: '{value}' -> normalized '{normalized}'")
        self.value = normalized

    def __repr__(self) -> str:
        return f"Symbol('{self.value}')"

    def __str__(self) -> str:
        return self.value

    def __eq__(self, other) -> bool:
        return isinstance(other, Symbol) and self.value == other.value

    def __hash__(self) -> int:
        return hash(self.value)

    @staticmethod
    def _clean_token(tok: str) -> str:
        return re.sub(r"[^A-Za-z0-9]", "", tok or "").upper()

    @classmethod
    def _normalize(cls, raw: str) -> str:
        s = raw.strip().upper()
        head, sep, tail = s.partition(":")
        if sep and head in _EXCHANGE_PREFIXES:
            s = tail

        tokens = [t for t in re.split(r"[\/\-\:\s]+", s) if t]
        if len(tokens) >= 2:
            base = _SYMBOL_LOOKUP.get(cls._clean_token(tokens[0]), cls._clean_token(tokens[0]))
            quote = _SYMBOL_LOOKUP.get(cls._clean_token(tokens[-1]), cls._clean_token(tokens[-1]))
            return f"{base}{quote}"
        token = cls._clean_token(s)
        base = _SYMBOL_LOOKUP.get(token)
        if base is None:
            return token
        return f"{base}{_DEFAULT_QUOTES.get(base, '')}"


class Side:
    """Direction of a trade, stored as the order side: BUY or SELL."""

    _ALIASES = {"LONG": "BUY", "BUY": "BUY", "SHORT": "SELL", "SELL": "SELL"}

    def __init__(self, value: str) -> None:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("Side value must be a non-empty string.")
        v = self._ALIASES.get(value.strip().upper())
        if v is None:
            raise ValueError("Invalid side. Must be one of LONG, SHORT, BUY, SELL.")
        self.value = v

    @property
    def is_long(self) -> bool:
        return self.value == "BUY"

    def __repr__(self) -> str:
        return f"Side('{self.value}')"

    def __str__(self) -> str:
        return self.value

    def __eq__(self, other) -> bool:
        return isinstance(other, Side) and self.value == other.value

    def __hash__(self) -> int:
        return hash(self.value)


def to_decimal(value: Any) -> Decimal:
    """Converts input to a finite Decimal or raises ValueError."""
    if isinstance(value, bool):
        raise ValueError("Boolean is not a number.")
    if isinstance(value, Decimal):
        d = value
    else:
        try:
            d = Decimal(str(value).strip())
        except (InvalidOperation, TypeError, ValueError):
            raise ValueError(f"Not a number: {value!r}")
    if not d.is_finite():
        raise ValueError(f"Number must be finite: {value!r}")
    return d


@dataclass(frozen=True)
class Price:
    """A strictly positive, finite price."""
    value: Decimal

    def __post_init__(self) -> None:
        if not isinstance(self.value, Decimal):
            raise TypeError("Price value must be a Decimal.")
        if not self.value.is_finite():
            raise ValueError("Price must be finite.")
        if self.value <= Decimal(0):
            raise ValueError("Price must be positive.")

    @classmethod
    def of(cls, value: Any) -> "Price":
        return cls(to_decimal(value))

    def normalized(self) -> str:
        """Canonical string form: no exponent, no trailing zeros."""
        d = self.value.normalize()
        text = format(d, "f")
        if "." in text:
            text = text.rstrip("0").rstrip(".")
        return text

    def __str__(self) -> str:
        return self.normalized()
