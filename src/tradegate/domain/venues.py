# src/tradegate/domain/venues.py
"""
Symbol -> venue mapping. A pure function of the symbol label; rules are
checked in order and the first match wins.
"""

import re

from .entities import Venue
from .value_objects import Symbol

INDEX_TICKERS = frozenset({"SPX", "NDX", "DXY"})
FX_COMMODITIES = frozenset({"CL", "GC"})

# ISO fiat and metal codes OANDA quotes against each other.
FX_CODES = frozenset({
    "USD", "EUR", "GBP", "JPY", "CHF", "AUD", "NZD", "CAD",
    "SEK", "NOK", "DKK", "PLN", "HUF", "CZK", "TRY", "ZAR",
    "MXN", "SGD", "HKD", "CNH", "XAU", "XAG", "XPT", "XPD",
})

CRYPTO_QUOTES = ("USDT", "USDC", "BUSD", "USD", "BTC", "ETH")

_FX_RE = re.compile(r"^[A-Z]{6}$")
_EQUITY_RE = re.compile(r"^[A-Z]{1,5}$")


def map_symbol_to_venue(symbol: "Symbol | str") -> Venue:
    label = symbol.value if isinstance(symbol, Symbol) else str(symbol).strip().upper()

    if label in INDEX_TICKERS:
        return Venue.INDEX
    if label in FX_COMMODITIES:
        return Venue.FX
    if _FX_RE.match(label) and label[:3] in FX_CODES and label[3:] in FX_CODES:
        return Venue.FX
    for quote in CRYPTO_QUOTES:
        if label.endswith(quote) and len(label) > len(quote) and label[: -len(quote)].isalnum():
            return Venue.CRYPTO
    if _EQUITY_RE.match(label):
        return Venue.EQUITIES
    return Venue.UNKNOWN
