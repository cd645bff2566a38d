"""In-memory 30-minute BTC price series.

Entries are kept strictly ascending by interval start with no duplicates.
Gaps are allowed and mean no trade was recorded for that interval.
"""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation, localcontext
from typing import Dict, Iterator, List, Optional

import pandas as pd

from .errors import OutOfOrderError
from .intervals import INTERVAL_SECONDS, Instant, is_interval_start, to_unix


PRICE_DECIMALS = 2
# Total significant digits a stored price may have; matches DECIMAL(18, 2) in the DuckDB mirror
PRICE_DIGITS = 18
PRICE_QUANTUM = Decimal(1).scaleb(-PRICE_DECIMALS)


def quantize_price(price: Decimal) -> Decimal:
    """Round to the store's fixed scale; ValueError if the result needs more than PRICE_DIGITS digits."""
    with localcontext() as ctx:
        ctx.prec = PRICE_DIGITS
        try:
            return price.quantize(PRICE_QUANTUM, rounding=ROUND_HALF_EVEN)
        except InvalidOperation as e:
            raise ValueError(f"price {price} does not fit {PRICE_DIGITS} digits at scale {PRICE_DECIMALS}") from e


def format_price(price: Decimal) -> str:
    return format(quantize_price(price), "f")


@dataclass(frozen=True)
class PriceEntry:
    interval_start: int
    price: Decimal
    # Timestamp of the trade that produced ``price``; None if unknown
    trade_timestamp: Optional[int] = None

    def __str__(self) -> str:
        return f"{format_price(self.price)} @ {pd.Timestamp(self.interval_start, unit='s', tz='UTC')}"


class PriceSeries:
    def __init__(self, entries: Optional[List[PriceEntry]] = None) -> None:
        self._starts: List[int] = []
        self._by_start: Dict[int, PriceEntry] = {}
        for e in entries or ():
            self.append_or_overwrite(e.interval_start, e.price, e.trade_timestamp)

    def __len__(self) -> int:
        return len(self._starts)

    def __iter__(self) -> Iterator[PriceEntry]:
        return (self._by_start[s] for s in self._starts)

    def __contains__(self, interval: object) -> bool:
        return interval in self._by_start

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PriceSeries):
            return NotImplemented
        return self.entries() == other.entries()

    def __repr__(self) -> str:
        return f"PriceSeries(len={len(self)}, head={self.head()}, tail={self.tail()})"

    def entries(self) -> List[PriceEntry]:
        return list(self)

    def get(self, interval: int) -> Optional[PriceEntry]:
        return self._by_start.get(interval)

    def head(self) -> Optional[int]:
        return self._starts[0] if self._starts else None

    def tail(self) -> Optional[int]:
        return self._starts[-1] if self._starts else None

    def latest(self) -> Optional[PriceEntry]:
        t = self.tail()
        return None if t is None else self._by_start[t]

    def price_at(self, when: Instant) -> Optional[PriceEntry]:
        """Most recent entry whose interval had fully closed at or before ``when``."""
        # interval I is closed at ``when`` iff I + INTERVAL_SECONDS <= when
        idx = bisect_right(self._starts, to_unix(when) - INTERVAL_SECONDS)
        if idx == 0:
            return None
        return self._by_start[self._starts[idx - 1]]

    def append_or_overwrite(self, interval: int, price: Decimal, trade_timestamp: Optional[int] = None) -> str:
        """Record ``price`` for ``interval``.

        Returns "appended" past the tail, "overwritten" for an existing
        interval and "inserted" when filling a gap or extending the head.
        """
        if not isinstance(interval, int) or not is_interval_start(interval):
            raise OutOfOrderError(f"{interval!r} is not a {INTERVAL_SECONDS}s interval start")
        if not price.is_finite():
            raise OutOfOrderError(f"refusing non-finite price {price} for interval {interval}")
        try:
            stored = quantize_price(price)
        except ValueError as e:
            raise OutOfOrderError(f"refusing price {price} for interval {interval}: {e}") from e
        if stored <= 0:
            raise OutOfOrderError(f"refusing price {price} for interval {interval}: not positive at store scale")
        entry = PriceEntry(interval, stored, trade_timestamp)

        if interval in self._by_start:
            self._by_start[interval] = entry
            return "overwritten"
        tail = self.tail()
        if tail is None or interval > tail:
            self._starts.append(interval)
            self._by_start[interval] = entry
            return "appended"
        self._starts.insert(bisect_left(self._starts, interval), interval)
        self._by_start[interval] = entry
        return "inserted"

    def copy(self) -> "PriceSeries":
        new = PriceSeries()
        new._starts = list(self._starts)
        new._by_start = dict(self._by_start)
        return new

    def replace_with(self, other: "PriceSeries") -> None:
        self._starts = list(other._starts)
        self._by_start = dict(other._by_start)

    def since(self, start: int) -> "PriceSeries":
        new = PriceSeries()
        new._starts = self._starts[bisect_left(self._starts, start):]
        new._by_start = {s: self._by_start[s] for s in new._starts}
        return new

    def to_dataframe(self) -> pd.DataFrame:
        """Frame with columns timestamp (UTC-naive), price (float) and trade_timestamp.

        Floats are for analysis only; the series itself keeps Decimal prices.
        """
        if not self._starts:
            return pd.DataFrame(columns=["timestamp", "price", "trade_timestamp"]).astype(
                {"timestamp": "datetime64[ns]", "price": float, "trade_timestamp": "Int64"}
            )
        entries = self.entries()
        df = pd.DataFrame(
            {
                "timestamp": pd.to_datetime([e.interval_start for e in entries], unit="s", utc=True).tz_convert(None),
                "price": [float(e.price) for e in entries],
                "trade_timestamp": pd.array([e.trade_timestamp for e in entries], dtype="Int64"),
            }
        )
        return df
