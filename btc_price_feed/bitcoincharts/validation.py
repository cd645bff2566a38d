from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple

import pandas as pd

from .intervals import INTERVAL_SECONDS, is_interval_start
from .series import PriceEntry, PriceSeries, quantize_price


STORE_COLUMNS = ["interval_start_timestamp", "price", "trade_timestamp"]
REQUIRED_COLUMNS = STORE_COLUMNS[:2]

_UINT = re.compile(r"\d+")


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    reason: str
    validated_rows: int
    # 1-based data row that failed, if any
    bad_row: Optional[int] = None
    entries: Tuple[PriceEntry, ...] = ()


def _fail(reason: str, row: Optional[int], validated: int) -> ValidationResult:
    return ValidationResult(False, reason, validated, row)


def validate_store_frame(df: pd.DataFrame) -> ValidationResult:
    """Validate persisted series rows (all columns read as strings).

    - Required columns present, no unknown columns.
    - Interval starts are non-negative integers on a 30-minute boundary.
    - Prices are positive finite decimals.
    - trade_timestamp, when present, lies inside its interval.
    - Interval starts strictly ascending (which also rules out duplicates).
    """
    cols = [str(c).strip() for c in df.columns]
    missing = [c for c in REQUIRED_COLUMNS if c not in cols]
    if missing:
        return _fail(f"missing required columns {missing}", None, 0)
    unknown = [c for c in cols if c not in STORE_COLUMNS]
    if unknown:
        return _fail(f"unexpected columns {unknown}", None, 0)
    df = df.copy()
    df.columns = cols
    has_trade_ts = "trade_timestamp" in cols

    entries: List[PriceEntry] = []
    prev: Optional[int] = None
    for i, rec in enumerate(df.to_dict("records"), start=1):
        start_s = str(rec["interval_start_timestamp"]).strip()
        if not _UINT.fullmatch(start_s):
            return _fail(f"malformed interval_start_timestamp {start_s!r}", i, len(entries))
        start = int(start_s)
        if not is_interval_start(start):
            return _fail(f"interval_start_timestamp {start} is not on a {INTERVAL_SECONDS}s boundary", i, len(entries))

        price_s = str(rec["price"]).strip()
        try:
            price = Decimal(price_s)
        except (InvalidOperation, ValueError):
            return _fail(f"malformed price {price_s!r}", i, len(entries))
        if not price.is_finite() or price <= 0:
            return _fail(f"price {price_s!r} is not positive", i, len(entries))
        try:
            if quantize_price(price) <= 0:
                return _fail(f"price {price_s!r} rounds to zero", i, len(entries))
        except ValueError as e:
            return _fail(str(e), i, len(entries))

        trade_ts: Optional[int] = None
        if has_trade_ts:
            ts_s = str(rec["trade_timestamp"]).strip()
            if ts_s:
                if not _UINT.fullmatch(ts_s):
                    return _fail(f"malformed trade_timestamp {ts_s!r}", i, len(entries))
                trade_ts = int(ts_s)
                if not start <= trade_ts < start + INTERVAL_SECONDS:
                    return _fail(f"trade_timestamp {trade_ts} outside interval {start}", i, len(entries))

        if prev is not None:
            if start == prev:
                return _fail(f"duplicate interval {start}", i, len(entries))
            if start < prev:
                return _fail(f"interval {start} out of order after {prev}", i, len(entries))
        prev = start
        entries.append(PriceEntry(start, price, trade_ts))

    return ValidationResult(True, "validated", len(entries), None, tuple(entries))


def find_gaps(series: PriceSeries) -> List[Tuple[int, int]]:
    """Missing interval ranges between head and tail as (first_missing, last_missing)."""
    gaps: List[Tuple[int, int]] = []
    prev: Optional[int] = None
    for e in series:
        if prev is not None and e.interval_start - prev > INTERVAL_SECONDS:
            gaps.append((prev + INTERVAL_SECONDS, e.interval_start - INTERVAL_SECONDS))
        prev = e.interval_start
    return gaps
