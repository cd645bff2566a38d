"""Trade record parsing for bitcoincharts-style ``timestamp,price,volume`` lines."""

from __future__ import annotations

import gzip
import io
import logging
from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from pathlib import Path
from typing import IO, Iterable, Iterator, List, Optional

from .errors import ParseError
from .series import PRICE_DECIMALS, quantize_price


logger = logging.getLogger(__name__)

TRADE_FIELDS = ("timestamp", "price", "volume")
PROGRESS_EVERY = 1_000_000


@dataclass(frozen=True)
class Trade:
    timestamp: int
    price: Decimal
    volume: Decimal


def _to_decimal(text: str) -> Optional[Decimal]:
    try:
        return Decimal(text)
    except (InvalidOperation, ValueError):
        return None


def is_header_line(line: str) -> bool:
    # Header: right field count and no numeric field; position in the stream does not matter
    fields = line.strip().split(",")
    if len(fields) != len(TRADE_FIELDS):
        return False
    return all(f.strip() and _to_decimal(f.strip()) is None for f in fields)


def parse_trade_line(line: str, lineno: Optional[int] = None) -> Trade:
    raw = line.rstrip("\r\n")
    fields = [f.strip() for f in raw.split(",")]
    if len(fields) != len(TRADE_FIELDS):
        raise ParseError(f"expected {len(TRADE_FIELDS)} fields, got {len(fields)}", raw, lineno)
    ts_s, price_s, volume_s = fields

    ts = _to_decimal(ts_s)
    if ts is None or not ts.is_finite() or ts < 0:
        raise ParseError("timestamp is not a non-negative number", raw, lineno)

    price = _to_decimal(price_s)
    if price is None or not price.is_finite() or price <= 0:
        raise ParseError("price is not a positive decimal", raw, lineno)
    try:
        stored = quantize_price(price)
    except ValueError as e:
        raise ParseError(f"price not representable in the series: {e}", raw, lineno) from e
    if stored <= 0:
        raise ParseError(f"price rounds to zero at {PRICE_DECIMALS} decimals", raw, lineno)

    volume = _to_decimal(volume_s)
    if volume is None or not volume.is_finite() or volume < 0:
        raise ParseError("volume is not a non-negative decimal", raw, lineno)

    return Trade(
        timestamp=int(ts.to_integral_value(rounding=ROUND_FLOOR)),
        price=price,
        volume=volume,
    )


def format_trade_line(trade: Trade) -> str:
    return f"{trade.timestamp},{format(trade.price, 'f')},{format(trade.volume, 'f')}"


def iter_trades(lines: Iterable[str], errors: Optional[List[ParseError]] = None) -> Iterator[Trade]:
    """Yield trades from text lines, skipping blanks, headers and malformed lines.

    Malformed lines are logged and, when ``errors`` is given, collected there.
    """
    parsed = 0
    for lineno, line in enumerate(lines, start=1):
        if lineno % PROGRESS_EVERY == 0:
            logger.info("Read %dM lines, parsed %d trades", lineno // PROGRESS_EVERY, parsed)
        if not line.strip() or is_header_line(line):
            continue
        try:
            trade = parse_trade_line(line, lineno)
        except ParseError as e:
            logger.warning("skipping malformed trade %s", e)
            if errors is not None:
                errors.append(e)
            continue
        parsed += 1
        yield trade


def decode_feed(payload: bytes) -> List[str]:
    # utf-8-sig strips a BOM; undecodable bytes become U+FFFD and fail parsing per line
    return payload.decode("utf-8-sig", errors="replace").splitlines()


def open_trade_archive(path: Path) -> IO[str]:
    """Open a local trade archive as text; ``*.gz`` archives are decompressed."""
    path = Path(path)
    if path.suffix == ".gz":
        return io.TextIOWrapper(gzip.open(path, "rb"), encoding="utf-8-sig", errors="replace", newline="")
    return open(path, "r", encoding="utf-8-sig", errors="replace", newline="")
