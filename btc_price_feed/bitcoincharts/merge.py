"""Fold batches of trades into a PriceSeries.

Each interval keeps the price of its chronologically-last trade. A merge
never records a price for the interval containing ``now``, because more
trades can still arrive for it. Re-merging a batch, or a batch overlapping an
earlier one, leaves the series unchanged: the winner per interval depends
only on trade timestamps, and a stored price is replaced only by a strictly
later trade.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, Iterable, Iterator, List, Tuple

from .errors import ParseError
from .intervals import Instant, interval_of, open_interval, supersedes
from .series import PriceSeries
from .trades import Trade, iter_trades


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MergeResult:
    trades_seen: int
    appended: int = 0
    inserted: int = 0
    overwritten: int = 0
    unchanged: int = 0
    open_discarded: int = 0
    parse_errors: Tuple[ParseError, ...] = ()

    @property
    def changed(self) -> int:
        return self.appended + self.inserted + self.overwritten


def select_winners(trades: Iterable[Trade]) -> Dict[int, Trade]:
    """Last trade per interval; equal timestamps go to the one seen later."""
    winners: Dict[int, Trade] = {}
    for trade in trades:
        interval = interval_of(trade.timestamp)
        current = winners.get(interval)
        if supersedes(trade.timestamp, None if current is None else current.timestamp):
            winners[interval] = trade
    return winners


def merge_trades(series: PriceSeries, trades: Iterable[Trade], *, now: Instant) -> MergeResult:
    """Merge ``trades`` into ``series`` in place.

    ``now`` decides which interval is still open; trades in it (or later) are
    dropped. The series is only modified once every change has been applied
    successfully to a working copy.
    """
    cutoff = open_interval(now)
    seen = 0
    open_discarded = 0

    def _closed() -> Iterator[Trade]:
        nonlocal seen, open_discarded
        for trade in trades:
            seen += 1
            if trade.timestamp >= cutoff:
                open_discarded += 1
                continue
            yield trade

    winners = select_winners(_closed())
    if open_discarded:
        logger.debug("discarded %d trades at or after open interval %d", open_discarded, cutoff)

    counts = {"appended": 0, "inserted": 0, "overwritten": 0}
    unchanged = 0
    work = series.copy()
    for interval, trade in sorted(winners.items()):
        stored = work.get(interval)
        if stored is not None:
            # Unknown provenance (legacy store rows) is never overwritten
            if stored.trade_timestamp is None or trade.timestamp <= stored.trade_timestamp:
                unchanged += 1
                continue
            logger.debug(
                "interval %d: %s@%d supersedes %s@%d",
                interval, trade.price, trade.timestamp, stored.price, stored.trade_timestamp,
            )
        outcome = work.append_or_overwrite(interval, trade.price, trade.timestamp)
        counts[outcome] += 1

    series.replace_with(work)
    return MergeResult(
        trades_seen=seen,
        unchanged=unchanged,
        open_discarded=open_discarded,
        **counts,
    )


def merge_lines(series: PriceSeries, lines: Iterable[str], *, now: Instant) -> MergeResult:
    """Parse raw feed lines and merge them; malformed lines are reported, not fatal."""
    errors: List[ParseError] = []
    result = merge_trades(series, iter_trades(lines, errors), now=now)
    return replace(result, parse_errors=tuple(errors))
