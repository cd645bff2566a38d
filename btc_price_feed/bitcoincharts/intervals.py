from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Union


INTERVAL_SECONDS = 1800

Instant = Union[int, datetime]


def interval_of(timestamp: int) -> int:
    """Start of the 30-minute interval containing ``timestamp`` (Unix seconds, UTC)."""
    if timestamp < 0:
        raise ValueError(f"negative timestamp {timestamp}")
    return timestamp - timestamp % INTERVAL_SECONDS


def is_interval_start(value: int) -> bool:
    return value >= 0 and value % INTERVAL_SECONDS == 0


def supersedes(candidate_ts: int, current_ts: Optional[int]) -> bool:
    """Whether a trade at ``candidate_ts`` replaces the current last trade.

    Ties go to the candidate, i.e. to whichever trade was seen later.
    """
    return current_ts is None or candidate_ts >= current_ts


def to_unix(value: Instant) -> int:
    """Unix seconds for an int or datetime; naive datetimes are taken as UTC."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp())
    return int(value)


def to_datetime(timestamp: int) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def open_interval(now: Instant) -> int:
    """Start of the interval containing ``now``, which is still collecting trades.

    Analogous to taking the floor of "now": everything before the returned
    instant belongs to a fully elapsed interval.
    """
    return interval_of(to_unix(now))
