from __future__ import annotations

import logging
import os
import stat
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import pandas as pd

from .errors import CorruptStoreError
from .series import PriceSeries, format_price
from .validation import STORE_COLUMNS, validate_store_frame


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PersistConfig:
    root_dir: Path
    dataset_slug: str

    def dataset_dir(self) -> Path:
        d = self.root_dir / self.dataset_slug
        d.mkdir(parents=True, exist_ok=True)
        return d


def now_utc_run_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%SZ")


def write_raw_snapshot(cfg: PersistConfig, run_id: str, payload: bytes) -> Path:
    """Keep the raw feed pull next to the dataset for auditing."""
    out = cfg.dataset_dir() / f"{run_id}_feed_pull.csv"
    out.write_bytes(payload)
    return out


def load(source: Path, since: Optional[int] = None) -> PriceSeries:
    """Read a persisted series; any integrity violation raises CorruptStoreError.

    ``since`` drops entries before that interval start, after the whole file
    has been validated.
    """
    source = Path(source)
    try:
        df = pd.read_csv(source, dtype=str, keep_default_na=False)
    except (pd.errors.EmptyDataError, pd.errors.ParserError) as e:
        raise CorruptStoreError(f"unreadable store {source}: {e}") from e

    res = validate_store_frame(df)
    if not res.ok:
        raise CorruptStoreError(f"{source}: {res.reason}", res.bad_row)

    series = PriceSeries(list(res.entries))
    if since is not None:
        series = series.since(since)
    logger.info("loaded %d intervals from %s (tail=%s)", len(series), source, series.tail())
    return series


def series_to_frame(series: PriceSeries) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "interval_start_timestamp": str(e.interval_start),
                "price": format_price(e.price),
                "trade_timestamp": "" if e.trade_timestamp is None else str(e.trade_timestamp),
            }
            for e in series
        ],
        columns=STORE_COLUMNS,
    )


def _target_mode(destination: Path) -> int:
    # mkstemp creates 0600 files; keep an existing store's mode, else the usual umask default
    if destination.exists():
        return stat.S_IMODE(destination.stat().st_mode)
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def persist(series: PriceSeries, destination: Path) -> Path:
    """Write the full series in ascending order, atomically replacing ``destination``."""
    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)
    df = series_to_frame(series)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{destination.name}.", suffix=".tmp", dir=destination.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
            df.to_csv(fh, index=False, lineterminator="\n")
            fh.flush()
            os.fsync(fh.fileno())
        os.chmod(tmp_name, _target_mode(destination))
        os.replace(tmp_name, destination)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    logger.info("persisted %d intervals to %s", len(series), destination)
    return destination
