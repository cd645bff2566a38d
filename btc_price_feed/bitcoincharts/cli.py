from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .api import DEFAULT_FEED_URL, fetch_feed
from .db import mirror_series
from .errors import CorruptStoreError, FeedUnavailableError, OutOfOrderError
from .intervals import Instant, open_interval
from .merge import merge_lines
from .persistence import PersistConfig, load, now_utc_run_id, persist, write_raw_snapshot
from .series import PriceSeries
from .trades import decode_feed
from .validation import find_gaps


logger = logging.getLogger(__name__)

DEFAULT_DATASET = "bitstamp_btcusd_30m"


@dataclass
class RunConfig:
    store_path: Path
    feed_url: str = DEFAULT_FEED_URL
    duckdb_path: Optional[Path] = None
    persist_dir: Optional[Path] = None
    dataset_slug: str = DEFAULT_DATASET
    dry_run: bool = False
    debug: bool = False
    since: Optional[int] = None


def load_or_empty(store_path: Path, since: Optional[int] = None) -> PriceSeries:
    if not Path(store_path).exists():
        logger.info("no store at %s; starting an empty series", store_path)
        return PriceSeries()
    return load(store_path, since=since)


def run_once(cfg: RunConfig, now: Optional[Instant] = None) -> int:
    now = now if now is not None else datetime.now(timezone.utc)

    series = load_or_empty(cfg.store_path)
    tail_before = series.tail()

    payload = fetch_feed(cfg.feed_url)
    raw_path = None
    if cfg.persist_dir is not None:
        raw_path = write_raw_snapshot(PersistConfig(cfg.persist_dir, cfg.dataset_slug), now_utc_run_id(), payload)

    result = merge_lines(series, decode_feed(payload), now=now)
    if result.parse_errors:
        logger.warning("skipped %d malformed trade lines", len(result.parse_errors))
    for first, last in find_gaps(series):
        logger.debug("gap: no trades recorded for intervals %d..%d", first, last)

    if cfg.dry_run:
        logger.debug("dry run: not persisting %d changes", result.changed)
    else:
        persist(series, cfg.store_path)
        if cfg.duckdb_path is not None:
            mirror_series(cfg.duckdb_path, series)

    print(
        f"pulled={result.trades_seen} appended={result.appended} inserted={result.inserted} "
        f"overwritten={result.overwritten} unchanged={result.unchanged} open={result.open_discarded} "
        f"bad_lines={len(result.parse_errors)} tail={tail_before}->{series.tail()} "
        f"open_interval={open_interval(now)} raw={raw_path}"
    )
    return 0


def print_latest(cfg: RunConfig) -> int:
    series = load_or_empty(cfg.store_path, since=cfg.since)
    latest = series.latest()
    if latest is None:
        print("[ERROR] No price data recorded yet", file=sys.stderr)
        return 2
    print(latest)
    return 0


def parse_args(argv: Optional[list[str]] = None) -> tuple[RunConfig, bool]:
    p = argparse.ArgumentParser(description="Bitstamp BTCUSD 30-minute last-trade price series")
    p.add_argument("--store", type=Path, required=True, help="Path to the price series CSV")
    p.add_argument("--url", default=DEFAULT_FEED_URL, help="Trade feed URL (timestamp,price,volume CSV)")
    p.add_argument("--duckdb", type=Path, default=None, help="Optional DuckDB file to mirror the series into")
    p.add_argument("--persist-dir", type=Path, default=None, help="Directory root for raw feed snapshots")
    p.add_argument("--dataset", type=str, default=DEFAULT_DATASET, help="Dataset slug directory for snapshots")
    p.add_argument("--since", type=int, default=None, help="Ignore stored intervals before this Unix time (with --latest)")
    p.add_argument("--dry-run", action="store_true", help="Do not write the store")
    p.add_argument("--debug", action="store_true", help="Verbose logging")
    p.add_argument("--latest", action="store_true", help="Print the latest recorded price and exit")
    args = p.parse_args(argv)

    cfg = RunConfig(
        store_path=args.store,
        feed_url=args.url,
        duckdb_path=args.duckdb,
        persist_dir=args.persist_dir,
        dataset_slug=args.dataset,
        dry_run=args.dry_run,
        debug=args.debug,
        since=args.since,
    )
    return cfg, args.latest


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="[%(levelname)s] %(message)s",
        stream=sys.stderr,
    )


def main(argv: Optional[list[str]] = None) -> int:
    cfg, latest = parse_args(argv)
    configure_logging(cfg.debug)
    try:
        if latest:
            return print_latest(cfg)
        return run_once(cfg)
    except (CorruptStoreError, OutOfOrderError, FeedUnavailableError) as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        if cfg.debug:
            raise
        return 2
    except Exception as e:  # surface clear error message
        print(f"[ERROR] {e}", file=sys.stderr)
        if cfg.debug:
            raise
        return 3


if __name__ == "__main__":
    raise SystemExit(main())
