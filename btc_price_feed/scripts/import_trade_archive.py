#!/usr/bin/env python3
"""
Seed or extend the 30-minute BTC price series from a historical trade archive.

The archive is the bitcoincharts dump for a market, e.g. bitstampUSD.csv.gz,
with one ``timestamp,price,volume`` trade per line and no header (a header is
tolerated). Plain and gzipped files are accepted.

Essential steps:
  - Load the existing store if present (integrity violations abort the run)
  - Stream the archive through the merge engine, keeping the last trade per
    closed 30-minute interval; malformed lines are counted and skipped
  - Persist the store atomically, optionally mirroring into DuckDB

Usage example:
  python -m btc_price_feed.scripts.import_trade_archive \
    --archive data/bitstampUSD.csv.gz \
    --store data/bitstamp_btcusd_30m.csv \
    --duckdb data/btc_price.duckdb
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from btc_price_feed.bitcoincharts.cli import configure_logging, load_or_empty
from btc_price_feed.bitcoincharts.db import mirror_series
from btc_price_feed.bitcoincharts.errors import CorruptStoreError, OutOfOrderError
from btc_price_feed.bitcoincharts.merge import MergeResult, merge_lines
from btc_price_feed.bitcoincharts.persistence import persist
from btc_price_feed.bitcoincharts.trades import open_trade_archive
from btc_price_feed.bitcoincharts.validation import find_gaps


logger = logging.getLogger(__name__)


def import_archive(archive: Path, store: Path, *, now, duckdb_path: Optional[Path] = None, dry_run: bool = False) -> MergeResult:
    series = load_or_empty(store)
    with open_trade_archive(archive) as fh:
        result = merge_lines(series, fh, now=now)

    gaps = find_gaps(series)
    print(
        f"[CHECK] intervals={len(series):,} range={series.head()}..{series.tail()} gaps={len(gaps)} "
        f"bad_lines={len(result.parse_errors)}"
    )
    if dry_run:
        print("[DRY-RUN] Skipping store write.")
        return result

    persist(series, store)
    if duckdb_path is not None:
        mirror_series(duckdb_path, series)
    print(f"[INFO] Recorded {result.changed} intervals ({result.appended} appended, "
          f"{result.inserted} inserted, {result.overwritten} overwritten) into {store}")
    return result


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Import a bitcoincharts trade archive into the 30m price series")
    p.add_argument("--archive", type=Path, required=True, help="Trade archive CSV (optionally .gz)")
    p.add_argument("--store", type=Path, required=True, help="Price series CSV to create or extend")
    p.add_argument("--duckdb", type=Path, default=None, help="Optional DuckDB file to mirror into")
    p.add_argument("--dry-run", action="store_true", help="Merge and report only; do not write the store")
    p.add_argument("--debug", action="store_true", help="Verbose logging")
    return p.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.debug)
    if not args.archive.exists():
        print(f"[ERROR] Archive not found: {args.archive}", file=sys.stderr)
        return 2
    try:
        import_archive(
            args.archive,
            args.store,
            now=datetime.now(timezone.utc),
            duckdb_path=args.duckdb,
            dry_run=args.dry_run,
        )
    except (CorruptStoreError, OutOfOrderError) as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
