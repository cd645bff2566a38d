"""DuckDB mirror of the persisted series for SQL readers downstream.

The CSV store stays the source of truth; the mirror is rebuilt from it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import duckdb  # type: ignore
import pandas as pd

from .persistence import series_to_frame
from .series import PRICE_DECIMALS, PriceSeries


TABLE_NAME = "btc_price_30m"


def _connect(db_path: Path):
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(db_path))


def ensure_table(db_path: Path) -> None:
    con = _connect(db_path)
    try:
        con.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
              interval_start TIMESTAMP,
              price DECIMAL(18, {PRICE_DECIMALS}),
              trade_timestamp BIGINT,
              created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
            """
        )
    finally:
        con.close()


def mirror_series(db_path: Path, series: PriceSeries) -> int:
    """Replace the mirror table contents with ``series`` in one transaction."""
    ensure_table(db_path)
    df = series_to_frame(series)
    df.insert(0, "interval_start", pd.to_datetime(df["interval_start_timestamp"].astype("int64"), unit="s"))
    con = _connect(db_path)
    try:
        con.execute("SET TimeZone='UTC';")
        con.register("tmp_series", df)
        con.execute("BEGIN TRANSACTION;")
        try:
            con.execute(f"DELETE FROM {TABLE_NAME};")
            con.execute(
                f"""
                INSERT INTO {TABLE_NAME} (interval_start, price, trade_timestamp)
                SELECT t.interval_start,
                       CAST(t.price AS DECIMAL(18, {PRICE_DECIMALS})),
                       CAST(NULLIF(t.trade_timestamp, '') AS BIGINT)
                FROM tmp_series t
                ORDER BY t.interval_start
                """
            )
            con.execute("COMMIT;")
        except Exception:
            con.execute("ROLLBACK;")
            raise
        con.unregister("tmp_series")
        return len(df)
    finally:
        con.close()


def read_series(db_path: Path) -> pd.DataFrame:
    con = _connect(db_path)
    try:
        con.execute("SET TimeZone='UTC';")
        q = f"""
            SELECT interval_start, CAST(price AS VARCHAR) AS price, trade_timestamp
            FROM {TABLE_NAME}
            ORDER BY interval_start
        """
        return con.execute(q).fetch_df()
    finally:
        con.close()


def coverage_stats(db_path: Path) -> Optional[tuple[pd.Timestamp, pd.Timestamp, int]]:
    con = _connect(db_path)
    try:
        q = f"SELECT MIN(interval_start), MAX(interval_start), COUNT(*) FROM {TABLE_NAME}"
        res = con.execute(q).fetchone()
        if res is None or res[0] is None:
            return None
        return pd.Timestamp(res[0]), pd.Timestamp(res[1]), int(res[2])
    finally:
        con.close()
