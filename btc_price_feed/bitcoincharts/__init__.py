"""Bitstamp BTCUSD 30-minute last-trade price series, fed from bitcoincharts.

Implements trade parsing, interval bucketing, the series store with CSV
persistence and the merge engine. The DuckDB mirror is optional.
"""

__all__ = [
    "api",
    "cli",
    "db",
    "errors",
    "intervals",
    "merge",
    "persistence",
    "series",
    "trades",
    "validation",
]
