"""CLI scripts for building the price series from offline data.

Scripts:
- import_trade_archive: Seed or extend the 30m series from a bitcoincharts trade archive

Usage:
    python -m btc_price_feed.scripts.import_trade_archive --help
"""

__all__ = [
    "import_trade_archive",
]
