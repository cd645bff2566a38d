"""BTC Price Feed - canonical 30-minute Bitcoin price series.

Provides:
- bitcoincharts trade feed ingestion (historical archive and live endpoint)
- Last-trade-per-interval merge engine with idempotent updates
- CSV series store with an optional DuckDB mirror
"""

__version__ = "0.1.0"

# Expose main submodules
from . import bitcoincharts
from . import scripts

__all__ = ["bitcoincharts", "scripts", "__version__"]
