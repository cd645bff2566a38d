from __future__ import annotations

import logging
from typing import Callable, Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from .errors import FeedUnavailableError


logger = logging.getLogger(__name__)

DEFAULT_FEED_URL = "http://api.bitcoincharts.com/v1/trades.csv?symbol=bitstampUSD"
USER_AGENT = "btc-price-feed/1.0"


def fetch_feed(url: str = DEFAULT_FEED_URL, timeout: float = 15.0, requester: Optional[Callable[[str], bytes]] = None) -> bytes:
    """Fetch recent trades as raw ``timestamp,price,volume`` CSV bytes.

    A single GET; any failure is raised as FeedUnavailableError, no retry.
    """
    if requester is not None:
        try:
            payload = requester(url)
        except FeedUnavailableError:
            raise
        except Exception as e:
            raise FeedUnavailableError(f"GET {url} failed: {e}", url) from e
    else:
        req = Request(url, headers={"User-Agent": USER_AGENT})
        try:
            with urlopen(req, timeout=timeout) as resp:
                payload = resp.read()
        except HTTPError as e:
            raise FeedUnavailableError(f"GET {url} returned HTTP {e.code}", url) from e
        except (URLError, TimeoutError, OSError) as e:
            raise FeedUnavailableError(f"GET {url} failed: {e}", url) from e
    logger.info("GET %s: %d bytes", url, len(payload))
    return payload
