from __future__ import annotations

from typing import Any, Dict, Optional


class PriceFeedError(Exception):
    """Base error for the price series feed."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ParseError(PriceFeedError, ValueError):
    """A single trade line could not be decoded. Recoverable: skip the line."""

    def __init__(self, reason: str, line: str, lineno: Optional[int] = None):
        where = f"line {lineno}: " if lineno is not None else ""
        super().__init__(f"{where}{reason} ({line!r})", {"line": line, "lineno": lineno})
        self.reason = reason
        self.line = line
        self.lineno = lineno


class CorruptStoreError(PriceFeedError):
    """The persisted series failed an integrity check on load."""

    def __init__(self, message: str, row: Optional[int] = None):
        super().__init__(message if row is None else f"row {row}: {message}", {"row": row})
        self.row = row


class OutOfOrderError(PriceFeedError):
    """A store mutation would break the ascending-interval invariant."""


class FeedUnavailableError(PriceFeedError):
    """The live trade feed could not be fetched."""

    def __init__(self, message: str, url: str):
        super().__init__(message, {"url": url})
        self.url = url
