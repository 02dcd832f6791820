"""Error taxonomy for the feed sync pipeline."""
from typing import Optional


class SyncError(Exception):
    """Base class for errors that end (or partially end) a feed sync."""

    status_code = 500

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ParameterError(SyncError):
    """Required request parameter missing or malformed."""

    status_code = 400


class FetchError(SyncError):
    """Feed could not be downloaded (bad status, timeout, connection error)."""

    def __init__(
        self,
        message: str,
        status_code_http: Optional[int] = None,
        details: Optional[str] = None
    ):
        super().__init__(message, details=details)
        self.status_code_http = status_code_http


class ParseError(SyncError):
    """Feed text could not be parsed into calendar components."""


class InvalidTimeError(SyncError):
    """A single event's start time could not be resolved."""


class StoreError(SyncError):
    """Destination store read or write failed."""
