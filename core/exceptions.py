"""Error taxonomy for the ICS interchange engine."""
from typing import Optional


class ICSEngineError(Exception):
    """Base class for errors raised by the sync and feed components."""


class FetchError(ICSEngineError):
    """Feed could not be downloaded (network failure, timeout, non-2xx)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FeedParseError(ICSEngineError):
    """Downloaded body is not an iCalendar document."""


class PersistenceError(ICSEngineError):
    """Store write or read failed."""


class AuthError(ICSEngineError):
    """Missing or invalid caller identity."""


class ValidationError(ICSEngineError):
    """Request payload failed validation."""
