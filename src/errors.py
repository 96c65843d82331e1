"""
Error taxonomy for the hydration layer.

Upstream clients and storage backends raise these; the Hydrator converts
them into tagged outcomes so nothing escapes a hydration as an uncaught
failure.
"""

from __future__ import annotations

from typing import Optional

from src.models import ErrorKind


class HydrationError(Exception):
    """Base class. `kind` is what the render layer gets to see."""

    kind: ErrorKind = ErrorKind.upstream_error


class StorageUnavailable(HydrationError):
    """Durable storage could not be read or written."""

    kind = ErrorKind.storage_unavailable


class RateLimited(HydrationError):
    """An upstream signalled quota exhaustion."""

    kind = ErrorKind.rate_limited

    def __init__(self, upstream: str, reset_at: int = 0):
        super().__init__(f"{upstream} rate limit exceeded")
        self.upstream = upstream
        self.reset_at = reset_at  # epoch millis, 0 when the upstream gave none


class UpstreamError(HydrationError):
    """Request failed or returned a non-success status."""

    kind = ErrorKind.upstream_error

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedResponse(HydrationError):
    """Response body could not be parsed into the expected structure."""

    kind = ErrorKind.malformed_response
