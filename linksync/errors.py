"""
Error hierarchy for the sync core.

Remote calls raise; the engine and monitor catch, log and degrade to
"this actor's data is stale". Nothing here is fatal to the host.
"""
from __future__ import annotations

from typing import Optional

__all__ = [
    "SyncError",
    "TransportError",
    "RemoteRejectedError",
    "RateLimitedError",
    "PersistenceError",
]


class SyncError(Exception):
    """Base for every sync-core failure."""

    transient: bool = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class TransportError(SyncError):
    """Timeout, connection refused, DNS. The cycle is skipped."""

    transient = True


class RemoteRejectedError(SyncError):
    """Backend answered with a non-2xx status."""

    def __init__(self, status: int, body: Optional[str] = None, message: Optional[str] = None) -> None:
        self.status = int(status)
        self.body = body or ""
        detail = f"HTTP {self.status}"
        if self.body:
            detail += f": {self.body[:300]}"
        super().__init__(message or detail)

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status < 500


class RateLimitedError(RemoteRejectedError):
    transient = True

    def __init__(self, body: Optional[str] = None) -> None:
        super().__init__(429, body, message="rate limited (HTTP 429)")


class PersistenceError(SyncError):
    """Local durable storage could not be read or written."""
