"""Exception types for the cloud sync engine.

Convention:
- ``CatalogError``: static configuration drift (table catalog or redaction
  rules).  Raised once at import time, never during a push.
- ``AuthenticationError``: no usable bearer token.  ``SyncClient.push`` turns
  this into a single push-wide error before any network call is made.
- ``UploadError`` and its subclasses: a single batch failed.  These never
  escape ``push``; they are recorded per table in ``PushResult.errors`` with
  their ``retryable`` flag.
"""

from __future__ import annotations


class CloudSyncError(Exception):
    """Base class for all cloud sync errors."""


class CatalogError(CloudSyncError):
    """Raised when the table catalog or redaction configuration is malformed."""


class AuthenticationError(CloudSyncError):
    """Raised when no valid bearer token is available for a push."""


class UploadError(CloudSyncError):
    """Raised when a batch upload fails.

    ``retryable`` tells the caller whether re-running the push can help.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class NetworkError(UploadError):
    """Transport failure or HTTP 5xx. Safe to retry."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message, status_code=status_code, retryable=True)


class ServerRejectionError(UploadError):
    """HTTP 4xx: schema, auth or validation problem. Retrying cannot help."""

    def __init__(self, message: str, *, status_code: int) -> None:
        super().__init__(message, status_code=status_code, retryable=False)
