# storesync/shared/exceptions.py
from typing import Optional

from fastapi import HTTPException, status


# Pipeline exceptions
class SyncError(Exception):
    """Base exception for synchronization errors."""

    pass


class ConfigurationError(SyncError):
    """Raised when a required setting is missing."""

    pass


class UpstreamError(SyncError):
    """Raised when the upstream commerce API returns an error."""

    def __init__(self, status_code: Optional[int], message: str) -> None:
        super().__init__(message)
        self.status_code = status_code


class UpstreamRateLimitError(UpstreamError):
    """Raised when the upstream API answers 429."""

    def __init__(self, retry_after: Optional[float], message: str = "") -> None:
        super().__init__(429, message or "Rate limited by upstream API")
        self.retry_after = retry_after


class UpstreamResponseError(UpstreamError):
    """Raised when an upstream response does not have the expected shape."""

    def __init__(self, message: str) -> None:
        super().__init__(None, message)


class RetriesExhaustedError(SyncError):
    """Raised when an operation failed on every allowed attempt."""

    def __init__(self, attempts: int, last_error: Optional[BaseException]) -> None:
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class StoreError(SyncError):
    """Raised when a key-value store request fails."""

    pass


class StoreCapacityError(StoreError):
    """Raised when the key-value store rejects a request for throughput."""

    pass


class ResourceSyncError(SyncError):
    """Raised when a whole resource sync cannot proceed."""

    pass


class LeaseUnavailableError(ResourceSyncError):
    """Raised when another run holds the lease for a resource."""

    pass


class ImportConfigurationError(ConfigurationError):
    """Raised when the bulk import has no source location."""

    pass


# HTTP exceptions
class SyncConfigurationHTTPError(HTTPException):
    def __init__(self, message: str = "Sync is not configured") -> None:
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=message
        )


class SyncStatusNotFoundError(HTTPException):
    def __init__(self, message: str = "Unknown sync resource") -> None:
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=message)
