"""Exception classes for the platform client and the sync pipeline."""

from collections.abc import Iterable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from catalog_sync.models.common import ReferenceKey


class APIError(Exception):
    """Base exception for platform API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_text: str | None = None,
    ) -> None:
        """Initialize API error.

        Args:
            message: Error message
            status_code: HTTP status code if available
            response_text: Response body text if available
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_text = response_text

    def __str__(self) -> str:
        """String representation of the error."""
        parts = [self.message]
        if self.status_code:
            parts.append(f"Status: {self.status_code}")
        if self.response_text:
            # Truncate response text for readability
            response_preview = self.response_text[:200]
            if len(self.response_text) > 200:
                response_preview += "..."
            parts.append(f"Response: {response_preview}")
        return " | ".join(parts)


class AuthenticationError(APIError):
    """Raised when authentication fails (401)."""

    pass


class RateLimitError(APIError):
    """Raised when rate limit is exceeded (429)."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_text: str | None = None,
        retry_after: int | None = None,
    ) -> None:
        super().__init__(message, status_code, response_text)
        self.retry_after = retry_after


class ClientError(APIError):
    """Raised for 4xx client errors."""

    pass


class BadRequestError(ClientError):
    """Raised when the platform rejects a request payload (400)."""

    pass


class ResourceNotFoundError(ClientError):
    """Raised when a requested resource is not found (404)."""

    pass


class ConcurrentModificationError(ClientError):
    """Raised when an update carries a stale resource version (409)."""

    pass


class ServerError(APIError):
    """Raised for 5xx server errors."""

    pass


class GatewayError(ServerError):
    """Raised for 502/503/504 gateway errors."""

    pass


class NetworkError(APIError):
    """Raised for network-related errors."""

    pass


class SyncError(Exception):
    """Base exception for errors raised while syncing a draft."""

    def __init__(self, message: str, resource_key: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.resource_key = resource_key


class ValidationError(SyncError):
    """Raised for null drafts, drafts without a key and invalid references."""

    pass


class ReferenceResolutionError(SyncError):
    """Raised when a draft references keys that do not exist on the target yet."""

    def __init__(
        self,
        message: str,
        missing_keys: Iterable["ReferenceKey"],
        resource_key: str | None = None,
    ) -> None:
        super().__init__(message, resource_key)
        self.missing_keys = frozenset(missing_keys)


class CacheBuildError(SyncError):
    """Raised when the batched key to id lookup fails."""

    pass


class ConflictRetryExhausted(SyncError):
    """Raised when the single refetch-and-retry after a version conflict fails.

    The ``reason`` is one of ``conflict`` (the retried update conflicted again),
    ``not_found`` (the resource disappeared) or ``fetch_failed`` (the refetch
    itself failed).
    """

    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    FETCH_FAILED = "fetch_failed"

    def __init__(
        self, message: str, reason: str, resource_key: str | None = None
    ) -> None:
        super().__init__(message, resource_key)
        self.reason = reason


class RemoteCallError(SyncError):
    """Raised when a create or update call fails for reasons other than a conflict."""

    pass


class BuildUpdateActionError(SyncError):
    """Raised when update actions cannot be computed for a draft."""

    pass
