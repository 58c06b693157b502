"""Share error taxonomy with stable, machine-readable codes.

Every failure a share operation can surface maps to exactly one
``ShareError`` subclass. Each carries:

  - ``code``: stable ``ErrorCode`` value returned to clients.
  - ``http_status``: status code used by the HTTP layer.
  - ``retryable``: whether the caller may retry (rate limits, timeouts).

Terminal outcomes (no retry): NotFound, Expired, Forbidden, Validation.
Retryable outcomes: RateLimited (after ``retry_after_seconds``), Timeout.
Internal failures are rendered opaque; the detail stays in server logs.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Share-subsystem error codes."""

    SHARE_NOT_FOUND = 'share_not_found'
    SHARE_EXPIRED = 'share_expired'
    AUTH_REQUIRED = 'auth_required'
    FORBIDDEN = 'forbidden'
    SCOPE_VIOLATION = 'share_scope_violation'
    MODE_NOT_PERMITTED = 'share_mode_not_permitted'
    RATE_LIMITED = 'rate_limited'
    VALIDATION_ERROR = 'validation_error'
    FILE_NOT_FOUND = 'file_not_found'
    CONFLICT = 'conflict'
    SHARE_UNAVAILABLE = 'share_unavailable'
    TIMEOUT = 'timeout'
    INTERNAL = 'internal_error'


class ShareError(Exception):
    """Base class for every share-subsystem failure."""

    code: ErrorCode = ErrorCode.INTERNAL
    http_status: int = 500
    retryable: bool = False
    default_message: str = 'Internal error.'

    def __init__(self, message: str | None = None, **details: Any) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the client-facing error body."""
        body: dict[str, Any] = {
            'error': self.code.value,
            'detail': self.message,
        }
        if self.retryable:
            body['retryable'] = True
        return body


class ShareNotFound(ShareError):
    """The token never existed (or was revoked and deleted)."""

    code = ErrorCode.SHARE_NOT_FOUND
    http_status = 404
    default_message = 'Share link not found.'


class ShareExpired(ShareError):
    """The share existed but is past ``expires_at``."""

    code = ErrorCode.SHARE_EXPIRED
    http_status = 410
    default_message = 'This share link has expired.'

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body['expired'] = True
        return body


class ShareForbidden(ShareError):
    """Ownership mismatch or operation not allowed."""

    code = ErrorCode.FORBIDDEN
    http_status = 403
    default_message = 'Not allowed.'


class ShareScopeViolation(ShareForbidden):
    """Requested path is outside the share's declared scope."""

    code = ErrorCode.SCOPE_VIOLATION
    default_message = 'Access to this path is not allowed.'


class ShareModeNotPermitted(ShareForbidden):
    """The share's mode does not allow this operation."""

    code = ErrorCode.MODE_NOT_PERMITTED
    default_message = 'This share does not allow this operation.'


class ShareRateLimited(ShareError):
    """Deposit rate limit reached; retry after the given delay."""

    code = ErrorCode.RATE_LIMITED
    http_status = 429
    retryable = True
    default_message = 'Upload limit reached. Try again later.'

    def __init__(
        self,
        message: str | None = None,
        *,
        retry_after_seconds: int,
        reason: str | None = None,
    ) -> None:
        super().__init__(message, reason=reason)
        self.retry_after_seconds = retry_after_seconds
        self.reason = reason

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body['retry_after'] = self.retry_after_seconds
        if self.reason:
            body['reason'] = self.reason
        return body


class ShareValidationError(ShareError):
    """Malformed creation or request input."""

    code = ErrorCode.VALIDATION_ERROR
    http_status = 400
    default_message = 'Invalid request.'


class SharedFileNotFound(ShareError):
    """The path is in scope but the backend has no such file."""

    code = ErrorCode.FILE_NOT_FOUND
    http_status = 404
    default_message = 'File not found.'


class SharedFileConflict(ShareError):
    """The backend rejected a write because the file changed underneath."""

    code = ErrorCode.CONFLICT
    http_status = 409
    default_message = 'The file was modified. Reload and try again.'


class ShareUnavailable(ShareError):
    """Stored share cannot be used (credential decryption or storage failure)."""

    code = ErrorCode.SHARE_UNAVAILABLE
    http_status = 500
    default_message = 'This share is currently unusable.'


class ShareTimeout(ShareError):
    """Resolution or backend call exceeded the per-request timeout."""

    code = ErrorCode.TIMEOUT
    http_status = 504
    retryable = True
    default_message = 'The request timed out. Try again.'
