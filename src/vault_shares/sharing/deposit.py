"""Deposit uploads: anonymous writes into a share's drop folder.

Order per request: mode check, rate-limit check, then per file: limit
re-check, bounded read, size, extension, sanitized unique name, sandbox
check, write, ``record``. Nothing is read from an upload until the share
and the limit allow it, and never more than ``max_file_size + 1`` bytes.
The limit is re-checked before each file so one multi-file request cannot
overrun the window. A file that fails validation or the backend write is
reported in ``errors`` and does not consume quota.
"""

from __future__ import annotations

import asyncio
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol, Sequence

import httpx

from vault_shares.backend.store import StoreConflictError, StoreError
from vault_shares.observability import get_logger, redact_token
from vault_shares.observability.metrics import DEPOSIT_UPLOADS_TOTAL, RATE_LIMIT_DENIALS_TOTAL

from .context import ShareContext
from .errors import (
    ShareModeNotPermitted,
    ShareRateLimited,
    ShareScopeViolation,
    ShareValidationError,
)
from .model import DepositAccess, DepositConfig
from .rate_limit import DepositRateLimiter, REASON_IP_LIMIT, rate_limit_log_fields
from .validation import (
    SEPARATOR,
    build_full_path,
    file_extension,
    sanitize_filename,
    validate_share_path,
)

logger = get_logger(__name__)

UNIQUE_ID_LENGTH = 6
MAX_NAME_ATTEMPTS = 5
DEFAULT_WRITE_TIMEOUT_SECONDS = 15.0
DEFAULT_UPLOAD_NAME = 'upload'
_ID_ALPHABET = string.ascii_letters + string.digits

_RATE_LIMIT_MESSAGES = {
    REASON_IP_LIMIT: 'Upload limit reached. Try again in a few minutes.',
}
_SHARE_LIMIT_MESSAGE = 'Too many files were deposited on this link. Try again later.'


class UploadSource(Protocol):
    """A named upload read on demand. FastAPI's ``UploadFile`` fits."""

    filename: str | None

    async def read(self, size: int = -1) -> bytes: ...


@dataclass(frozen=True, slots=True)
class UploadedFile:
    """An upload already held in memory."""

    filename: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)

    async def read(self, size: int = -1) -> bytes:
        return self.content if size < 0 else self.content[:size]


def unique_filename(original: str, *, today: datetime | None = None) -> str:
    """``YYYY-MM-DD_<id>_<sanitized name>``."""
    day = (today or datetime.now(timezone.utc)).date().isoformat()
    uid = ''.join(secrets.choice(_ID_ALPHABET) for _ in range(UNIQUE_ID_LENGTH))
    return f'{day}_{uid}_{sanitize_filename(original)}'


def _rejection(name: str, message: str) -> dict[str, str]:
    DEPOSIT_UPLOADS_TOTAL.labels(result='rejected').inc()
    return {'name': name, 'error': message}


def _validate(name: str, content: bytes, config: DepositConfig) -> str | None:
    if len(content) > config.max_file_size:
        max_mb = max(1, round(config.max_file_size / (1024 * 1024)))
        return f'File too large (max {max_mb}MB)'
    if config.allowed_extensions:
        ext = file_extension(name)
        if ext not in config.allowed_extensions:
            return f'File type not allowed ({ext or "none"})'
    return None


def _raise_limited(limiter_result, ip: str, token: str) -> None:
    RATE_LIMIT_DENIALS_TOTAL.labels(reason=limiter_result.reason).inc()
    logger.info('deposit_rate_limited', **rate_limit_log_fields(ip, token, limiter_result))
    raise ShareRateLimited(
        _RATE_LIMIT_MESSAGES.get(limiter_result.reason, _SHARE_LIMIT_MESSAGE),
        retry_after_seconds=limiter_result.retry_after_seconds or 60,
        reason=limiter_result.reason,
    )


async def _write_unique(
    context: ShareContext,
    folder: str,
    name: str,
    content: bytes,
    timeout_seconds: float,
) -> str:
    """Write under a fresh unique name, renaming on collision.

    Every store call is bounded by ``timeout_seconds``.

    Raises:
        ShareScopeViolation: The target path falls outside the share.
        asyncio.TimeoutError: A store call exceeded the timeout.
    """
    for _ in range(MAX_NAME_ATTEMPTS):
        path = build_full_path(folder, unique_filename(name))
        # Deposit folders are owner-configured, so nesting is always allowed.
        if not validate_share_path(path, context.share.scope_path, True):
            raise ShareScopeViolation()
        if await asyncio.wait_for(context.client.exists(path), timeout_seconds):
            continue
        try:
            await asyncio.wait_for(
                context.client.write_path(
                    path,
                    content,
                    f'Upload {sanitize_filename(name)} via deposit link',
                ),
                timeout_seconds,
            )
        except StoreConflictError:
            continue
        return path
    raise StoreConflictError(f'no free name for {name}')


async def process_deposit(
    context: ShareContext,
    client_ip: str,
    files: Sequence[UploadSource],
    limiter: DepositRateLimiter,
    *,
    timeout_seconds: float = DEFAULT_WRITE_TIMEOUT_SECONDS,
) -> dict[str, Any]:
    """Validate and store each upload. Returns ``{uploaded, errors, remaining}``.

    Raises:
        ShareModeNotPermitted: The share is not a deposit share.
        ShareRateLimited: The limit is exhausted before the first file.
        ShareValidationError: No files were sent.
    """
    share = context.share
    if not isinstance(share.access, DepositAccess):
        raise ShareModeNotPermitted('This share does not accept deposits.')

    token = share.token
    result = limiter.check(client_ip, token)
    if not result.allowed:
        _raise_limited(result, client_ip, token)

    if not files:
        raise ShareValidationError('No files provided.')

    config = share.access.config
    folder = build_full_path(share.scope_path, config.deposit_folder)

    uploaded: list[dict[str, Any]] = []
    errors: list[dict[str, str]] = []

    for upload in files:
        name = upload.filename or DEFAULT_UPLOAD_NAME
        if not limiter.check(client_ip, token).allowed:
            errors.append(_rejection(name, 'Upload limit reached.'))
            continue

        content = await upload.read(config.max_file_size + 1)
        problem = _validate(name, content, config)
        if problem:
            errors.append(_rejection(name, problem))
            continue

        try:
            path = await _write_unique(context, folder, name, content, timeout_seconds)
        except ShareScopeViolation:
            logger.error('deposit_path_outside_scope', token=redact_token(token))
            errors.append(_rejection(name, 'Path not allowed.'))
            continue
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning(
                'deposit_write_timeout',
                token=redact_token(token),
                filename=sanitize_filename(name),
            )
            errors.append(_rejection(name, 'Upload timed out. Try again.'))
            continue
        except (StoreError, httpx.HTTPError):
            logger.warning(
                'deposit_write_failed',
                token=redact_token(token),
                filename=sanitize_filename(name),
                exc_info=True,
            )
            errors.append(_rejection(name, 'Upload failed.'))
            continue

        limiter.record(client_ip, token)
        DEPOSIT_UPLOADS_TOTAL.labels(result='uploaded').inc()
        uploaded.append({
            'path': path,
            'name': path.rsplit(SEPARATOR, 1)[-1],
            'original_name': name,
            'size': len(content),
        })

    return {
        'success': bool(uploaded),
        'uploaded': uploaded,
        'errors': errors,
        'remaining': limiter.check(client_ip, token).remaining,
    }
