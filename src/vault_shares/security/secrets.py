"""Share-service secret configuration and validation.

Loads, validates, and provides typed access to the secrets the share
service needs: the credential-encryption master secret, the owner session
signing secret, and the Supabase service-role key.

Secret sources (in order of precedence):
  1. Explicit keyword arguments (for testing and local dev).
  2. Environment variables.

Security invariants:
  - Secrets are never included in ``str()`` or ``repr()`` output.
  - ``ShareSecrets`` is immutable (frozen dataclass).
  - A missing ``ENCRYPTION_KEY`` is fatal at startup, never a
    per-request error.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


class SecretValidationError(ValueError):
    """Raised when required secrets are missing or invalid."""

    def __init__(self, missing: list[str], invalid: list[str] | None = None) -> None:
        self.missing = missing
        self.invalid = invalid or []
        parts = []
        if missing:
            parts.append(f'missing: {", ".join(missing)}')
        if self.invalid:
            parts.append(f'invalid: {", ".join(self.invalid)}')
        super().__init__(f'Secret validation failed: {"; ".join(parts)}')


# ── Minimum lengths for security ────────────────────────────────────

_MIN_ENCRYPTION_KEY_LENGTH = 32
_MIN_SESSION_SECRET_LENGTH = 32


# ── Secret container ────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ShareSecrets:
    """Immutable typed container for share-service secrets.

    Attributes:
        encryption_key: Master secret for credential envelope encryption.
        session_secret: HS256 secret verifying owner session tokens.
        supabase_service_role_key: PostgREST key (empty for in-memory).
    """

    encryption_key: str
    session_secret: str
    supabase_service_role_key: str = ''

    def __repr__(self) -> str:
        return (
            'ShareSecrets('
            'encryption_key=<redacted>, '
            'session_secret=<redacted>, '
            'supabase_service_role_key=<redacted>)'
        )

    def __str__(self) -> str:
        return self.__repr__()


# ── Loading ─────────────────────────────────────────────────────────


def load_share_secrets(
    *,
    encryption_key: str | None = None,
    session_secret: str | None = None,
    supabase_service_role_key: str | None = None,
    require_supabase: bool = False,
) -> ShareSecrets:
    """Load secrets from environment with optional explicit overrides.

    Environment variables:
      - ``ENCRYPTION_KEY``
      - ``SESSION_SECRET``
      - ``SUPABASE_SERVICE_ROLE_KEY``

    Raises:
        SecretValidationError: If required secrets are missing or invalid.
    """
    secrets = ShareSecrets(
        encryption_key=(
            encryption_key or os.environ.get('ENCRYPTION_KEY', '')
        ).strip(),
        session_secret=(
            session_secret or os.environ.get('SESSION_SECRET', '')
        ).strip(),
        supabase_service_role_key=(
            supabase_service_role_key
            or os.environ.get('SUPABASE_SERVICE_ROLE_KEY', '')
        ).strip(),
    )
    validate_secrets(secrets, require_supabase=require_supabase)
    return secrets


# ── Validation ──────────────────────────────────────────────────────


def validate_secrets(
    secrets: ShareSecrets,
    *,
    require_supabase: bool = False,
) -> None:
    """Validate that all required secrets are present and well-formed.

    Required:
      - ``encryption_key``: >= 32 characters.
      - ``session_secret``: >= 32 characters.

    Conditionally required:
      - ``supabase_service_role_key`` when ``require_supabase=True``.

    Raises:
        SecretValidationError: On validation failure.
    """
    missing: list[str] = []
    invalid: list[str] = []

    if not secrets.encryption_key:
        missing.append('ENCRYPTION_KEY')
    elif len(secrets.encryption_key) < _MIN_ENCRYPTION_KEY_LENGTH:
        invalid.append(
            f'ENCRYPTION_KEY (min {_MIN_ENCRYPTION_KEY_LENGTH} chars, '
            f'got {len(secrets.encryption_key)})'
        )

    if not secrets.session_secret:
        missing.append('SESSION_SECRET')
    elif len(secrets.session_secret) < _MIN_SESSION_SECRET_LENGTH:
        invalid.append(
            f'SESSION_SECRET (min {_MIN_SESSION_SECRET_LENGTH} chars, '
            f'got {len(secrets.session_secret)})'
        )

    if require_supabase and not secrets.supabase_service_role_key:
        missing.append('SUPABASE_SERVICE_ROLE_KEY')

    if missing or invalid:
        raise SecretValidationError(missing=missing, invalid=invalid)
