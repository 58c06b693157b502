"""Share domain model and repository protocol.

A share is a capability: whoever holds the token can reach the declared
scope of the owner's vault until ``expires_at``, with the abilities of its
mode. The owner's store credential travels with the share only as an
encrypted blob.

Invariants:
  - ``expires_at > created_at``.
  - ``encrypted_credential`` never leaves the server (excluded from repr
    and from every public projection).
  - Note scope implies ``include_subfolders=False``; the accessible path
    set is exactly ``<scope_path>.md``.
  - ``access_count`` only grows; increments are atomic in storage.

Mode-specific data lives on the ``access`` variant: only ``DepositAccess``
carries a ``DepositConfig``.

This module provides:
  1. ``Share`` and its value types (scope, access variants, permissions).
  2. ``ShareRepository``: storage protocol.
  3. ``InMemoryShareRepository``: tests and local development.
  4. ``generate_share_token`` / ``expiration_delta``.
"""

from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import ClassVar, Protocol, Union

from vault_shares.backend.store import VaultConfig

from .errors import ShareValidationError
from .validation import scope_name

# ── Constants ─────────────────────────────────────────────────────────

TOKEN_LENGTH = 21
_TOKEN_ALPHABET = 'ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789_-'

DEFAULT_DEPOSIT_MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MiB.

EXPIRATION_OPTIONS: dict[str, timedelta] = {
    '1h': timedelta(hours=1),
    '1d': timedelta(days=1),
    '1w': timedelta(weeks=1),
    '1m': timedelta(days=30),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Token operations ──────────────────────────────────────────────────


def generate_share_token() -> str:
    """21-character URL-safe random token (~126 bits of entropy)."""
    return ''.join(secrets.choice(_TOKEN_ALPHABET) for _ in range(TOKEN_LENGTH))


def expiration_delta(expires_in: str) -> timedelta:
    """Map an ``expires_in`` code to its duration.

    Raises:
        ShareValidationError: For unknown codes.
    """
    try:
        return EXPIRATION_OPTIONS[expires_in]
    except KeyError:
        raise ShareValidationError(
            f'expires_in must be one of: {", ".join(EXPIRATION_OPTIONS)}',
        )


# ── Value types ───────────────────────────────────────────────────────


class ScopeType(str, Enum):
    FOLDER = 'folder'
    NOTE = 'note'


class ShareMode(str, Enum):
    READER = 'reader'
    WRITER = 'writer'
    DEPOSIT = 'deposit'


@dataclass(frozen=True, slots=True)
class PermissionFlags:
    """Client-side capabilities offered to share viewers."""

    allow_copy: bool = True
    allow_export: bool = True

    def to_dict(self) -> dict[str, bool]:
        return {'allow_copy': self.allow_copy, 'allow_export': self.allow_export}


@dataclass(frozen=True, slots=True)
class DepositConfig:
    """Upload policy of a deposit share.

    Attributes:
        max_file_size: Per-file byte limit.
        allowed_extensions: Lower-cased extensions with dot (``.pdf``), or
            None for any type.
        deposit_folder: Folder under the scope receiving uploads (``''`` is
            the scope root).
    """

    max_file_size: int = DEFAULT_DEPOSIT_MAX_FILE_SIZE
    allowed_extensions: tuple[str, ...] | None = None
    deposit_folder: str = ''

    def to_dict(self) -> dict:
        return {
            'max_file_size': self.max_file_size,
            'allowed_extensions': (
                list(self.allowed_extensions)
                if self.allowed_extensions is not None else None
            ),
            'deposit_folder': self.deposit_folder or None,
        }


@dataclass(frozen=True, slots=True)
class ReaderAccess:
    mode: ClassVar[ShareMode] = ShareMode.READER


@dataclass(frozen=True, slots=True)
class WriterAccess:
    mode: ClassVar[ShareMode] = ShareMode.WRITER


@dataclass(frozen=True, slots=True)
class DepositAccess:
    config: DepositConfig = field(default_factory=DepositConfig)
    mode: ClassVar[ShareMode] = ShareMode.DEPOSIT


ShareAccess = Union[ReaderAccess, WriterAccess, DepositAccess]


def access_for_mode(
    mode: ShareMode | str,
    deposit_config: DepositConfig | None = None,
) -> ShareAccess:
    """Build the access variant for ``mode``."""
    mode = ShareMode(mode)
    if mode is ShareMode.DEPOSIT:
        return DepositAccess(config=deposit_config or DepositConfig())
    if mode is ShareMode.WRITER:
        return WriterAccess()
    return ReaderAccess()


# ── Domain model ──────────────────────────────────────────────────────


@dataclass
class Share:
    """A persisted share.

    Attributes:
        token: Public capability token.
        owner_id: Owner's user id.
        owner_display_name: Owner's name, shown to visitors.
        encrypted_credential: Envelope-encrypted store credential.
        vault: Store coordinates the credential is valid for.
        scope_type: Folder or single note.
        scope_path: Folder path, or note path without ``.md``.
        include_subfolders: Whether nested folders are visible.
        access: Mode variant (reader / writer / deposit + config).
        permissions: Copy/export flags.
        expires_at: Hard expiry.
    """

    token: str
    owner_id: str
    owner_display_name: str
    encrypted_credential: str = field(repr=False)
    vault: VaultConfig
    scope_type: ScopeType
    scope_path: str
    include_subfolders: bool
    access: ShareAccess
    expires_at: datetime
    permissions: PermissionFlags = field(default_factory=PermissionFlags)
    created_at: datetime = field(default_factory=utcnow)
    last_accessed_at: datetime | None = None
    access_count: int = 0
    display_name: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        if self.scope_type is ScopeType.NOTE:
            self.include_subfolders = False

    @property
    def mode(self) -> ShareMode:
        return self.access.mode

    @property
    def deposit_config(self) -> DepositConfig | None:
        if isinstance(self.access, DepositAccess):
            return self.access.config
        return None

    @property
    def scope_name(self) -> str:
        return scope_name(self.scope_path) or self.scope_path

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) >= self.expires_at


# ── Repository protocol ──────────────────────────────────────────────


class ShareRepository(Protocol):
    """Share persistence.

    Implementations: InMemoryShareRepository (testing/local),
    PostgrestShareRepository (production).
    """

    async def create(self, share: Share) -> Share: ...

    async def get_active(self, token: str, now: datetime) -> Share | None:
        """Lookup filtered to ``expires_at > now``."""
        ...

    async def get_raw(self, token: str) -> Share | None:
        """Lookup without the expiry filter."""
        ...

    async def delete(self, token: str, owner_id: str) -> bool: ...

    async def record_access(self, token: str, at: datetime) -> bool:
        """Atomically ``access_count += 1`` and set ``last_accessed_at``."""
        ...

    async def list_for_owner(self, owner_id: str) -> list[Share]: ...

    async def rename(self, token: str, owner_id: str, name: str | None) -> Share | None: ...

    async def purge_expired(self, now: datetime) -> int: ...


# ── In-memory implementation ─────────────────────────────────────────


class InMemoryShareRepository:
    """Dict-backed share store.

    Runs on a single event loop: ``record_access`` reads and writes the
    counter with no suspension point in between, so concurrent coroutines
    cannot interleave inside an increment.
    """

    def __init__(self) -> None:
        self._shares: dict[str, Share] = {}

    async def create(self, share: Share) -> Share:
        if share.token in self._shares:
            raise ValueError('duplicate share token')
        self._shares[share.token] = share
        return share

    async def get_active(self, token: str, now: datetime) -> Share | None:
        share = self._shares.get(token)
        if share is None or share.expires_at <= now:
            return None
        return share

    async def get_raw(self, token: str) -> Share | None:
        return self._shares.get(token)

    async def delete(self, token: str, owner_id: str) -> bool:
        share = self._shares.get(token)
        if share is None or share.owner_id != owner_id:
            return False
        del self._shares[token]
        return True

    async def record_access(self, token: str, at: datetime) -> bool:
        share = self._shares.get(token)
        if share is None:
            return False
        share.access_count += 1
        share.last_accessed_at = at
        return True

    async def list_for_owner(self, owner_id: str) -> list[Share]:
        owned = [s for s in self._shares.values() if s.owner_id == owner_id]
        return sorted(owned, key=lambda s: s.created_at)

    async def rename(self, token: str, owner_id: str, name: str | None) -> Share | None:
        share = self._shares.get(token)
        if share is None or share.owner_id != owner_id:
            return None
        share.display_name = name or None
        return share

    async def purge_expired(self, now: datetime) -> int:
        expired = [t for t, s in self._shares.items() if s.expires_at <= now]
        for token in expired:
            del self._shares[token]
        return len(expired)
