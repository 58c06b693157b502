"""Share registry: creation, lookup, revocation and expiry purging.

The registry is the only writer of shares. It validates creation input,
envelope-encrypts the owner's credential and delegates persistence to a
``ShareRepository``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from vault_shares.backend.store import VaultConfig
from vault_shares.observability import get_logger, redact_token
from vault_shares.observability.metrics import SHARES_CREATED_TOTAL, SHARES_PURGED_TOTAL
from vault_shares.security.encryption import CredentialCipher

from .background import PeriodicTask
from .errors import ShareValidationError
from .model import (
    DepositConfig,
    PermissionFlags,
    ScopeType,
    Share,
    ShareMode,
    ShareRepository,
    access_for_mode,
    expiration_delta,
    generate_share_token,
    utcnow,
)
from .validation import has_traversal, normalize_path

logger = get_logger(__name__)

MAX_DISPLAY_NAME_LENGTH = 255
_TOKEN_ATTEMPTS = 3
DEFAULT_PURGE_INTERVAL_SECONDS = 3600.0


@dataclass(frozen=True, slots=True)
class CreateShareParams:
    """Owner-supplied share definition."""

    scope_path: str
    expires_in: str
    scope_type: ScopeType = ScopeType.FOLDER
    include_subfolders: bool = True
    mode: ShareMode = ShareMode.READER
    deposit_config: DepositConfig | None = None
    display_name: str | None = None
    permissions: PermissionFlags = field(default_factory=PermissionFlags)


def _clean_display_name(name: str | None) -> str | None:
    if name is None:
        return None
    name = name.strip()
    if len(name) > MAX_DISPLAY_NAME_LENGTH:
        raise ShareValidationError(
            f'name must be at most {MAX_DISPLAY_NAME_LENGTH} characters',
        )
    return name or None


def _normalize_extension(ext: str) -> str:
    ext = ext.strip().lower()
    if not ext:
        raise ShareValidationError('allowed extensions must not be empty')
    return ext if ext.startswith('.') else f'.{ext}'


def _validate_deposit_config(config: DepositConfig | None) -> DepositConfig:
    config = config or DepositConfig()
    if config.max_file_size <= 0:
        raise ShareValidationError('deposit max_file_size must be positive')

    folder = normalize_path(config.deposit_folder)
    if has_traversal(folder):
        raise ShareValidationError('deposit folder must not contain ".."')

    extensions = None
    if config.allowed_extensions is not None:
        extensions = tuple(dict.fromkeys(
            _normalize_extension(ext) for ext in config.allowed_extensions
        ))

    return DepositConfig(
        max_file_size=config.max_file_size,
        allowed_extensions=extensions or None,
        deposit_folder=folder,
    )


class ShareRegistry:
    """Share lifecycle operations over a ``ShareRepository``."""

    def __init__(
        self,
        repository: ShareRepository,
        cipher: CredentialCipher,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repository = repository
        self._cipher = cipher
        self._clock = clock

    @property
    def repository(self) -> ShareRepository:
        return self._repository

    def now(self) -> datetime:
        return self._clock()

    async def create(
        self,
        params: CreateShareParams,
        *,
        owner_id: str,
        owner_display_name: str,
        credential: str,
        vault: VaultConfig,
    ) -> Share:
        """Validate, encrypt and persist a new share.

        Raises:
            ShareValidationError: Empty or traversing scope, unknown
                ``expires_in``, or invalid deposit configuration.
        """
        scope_path = normalize_path(params.scope_path)
        if not scope_path:
            raise ShareValidationError('scope_path is required')
        if has_traversal(scope_path):
            raise ShareValidationError('scope_path must not contain ".."')
        if not credential:
            raise ShareValidationError('owner has no store credential')

        scope_type = ScopeType(params.scope_type)
        mode = ShareMode(params.mode)
        if scope_type is ScopeType.NOTE and mode is ShareMode.DEPOSIT:
            raise ShareValidationError('note shares cannot accept deposits')

        deposit_config = _validate_deposit_config(params.deposit_config) if mode is ShareMode.DEPOSIT else None
        delta = expiration_delta(params.expires_in)
        display_name = _clean_display_name(params.display_name)

        encrypted = await self._cipher.encrypt_credential_async(credential)
        created_at = self.now()

        for attempt in range(_TOKEN_ATTEMPTS):
            share = Share(
                token=generate_share_token(),
                owner_id=owner_id,
                owner_display_name=owner_display_name,
                encrypted_credential=encrypted,
                vault=vault,
                scope_type=scope_type,
                scope_path=scope_path,
                include_subfolders=params.include_subfolders,
                access=access_for_mode(mode, deposit_config),
                permissions=params.permissions,
                created_at=created_at,
                expires_at=created_at + delta,
                display_name=display_name,
            )
            try:
                stored = await self._repository.create(share)
            except ValueError:
                if attempt == _TOKEN_ATTEMPTS - 1:
                    raise
                continue
            break

        SHARES_CREATED_TOTAL.labels(mode=mode.value, scope_type=scope_type.value).inc()
        logger.info(
            'share_created',
            token=redact_token(stored.token),
            owner_id=owner_id,
            mode=mode.value,
            scope_type=scope_type.value,
            expires_at=stored.expires_at.isoformat(),
        )
        return stored

    async def get_active(self, token: str) -> Share | None:
        return await self._repository.get_active(token, self.now())

    async def get_raw(self, token: str) -> Share | None:
        return await self._repository.get_raw(token)

    async def delete(self, token: str, requester_id: str) -> bool:
        """Revoke a share. False when missing or owned by someone else."""
        deleted = await self._repository.delete(token, requester_id)
        if deleted:
            logger.info('share_revoked', token=redact_token(token), owner_id=requester_id)
        return deleted

    async def record_access(self, token: str) -> bool:
        return await self._repository.record_access(token, self.now())

    async def list_shares(self, owner_id: str) -> list[Share]:
        """Every share of ``owner_id``, expired ones included."""
        return await self._repository.list_for_owner(owner_id)

    async def rename(self, token: str, requester_id: str, name: str | None) -> Share | None:
        return await self._repository.rename(token, requester_id, _clean_display_name(name))

    async def purge_expired(self) -> int:
        purged = await self._repository.purge_expired(self.now())
        if purged:
            SHARES_PURGED_TOTAL.inc(purged)
            logger.info('expired_shares_purged', count=purged)
        return purged


class ExpiredSharePurger(PeriodicTask):
    """Deletes shares past ``expires_at`` every ``interval_seconds``."""

    name = 'expired-share-purger'

    def __init__(
        self,
        registry: ShareRegistry,
        interval_seconds: float = DEFAULT_PURGE_INTERVAL_SECONDS,
    ) -> None:
        super().__init__(interval_seconds)
        self.registry = registry

    async def run_once(self) -> None:
        await self.registry.purge_expired()
