"""Owner share management endpoints.

  POST   /api/shares                    -> create a share
  GET    /api/shares                    -> list the owner's shares
  GET    /api/shares/analytics          -> rollup across all owned shares
  PATCH  /api/shares/{token}            -> rename a share
  DELETE /api/shares/{token}            -> revoke a share
  GET    /api/shares/{token}/analytics  -> rollup for one share

Every endpoint requires a verified owner session. Shares owned by someone
else look exactly like missing ones (404), except on the per-share
analytics route, which answers 403 so the owner UI can tell the cases
apart.

The token is returned in full only by the create and list responses; the
encrypted credential is never part of any response.
"""

from __future__ import annotations

from typing import Awaitable, Callable

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from vault_shares.analytics.access_log import AccessLogRepository
from vault_shares.analytics.rollups import (
    DEFAULT_DAYS,
    MAX_DAYS,
    owner_analytics,
    share_analytics,
)
from vault_shares.security.owner_auth import OwnerIdentity

from .errors import ShareForbidden, ShareNotFound, ShareValidationError
from .model import (
    DEFAULT_DEPOSIT_MAX_FILE_SIZE,
    DepositConfig,
    PermissionFlags,
    ScopeType,
    ShareMode,
)
from .owners import OwnerVaultDirectory
from .registry import CreateShareParams, ShareRegistry
from .views import owner_share_view


# ── Request schemas ──────────────────────────────────────────────────


class DepositConfigRequest(BaseModel):
    max_file_size: int = Field(default=DEFAULT_DEPOSIT_MAX_FILE_SIZE, gt=0)
    allowed_types: list[str] | None = Field(
        default=None,
        description='Allowed file extensions, e.g. [".pdf", "png"]. Null allows any.',
    )
    deposit_folder: str | None = None


class PermissionsRequest(BaseModel):
    allow_copy: bool = True
    allow_export: bool = True


class CreateShareRequest(BaseModel):
    """Request body for share creation."""

    scope_path: str = Field(..., min_length=1, description='Vault-relative folder or note path')
    scope_type: ScopeType = ScopeType.FOLDER
    include_subfolders: bool = True
    expires_in: str = Field(..., description='One of 1h, 1d, 1w, 1m')
    mode: ShareMode = ShareMode.READER
    deposit_config: DepositConfigRequest | None = None
    name: str | None = None
    permissions: PermissionsRequest | None = None

    def to_params(self) -> CreateShareParams:
        deposit = None
        if self.deposit_config is not None:
            deposit = DepositConfig(
                max_file_size=self.deposit_config.max_file_size,
                allowed_extensions=(
                    tuple(self.deposit_config.allowed_types)
                    if self.deposit_config.allowed_types is not None else None
                ),
                deposit_folder=self.deposit_config.deposit_folder or '',
            )
        permissions = self.permissions or PermissionsRequest()
        return CreateShareParams(
            scope_path=self.scope_path,
            expires_in=self.expires_in,
            scope_type=self.scope_type,
            include_subfolders=self.include_subfolders,
            mode=self.mode,
            deposit_config=deposit,
            display_name=self.name,
            permissions=PermissionFlags(
                allow_copy=permissions.allow_copy,
                allow_export=permissions.allow_export,
            ),
        )


class RenameShareRequest(BaseModel):
    name: str | None = Field(default=None, description='New display name; null clears it')


def _clamp_days(days: int) -> int:
    return max(1, min(days, MAX_DAYS))


# ── Route factory ────────────────────────────────────────────────────


def create_share_router(
    registry: ShareRegistry,
    owner_directory: OwnerVaultDirectory,
    access_logs: AccessLogRepository,
    require_owner: Callable[..., Awaitable[OwnerIdentity]],
) -> APIRouter:
    """Create the owner share management router.

    Args:
        registry: Share registry.
        owner_directory: Maps owners to their store credential and vault.
        access_logs: Access log repository read by the analytics routes.
        require_owner: Dependency yielding the verified owner.

    Returns:
        FastAPI router with the share lifecycle and analytics routes.
    """
    router = APIRouter(prefix='/api/shares', tags=['shares'])

    @router.post('', status_code=201)
    async def create_share(
        body: CreateShareRequest,
        owner: OwnerIdentity = Depends(require_owner),
    ):
        """Create a share of a folder or note in the owner's vault."""
        owner_vault = await owner_directory.get(owner.user_id)
        if owner_vault is None:
            raise ShareValidationError('No vault is connected to this account.')

        share = await registry.create(
            body.to_params(),
            owner_id=owner.user_id,
            owner_display_name=owner.display_name,
            credential=owner_vault.credential,
            vault=owner_vault.vault,
        )
        return {'share': owner_share_view(share, registry.now())}

    @router.get('')
    async def list_shares(owner: OwnerIdentity = Depends(require_owner)):
        """List the owner's shares, expired ones included."""
        now = registry.now()
        shares = await registry.list_shares(owner.user_id)
        return {'shares': [owner_share_view(share, now) for share in shares]}

    # Declared before the ``/{token}`` routes so "analytics" is never
    # captured as a token.
    @router.get('/analytics')
    async def get_owner_analytics(
        days: int = Query(DEFAULT_DAYS),
        owner: OwnerIdentity = Depends(require_owner),
    ):
        shares = await registry.list_shares(owner.user_id)
        return await owner_analytics(
            access_logs,
            shares,
            _clamp_days(days),
            now=registry.now(),
        )

    @router.patch('/{token}')
    async def rename_share(
        token: str,
        body: RenameShareRequest,
        owner: OwnerIdentity = Depends(require_owner),
    ):
        share = await registry.rename(token, owner.user_id, body.name)
        if share is None:
            raise ShareNotFound()
        return {'share': owner_share_view(share, registry.now())}

    @router.delete('/{token}')
    async def delete_share(
        token: str,
        owner: OwnerIdentity = Depends(require_owner),
    ):
        """Revoke a share. Missing and foreign shares both answer 404."""
        if not await registry.delete(token, owner.user_id):
            raise ShareNotFound()
        return {'success': True}

    @router.get('/{token}/analytics')
    async def get_share_analytics(
        token: str,
        days: int = Query(DEFAULT_DAYS),
        owner: OwnerIdentity = Depends(require_owner),
    ):
        share = await registry.get_raw(token)
        if share is None:
            raise ShareNotFound()
        if share.owner_id != owner.user_id:
            raise ShareForbidden('You do not own this share.')

        days = _clamp_days(days)
        stats = await share_analytics(access_logs, share.id, days, now=registry.now())
        return {
            'share': {
                'token': share.token,
                'name': share.display_name or share.scope_name,
                'scope_path': share.scope_path,
                'access_count': share.access_count,
                'created_at': share.created_at.isoformat(),
            },
            'days': days,
            **stats,
        }

    return router
