"""PostgREST-backed ShareRepository implementation.

Persists shares in the ``shares`` table (see ``migrations/001_shares.sql``).

Security invariants:
  - ``encrypted_credential`` is stored as the opaque envelope blob; it is
    decrypted only by the access context resolver.
  - ``record_access`` goes through the ``record_share_access`` SQL function,
    a single ``UPDATE ... SET access_count = access_count + 1`` statement,
    so concurrent resolutions never lose increments.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from vault_shares.backend.store import VaultConfig
from vault_shares.sharing.model import (
    DepositAccess,
    DepositConfig,
    DEFAULT_DEPOSIT_MAX_FILE_SIZE,
    PermissionFlags,
    ScopeType,
    Share,
    access_for_mode,
)

from .errors import PostgrestConflictError
from .postgrest import PostgrestClient


def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def share_to_row(share: Share) -> dict[str, Any]:
    row: dict[str, Any] = {
        "id": share.id,
        "token": share.token,
        "owner_id": share.owner_id,
        "owner_display_name": share.owner_display_name,
        "encrypted_credential": share.encrypted_credential,
        "repo_owner": share.vault.repo_owner,
        "repo_name": share.vault.repo_name,
        "branch": share.vault.branch,
        "root_path": share.vault.root_path,
        "scope_type": share.scope_type.value,
        "scope_path": share.scope_path,
        "display_name": share.display_name,
        "include_subfolders": share.include_subfolders,
        "mode": share.mode.value,
        "allow_copy": share.permissions.allow_copy,
        "allow_export": share.permissions.allow_export,
        "created_at": share.created_at.isoformat(),
        "expires_at": share.expires_at.isoformat(),
        "last_accessed_at": share.last_accessed_at.isoformat() if share.last_accessed_at else None,
        "access_count": share.access_count,
        "deposit_max_file_size": None,
        "deposit_allowed_extensions": None,
        "deposit_folder": None,
    }
    if isinstance(share.access, DepositAccess):
        config = share.access.config
        row["deposit_max_file_size"] = config.max_file_size
        row["deposit_allowed_extensions"] = (
            list(config.allowed_extensions) if config.allowed_extensions is not None else None
        )
        row["deposit_folder"] = config.deposit_folder
    return row


def row_to_share(row: dict[str, Any]) -> Share:
    deposit_config = None
    if row.get("mode") == "deposit":
        extensions = row.get("deposit_allowed_extensions")
        deposit_config = DepositConfig(
            max_file_size=row.get("deposit_max_file_size") or DEFAULT_DEPOSIT_MAX_FILE_SIZE,
            allowed_extensions=tuple(extensions) if extensions is not None else None,
            deposit_folder=row.get("deposit_folder") or "",
        )

    return Share(
        id=str(row["id"]),
        token=row["token"],
        owner_id=row["owner_id"],
        owner_display_name=row.get("owner_display_name") or "",
        encrypted_credential=row["encrypted_credential"],
        vault=VaultConfig(
            repo_owner=row["repo_owner"],
            repo_name=row["repo_name"],
            branch=row.get("branch") or "main",
            root_path=row.get("root_path") or "",
        ),
        scope_type=ScopeType(row.get("scope_type") or "folder"),
        scope_path=row["scope_path"],
        include_subfolders=bool(row.get("include_subfolders")),
        access=access_for_mode(row.get("mode") or "reader", deposit_config),
        permissions=PermissionFlags(
            allow_copy=row.get("allow_copy", True),
            allow_export=row.get("allow_export", True),
        ),
        created_at=_parse_ts(row["created_at"]),
        expires_at=_parse_ts(row["expires_at"]),
        last_accessed_at=_parse_ts(row.get("last_accessed_at")),
        access_count=int(row.get("access_count") or 0),
        display_name=row.get("display_name"),
    )


class PostgrestShareRepository:
    """ShareRepository backed by the ``shares`` table via PostgREST."""

    TABLE = "shares"
    RECORD_ACCESS_FN = "record_share_access"

    def __init__(self, client: PostgrestClient) -> None:
        self._client = client

    async def create(self, share: Share) -> Share:
        try:
            rows = await self._client.insert(self.TABLE, share_to_row(share))
        except PostgrestConflictError:
            raise ValueError("duplicate share token")
        return row_to_share(rows[0]) if rows else share

    async def get_active(self, token: str, now: datetime) -> Share | None:
        rows = await self._client.select(
            self.TABLE,
            {"token": token, "expires_at": ("gt", now.isoformat())},
            limit=1,
        )
        return row_to_share(rows[0]) if rows else None

    async def get_raw(self, token: str) -> Share | None:
        rows = await self._client.select(self.TABLE, {"token": token}, limit=1)
        return row_to_share(rows[0]) if rows else None

    async def delete(self, token: str, owner_id: str) -> bool:
        rows = await self._client.delete(
            self.TABLE, {"token": token, "owner_id": owner_id},
        )
        return len(rows) > 0

    async def record_access(self, token: str, at: datetime) -> bool:
        result = await self._client.rpc(
            self.RECORD_ACCESS_FN, {"p_token": token, "p_at": at.isoformat()},
        )
        return result is not None

    async def list_for_owner(self, owner_id: str) -> list[Share]:
        rows = await self._client.select(
            self.TABLE, {"owner_id": owner_id}, order="created_at.asc",
        )
        return [row_to_share(row) for row in rows]

    async def rename(self, token: str, owner_id: str, name: str | None) -> Share | None:
        rows = await self._client.update(
            self.TABLE,
            {"token": token, "owner_id": owner_id},
            {"display_name": name or None},
        )
        return row_to_share(rows[0]) if rows else None

    async def purge_expired(self, now: datetime) -> int:
        rows = await self._client.delete(
            self.TABLE, {"expires_at": ("lte", now.isoformat())},
        )
        return len(rows)
