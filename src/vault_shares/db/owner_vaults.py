"""PostgREST-backed OwnerVaultDirectory (``owner_vaults`` table).

The owner's credential is stored envelope-encrypted, like the share copy,
and decrypted only when a share is being created.
"""

from __future__ import annotations

from vault_shares.backend.store import VaultConfig
from vault_shares.security.encryption import CredentialCipher
from vault_shares.sharing.owners import OwnerVault

from .postgrest import PostgrestClient


class PostgrestOwnerVaultDirectory:
    TABLE = "owner_vaults"

    def __init__(self, client: PostgrestClient, cipher: CredentialCipher) -> None:
        self._client = client
        self._cipher = cipher

    async def get(self, owner_id: str) -> OwnerVault | None:
        rows = await self._client.select(self.TABLE, {"owner_id": owner_id}, limit=1)
        if not rows:
            return None
        row = rows[0]
        credential = await self._cipher.decrypt_credential_async(row["encrypted_credential"])
        return OwnerVault(
            credential=credential,
            vault=VaultConfig(
                repo_owner=row["repo_owner"],
                repo_name=row["repo_name"],
                branch=row.get("branch") or "main",
                root_path=row.get("root_path") or "",
            ),
        )
