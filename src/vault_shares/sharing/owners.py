"""Owner vault directory: who owns which vault, with which credential.

Share creation needs the owner's live store credential and the vault
coordinates it unlocks. The owner session token only proves identity; the
directory maps that identity to an ``OwnerVault``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from vault_shares.backend.store import VaultConfig


@dataclass(frozen=True, slots=True)
class OwnerVault:
    """An owner's store credential and vault coordinates."""

    credential: str = field(repr=False)
    vault: VaultConfig


class OwnerVaultDirectory(Protocol):
    async def get(self, owner_id: str) -> OwnerVault | None: ...


class InMemoryOwnerVaultDirectory:
    def __init__(self, vaults: dict[str, OwnerVault] | None = None) -> None:
        self._vaults: dict[str, OwnerVault] = dict(vaults or {})

    def register(self, owner_id: str, vault: OwnerVault) -> None:
        self._vaults[owner_id] = vault

    async def get(self, owner_id: str) -> OwnerVault | None:
        return self._vaults.get(owner_id)
