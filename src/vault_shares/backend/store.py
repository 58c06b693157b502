"""Backend store abstraction for shared vault access.

A share reaches the owner's remote store through a ``StoreClient`` bound to
the share's stored coordinates (``VaultConfig``). All paths passed to a
client are vault-relative; the client applies ``root_path`` itself.

Implementations:
  - ``GitHubStoreClient`` (``vault_shares.backend.github``): production.
  - ``InMemoryStoreClient``: tests and local development.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class VaultConfig:
    """Coordinates of a vault inside the remote store."""

    repo_owner: str
    repo_name: str
    branch: str = 'main'
    root_path: str = ''

    def to_dict(self) -> dict[str, str]:
        return {
            'owner': self.repo_owner,
            'repo': self.repo_name,
            'branch': self.branch,
            'root_path': self.root_path,
        }


@dataclass(frozen=True, slots=True)
class StoredFile:
    """A file read from the store."""

    path: str
    content: bytes
    sha: str


@dataclass(frozen=True, slots=True)
class TreeEntry:
    """One node of the flat vault tree (``type`` is ``file`` or ``dir``)."""

    path: str
    type: str

    @property
    def name(self) -> str:
        return self.path.rsplit('/', 1)[-1]


# ── Errors ────────────────────────────────────────────────────────────


class StoreError(Exception):
    """Backend store failure."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class StoreNotFoundError(StoreError):
    """Path does not exist in the store."""


class StoreConflictError(StoreError):
    """Write rejected because the file changed (stale sha)."""


# ── Protocols ─────────────────────────────────────────────────────────


@runtime_checkable
class StoreClient(Protocol):
    """Narrow read/write interface onto one vault."""

    async def read_path(self, path: str) -> StoredFile: ...

    async def write_path(
        self,
        path: str,
        content: bytes,
        message: str,
        sha: str | None = None,
    ) -> str: ...

    async def delete_path(self, path: str, message: str, sha: str | None = None) -> None: ...

    async def list_tree(self) -> list[TreeEntry]: ...

    async def exists(self, path: str) -> bool: ...


class StoreClientFactory(Protocol):
    """Builds an ephemeral client from a decrypted credential."""

    def __call__(self, credential: str, vault: VaultConfig) -> StoreClient: ...


# ── In-memory implementation ─────────────────────────────────────────


def _content_sha(content: bytes) -> str:
    return hashlib.sha1(content).hexdigest()


class InMemoryStoreClient:
    """Dict-backed store for tests and local development.

    Several clients can share one ``files`` dict to model one vault seen
    through multiple shares.
    """

    def __init__(
        self,
        files: dict[str, bytes] | None = None,
        *,
        credential: str = '',
        vault: VaultConfig | None = None,
    ) -> None:
        self.files: dict[str, bytes] = files if files is not None else {}
        self.credential = credential
        self.vault = vault
        self.writes: list[tuple[str, str]] = []

    async def read_path(self, path: str) -> StoredFile:
        try:
            content = self.files[path]
        except KeyError:
            raise StoreNotFoundError(f'not found: {path}', status_code=404)
        return StoredFile(path=path, content=content, sha=_content_sha(content))

    async def write_path(
        self,
        path: str,
        content: bytes,
        message: str,
        sha: str | None = None,
    ) -> str:
        existing = self.files.get(path)
        if sha is not None and existing is not None and _content_sha(existing) != sha:
            raise StoreConflictError(f'stale sha for {path}', status_code=409)
        self.files[path] = content
        self.writes.append((path, message))
        return _content_sha(content)

    async def delete_path(self, path: str, message: str, sha: str | None = None) -> None:
        if path not in self.files:
            raise StoreNotFoundError(f'not found: {path}', status_code=404)
        del self.files[path]

    async def list_tree(self) -> list[TreeEntry]:
        entries: dict[str, TreeEntry] = {}
        for path in self.files:
            parts = path.split('/')
            for i in range(1, len(parts)):
                folder = '/'.join(parts[:i])
                entries.setdefault(folder, TreeEntry(path=folder, type='dir'))
            entries[path] = TreeEntry(path=path, type='file')
        return sorted(entries.values(), key=lambda e: e.path)

    async def exists(self, path: str) -> bool:
        return path in self.files


class InMemoryStoreFactory:
    """``StoreClientFactory`` handing out clients over one shared dict."""

    def __init__(self, files: dict[str, bytes] | None = None) -> None:
        self.files: dict[str, bytes] = files if files is not None else {}
        self.issued: list[InMemoryStoreClient] = []

    def __call__(self, credential: str, vault: VaultConfig) -> InMemoryStoreClient:
        client = InMemoryStoreClient(self.files, credential=credential, vault=vault)
        self.issued.append(client)
        return client
