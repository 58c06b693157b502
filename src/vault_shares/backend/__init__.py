"""Narrow client interface onto the owner's remote vault store."""

from .github import GitHubStoreClient, github_store_factory
from .store import (
    InMemoryStoreClient,
    InMemoryStoreFactory,
    StoreClient,
    StoreClientFactory,
    StoreConflictError,
    StoreError,
    StoredFile,
    StoreNotFoundError,
    TreeEntry,
    VaultConfig,
)

__all__ = [
    'GitHubStoreClient',
    'InMemoryStoreClient',
    'InMemoryStoreFactory',
    'StoreClient',
    'StoreClientFactory',
    'StoreConflictError',
    'StoreError',
    'StoreNotFoundError',
    'StoredFile',
    'TreeEntry',
    'VaultConfig',
    'github_store_factory',
]
