"""PostgREST persistence for shares and access logs."""

from .access_log_repo import PostgrestAccessLogRepository
from .errors import (
    PostgrestAuthError,
    PostgrestConflictError,
    PostgrestError,
    PostgrestNotFoundError,
)
from .owner_vaults import PostgrestOwnerVaultDirectory
from .postgrest import PostgrestClient
from .share_repo import PostgrestShareRepository

__all__ = [
    "PostgrestAccessLogRepository",
    "PostgrestAuthError",
    "PostgrestClient",
    "PostgrestConflictError",
    "PostgrestError",
    "PostgrestNotFoundError",
    "PostgrestOwnerVaultDirectory",
    "PostgrestShareRepository",
]
