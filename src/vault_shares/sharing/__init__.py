"""Token-addressed share links with folder and note scopes.

Only the leaf types are re-exported here; the registry, resolver, service
and routers live in their own modules.
"""

from .errors import (
    ErrorCode,
    ShareError,
    ShareExpired,
    ShareForbidden,
    ShareModeNotPermitted,
    ShareNotFound,
    ShareRateLimited,
    ShareScopeViolation,
    ShareValidationError,
)
from .model import (
    DepositConfig,
    InMemoryShareRepository,
    PermissionFlags,
    ScopeType,
    Share,
    ShareMode,
    ShareRepository,
    generate_share_token,
)

__all__ = [
    'DepositConfig',
    'ErrorCode',
    'InMemoryShareRepository',
    'PermissionFlags',
    'ScopeType',
    'Share',
    'ShareError',
    'ShareExpired',
    'ShareForbidden',
    'ShareMode',
    'ShareModeNotPermitted',
    'ShareNotFound',
    'ShareRateLimited',
    'ShareRepository',
    'ShareScopeViolation',
    'ShareValidationError',
    'generate_share_token',
]
