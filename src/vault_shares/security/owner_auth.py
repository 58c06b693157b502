"""Owner session verification for share management routes.

Owner-facing endpoints (create, list, rename, revoke, analytics) require a
signed session token:

  ``Authorization: Bearer <jwt>``

The token is an HS256 JWT signed with ``SESSION_SECRET``. Required claims:
``sub`` (owner id) and ``exp``. ``name`` carries the display name used
when a share is created.

Public share access never goes through this module; anonymous clients are
authorized by the share token alone.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import jwt
from fastapi import Request

from vault_shares.sharing.errors import ErrorCode, ShareError

# ── Constants ─────────────────────────────────────────────────────────

DEFAULT_AUDIENCE = 'vault-shares'
DEFAULT_ALGORITHMS = ['HS256']
BEARER_PREFIX = 'Bearer '


# ── Types ─────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class OwnerIdentity:
    """Verified owner extracted from a session token.

    Attributes:
        user_id: Owner id (``sub`` claim).
        display_name: Human-readable name (``name`` claim, falls back to id).
        raw_claims: Full decoded payload.
    """

    user_id: str
    display_name: str
    raw_claims: dict[str, Any] = field(default_factory=dict)


class OwnerAuthError(ShareError):
    """Missing or invalid owner credentials."""

    code = ErrorCode.AUTH_REQUIRED
    http_status = 401
    default_message = 'Authentication required.'

    def __init__(self, reason: str, message: str | None = None) -> None:
        super().__init__(message)
        self.reason = reason


# ── Verifier ──────────────────────────────────────────────────────────


class OwnerTokenVerifier:
    """Verifies owner session JWTs.

    Args:
        secret: HS256 signing secret.
        audience: Expected ``aud`` claim.
        algorithms: Accepted JWT algorithms.
    """

    def __init__(
        self,
        secret: str,
        audience: str = DEFAULT_AUDIENCE,
        algorithms: list[str] | None = None,
    ) -> None:
        if not secret:
            raise ValueError('session secret is required')
        self._secret = secret
        self._audience = audience
        self._algorithms = algorithms or DEFAULT_ALGORITHMS

    def verify(self, token: str) -> OwnerIdentity:
        """Verify a JWT and return the owner identity.

        Raises:
            OwnerAuthError: On any verification failure.
        """
        if not token or not token.strip():
            raise OwnerAuthError('empty_token')

        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=self._algorithms,
                audience=self._audience,
                options={'require': ['sub', 'exp', 'aud']},
            )
        except jwt.ExpiredSignatureError:
            raise OwnerAuthError('token_expired', 'Session expired.')
        except jwt.InvalidTokenError:
            raise OwnerAuthError('invalid_token')

        user_id = str(claims.get('sub') or '')
        if not user_id:
            raise OwnerAuthError('missing_sub_claim')

        return OwnerIdentity(
            user_id=user_id,
            display_name=str(claims.get('name') or user_id),
            raw_claims=claims,
        )

    def issue(self, user_id: str, display_name: str, *, expires_at: Any) -> str:
        """Sign a session token (local development and tests)."""
        return jwt.encode(
            {
                'sub': user_id,
                'name': display_name,
                'aud': self._audience,
                'exp': expires_at,
            },
            self._secret,
            algorithm=self._algorithms[0],
        )


# ── Request helpers ──────────────────────────────────────────────────


def extract_bearer_token(request: Request) -> str | None:
    """Extract a Bearer token from the Authorization header."""
    auth_header = request.headers.get('authorization', '')
    if auth_header.startswith(BEARER_PREFIX):
        return auth_header[len(BEARER_PREFIX):].strip()
    return None


def create_owner_dependency(
    verifier: OwnerTokenVerifier,
) -> Callable[[Request], Awaitable[OwnerIdentity]]:
    """Build a FastAPI dependency that yields the verified owner."""

    async def require_owner(request: Request) -> OwnerIdentity:
        token = extract_bearer_token(request)
        if token is None:
            raise OwnerAuthError('missing_credentials')
        return verifier.verify(token)

    return require_owner
