"""PostgREST error hierarchy.

Errors carry status and PostgREST diagnostics only; never the request
headers (service-role key) or the httpx response object.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class PostgrestError(Exception):
    """Base error for PostgREST requests."""

    status_code: int
    message: str
    code: str | None = None
    details: str | None = None

    def __str__(self) -> str:
        bits: list[str] = [f"PostgrestError(status={self.status_code})", self.message]
        if self.code:
            bits.append(f"code={self.code}")
        if self.details:
            bits.append(f"details={self.details}")
        return " ".join(bits)


class PostgrestAuthError(PostgrestError):
    """401/403: bad service key or row-level security rejection."""


class PostgrestNotFoundError(PostgrestError):
    """404: missing table, view or RPC function."""


class PostgrestConflictError(PostgrestError):
    """409: unique violation (e.g. duplicate share token)."""
