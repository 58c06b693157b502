"""Async PostgREST client for the share tables.

Single point of Supabase HTTP interaction for the share and access-log
repositories. Filters are ``{column: value}`` (equality) or
``{column: (op, value)}`` mappings.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

import httpx

from .errors import (
    PostgrestAuthError,
    PostgrestConflictError,
    PostgrestError,
    PostgrestNotFoundError,
)

Filters = Mapping[str, Any]

# Module-level shared client for connection pooling in app runtimes/tests.
_shared_async_client: httpx.AsyncClient | None = None


def _get_shared_async_client() -> httpx.AsyncClient:
    global _shared_async_client
    if _shared_async_client is None:
        _shared_async_client = httpx.AsyncClient()
    return _shared_async_client


def _encode_value(op: str, value: Any) -> str:
    if op == "is":
        if value is None:
            return "null"
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)
    if op == "in":
        if not isinstance(value, (list, tuple, set, frozenset)):
            raise ValueError("in operator requires an iterable of values")
        return "(" + ",".join(f'"{v}"' if isinstance(v, str) else str(v) for v in value) + ")"
    if value is None:
        raise ValueError(f"{op} does not support None; use op='is'")
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def filters_to_params(filters: Filters | None) -> dict[str, str]:
    params: dict[str, str] = {}
    for column, spec in (filters or {}).items():
        op, value = spec if isinstance(spec, tuple) and len(spec) == 2 else ("eq", spec)
        params[column] = f"{op}.{_encode_value(op, value)}"
    return params


_STATUS_ERRORS: dict[int, type[PostgrestError]] = {
    401: PostgrestAuthError,
    403: PostgrestAuthError,
    404: PostgrestNotFoundError,
    409: PostgrestConflictError,
}


class PostgrestClient:
    """Minimal async PostgREST client authenticated with the service role."""

    def __init__(
        self,
        *,
        supabase_url: str,
        service_role_key: str,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        if not supabase_url:
            raise ValueError("supabase_url is required")
        if not service_role_key:
            raise ValueError("service_role_key is required")

        self._base_url = f"{supabase_url.rstrip('/')}/rest/v1"
        self._service_role_key = service_role_key
        self._timeout_seconds = float(timeout_seconds)
        self._client = http_client or _get_shared_async_client()

    def __repr__(self) -> str:
        return f"PostgrestClient(base_url={self._base_url!r}, service_role_key=<redacted>)"

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        # Never log these headers.
        headers = {
            "apikey": self._service_role_key,
            "Authorization": f"Bearer {self._service_role_key}",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    @staticmethod
    def _raise_for_error(resp: httpx.Response) -> None:
        if resp.status_code < 400:
            return

        message, code, details = resp.text, None, None
        try:
            payload = resp.json()
            if isinstance(payload, dict):
                message = payload.get("message") or message
                code = payload.get("code")
                details = payload.get("details")
        except ValueError:
            pass

        err_cls = _STATUS_ERRORS.get(resp.status_code, PostgrestError)
        raise err_cls(
            status_code=resp.status_code,
            message=message,
            code=code,
            details=details,
        )

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> Any:
        resp = await self._client.request(
            method,
            f"{self._base_url}/{path}",
            params=params,
            json=json,
            headers=self._headers(prefer),
            timeout=self._timeout_seconds,
        )
        self._raise_for_error(resp)
        if not resp.content:
            return None
        return resp.json()

    async def _send_rows(self, method: str, path: str, **kwargs: Any) -> list[dict[str, Any]]:
        payload = await self._send(method, path, **kwargs)
        if not isinstance(payload, list):
            raise PostgrestError(status_code=500, message=f"expected list response from {method}")
        return payload

    async def select(
        self,
        table: str,
        filters: Filters | None = None,
        *,
        columns: str = "*",
        order: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        params = filters_to_params(filters)
        params["select"] = columns
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = str(int(limit))
        return await self._send_rows("GET", table, params=params)

    async def insert(
        self,
        table: str,
        data: Mapping[str, Any] | Sequence[Mapping[str, Any]],
    ) -> list[dict[str, Any]]:
        return await self._send_rows("POST", table, json=data, prefer="return=representation")

    async def update(
        self,
        table: str,
        filters: Filters,
        data: Mapping[str, Any],
    ) -> list[dict[str, Any]]:
        return await self._send_rows(
            "PATCH",
            table,
            params=filters_to_params(filters),
            json=data,
            prefer="return=representation",
        )

    async def delete(self, table: str, filters: Filters) -> list[dict[str, Any]]:
        if not filters:
            raise ValueError("refusing unfiltered delete")
        return await self._send_rows(
            "DELETE",
            table,
            params=filters_to_params(filters),
            prefer="return=representation",
        )

    async def rpc(self, function_name: str, params: Mapping[str, Any] | None = None) -> Any:
        return await self._send("POST", f"rpc/{function_name}", json=dict(params or {}))
