"""Unit tests for the PostgREST share, access-log and owner-vault repositories.

Uses httpx.MockTransport to verify PostgREST queries without a real Supabase.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import pytest

from conftest import OWNER_CREDENTIAL, T0
from vault_shares.analytics.access_log import AccessLogEntry
from vault_shares.backend.store import VaultConfig
from vault_shares.db import (
    PostgrestAccessLogRepository,
    PostgrestAuthError,
    PostgrestClient,
    PostgrestError,
    PostgrestOwnerVaultDirectory,
    PostgrestShareRepository,
)
from vault_shares.db.postgrest import filters_to_params
from vault_shares.db.share_repo import row_to_share, share_to_row
from vault_shares.sharing.model import (
    DepositAccess,
    DepositConfig,
    ReaderAccess,
    ScopeType,
    Share,
)


def _client(handler) -> PostgrestClient:
    transport = httpx.MockTransport(handler)
    return PostgrestClient(
        supabase_url="https://test.supabase.co",
        service_role_key="svc-key",
        http_client=httpx.AsyncClient(transport=transport),
    )


def _share(**overrides) -> Share:
    fields = dict(
        token="tok_abc",
        owner_id="owner-1",
        owner_display_name="Alice",
        encrypted_credential="v1.blob",
        vault=VaultConfig(repo_owner="alice", repo_name="notes"),
        scope_type=ScopeType.FOLDER,
        scope_path="Projects",
        include_subfolders=True,
        access=ReaderAccess(),
        created_at=T0,
        expires_at=T0 + timedelta(days=1),
        id="11111111-1111-1111-1111-111111111111",
    )
    fields.update(overrides)
    return Share(**fields)


# ── Test: filter encoding ────────────────────────────────────────────


def test_filters_to_params():
    params = filters_to_params({
        "token": "abc",
        "expires_at": ("gt", "2026-03-01T12:00:00+00:00"),
        "share_id": ("in", ["a", "b"]),
        "last_accessed_at": ("is", None),
        "include_subfolders": True,
    })
    assert params == {
        "token": "eq.abc",
        "expires_at": "gt.2026-03-01T12:00:00+00:00",
        "share_id": 'in.("a","b")',
        "last_accessed_at": "is.null",
        "include_subfolders": "eq.true",
    }


def test_none_requires_is_operator():
    with pytest.raises(ValueError):
        filters_to_params({"display_name": None})


# ── Test: row mapping ────────────────────────────────────────────────


def test_deposit_share_round_trips_through_row():
    share = _share(access=DepositAccess(config=DepositConfig(
        max_file_size=2048, allowed_extensions=(".pdf",), deposit_folder="Inbox",
    )))
    row = share_to_row(share)
    assert row["mode"] == "deposit"
    assert row["deposit_allowed_extensions"] == [".pdf"]

    restored = row_to_share(row)
    assert restored.deposit_config == share.deposit_config
    assert restored.expires_at == share.expires_at
    assert restored.vault == share.vault


def test_row_parses_zulu_timestamps():
    row = share_to_row(_share())
    row["expires_at"] = "2026-03-02T12:00:00Z"
    assert row_to_share(row).expires_at == datetime(2026, 3, 2, 12, tzinfo=timezone.utc)


# ── Test: share repository ───────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_posts_row_with_service_headers():
    seen: dict[str, Any] = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json=[seen["body"]])

    repo = PostgrestShareRepository(_client(handler))
    stored = await repo.create(_share())

    assert seen["url"] == "https://test.supabase.co/rest/v1/shares"
    assert seen["headers"]["apikey"] == "svc-key"
    assert seen["headers"]["prefer"] == "return=representation"
    assert seen["body"]["encrypted_credential"] == "v1.blob"
    assert stored.token == "tok_abc"


@pytest.mark.asyncio
async def test_duplicate_token_maps_to_value_error():
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(409, json={"code": "23505", "message": "duplicate key"})

    repo = PostgrestShareRepository(_client(handler))
    with pytest.raises(ValueError):
        await repo.create(_share())


@pytest.mark.asyncio
async def test_get_active_filters_on_expiry():
    seen: dict[str, Any] = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json=[share_to_row(_share())])

    repo = PostgrestShareRepository(_client(handler))
    share = await repo.get_active("tok_abc", T0)

    assert share is not None
    assert seen["params"]["token"] == "eq.tok_abc"
    assert seen["params"]["expires_at"] == f"gt.{T0.isoformat()}"
    assert seen["params"]["limit"] == "1"


@pytest.mark.asyncio
async def test_get_active_missing():
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[])

    repo = PostgrestShareRepository(_client(handler))
    assert await repo.get_active("nope", T0) is None


@pytest.mark.asyncio
async def test_delete_is_owner_scoped():
    seen: dict[str, Any] = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json=[])

    repo = PostgrestShareRepository(_client(handler))
    assert await repo.delete("tok_abc", "owner-2") is False
    assert seen["method"] == "DELETE"
    assert seen["params"] == {"token": "eq.tok_abc", "owner_id": "eq.owner-2"}


@pytest.mark.asyncio
async def test_record_access_calls_atomic_rpc():
    seen: dict[str, Any] = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=1)

    repo = PostgrestShareRepository(_client(handler))
    assert await repo.record_access("tok_abc", T0) is True
    assert seen["path"] == "/rest/v1/rpc/record_share_access"
    assert seen["body"] == {"p_token": "tok_abc", "p_at": T0.isoformat()}


@pytest.mark.asyncio
async def test_rename_and_purge():
    calls: list[tuple[str, dict[str, str], Any]] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        calls.append((request.method, dict(request.url.params), body))
        if request.method == "PATCH":
            return httpx.Response(200, json=[share_to_row(_share(display_name="Team"))])
        return httpx.Response(200, json=[{"id": "a"}, {"id": "b"}])

    repo = PostgrestShareRepository(_client(handler))
    renamed = await repo.rename("tok_abc", "owner-1", "Team")
    purged = await repo.purge_expired(T0)

    assert renamed.display_name == "Team"
    assert calls[0][2] == {"display_name": "Team"}
    assert purged == 2
    assert calls[1][1] == {"expires_at": f"lte.{T0.isoformat()}"}


@pytest.mark.asyncio
async def test_auth_failure_raises_typed_error_without_key():
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"message": "JWT expired"})

    repo = PostgrestShareRepository(_client(handler))
    with pytest.raises(PostgrestAuthError) as exc:
        await repo.get_raw("tok_abc")
    assert exc.value.status_code == 401
    assert "svc-key" not in str(exc.value)


@pytest.mark.asyncio
async def test_non_list_response_rejected():
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"unexpected": True})

    repo = PostgrestShareRepository(_client(handler))
    with pytest.raises(PostgrestError):
        await repo.list_for_owner("owner-1")


def test_client_repr_redacts_key():
    client = _client(lambda request: httpx.Response(200, json=[]))
    assert "svc-key" not in repr(client)


# ── Test: access log repository ──────────────────────────────────────


@pytest.mark.asyncio
async def test_access_log_insert_and_list():
    calls: list[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if request.method == "POST":
            return httpx.Response(201, json=[json.loads(request.content)])
        return httpx.Response(200, json=[{
            "id": "log-1",
            "share_id": "s1",
            "accessed_at": "2026-03-01T12:00:00+00:00",
            "device": "mobile",
            "browser": "Safari",
            "os": "iOS",
            "country": "FR",
        }])

    repo = PostgrestAccessLogRepository(_client(handler))
    await repo.insert(AccessLogEntry(
        share_id="s1", accessed_at=T0, device="mobile", browser="Safari", os="iOS",
    ))
    entries = await repo.list_for_shares(["s1", "s2"], T0 - timedelta(days=30))

    assert json.loads(calls[0].content)["share_id"] == "s1"
    params = dict(calls[1].url.params)
    assert params["share_id"] == 'in.("s1","s2")'
    assert params["order"] == "accessed_at.desc"
    assert entries[0].country == "FR"
    assert entries[0].accessed_at == T0


@pytest.mark.asyncio
async def test_access_log_list_without_shares_skips_query():
    async def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    repo = PostgrestAccessLogRepository(_client(handler))
    assert await repo.list_for_shares([], T0) == []


# ── Test: owner vault directory ──────────────────────────────────────


@pytest.mark.asyncio
async def test_owner_vault_decrypts_credential(cipher):
    blob = cipher.encrypt_credential(OWNER_CREDENTIAL)

    async def handler(request: httpx.Request) -> httpx.Response:
        assert dict(request.url.params)["owner_id"] == "eq.owner-1"
        return httpx.Response(200, json=[{
            "owner_id": "owner-1",
            "encrypted_credential": blob,
            "repo_owner": "alice",
            "repo_name": "notes",
            "branch": None,
        }])

    directory = PostgrestOwnerVaultDirectory(_client(handler), cipher)
    owner_vault = await directory.get("owner-1")

    assert owner_vault.credential == OWNER_CREDENTIAL
    assert owner_vault.vault == VaultConfig(repo_owner="alice", repo_name="notes", branch="main")
    assert OWNER_CREDENTIAL not in repr(owner_vault)


@pytest.mark.asyncio
async def test_owner_vault_missing(cipher):
    directory = PostgrestOwnerVaultDirectory(
        _client(lambda request: httpx.Response(200, json=[])), cipher,
    )
    assert await directory.get("nobody") is None
