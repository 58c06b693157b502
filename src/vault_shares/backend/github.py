"""GitHub-backed StoreClient over the REST contents and trees APIs.

One client is built per resolved share from the owner's decrypted token
and discarded with the request. Paths are vault-relative; ``root_path``
from the share's ``VaultConfig`` is prefixed here.
"""

from __future__ import annotations

import base64
from typing import Any
from urllib.parse import quote

import httpx

from .store import (
    StoreConflictError,
    StoreError,
    StoreNotFoundError,
    StoredFile,
    TreeEntry,
    VaultConfig,
)

DEFAULT_API_URL = 'https://api.github.com'
DEFAULT_TIMEOUT_SECONDS = 15.0

# Module-level shared client for connection pooling across ephemeral clients.
_shared_async_client: httpx.AsyncClient | None = None


def _get_shared_async_client() -> httpx.AsyncClient:
    global _shared_async_client
    if _shared_async_client is None:
        _shared_async_client = httpx.AsyncClient()
    return _shared_async_client


class GitHubStoreClient:
    """StoreClient for one repository branch."""

    def __init__(
        self,
        credential: str,
        vault: VaultConfig,
        *,
        api_url: str = DEFAULT_API_URL,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        if not credential:
            raise ValueError('credential is required')
        self._credential = credential
        self._vault = vault
        self._api_url = api_url.rstrip('/')
        self._client = http_client or _get_shared_async_client()
        self._timeout_seconds = float(timeout_seconds)

    def __repr__(self) -> str:
        return (
            f'GitHubStoreClient(repo={self._vault.repo_owner}/{self._vault.repo_name}, '
            f'branch={self._vault.branch}, credential=<redacted>)'
        )

    # ── helpers ──────────────────────────────────────────────────────

    def _headers(self) -> dict[str, str]:
        # Never log these headers.
        return {
            'Authorization': f'Bearer {self._credential}',
            'Accept': 'application/vnd.github+json',
            'X-GitHub-Api-Version': '2022-11-28',
        }

    def _full_path(self, path: str) -> str:
        root = self._vault.root_path.strip('/')
        path = path.strip('/')
        return f'{root}/{path}' if root else path

    def _contents_url(self, path: str) -> str:
        return (
            f'{self._api_url}/repos/{self._vault.repo_owner}/{self._vault.repo_name}'
            f'/contents/{quote(self._full_path(path))}'
        )

    def _raise_for_error(self, resp: httpx.Response, path: str) -> None:
        if resp.status_code < 400:
            return
        message = ''
        try:
            payload = resp.json()
            if isinstance(payload, dict):
                message = str(payload.get('message') or '')
        except ValueError:
            pass
        # The credential never appears in these messages.
        if resp.status_code == 404:
            raise StoreNotFoundError(f'not found: {path}', status_code=404)
        if resp.status_code == 409 or (resp.status_code == 422 and 'sha' in message.lower()):
            raise StoreConflictError(f'conflict writing {path}', status_code=409)
        raise StoreError(
            f'store request failed for {path}: {message or resp.status_code}',
            status_code=resp.status_code,
        )

    async def _request(self, method: str, url: str, path: str, **kwargs: Any) -> httpx.Response:
        resp = await self._client.request(
            method,
            url,
            headers=self._headers(),
            timeout=self._timeout_seconds,
            **kwargs,
        )
        self._raise_for_error(resp, path)
        return resp

    # ── StoreClient ──────────────────────────────────────────────────

    async def read_path(self, path: str) -> StoredFile:
        resp = await self._request(
            'GET', self._contents_url(path), path, params={'ref': self._vault.branch},
        )
        payload = resp.json()
        if not isinstance(payload, dict) or payload.get('type') != 'file':
            raise StoreNotFoundError(f'not a file: {path}', status_code=404)
        raw = payload.get('content') or ''
        content = base64.b64decode(raw) if payload.get('encoding') == 'base64' else raw.encode('utf-8')
        return StoredFile(path=path, content=content, sha=str(payload.get('sha', '')))

    async def write_path(
        self,
        path: str,
        content: bytes,
        message: str,
        sha: str | None = None,
    ) -> str:
        body: dict[str, Any] = {
            'message': message,
            'content': base64.b64encode(content).decode('ascii'),
            'branch': self._vault.branch,
        }
        if sha:
            body['sha'] = sha
        resp = await self._request('PUT', self._contents_url(path), path, json=body)
        payload = resp.json()
        return str(payload.get('content', {}).get('sha', ''))

    async def delete_path(self, path: str, message: str, sha: str | None = None) -> None:
        if sha is None:
            sha = (await self.read_path(path)).sha
        await self._request(
            'DELETE',
            self._contents_url(path),
            path,
            json={'message': message, 'sha': sha, 'branch': self._vault.branch},
        )

    async def list_tree(self) -> list[TreeEntry]:
        url = (
            f'{self._api_url}/repos/{self._vault.repo_owner}/{self._vault.repo_name}'
            f'/git/trees/{quote(self._vault.branch)}'
        )
        resp = await self._request('GET', url, '', params={'recursive': '1'})
        payload = resp.json()
        root = self._vault.root_path.strip('/')
        prefix = f'{root}/' if root else ''

        entries: list[TreeEntry] = []
        for item in payload.get('tree', []):
            full = str(item.get('path', ''))
            if prefix and not full.startswith(prefix):
                continue
            relative = full[len(prefix):]
            if not relative:
                continue
            kind = 'dir' if item.get('type') == 'tree' else 'file'
            entries.append(TreeEntry(path=relative, type=kind))
        return entries

    async def exists(self, path: str) -> bool:
        try:
            await self.read_path(path)
        except StoreNotFoundError:
            return False
        return True


def github_store_factory(
    *,
    api_url: str = DEFAULT_API_URL,
    http_client: httpx.AsyncClient | None = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
):
    """Return a ``StoreClientFactory`` producing ``GitHubStoreClient``s."""

    def build(credential: str, vault: VaultConfig) -> GitHubStoreClient:
        return GitHubStoreClient(
            credential,
            vault,
            api_url=api_url,
            http_client=http_client,
            timeout_seconds=timeout_seconds,
        )

    return build
