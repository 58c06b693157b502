"""Public share operations: read, tree, write, export and deposit.

Every operation resolves the token first, checks the share's mode, runs
each named path through the sandbox validator and only then touches the
backend store. Store failures are translated into share errors here:

  - ``StoreNotFoundError`` -> ``SharedFileNotFound``
  - ``StoreConflictError`` -> ``SharedFileConflict``
  - other ``StoreError`` -> ``ShareUnavailable`` (detail logged)
  - store call exceeding the timeout -> ``ShareTimeout``
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Sequence, TypeVar

import httpx

from vault_shares.analytics.access_log import AccessLogger, GeoInfo
from vault_shares.backend.store import StoreConflictError, StoreError, StoreNotFoundError
from vault_shares.observability import get_logger, redact_token
from vault_shares.observability.metrics import SCOPE_VIOLATIONS_TOTAL

from .context import AccessContextResolver, ShareContext
from .deposit import UploadSource, process_deposit
from .errors import (
    SharedFileConflict,
    SharedFileNotFound,
    ShareModeNotPermitted,
    ShareScopeViolation,
    ShareTimeout,
    ShareUnavailable,
    ShareValidationError,
)
from .files import build_share_tree, file_payload
from .model import ReaderAccess, ScopeType, WriterAccess
from .rate_limit import DepositRateLimiter
from .validation import (
    NOTE_EXTENSION,
    SEPARATOR,
    build_full_path,
    get_relative_path,
    is_within_scope,
    normalize_path,
    note_file_path,
    parent_path,
    scope_name,
    validate_share_path,
)

logger = get_logger(__name__)

T = TypeVar('T')

DEFAULT_STORE_TIMEOUT_SECONDS = 15.0
MAX_EXPORT_PATHS = 100
_INVALID_NAME_CHARS = set('<>:"|?*')


@dataclass(frozen=True, slots=True)
class RequestInfo:
    """Visitor details recorded in the access log."""

    client_ip: str = 'unknown'
    user_agent: str | None = None
    referer: str | None = None
    geo: GeoInfo = GeoInfo()


class ShareAccessService:
    """Operations available to anonymous holders of a share token."""

    def __init__(
        self,
        resolver: AccessContextResolver,
        rate_limiter: DepositRateLimiter,
        access_logger: AccessLogger,
        *,
        store_timeout_seconds: float = DEFAULT_STORE_TIMEOUT_SECONDS,
    ) -> None:
        self._resolver = resolver
        self._rate_limiter = rate_limiter
        self._access_logger = access_logger
        self._store_timeout_seconds = store_timeout_seconds

    # ── helpers ──────────────────────────────────────────────────────

    async def _store(self, call: Awaitable[T], ctx: ShareContext, path: str) -> T:
        try:
            return await asyncio.wait_for(call, self._store_timeout_seconds)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning('store_timeout', token=redact_token(ctx.share.token), path=path)
            raise ShareTimeout()
        except StoreNotFoundError:
            raise SharedFileNotFound()
        except StoreConflictError:
            raise SharedFileConflict()
        except (StoreError, httpx.HTTPError) as exc:
            logger.error(
                'store_call_failed',
                token=redact_token(ctx.share.token),
                path=path,
                error=str(exc),
            )
            raise ShareUnavailable()

    @staticmethod
    def _require_path(path: str | None) -> str:
        normalized = normalize_path(path or '')
        if not normalized:
            raise ShareValidationError('path is required')
        return normalized

    @staticmethod
    def _check_scope(ctx: ShareContext, path: str) -> None:
        share = ctx.share
        if not validate_share_path(path, share.scope_path, share.include_subfolders, share.scope_type.value):
            SCOPE_VIOLATIONS_TOTAL.inc()
            logger.warning(
                'share_scope_violation',
                token=redact_token(share.token),
                path=path,
            )
            raise ShareScopeViolation()

    @staticmethod
    def _require_readable(ctx: ShareContext) -> None:
        if not isinstance(ctx.share.access, (ReaderAccess, WriterAccess)):
            raise ShareModeNotPermitted('This share is upload-only.')

    @staticmethod
    def _require_writer(ctx: ShareContext) -> None:
        if not isinstance(ctx.share.access, WriterAccess):
            raise ShareModeNotPermitted('This share is read-only.')

    async def _log_access(self, ctx: ShareContext, info: RequestInfo | None) -> None:
        info = info or RequestInfo()
        await self._access_logger.log_access(
            ctx.share.id,
            user_agent=info.user_agent,
            geo=info.geo,
            referer=info.referer,
            at=self._resolver.now(),
        )

    # ── operations ───────────────────────────────────────────────────

    async def metadata(self, token: str) -> dict[str, Any]:
        return await self._resolver.metadata(token)

    async def read_file(
        self,
        token: str,
        path: str | None,
        info: RequestInfo | None = None,
    ) -> dict[str, Any]:
        """Read one in-scope file. Markdown comes with frontmatter and wikilinks."""
        path = self._require_path(path)
        ctx = await self._resolver.resolve(token)
        self._require_readable(ctx)
        self._check_scope(ctx, path)

        stored = await self._store(ctx.client.read_path(path), ctx, path)
        await self._log_access(ctx, info)
        return file_payload(path, stored.content, stored.sha)

    async def tree(self, token: str) -> dict[str, Any]:
        ctx = await self._resolver.resolve(token)
        self._require_readable(ctx)
        share = ctx.share

        if share.scope_type is ScopeType.NOTE:
            note = note_file_path(share.scope_path)
            folder = parent_path(share.scope_path)
            return {
                'tree': [{'name': note.rsplit(SEPARATOR, 1)[-1], 'path': note, 'type': 'file'}],
                'scope_type': share.scope_type.value,
                'folder_path': folder,
                'folder_name': scope_name(folder) or 'Root',
                'note_path': note,
                'include_subfolders': False,
            }

        entries = await self._store(ctx.client.list_tree(), ctx, share.scope_path)
        return {
            'tree': build_share_tree(entries, share.scope_path, share.include_subfolders),
            'scope_type': share.scope_type.value,
            'folder_path': share.scope_path,
            'folder_name': share.scope_name,
            'include_subfolders': share.include_subfolders,
        }

    async def save_file(
        self,
        token: str,
        path: str | None,
        content: str,
        sha: str | None = None,
        message: str | None = None,
    ) -> dict[str, Any]:
        """Overwrite an in-scope file. A stale ``sha`` is a conflict."""
        path = self._require_path(path)
        ctx = await self._resolver.resolve(token)
        self._require_writer(ctx)
        self._check_scope(ctx, path)

        commit_message = message or f'Update {path.rsplit(SEPARATOR, 1)[-1]} via shared link'
        new_sha = await self._store(
            ctx.client.write_path(path, content.encode('utf-8'), commit_message, sha),
            ctx,
            path,
        )
        logger.info('shared_file_saved', token=redact_token(token), path=path)
        return {'success': True, 'path': path, 'sha': new_sha}

    async def create_file(
        self,
        token: str,
        path: str | None,
        content: str | None = None,
    ) -> dict[str, Any]:
        """Create a new in-scope file; an existing path is a conflict."""
        path = self._require_path(path)
        ctx = await self._resolver.resolve(token)
        self._require_writer(ctx)
        self._check_scope(ctx, path)

        if await self._store(ctx.client.exists(path), ctx, path):
            raise SharedFileConflict('A file already exists at this location.')

        name = path.rsplit(SEPARATOR, 1)[-1]
        if content is None:
            content = f'# {name[:-len(NOTE_EXTENSION)]}\n\n' if name.endswith(NOTE_EXTENSION) else ''

        new_sha = await self._store(
            ctx.client.write_path(path, content.encode('utf-8'), f'Create {name} via shared link'),
            ctx,
            path,
        )
        logger.info('shared_file_created', token=redact_token(token), path=path)
        return {'success': True, 'path': path, 'sha': new_sha}

    async def create_folder(self, token: str, path: str | None) -> dict[str, Any]:
        """Create an in-scope folder (as ``<path>/.gitkeep``)."""
        path = self._require_path(path)
        if _INVALID_NAME_CHARS & set(path):
            raise ShareValidationError('Invalid characters in folder name.')

        ctx = await self._resolver.resolve(token)
        self._require_writer(ctx)
        share = ctx.share
        if share.scope_type is ScopeType.NOTE or not share.include_subfolders:
            raise ShareModeNotPermitted('Folder creation is not allowed for this share.')

        marker = build_full_path(path, '.gitkeep')
        self._check_scope(ctx, marker)
        if path == normalize_path(share.scope_path):
            raise SharedFileConflict('A folder already exists at this location.')
        if await self._store(ctx.client.exists(marker), ctx, marker):
            raise SharedFileConflict('A folder already exists at this location.')

        folder_name = path.rsplit(SEPARATOR, 1)[-1]
        new_sha = await self._store(
            ctx.client.write_path(marker, b'', f'Create folder {folder_name} via shared link'),
            ctx,
            marker,
        )
        return {'success': True, 'path': path, 'sha': new_sha}

    async def export(self, token: str, paths: list[str]) -> dict[str, Any]:
        """Collect in-scope files (folders expanded) for copying elsewhere.

        Requires ``allow_copy``. Unreadable entries are skipped.
        """
        if not paths:
            raise ShareValidationError('paths are required')
        if len(paths) > MAX_EXPORT_PATHS:
            raise ShareValidationError(f'at most {MAX_EXPORT_PATHS} paths per export')

        ctx = await self._resolver.resolve(token)
        self._require_readable(ctx)
        share = ctx.share
        if not share.permissions.allow_copy:
            raise ShareModeNotPermitted('Copying is not allowed for this share.')

        requested = [self._require_path(p) for p in paths]
        for path in requested:
            if not (
                validate_share_path(path, share.scope_path, share.include_subfolders, share.scope_type.value)
                or (share.scope_type is ScopeType.FOLDER and is_within_scope(path, share.scope_path))
            ):
                raise ShareScopeViolation(f'Path outside the share: {path}')

        entries = await self._store(ctx.client.list_tree(), ctx, share.scope_path)
        wanted: list[str] = []
        for entry in entries:
            if entry.type != 'file':
                continue
            if not validate_share_path(entry.path, share.scope_path, share.include_subfolders, share.scope_type.value):
                continue
            if any(entry.path == p or is_within_scope(entry.path, p) for p in requested):
                wanted.append(entry.path)

        files: list[dict[str, Any]] = []
        for path in wanted:
            try:
                stored = await self._store(ctx.client.read_path(path), ctx, path)
            except (SharedFileNotFound, ShareUnavailable):
                logger.warning('export_file_skipped', token=redact_token(token), path=path)
                continue
            payload = file_payload(path, stored.content, stored.sha)
            relative = (
                path.rsplit(SEPARATOR, 1)[-1]
                if share.scope_type is ScopeType.NOTE
                else get_relative_path(path, share.scope_path)
            )
            files.append({
                'path': relative,
                'content': payload.get('raw_content', payload['content']),
                'encoding': payload['encoding'],
                'size': len(stored.content),
            })
        return {'files': files}

    async def deposit(
        self,
        token: str,
        files: Sequence[UploadSource],
        info: RequestInfo | None = None,
    ) -> dict[str, Any]:
        info = info or RequestInfo()
        ctx = await self._resolver.resolve(token)
        result = await process_deposit(
            ctx,
            info.client_ip,
            files,
            self._rate_limiter,
            timeout_seconds=self._store_timeout_seconds,
        )
        if result['uploaded']:
            await self._log_access(ctx, info)
        return result
