"""Access context resolution for public share requests.

``AccessContextResolver.resolve`` turns a token into a ``ShareContext``:
the active share, an ephemeral store client built from the decrypted owner
credential, and the vault coordinates. Outcomes:

  - no active share, but a stored one past expiry -> ``ShareExpired``
  - no share at all -> ``ShareNotFound``
  - credential cannot be decrypted -> ``ShareUnavailable`` (detail logged)
  - lookup or decryption exceeds the timeout -> ``ShareTimeout``

Every successful resolution enqueues an access-count increment on the
``AccessRecorder``. The recorder runs the increments on its own worker
task; their failures are logged and never reach the caller.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable

from vault_shares.backend.store import StoreClient, StoreClientFactory, VaultConfig
from vault_shares.observability import get_logger, redact_token
from vault_shares.observability.metrics import (
    ACCESS_EVENTS_DROPPED_TOTAL,
    SHARE_RESOLUTIONS_TOTAL,
)
from vault_shares.security.encryption import CredentialCipher, CredentialDecryptionError

from .errors import (
    ShareError,
    ShareExpired,
    ShareNotFound,
    ShareTimeout,
    ShareUnavailable,
)
from .model import Share
from .registry import ShareRegistry
from .views import share_metadata

logger = get_logger(__name__)

DEFAULT_RESOLVE_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_PENDING_ACCESS_EVENTS = 1000
DEFAULT_DRAIN_TIMEOUT_SECONDS = 5.0


@dataclass(frozen=True, slots=True)
class ShareContext:
    share: Share
    client: StoreClient
    vault: VaultConfig


class AccessRecorder:
    """Bounded queue of access-count increments drained by one worker.

    ``submit`` never blocks and never raises: a full queue drops the event
    with a warning. Call ``start`` from the app lifespan; ``stop`` waits
    for the queue to drain, then cancels the worker and flushes any leftovers.
    """

    def __init__(
        self,
        record: Callable[[str], Awaitable[Any]],
        *,
        max_pending: int = DEFAULT_MAX_PENDING_ACCESS_EVENTS,
    ) -> None:
        self._record = record
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=max_pending)
        self._worker: asyncio.Task | None = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def submit(self, token: str) -> bool:
        try:
            self._queue.put_nowait(token)
        except asyncio.QueueFull:
            ACCESS_EVENTS_DROPPED_TOTAL.inc()
            logger.warning('access_event_dropped', token=redact_token(token))
            return False
        return True

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name='access-recorder')

    async def stop(self, drain_timeout: float = DEFAULT_DRAIN_TIMEOUT_SECONDS) -> None:
        if self._worker is not None:
            # Let the worker finish what it holds; cancelling mid-record loses it.
            if not self._worker.done():
                try:
                    await asyncio.wait_for(self._queue.join(), drain_timeout)
                except asyncio.TimeoutError:
                    logger.warning('access_recorder_drain_timeout', pending=self.pending)
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        await self.flush()

    async def flush(self) -> None:
        """Process every queued event on the caller's task."""
        while True:
            try:
                token = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            await self._apply(token)

    async def _apply(self, token: str) -> None:
        try:
            await self._record(token)
        except Exception:
            logger.warning('access_record_failed', token=redact_token(token), exc_info=True)
        finally:
            self._queue.task_done()

    async def _run(self) -> None:
        while True:
            token = await self._queue.get()
            await self._apply(token)


class AccessContextResolver:
    """Resolves share tokens into ready-to-use access contexts."""

    def __init__(
        self,
        registry: ShareRegistry,
        cipher: CredentialCipher,
        store_factory: StoreClientFactory,
        recorder: AccessRecorder,
        *,
        timeout_seconds: float = DEFAULT_RESOLVE_TIMEOUT_SECONDS,
    ) -> None:
        self._registry = registry
        self._cipher = cipher
        self._store_factory = store_factory
        self._recorder = recorder
        self._timeout_seconds = timeout_seconds

    def now(self) -> datetime:
        return self._registry.now()

    async def resolve(self, token: str) -> ShareContext:
        try:
            context = await asyncio.wait_for(self._resolve(token), self._timeout_seconds)
        except asyncio.TimeoutError:
            SHARE_RESOLUTIONS_TOTAL.labels(outcome='timeout').inc()
            logger.warning('share_resolve_timeout', token=redact_token(token))
            raise ShareTimeout()
        except ShareError as exc:
            SHARE_RESOLUTIONS_TOTAL.labels(outcome=exc.code.value).inc()
            raise
        SHARE_RESOLUTIONS_TOTAL.labels(outcome='ok').inc()
        return context

    async def metadata(self, token: str) -> dict[str, Any]:
        """Public projection of an active share (no credential decryption)."""
        try:
            return await asyncio.wait_for(self._metadata(token), self._timeout_seconds)
        except asyncio.TimeoutError:
            raise ShareTimeout()

    async def _metadata(self, token: str) -> dict[str, Any]:
        share = await self._registry.get_active(token)
        if share is None:
            raise await self._missing(token)
        return share_metadata(share, self._registry.now())

    async def _resolve(self, token: str) -> ShareContext:
        share = await self._registry.get_active(token)
        if share is None:
            raise await self._missing(token)

        try:
            credential = await self._cipher.decrypt_credential_async(share.encrypted_credential)
        except CredentialDecryptionError as exc:
            logger.error(
                'share_credential_decrypt_failed',
                token=redact_token(token),
                share_id=share.id,
                error=str(exc),
            )
            raise ShareUnavailable()

        client = self._store_factory(credential, share.vault)
        self._recorder.submit(token)
        return ShareContext(share=share, client=client, vault=share.vault)

    async def _missing(self, token: str) -> ShareError:
        """Distinguish an expired share from one that never existed."""
        raw = await self._registry.get_raw(token)
        if raw is not None and raw.is_expired(self._registry.now()):
            return ShareExpired()
        return ShareNotFound()
