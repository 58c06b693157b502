"""Managed periodic background tasks.

Subclasses implement ``run_once``; ``start``/``stop`` are called from the
application lifespan. A failing iteration is logged and the loop keeps
going. ``stop`` cancels the task and waits for it to exit.
"""

from __future__ import annotations

import asyncio

from vault_shares.observability import get_logger

logger = get_logger(__name__)


class PeriodicTask:
    name = 'periodic-task'

    def __init__(self, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError('interval_seconds must be positive')
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=self.name)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def run_once(self) -> None:
        raise NotImplementedError

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception('background_task_failed', task=self.name)
