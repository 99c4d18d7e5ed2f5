from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator

from attendme.services.offline_queue import FlushResult, OfflineActionQueue

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    """Tracks online state and replays the offline queue when the device reconnects."""

    def __init__(self, queue: OfflineActionQueue, *, online: bool = True) -> None:
        self._queue = queue
        self._online = online
        self._tasks: set[asyncio.Task[FlushResult]] = set()

    @property
    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> asyncio.Task[FlushResult] | None:
        """Record the new state. Returns the flush task started by an offline to online edge."""
        was_online = self._online
        self._online = bool(online)
        if was_online == self._online:
            return None
        if not self._online:
            logger.info("Connectivity lost; actions will be queued")
            return None

        logger.info("Connectivity restored; replaying queued actions")
        task = asyncio.create_task(self._queue.flush())
        self._tasks.add(task)
        task.add_done_callback(self._on_flush_done)
        return task

    def _on_flush_done(self, task: asyncio.Task[FlushResult]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background flush failed", exc_info=exc)

    async def watch(self, signal: AsyncIterator[bool]) -> None:
        async for online in signal:
            self.set_online(online)

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
