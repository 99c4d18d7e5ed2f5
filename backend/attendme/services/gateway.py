from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict

from attendme.core.exceptions import AppError
from attendme.services.commands import Command, CommandContext
from attendme.services.connectivity import ConnectivityMonitor
from attendme.services.offline_queue import OfflineActionQueue, QueuedAction

logger = logging.getLogger(__name__)


class GatewayResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    deferred: bool
    value: Any = None
    queued: QueuedAction | None = None


class ActionGateway:
    """Routes a user intent to the store when online, or to the offline queue otherwise."""

    def __init__(
        self,
        context: CommandContext,
        queue: OfflineActionQueue,
        connectivity: ConnectivityMonitor,
        *,
        defer_on_network_error: bool = False,
    ) -> None:
        self._context = context
        self._queue = queue
        self._connectivity = connectivity
        self._defer_on_network_error = defer_on_network_error

    def submit(self, description: str, command: Command) -> GatewayResult:
        if not self._connectivity.is_online:
            queued = self._queue.enqueue(description, command)
            return GatewayResult(deferred=True, queued=queued)

        try:
            value = command.run(self._context)
        except AppError as exc:
            if not (exc.retryable and self._defer_on_network_error):
                raise
            logger.warning("Deferring %s after transient failure: %s", description, exc.message)
            queued = self._queue.enqueue(description, command)
            return GatewayResult(deferred=True, queued=queued)
        return GatewayResult(deferred=False, value=value)
