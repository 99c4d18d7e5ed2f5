from __future__ import annotations

from datetime import datetime, timezone
import logging
import threading
import uuid

import anyio
from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from attendme.core.exceptions import AppError
from attendme.services.commands import Command, CommandContext
from attendme.services.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "@attend_me/pending_actions"
DEFAULT_LAST_SYNC_KEY = "@attend_me/last_sync_time"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class QueuedAction(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    description: str
    command: Command
    enqueued_at: datetime = Field(default_factory=_utc_now)
    attempts: int = 0
    last_error: str | None = None


class FlushFailure(BaseModel):
    action_id: str
    description: str
    error: str
    retryable: bool
    dropped: bool


class FlushResult(BaseModel):
    skipped: bool = False
    succeeded: int = 0
    dropped: int = 0
    retained: int = 0
    halted: bool = False
    failures: list[FlushFailure] = Field(default_factory=list)


class SyncStatus(BaseModel):
    last_sync_time: datetime | None
    pending_count: int


_ACTION_ADAPTER = TypeAdapter(QueuedAction)


class OfflineActionQueue:
    """Durable FIFO outbox of commands issued while offline.

    Actions are replayed in the order they were enqueued. Business failures are
    dropped after logging. A transient failure ends the flush: the failing
    action and everything behind it stay queued, and the failing action is
    dropped once it has failed ``max_attempts`` times.
    """

    def __init__(
        self,
        store: KeyValueStore,
        context: CommandContext,
        *,
        storage_key: str = DEFAULT_STORAGE_KEY,
        last_sync_key: str = DEFAULT_LAST_SYNC_KEY,
        max_attempts: int = 3,
    ) -> None:
        self._store = store
        self._context = context
        self._storage_key = storage_key
        self._last_sync_key = last_sync_key
        self._max_attempts = max(1, max_attempts)
        self._lock = threading.Lock()
        self._flushing = False

    @property
    def is_flushing(self) -> bool:
        return self._flushing

    def _load(self) -> list[QueuedAction]:
        raw = self._store.get(self._storage_key, [])
        if not isinstance(raw, list):
            logger.warning("Pending actions under %s are not a list; ignoring them", self._storage_key)
            return []
        actions: list[QueuedAction] = []
        for entry in raw:
            try:
                actions.append(_ACTION_ADAPTER.validate_python(entry))
            except PydanticValidationError:
                logger.warning("Skipping unreadable pending action: %r", entry)
        return actions

    def _save(self, actions: list[QueuedAction]) -> None:
        self._store.set(self._storage_key, [action.model_dump(mode="json") for action in actions])

    def enqueue(self, description: str, command: Command) -> QueuedAction:
        action = QueuedAction(description=description, command=command)
        with self._lock:
            actions = self._load()
            actions.append(action)
            self._save(actions)
        logger.info("Queued offline action %s: %s", action.id, description)
        return action

    def pending(self) -> list[QueuedAction]:
        with self._lock:
            return self._load()

    def pending_count(self) -> int:
        return len(self.pending())

    def clear(self) -> None:
        with self._lock:
            self._store.delete(self._storage_key)

    def last_sync_time(self) -> datetime | None:
        raw = self._store.get(self._last_sync_key)
        if not raw:
            return None
        try:
            return datetime.fromisoformat(raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed last sync time %r", raw)
            return None

    def status(self) -> SyncStatus:
        return SyncStatus(last_sync_time=self.last_sync_time(), pending_count=self.pending_count())

    def _remove(self, action_id: str) -> None:
        # Reload so actions enqueued while the command ran are kept.
        with self._lock:
            actions = [item for item in self._load() if item.id != action_id]
            self._save(actions)

    def _record_attempt(self, action_id: str, attempts: int, error: str) -> None:
        with self._lock:
            actions = self._load()
            for item in actions:
                if item.id == action_id:
                    item.attempts = attempts
                    item.last_error = error
            self._save(actions)

    async def flush(self) -> FlushResult:
        if self._flushing:
            logger.debug("Flush already running; skipping")
            return FlushResult(skipped=True)

        self._flushing = True
        try:
            result = FlushResult()
            snapshot = self.pending()
            if snapshot:
                logger.info("Replaying %d pending action(s)", len(snapshot))
            for action in snapshot:
                if not await self._replay(action, result):
                    result.halted = True
                    break
            self._store.set(self._last_sync_key, _utc_now().isoformat())
            if snapshot:
                logger.info(
                    "Replay finished: %d succeeded, %d dropped, %d retained%s",
                    result.succeeded,
                    result.dropped,
                    result.retained,
                    ", halted on transient failure" if result.halted else "",
                )
            return result
        finally:
            self._flushing = False

    async def _replay(self, action: QueuedAction, result: FlushResult) -> bool:
        """Run one action. Returns False when the flush must stop here."""
        try:
            await anyio.to_thread.run_sync(action.command.run, self._context)
        except AppError as exc:
            if exc.retryable:
                self._handle_transient(action, exc, result)
                return False
            logger.warning("Dropping action %s (%s): %s", action.id, action.description, exc.message)
            self._remove(action.id)
            result.dropped += 1
            result.failures.append(
                FlushFailure(
                    action_id=action.id,
                    description=action.description,
                    error=exc.message,
                    retryable=False,
                    dropped=True,
                )
            )
        except Exception as exc:
            logger.exception("Dropping action %s (%s) after unexpected error", action.id, action.description)
            self._remove(action.id)
            result.dropped += 1
            result.failures.append(
                FlushFailure(
                    action_id=action.id,
                    description=action.description,
                    error=str(exc) or exc.__class__.__name__,
                    retryable=False,
                    dropped=True,
                )
            )
        else:
            self._remove(action.id)
            result.succeeded += 1
        return True

    def _handle_transient(self, action: QueuedAction, exc: AppError, result: FlushResult) -> None:
        attempts = action.attempts + 1
        dropped = attempts >= self._max_attempts
        if dropped:
            logger.error(
                "Dropping action %s (%s) after %d attempts: %s",
                action.id,
                action.description,
                attempts,
                exc.message,
            )
            self._remove(action.id)
            result.dropped += 1
        else:
            logger.warning(
                "Action %s (%s) failed with a transient error, attempt %d of %d: %s",
                action.id,
                action.description,
                attempts,
                self._max_attempts,
                exc.message,
            )
            self._record_attempt(action.id, attempts, exc.message)
            result.retained += 1
        result.failures.append(
            FlushFailure(
                action_id=action.id,
                description=action.description,
                error=exc.message,
                retryable=True,
                dropped=dropped,
            )
        )
