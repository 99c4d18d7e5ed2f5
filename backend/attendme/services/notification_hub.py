from __future__ import annotations

import asyncio
from collections import defaultdict
from concurrent.futures import Future
import inspect
import logging
import threading
from typing import Awaitable, Callable, Union

import anyio

logger = logging.getLogger(__name__)

Subscriber = Callable[[dict], Union[Awaitable[None], None]]


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class NotificationHub:
    """Live fan-out of notification payloads to each user's subscribers.

    Managers call :meth:`deliver` after commit from whatever thread they run
    on: the event loop thread, an AnyIO worker thread during queue replay, or
    plain synchronous code with no loop at all.

    Coroutine subscribers run on the event loop they subscribed from (or on a
    short-lived loop when they subscribed outside one). Plain callables run
    inline in the delivering thread. A subscriber that raises is dropped.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, dict[Subscriber, asyncio.AbstractEventLoop | None]] = defaultdict(dict)
        self._lock = threading.Lock()
        self._pending: set[asyncio.Future | Future] = set()

    def subscribe(self, user_id: str, subscriber: Subscriber) -> None:
        loop = _running_loop() if inspect.iscoroutinefunction(subscriber) else None
        with self._lock:
            self._subscribers[user_id][subscriber] = loop

    def unsubscribe(self, user_id: str, subscriber: Subscriber) -> None:
        with self._lock:
            subscribers = self._subscribers.get(user_id)
            if not subscribers:
                return
            subscribers.pop(subscriber, None)
            if not subscribers:
                self._subscribers.pop(user_id, None)

    def subscriber_count(self, user_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(user_id, {}))

    def deliver(self, user_id: str, payload: dict) -> int:
        """Hands ``payload`` to every subscriber of ``user_id``; returns how many took it."""
        with self._lock:
            subscribers = list(self._subscribers.get(user_id, {}).items())

        delivered = 0
        for subscriber, loop in subscribers:
            try:
                self._hand_over(user_id, subscriber, loop, payload)
            except Exception:
                logger.debug("Dropping notification subscriber for user %s", user_id, exc_info=True)
                self.unsubscribe(user_id, subscriber)
            else:
                delivered += 1
        return delivered

    def _hand_over(
        self,
        user_id: str,
        subscriber: Subscriber,
        loop: asyncio.AbstractEventLoop | None,
        payload: dict,
    ) -> None:
        if not inspect.iscoroutinefunction(subscriber):
            subscriber(payload)
            return

        current = _running_loop()
        target = loop or current
        if target is None:
            anyio.run(subscriber, payload)
            return
        if target is current:
            future: asyncio.Future | Future = target.create_task(subscriber(payload))
        elif target.is_running():
            future = asyncio.run_coroutine_threadsafe(subscriber(payload), target)
        else:
            raise RuntimeError("Subscriber event loop is no longer running")

        with self._lock:
            self._pending.add(future)
        future.add_done_callback(lambda done: self._settle(user_id, subscriber, done))

    def _settle(self, user_id: str, subscriber: Subscriber, future: asyncio.Future | Future) -> None:
        with self._lock:
            self._pending.discard(future)
        if future.cancelled() or future.exception() is None:
            return
        logger.debug(
            "Dropping notification subscriber for user %s",
            user_id,
            exc_info=future.exception(),
        )
        self.unsubscribe(user_id, subscriber)


notification_hub = NotificationHub()
