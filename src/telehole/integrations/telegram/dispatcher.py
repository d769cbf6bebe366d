"""Per-key event dispatcher.

Events sharing a key (a user, or the discussion chat for mirror events) run
strictly in arrival order on one worker task; different keys run
concurrently. A failing handler is logged and never stalls its queue.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, Deque, Dict, Optional

from ...core.logging_utils import log_event
from .updates import CallbackEvent, MessageEvent, UpdateEvent

DispatchHandler = Callable[[UpdateEvent], Awaitable[None]]


def dispatch_key_for(event: UpdateEvent) -> str:
    """Queue partition for ``event``."""
    if isinstance(event, CallbackEvent):
        return f"user:{event.from_user_id}"
    if isinstance(event, MessageEvent) and event.is_private:
        user_id = event.from_user_id
        return f"user:{user_id if user_id is not None else event.chat_id}"
    return f"chat:{event.chat_id}"


class UpdateDispatcher:
    def __init__(self, *, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._lock = asyncio.Lock()
        self._queues: Dict[str, Deque[tuple[UpdateEvent, DispatchHandler]]] = {}
        self._workers: Dict[str, asyncio.Task[None]] = {}
        self._active_handlers = 0
        self._idle_event = asyncio.Event()
        self._idle_event.set()

    async def dispatch(self, event: UpdateEvent, handler: DispatchHandler) -> str:
        key = dispatch_key_for(event)
        async with self._lock:
            queue = self._queues.get(key)
            if queue is None:
                queue = deque()
                self._queues[key] = queue
            queue.append((event, handler))
            self._idle_event.clear()
            if key not in self._workers:
                self._workers[key] = asyncio.create_task(self._drain(key))
            pending = len(queue)
        log_event(
            self._logger,
            logging.DEBUG,
            "telehole.dispatch.queued",
            key=key,
            update_id=event.update_id,
            pending=pending,
        )
        return key

    async def wait_idle(self) -> None:
        """Wait until no queued or active handlers remain."""
        await self._idle_event.wait()

    async def close(self) -> None:
        async with self._lock:
            workers = list(self._workers.values())
            self._queues.clear()
        for task in workers:
            task.cancel()
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)

    async def _drain(self, key: str) -> None:
        try:
            while True:
                async with self._lock:
                    queue = self._queues.get(key)
                    if not queue:
                        self._queues.pop(key, None)
                        self._workers.pop(key, None)
                        self._mark_idle_if_drained()
                        return
                    event, handler = queue.popleft()
                    self._active_handlers += 1
                try:
                    await self._run_handler(key, event, handler)
                finally:
                    async with self._lock:
                        self._active_handlers -= 1
        finally:
            async with self._lock:
                if self._workers.get(key) is asyncio.current_task():
                    self._workers.pop(key, None)
                self._mark_idle_if_drained()

    def _mark_idle_if_drained(self) -> None:
        if self._active_handlers == 0 and not self._workers and not self._queues:
            self._idle_event.set()

    async def _run_handler(
        self, key: str, event: UpdateEvent, handler: DispatchHandler
    ) -> None:
        try:
            await handler(event)
        except Exception as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "telehole.dispatch.handler.failed",
                key=key,
                update_id=event.update_id,
                exc=exc,
            )
