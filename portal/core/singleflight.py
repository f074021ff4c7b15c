"""Collapse concurrent calls for the same key into one in-flight coroutine."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable
from typing import Any

logger = logging.getLogger(__name__)


class SingleFlight:
    """Per-key call deduplication for coroutines running on one event loop.

    The first caller for a key starts the work; callers arriving while it is
    still running await the same task and receive its result or exception.
    Once the task settles the key is released, so the next call starts fresh.
    """

    def __init__(self) -> None:
        self._inflight: dict[Hashable, asyncio.Task] = {}

    async def do(self, key: Hashable, fn: Callable[[], Awaitable[Any]]) -> Any:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(fn())
            self._inflight[key] = task
            task.add_done_callback(lambda _t, k=key: self._release(k, _t))
        else:
            logger.debug("Joining in-flight call for %s", key)
        # shield: a cancelled waiter must not cancel the shared work
        return await asyncio.shield(task)

    def _release(self, key: Hashable, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled() and task.exception() is not None:
            # marks the exception as retrieved
            logger.debug("In-flight call for %s failed: %r", key, task.exception())

    def in_flight(self, key: Hashable) -> bool:
        return key in self._inflight
