"""
At most one in-flight request per key.

Concurrent callers for the same key await one shared task. The key is
released inside the task itself, before its result is published, so a call
made after settlement always starts a fresh request.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


def _retrieve_exception(task: asyncio.Task) -> None:
    # Every caller may have been cancelled; mark the failure as observed
    if not task.cancelled():
        task.exception()


class RequestDeduplicator:
    def __init__(self) -> None:
        self._in_flight: dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._in_flight)

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    async def run(self, key: str, fetch_fn: Callable[[], Awaitable[Any]]) -> Any:
        """Run fetch_fn for key, or join the request already running for it."""
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._run_and_release(key, fetch_fn))
            task.add_done_callback(_retrieve_exception)
            self._in_flight[key] = task
        else:
            logger.debug("Joining in-flight request for %s", key)
        # A cancelled caller must not cancel the fetch other callers share
        return await asyncio.shield(task)

    async def _run_and_release(
        self, key: str, fetch_fn: Callable[[], Awaitable[Any]]
    ) -> Any:
        try:
            return await fetch_fn()
        finally:
            self._in_flight.pop(key, None)
