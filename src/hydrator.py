"""
Hydrator: stale-while-revalidate over PersistentCache, RateLimitGuard and
RequestDeduplicator.

For each resource key: paint whatever the cache holds, stop if it is fresh,
otherwise fetch (guarded and deduplicated), store and paint again. Every
fetch-path failure ends as a tagged Outcome instead of an exception.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from src.cache import CacheEntry, PersistentCache
from src.dedup import RequestDeduplicator
from src.errors import HydrationError, RateLimited
from src.models import ErrorKind, Outcome, OutcomeKind
from src.ratelimit import RateLimitGuard

logger = logging.getLogger(__name__)

FetchFn = Callable[[], Awaitable[Any]]
RenderFn = Callable[[Any], Any]
ErrorFn = Callable[[ErrorKind], Any]


async def _notify(callback: Optional[Callable[[Any], Any]], arg: Any) -> None:
    """Call a render/error callback; coroutine callbacks are awaited."""
    if callback is None:
        return
    result = callback(arg)
    if inspect.isawaitable(result):
        await result


class Hydrator:
    """
    Orchestrates one hydration per call. Cache, guard and deduplicator are
    injected so every widget on a page shares the same instances.
    """

    def __init__(
        self,
        cache: PersistentCache,
        guard: RateLimitGuard,
        dedup: Optional[RequestDeduplicator] = None,
    ) -> None:
        self._cache = cache
        self._guard = guard
        self._dedup = dedup or RequestDeduplicator()
        self._tasks: set[asyncio.Task] = set()
        self._settled: list[asyncio.Task] = []

    async def hydrate(
        self,
        key: str,
        *,
        ttl_millis: int,
        fetch_fn: FetchFn,
        render_fn: RenderFn,
        on_error: Optional[ErrorFn] = None,
        upstream: Optional[str] = None,
    ) -> Outcome:
        """Run the stale-while-revalidate protocol for one key."""
        if upstream is None:
            upstream = key.partition("/")[0]

        # 1. Paint from cache, fresh or stale
        cached = self._cache.get(key)
        if cached is not None:
            await _notify(render_fn, cached.payload)
            if cached.is_fresh(self._cache.now()):
                return self._from_cache(key, cached, OutcomeKind.fresh)

        # 2. Honor an active rate limit without touching the network
        if self._guard.is_limited(upstream):
            logger.info(
                "Skipping fetch for %s: %s rate limited until %d",
                key,
                upstream,
                self._guard.reset_at(upstream),
            )
            await _notify(on_error, ErrorKind.rate_limited)
            if cached is not None:
                return self._from_cache(
                    key, cached, OutcomeKind.rate_limited, ErrorKind.rate_limited
                )
            return Outcome(
                key=key, kind=OutcomeKind.rate_limited, reason=ErrorKind.rate_limited
            )

        # 3. Fetch, shared with any concurrent hydration of the same key
        try:
            payload = await self._dedup.run(key, fetch_fn)
        except HydrationError as exc:
            if isinstance(exc, RateLimited):
                self._guard.record_limit(upstream, exc.reset_at)
            logger.warning("Fetch failed for %s: %s", key, exc)
            return await self._handle_failure(key, cached, exc.kind, on_error)
        except Exception:
            logger.exception("Unexpected error fetching %s", key)
            return await self._handle_failure(
                key, cached, ErrorKind.upstream_error, on_error
            )

        # 4. Store and repaint. Empty results are valid values.
        self._cache.set(key, payload, ttl_millis)
        await _notify(render_fn, payload)
        return Outcome(key=key, kind=OutcomeKind.fresh, payload=payload)

    def spawn(self, key: str, **kwargs: Any) -> asyncio.Task:
        """Fire-and-forget hydrate(); the task is tracked for wait_idle()."""
        task = asyncio.ensure_future(self.hydrate(key, **kwargs))
        self._tasks.add(task)
        task.add_done_callback(self._on_settled)
        return task

    def _on_settled(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled():
            self._settled.append(task)

    async def wait_idle(self) -> list[Outcome]:
        """
        Wait until every spawned hydration has finished, including ones
        spawned by render callbacks while waiting. Returns the outcomes
        settled since the last call; re-raises the first callback error.
        """
        while self._tasks:
            await asyncio.wait(list(self._tasks))
        settled, self._settled = self._settled, []

        outcomes: list[Outcome] = []
        errors: list[BaseException] = []
        for task in settled:
            exc = task.exception()
            if exc is not None:
                errors.append(exc)
            else:
                outcomes.append(task.result())
        if errors:
            raise errors[0]
        return outcomes

    def resource(
        self,
        key: str,
        *,
        ttl_millis: int,
        fetch_fn: FetchFn,
        render_fn: RenderFn,
        on_error: Optional[ErrorFn] = None,
        upstream: Optional[str] = None,
    ) -> "Resource":
        """Bind one resource's configuration for repeated hydration."""
        return Resource(
            hydrator=self,
            key=key,
            ttl_millis=ttl_millis,
            fetch_fn=fetch_fn,
            render_fn=render_fn,
            on_error=on_error,
            upstream=upstream,
        )

    def _from_cache(
        self,
        key: str,
        entry: CacheEntry,
        kind: OutcomeKind,
        reason: Optional[ErrorKind] = None,
    ) -> Outcome:
        return Outcome(
            key=key,
            kind=kind,
            payload=entry.payload,
            reason=reason,
            from_cache=True,
            stored_at=entry.stored_at,
        )

    async def _handle_failure(
        self,
        key: str,
        cached: Optional[CacheEntry],
        reason: ErrorKind,
        on_error: Optional[ErrorFn],
    ) -> Outcome:
        """Keep a stale render on screen; otherwise report the failure."""
        if cached is not None:
            return self._from_cache(key, cached, OutcomeKind.stale, reason)

        await _notify(on_error, reason)
        kind = (
            OutcomeKind.rate_limited
            if reason == ErrorKind.rate_limited
            else OutcomeKind.error
        )
        return Outcome(key=key, kind=kind, reason=reason)


@dataclass
class Resource:
    """One resource's hydration settings, bound to a Hydrator."""

    hydrator: Hydrator
    key: str
    ttl_millis: int
    fetch_fn: FetchFn
    render_fn: RenderFn
    on_error: Optional[ErrorFn] = None
    upstream: Optional[str] = None

    def _kwargs(self) -> dict[str, Any]:
        return {
            "ttl_millis": self.ttl_millis,
            "fetch_fn": self.fetch_fn,
            "render_fn": self.render_fn,
            "on_error": self.on_error,
            "upstream": self.upstream,
        }

    async def hydrate(self) -> Outcome:
        return await self.hydrator.hydrate(self.key, **self._kwargs())

    def spawn(self) -> asyncio.Task:
        return self.hydrator.spawn(self.key, **self._kwargs())
