"""
Cross-widget count aggregation.

Widgets publish (source, value); the bus keeps the latest value per source
and hands every subscriber the recomputed total. Publishers never learn who
listens.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Callable

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

Subscriber = Callable[[int], None]


class AggregateCount(BaseModel):
    source: str = Field(min_length=1)
    value: int = Field(ge=0)


def safe_count(value: Any, fallback: int = 0) -> int:
    """Coerce an untrusted number to a non-negative int."""
    try:
        n = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(n):
        return fallback
    return max(0, math.floor(n))


class AggregationBus:
    def __init__(self) -> None:
        self._counts: dict[str, int] = {}
        self._subscribers: list[Subscriber] = []

    def publish(self, source: str, value: int) -> int:
        """Replace the count reported by source and notify subscribers."""
        count = AggregateCount(source=source, value=value)
        self._counts[count.source] = count.value
        total = self.total()
        logger.debug("Count %s=%d, total=%d", count.source, count.value, total)
        for callback in list(self._subscribers):
            try:
                callback(total)
            except Exception:
                # One broken listener must not starve the others
                logger.exception("Aggregation subscriber %r failed", callback)
        return total

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register callback; returns a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def total(self) -> int:
        """Sum of the latest value per source. Silent sources count as 0."""
        return sum(self._counts.values())

    def counts(self) -> dict[str, int]:
        return dict(self._counts)

    def reset(self) -> None:
        self._counts.clear()
