"""
Per-upstream "retry not before" guard.

reset_at only moves forward, and only when an upstream explicitly reports
quota exhaustion. State is persisted so a restart does not hammer an
upstream that is still limiting us.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

from src.cache import RATE_LIMIT_NAMESPACE, epoch_millis
from src.errors import StorageUnavailable
from src.storage import Storage

logger = logging.getLogger(__name__)

STORAGE_KEY = f"{RATE_LIMIT_NAMESPACE}:v1"


class RateLimitGuard:
    def __init__(self, storage: Optional[Storage] = None) -> None:
        self._storage = storage
        self._clock = epoch_millis  # overridable for testing
        self._reset_at: dict[str, int] = self._load()

    def is_limited(self, upstream: str) -> bool:
        """True while now < reset_at for this upstream."""
        return self._clock() < self.reset_at(upstream)

    def reset_at(self, upstream: str) -> int:
        return self._reset_at.get(upstream, 0)

    def record_limit(self, upstream: str, reset_at: int) -> None:
        """Record an authoritative rate-limit signal. Never rolls back."""
        if reset_at <= self.reset_at(upstream):
            return
        self._reset_at[upstream] = reset_at
        logger.warning(
            "Upstream %s is rate limited until %d (epoch ms)", upstream, reset_at
        )
        self._save()

    def _load(self) -> dict[str, int]:
        if self._storage is None:
            return {}
        try:
            text = self._storage.get_item(STORAGE_KEY)
            raw = json.loads(text) if text else {}
        except (StorageUnavailable, ValueError) as exc:
            logger.debug("Ignoring stored rate limit state: %s", exc)
            return {}
        if not isinstance(raw, dict):
            return {}
        return {
            str(name): value
            for name, value in raw.items()
            if isinstance(value, int) and not isinstance(value, bool) and value > 0
        }

    def _save(self) -> None:
        if self._storage is None:
            return
        try:
            self._storage.set_item(STORAGE_KEY, json.dumps(self._reset_at))
        except StorageUnavailable as exc:
            logger.debug("Dropping rate limit write: %s", exc)
