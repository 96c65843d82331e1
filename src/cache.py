"""
Storage-backed TTL cache.

Generic cache -- not tied to any upstream. Keys are "<namespace>" or
"<namespace>/<sub-key>". Each namespace lives under one versioned storage
key ("<namespace>:v<version>"), either as a single entry or as a mapping of
sub-key to entry. Freshness is decided by the caller from the returned
entry, so stale entries are still served.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from src.errors import StorageUnavailable
from src.storage import Storage

logger = logging.getLogger(__name__)

# Storage namespace owned by RateLimitGuard; not available to the cache
RATE_LIMIT_NAMESPACE = "rateLimits"


def epoch_millis() -> int:
    return int(time.time() * 1000)


@dataclass
class CacheEntry:
    """A cached payload with its storage timestamp and validity window."""

    key: str
    payload: Any
    stored_at: int  # epoch millis
    ttl_millis: int

    def age(self, now: Optional[int] = None) -> int:
        """Milliseconds since this entry was stored."""
        if now is None:
            now = epoch_millis()
        return now - self.stored_at

    def is_fresh(self, now: Optional[int] = None) -> bool:
        return self.age(now) < self.ttl_millis


class StoredEntry(BaseModel):
    """Persisted shape of one entry."""

    model_config = ConfigDict(populate_by_name=True)

    stored_at: int = Field(alias="storedAt", ge=0)
    ttl_millis: int = Field(alias="ttlMillis", ge=0)
    payload: Any


class PersistentCache:
    """
    Cache-aside store on top of a Storage backend.

    - get(): returns the entry (fresh or stale) or None. Never raises on
      storage trouble or malformed data.
    - set(): stores a payload with the current timestamp. Failed writes are
      dropped.
    """

    def __init__(
        self, storage: Storage, versions: Optional[Mapping[str, int]] = None
    ) -> None:
        self._storage = storage
        self._versions: dict[str, int] = {}
        self._multi_entry: dict[str, bool] = {}
        self._clock = epoch_millis  # overridable for testing
        for namespace, version in (versions or {}).items():
            self.register(namespace, version)

    def register(self, namespace: str, version: int = 1) -> None:
        """Declare the payload-shape version of a namespace."""
        if not namespace or "/" in namespace or namespace == RATE_LIMIT_NAMESPACE:
            raise ValueError(f"Invalid cache namespace: {namespace!r}")
        existing = self._versions.get(namespace)
        if existing is not None and existing != version:
            raise ValueError(
                f"Cache namespace {namespace!r} already registered as v{existing}"
            )
        self._versions[namespace] = version

    def now(self) -> int:
        """Current time on the clock entries are stamped with."""
        return self._clock()

    def storage_key(self, namespace: str) -> str:
        return f"{namespace}:v{self._versions.get(namespace, 1)}"

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the entry for key if one is stored and readable."""
        namespace, sub_key = self._split(key)
        document = self._read(namespace)
        if document is None:
            return None

        raw = document
        if sub_key is not None:
            if not isinstance(document, dict):
                return None
            raw = document.get(sub_key)
            if raw is None:
                return None

        try:
            stored = StoredEntry.model_validate(raw)
        except ValidationError:
            logger.debug("Ignoring malformed cache entry for %s", key)
            return None
        return CacheEntry(
            key=key,
            payload=stored.payload,
            stored_at=stored.stored_at,
            ttl_millis=stored.ttl_millis,
        )

    def set(self, key: str, payload: Any, ttl_millis: int) -> None:
        """Store a payload with the current timestamp."""
        if ttl_millis < 0:
            raise ValueError("ttl_millis must be >= 0")
        namespace, sub_key = self._split(key)
        record = {"storedAt": self._clock(), "ttlMillis": ttl_millis, "payload": payload}

        if sub_key is None:
            document: Any = record
        else:
            existing = self._read(namespace)
            # A corrupt mapping is replaced rather than merged into
            document = existing if isinstance(existing, dict) else {}
            document[sub_key] = record

        try:
            text = json.dumps(document, separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            logger.warning("Cannot serialize cache entry %s: %s", key, exc)
            return

        try:
            self._storage.set_item(self.storage_key(namespace), text)
        except StorageUnavailable as exc:
            logger.debug("Dropping cache write for %s: %s", key, exc)

    def clear(self, namespace: str) -> None:
        """Remove every entry of a namespace."""
        try:
            self._storage.remove_item(self.storage_key(namespace))
        except StorageUnavailable as exc:
            logger.debug("Cannot clear cache namespace %s: %s", namespace, exc)

    def _split(self, key: str) -> tuple[str, Optional[str]]:
        namespace, sep, sub_key = key.partition("/")
        if not namespace or (sep and not sub_key) or namespace == RATE_LIMIT_NAMESPACE:
            raise ValueError(f"Invalid cache key: {key!r}")
        multi = bool(sep)
        seen = self._multi_entry.setdefault(namespace, multi)
        if seen != multi:
            layout = "multi-entry" if seen else "single-entry"
            raise ValueError(f"Cache namespace {namespace!r} is {layout}")
        return namespace, (sub_key if sep else None)

    def _read(self, namespace: str) -> Any:
        try:
            text = self._storage.get_item(self.storage_key(namespace))
        except StorageUnavailable as exc:
            logger.debug("Treating %s as a cache miss: %s", namespace, exc)
            return None
        if text is None:
            return None
        try:
            return json.loads(text)
        except ValueError:
            logger.debug("Ignoring undecodable cache namespace %s", namespace)
            return None
