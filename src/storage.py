"""
Durable key/value string storage.

Mirrors the browser localStorage contract (string keys, string values) so
the cache layer stays independent of where bytes actually live. Every
backend failure surfaces as StorageUnavailable.
"""

from __future__ import annotations

import logging
import os
import contextlib
from pathlib import Path
from typing import Optional, Protocol
from urllib.parse import quote

from src.errors import StorageUnavailable

logger = logging.getLogger(__name__)

# Marks the files FileStorage owns; clear() leaves anything else alone
FILE_SUFFIX = ".entry.json"


class Storage(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def clear(self) -> None: ...


class MemoryStorage:
    """
    Dict-backed storage for tests and throwaway sessions.

    With disabled=True every call raises StorageUnavailable, like a browser
    in a private mode that refuses localStorage access.
    """

    def __init__(self, disabled: bool = False) -> None:
        self.disabled = disabled
        self._items: dict[str, str] = {}

    def _check(self) -> None:
        if self.disabled:
            raise StorageUnavailable("storage is disabled")

    def get_item(self, key: str) -> Optional[str]:
        self._check()
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._check()
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._check()
        self._items.pop(key, None)

    def clear(self) -> None:
        self._check()
        self._items.clear()


class FileStorage:
    """One file per storage key inside a directory; writes are atomic."""

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory)

    def _path(self, key: str) -> Path:
        return self._dir / f"{quote(key, safe='')}{FILE_SUFFIX}"

    def get_item(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            raise StorageUnavailable(f"Cannot read {path}: {exc}") from exc

    def set_item(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp = path.with_name(f"{path.name}.tmp.{os.getpid()}")
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            tmp.write_text(value, encoding="utf-8")
            os.replace(tmp, path)
        except OSError as exc:
            with contextlib.suppress(OSError):
                tmp.unlink(missing_ok=True)
            raise StorageUnavailable(f"Cannot write {path}: {exc}") from exc

    def remove_item(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as exc:
            raise StorageUnavailable(f"Cannot remove {key}: {exc}") from exc

    def clear(self) -> None:
        if not self._dir.exists():
            return
        try:
            for path in self._dir.glob(f"*{FILE_SUFFIX}"):
                path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageUnavailable(f"Cannot clear {self._dir}: {exc}") from exc
        logger.debug("Cleared storage directory %s", self._dir)
