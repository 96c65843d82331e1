"""
Render targets for hydrated widgets.

A Page is a set of named slots standing in for the page fragments the
widgets fill. Rendering into a slot is idempotent: the latest call wins.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class SlotState(str, Enum):
    loading = "loading"
    ready = "ready"
    empty = "empty"
    error = "error"
    hidden = "hidden"


@dataclass
class Slot:
    name: str
    state: SlotState = SlotState.loading
    content: Any = None
    message: str = ""
    renders: int = 0

    def _set(self, state: SlotState, content: Any, message: str) -> None:
        self.state = state
        self.content = content
        self.message = message
        self.renders += 1

    def render(self, content: Any, message: str = "") -> None:
        self._set(SlotState.ready, content, message)

    def show_empty(self, message: str, content: Any = None) -> None:
        self._set(SlotState.empty, content, message)

    def show_error(self, message: str, content: Any = None) -> None:
        self._set(SlotState.error, content, message)

    def hide(self) -> None:
        self._set(SlotState.hidden, None, "")

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "content": self.content,
            "message": self.message,
        }


class Page:
    def __init__(self) -> None:
        self._slots: dict[str, Slot] = {}

    def slot(self, name: str) -> Slot:
        """Return the slot called name, creating it in the loading state."""
        if name not in self._slots:
            self._slots[name] = Slot(name=name)
        return self._slots[name]

    def get(self, name: str) -> Slot | None:
        return self._slots.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._slots

    def snapshot(self) -> dict[str, dict[str, Any]]:
        return {name: slot.to_dict() for name, slot in sorted(self._slots.items())}
