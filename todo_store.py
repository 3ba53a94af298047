"""Ordered to-do item store mirrored to a JSON snapshot file."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class TodoStoreError(Exception):
    """Raised when the snapshot file cannot be read or written."""


class IndexOutOfRangeError(TodoStoreError, IndexError):
    """Raised when an item index does not address an existing item."""

    def __init__(self, length: int) -> None:
        super().__init__(f"Index out of range 0..{length - 1}")
        self.length = length


@dataclass(frozen=True, slots=True)
class TodoItem:
    name: str
    completed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"Name": self.name, "Completed": self.completed}

    @classmethod
    def from_dict(cls, raw: Any) -> TodoItem:
        if not isinstance(raw, dict):
            raise TodoStoreError("snapshot entries must be JSON objects")
        name = raw.get("Name", "")
        completed = raw.get("Completed", False)
        if not isinstance(name, str) or not isinstance(completed, bool):
            raise TodoStoreError("snapshot entry has invalid Name or Completed")
        return cls(name=name, completed=completed)


class TodoStore:
    """Positional item list guarded by one lock.

    Mutations are staged on a copy, written to disk, and only then become the
    visible sequence, so a failed write leaves memory and disk in agreement.
    """

    def __init__(self, *, state_file: str | Path) -> None:
        self._state_file = Path(state_file)
        self._lock = threading.Lock()
        self._items: list[TodoItem] = []

    @property
    def state_file(self) -> Path:
        return self._state_file

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def load(self) -> int:
        """Replace the in-memory sequence with the snapshot file contents."""
        try:
            raw = self._state_file.read_bytes()
        except OSError as exc:
            raise TodoStoreError(f"cannot read {self._state_file}: {exc}") from exc

        try:
            data = json.loads(raw.decode("utf-8"))
        except ValueError as exc:
            raise TodoStoreError(f"cannot decode {self._state_file}: {exc}") from exc

        if data is None:
            data = []
        if not isinstance(data, list):
            raise TodoStoreError(f"{self._state_file} must hold a JSON array")

        items = [TodoItem.from_dict(entry) for entry in data]
        with self._lock:
            self._items = items
        return len(items)

    def save(self) -> None:
        """Rewrite the snapshot file from the current sequence.

        append() and remove_at() already persist their staged sequence; this
        is the explicit full rewrite, e.g. to recreate a deleted snapshot.
        """
        with self._lock:
            self._write_locked(self._items)

    def snapshot(self) -> list[TodoItem]:
        with self._lock:
            return list(self._items)

    def get(self, index: int) -> TodoItem:
        with self._lock:
            self._check_index_locked(index)
            return self._items[index]

    def append(self, item: TodoItem) -> int:
        """Add item at the end and persist; return its index."""
        with self._lock:
            staged = [*self._items, item]
            self._write_locked(staged)
            self._items = staged
            return len(staged) - 1

    def remove_at(self, index: int) -> TodoItem:
        with self._lock:
            self._check_index_locked(index)
            staged = list(self._items)
            removed = staged.pop(index)
            self._write_locked(staged)
            self._items = staged
            return removed

    def _check_index_locked(self, index: int) -> None:
        if index < 0 or index >= len(self._items):
            raise IndexOutOfRangeError(len(self._items))

    def _write_locked(self, items: list[TodoItem]) -> None:
        payload = json.dumps(
            [item.to_dict() for item in items],
            ensure_ascii=False,
            separators=(",", ":"),
        )
        tmp_path = self._state_file.with_suffix(self._state_file.suffix + ".tmp")
        try:
            tmp_path.write_text(payload, encoding="utf-8")
            tmp_path.replace(self._state_file)
        except OSError as exc:
            logger.error("Failed to write %s: %s", self._state_file, exc)
            raise TodoStoreError(f"cannot write {self._state_file}: {exc}") from exc
