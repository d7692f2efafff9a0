"""Key/value store standing in for the browser's ``localStorage``."""

from __future__ import annotations

import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class LocalStore:
    """String-keyed, string-valued store.

    The default instance lives in memory.  ``LocalStore.open(path)`` backs
    it with a JSON file that is rewritten on every change, so a new store
    opened on the same path sees what an earlier session saved.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._items: dict[str, str] = {}

    @classmethod
    def open(cls, path: str | Path) -> "LocalStore":
        """Load a file-backed store, creating an empty one if missing."""
        store = cls(Path(path))
        if store._path.exists():
            with open(store._path, "r", encoding="utf-8") as f:
                data = json.load(f)
            store._items = {str(k): str(v) for k, v in data.items()}
        return store

    @property
    def path(self) -> Path | None:
        return self._path

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: str) -> bool:
        return key in self._items

    def keys(self) -> list[str]:
        return list(self._items)

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = str(value)
        self._flush()

    def remove_item(self, key: str) -> None:
        if self._items.pop(key, None) is not None:
            self._flush()

    def clear(self) -> None:
        self._items.clear()
        self._flush()

    def remove_prefixed(self, prefix: str) -> list[str]:
        """Remove every key starting with *prefix*. Returns the removed keys."""
        removed = [k for k in self._items if k.startswith(prefix)]
        for key in removed:
            del self._items[key]
        if removed:
            self._flush()
        return removed

    def _flush(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "w", encoding="utf-8") as f:
            json.dump(self._items, f, indent=2, ensure_ascii=False)
        logger.debug("Wrote %d key(s) to %s", len(self._items), self._path)
