from __future__ import annotations

import json
import threading
from pathlib import Path


class MemoryStorage:
    """Key/value string store kept in process memory."""

    def __init__(self, items: dict[str, str] | None = None) -> None:
        self._items: dict[str, str] = dict(items or {})

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = str(value)


class JsonFileStorage:
    """Browser-local-storage lookalike: one JSON object of string values on disk."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        decoded = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(decoded, dict):
            raise ValueError("storage file must contain a JSON object")
        return decoded

    def _write_all(self, items: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(items, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp_path.replace(self.path)

    def get_item(self, key: str) -> str | None:
        with self._lock:
            value = self._read_all().get(key)
        if value is None:
            return None
        return str(value)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            try:
                items = self._read_all()
            except ValueError:
                # unreadable file is replaced rather than blocking writes
                items = {}
            items[key] = str(value)
            self._write_all(items)
