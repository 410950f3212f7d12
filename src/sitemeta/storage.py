"""Key/value stores standing in for browser local storage."""

from __future__ import annotations

import json
import os
from collections.abc import Iterator
from pathlib import Path
from threading import RLock

from .errors import StorageError, StorageQuotaError


class MemoryStore:
    """In-process store; contents vanish with the process."""

    def __init__(self, max_entries: int | None = None) -> None:
        self._data: dict[str, str] = {}
        self._max_entries = max_entries
        self._lock = RLock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            if (
                self._max_entries is not None
                and key not in self._data
                and len(self._data) >= self._max_entries
            ):
                raise StorageQuotaError(f"store is full ({self._max_entries} entries)")
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> Iterator[str]:
        with self._lock:
            snapshot = list(self._data)
        return iter(snapshot)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class JsonFileStore(MemoryStore):
    """Store persisted as one JSON object on disk, rewritten on every change."""

    def __init__(self, path: str | os.PathLike[str], max_entries: int | None = None) -> None:
        super().__init__(max_entries=max_entries)
        self._path = Path(path)
        self._data = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise StorageError(f"cannot read store {self._path}: {exc}") from exc
        if not isinstance(payload, dict):
            raise StorageError(f"store {self._path} does not hold a JSON object")
        return {str(key): value for key, value in payload.items() if isinstance(value, str)}

    def _flush(self) -> None:
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(self._data, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError as exc:
            raise StorageError(f"cannot write store {self._path}: {exc}") from exc

    def set(self, key: str, value: str) -> None:
        with self._lock:
            previous = self._data.get(key)
            super().set(key, value)
            try:
                self._flush()
            except StorageError:
                self._restore(key, previous)
                raise

    def delete(self, key: str) -> None:
        with self._lock:
            if key not in self._data:
                return
            previous = self._data.pop(key)
            try:
                self._flush()
            except StorageError:
                self._restore(key, previous)
                raise

    def _restore(self, key: str, previous: str | None) -> None:
        # Memory must not run ahead of what reached disk.
        if previous is None:
            self._data.pop(key, None)
        else:
            self._data[key] = previous
