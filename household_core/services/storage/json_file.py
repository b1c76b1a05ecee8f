"""
JSON File Storage Implementation

All keys live in one JSON object on disk. Writes go to a temporary file in
the same directory which then replaces the target, so another process
reading the file sees either the old or the new object, never a mix.

Other processes' writes are picked up by poll_external_changes(), which
compares the file against the last snapshot and notifies subscribers for
each key whose value changed. set() and remove() re-read the file and touch
only their own key, so they never write back another process's old values;
keys found changed on the way are announced as well.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Callable, Optional, Union

from household_core.services.storage.interface import (
    CorruptStorageError,
    KeyValueStorageInterface,
    StorageListener,
    StorageWriteError,
)


class JsonFileKeyValueStorage(KeyValueStorageInterface):
    """
    File-backed key/value storage shared between processes.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)
        self._listeners: list[StorageListener] = []
        self._data: dict[str, str] = self._read()
        self._mtime_ns = self._stat_mtime()

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        fresh = self._read()
        external = [k for k in self._changed_keys(fresh) if k != key]
        fresh[key] = value
        self._write(fresh)
        self._notify(external + [key])

    def remove(self, key: str) -> None:
        fresh = self._read()
        external = [k for k in self._changed_keys(fresh) if k != key]
        if key not in fresh:
            self._data = fresh
            self._mtime_ns = self._stat_mtime()
            self._notify(external)
            return
        del fresh[key]
        self._write(fresh)
        self._notify(external + [key])

    def subscribe(self, listener: StorageListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def poll_external_changes(self) -> list[str]:
        """
        Re-read the file if it changed on disk since our last read or write.

        Returns:
            Keys whose value differs from the previous snapshot

        Raises:
            CorruptStorageError: If the file no longer parses
        """
        mtime_ns = self._stat_mtime()
        if mtime_ns == self._mtime_ns:
            return []

        fresh = self._read()
        changed = self._changed_keys(fresh)
        self._data = fresh
        self._mtime_ns = mtime_ns
        self._notify(changed)
        return changed

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _changed_keys(self, fresh: dict[str, str]) -> list[str]:
        return sorted(
            key for key in set(self._data) | set(fresh)
            if self._data.get(key) != fresh.get(key)
        )

    def _stat_mtime(self) -> Optional[int]:
        try:
            return self._path.stat().st_mtime_ns
        except FileNotFoundError:
            return None

    def _read(self) -> dict[str, str]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise CorruptStorageError(f"Cannot read {self._path}: {e}") from e

        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise CorruptStorageError(f"Invalid JSON in {self._path}: {e}") from e
        if not isinstance(data, dict):
            raise CorruptStorageError(f"Expected a JSON object in {self._path}")
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _write(self, data: dict[str, str]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", dir=self._path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(data, fh, ensure_ascii=False, sort_keys=True)
                os.replace(tmp_name, self._path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            raise StorageWriteError(f"Cannot write {self._path}: {e}") from e

        self._data = data
        self._mtime_ns = self._stat_mtime()

    def _notify(self, keys: list[str]) -> None:
        for key in keys:
            for listener in list(self._listeners):
                listener(key)
