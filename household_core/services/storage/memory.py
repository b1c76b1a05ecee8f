"""
In-memory key/value storage.

Several stores sharing one instance behave like several tabs sharing one
localStorage: every write notifies every subscriber.
"""

from typing import Callable, Optional

from household_core.services.storage.interface import (
    KeyValueStorageInterface,
    StorageListener,
)


class InMemoryKeyValueStorage(KeyValueStorageInterface):
    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})
        self._listeners: list[StorageListener] = []

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self._notify(key)

    def remove(self, key: str) -> None:
        if self._data.pop(key, None) is not None:
            self._notify(key)

    def subscribe(self, listener: StorageListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def keys(self) -> list[str]:
        return list(self._data)

    def _notify(self, key: str) -> None:
        for listener in list(self._listeners):
            listener(key)
