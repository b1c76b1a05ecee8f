"""
Abstract Local Storage Interface

The household selection and the user profile cache are persisted in a small
string key/value store, the way a browser client uses localStorage. Reads
and writes are synchronous: a read must never wait on anything.

Implementations:
1. InMemoryKeyValueStorage for tests and single-process use
2. JsonFileKeyValueStorage for a file shared between processes

Other processes' writes reach subscribers as a change notification carrying
the key; the subscriber re-reads the value itself.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional


StorageListener = Callable[[str], None]


class KeyValueStorageInterface(ABC):
    """
    Abstract interface for a local string key/value store.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """
        Read a value.

        Returns:
            The stored string, or None when the key is absent
        """
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """
        Write a value.

        Raises:
            StorageWriteError: If the value could not be persisted
        """
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """
        Delete a key. Removing an absent key is not an error.

        Raises:
            StorageWriteError: If the removal could not be persisted
        """
        pass

    @abstractmethod
    def subscribe(self, listener: StorageListener) -> Callable[[], None]:
        """
        Register for change notifications.

        Args:
            listener: Called with the changed key

        Returns:
            A function that removes the listener
        """
        pass


class StorageError(Exception):
    """Base exception for local storage operations."""
    pass


class StorageWriteError(StorageError):
    """A write or removal could not be persisted."""
    pass


class CorruptStorageError(StorageError):
    """The backing data exists but cannot be parsed."""
    pass
