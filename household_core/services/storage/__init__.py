"""
Local Storage Services Package

Synchronous key/value persistence for the household selection and the user
profile cache. The in-memory backend is the default; the JSON file backend
is shared between processes.
"""

from household_core.services.storage.interface import (
    CorruptStorageError,
    KeyValueStorageInterface,
    StorageError,
    StorageListener,
    StorageWriteError,
)
from household_core.services.storage.json_file import JsonFileKeyValueStorage
from household_core.services.storage.memory import InMemoryKeyValueStorage

__all__ = [
    # Interface
    "KeyValueStorageInterface",
    "StorageListener",
    # Exceptions
    "CorruptStorageError",
    "StorageError",
    "StorageWriteError",
    # Implementations
    "InMemoryKeyValueStorage",
    "JsonFileKeyValueStorage",
]
