"""Services package."""

from household_core.services.api import (
    ApiError,
    HouseholdApiInterface,
    HttpHouseholdApi,
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
)
from household_core.services.storage import (
    InMemoryKeyValueStorage,
    JsonFileKeyValueStorage,
    KeyValueStorageInterface,
    StorageError,
)

__all__ = [
    # API services
    "ApiError",
    "HouseholdApiInterface",
    "HttpHouseholdApi",
    "NetworkError",
    "NotFoundError",
    "PermissionDeniedError",
    # Storage services
    "InMemoryKeyValueStorage",
    "JsonFileKeyValueStorage",
    "KeyValueStorageInterface",
    "StorageError",
]
