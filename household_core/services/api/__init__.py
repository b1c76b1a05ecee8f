"""
Household API Services Package

Abstract async interface to the REST backend plus the httpx implementation.
"""

from household_core.services.api.http_client import HttpHouseholdApi
from household_core.services.api.interface import (
    ApiError,
    BadRequestError,
    HouseholdApiInterface,
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
)
from household_core.services.api.normalize import (
    extract_error_message,
    normalize_households,
    normalize_members,
)

__all__ = [
    # Interface
    "HouseholdApiInterface",
    # Exceptions
    "ApiError",
    "BadRequestError",
    "NetworkError",
    "NotFoundError",
    "PermissionDeniedError",
    # Implementation
    "HttpHouseholdApi",
    # Normalization
    "extract_error_message",
    "normalize_households",
    "normalize_members",
]
