"""
User profile cache.

The backend user record is cached in local storage so a reload can show the
user before /auth/me answers. Unlike the household selection, this cache
goes stale: after max_age_seconds get() returns None.
"""

import json
import time
from typing import Callable, Optional

from pydantic import ValidationError

from household_core.audit import AuditLogger
from household_core.config import get_settings
from household_core.models.audit import AuditEventBuilder
from household_core.models.household import UserProfile
from household_core.services.storage import KeyValueStorageInterface, StorageError


PROFILE_KEY = "user_data"
PROFILE_TIMESTAMP_KEY = "user_data_timestamp"


class ProfileCache:
    def __init__(
        self,
        storage: KeyValueStorageInterface,
        max_age_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._max_age = (
            max_age_seconds if max_age_seconds is not None
            else get_settings().storage.profile_max_age_seconds
        )
        self._clock = clock
        self._audit = audit_logger or AuditLogger()

    def get(self) -> Optional[UserProfile]:
        """The cached profile, or None if absent, corrupt, or too old."""
        try:
            raw = self._storage.get(PROFILE_KEY)
            stamp = self._storage.get(PROFILE_TIMESTAMP_KEY)
        except StorageError:
            return None
        if not raw or not stamp:
            return None

        try:
            saved_at_ms = int(stamp)
        except ValueError:
            return None
        if self._clock() * 1000 - saved_at_ms > self._max_age * 1000:
            return None

        try:
            return UserProfile.model_validate(json.loads(raw))
        except (ValueError, ValidationError):
            return None

    def set(self, profile: UserProfile) -> None:
        """Store profile. A failed write is logged and ignored."""
        try:
            self._storage.set(PROFILE_KEY, profile.model_dump_json(by_alias=True))
            self._storage.set(PROFILE_TIMESTAMP_KEY, str(int(self._clock() * 1000)))
        except StorageError as e:
            self._audit.log(AuditEventBuilder.cache_write_failed(PROFILE_KEY, str(e)))

    def clear(self) -> None:
        for key in (PROFILE_KEY, PROFILE_TIMESTAMP_KEY):
            try:
                self._storage.remove(key)
            except StorageError as e:
                self._audit.log(AuditEventBuilder.cache_write_failed(key, str(e)))
