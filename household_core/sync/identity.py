"""
Identity Sync

When the auth collaborator reports a signed-in user, the backend user record
is created or refreshed through POST /auth/sync.

- Bursts of auth-state changes collapse into one sync per uid (debounce).
- A uid already synced in this session is not synced again.
- Sign-out cancels pending and running syncs.
- Only NetworkError is retried, with exponential backoff (tenacity).
  Retries exhausted -> PENDING ("sync pending"); any other error -> FAILED.
  Both leave the uid unsynced so the next trigger tries again.
"""

import asyncio
from enum import Enum
from typing import Optional

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from household_core.audit import AuditLogger
from household_core.cache.profile import ProfileCache
from household_core.config import SyncSettings, get_settings
from household_core.models.audit import AuditEventBuilder, AuditEventType
from household_core.models.household import AuthUser, UserProfile
from household_core.services.api import ApiError, HouseholdApiInterface, NetworkError
from household_core.sync.debounce import KeyedDebouncer


class SyncStatus(str, Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    SYNCING = "syncing"
    SUCCEEDED = "succeeded"
    PENDING = "pending"
    FAILED = "failed"


class IdentitySyncScheduler:
    """
    Debounced, retried identity sync keyed by uid.
    """

    def __init__(
        self,
        api: HouseholdApiInterface,
        settings: Optional[SyncSettings] = None,
        profile_cache: Optional[ProfileCache] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._api = api
        self._settings = settings or get_settings().sync
        self._profile_cache = profile_cache
        self._audit = audit_logger or AuditLogger()
        self._debouncer = KeyedDebouncer(self._settings.debounce_seconds)
        self._current_uid: Optional[str] = None
        self._last_synced_uid: Optional[str] = None
        self._status = SyncStatus.IDLE
        self._profile: Optional[UserProfile] = None

    @property
    def status(self) -> SyncStatus:
        return self._status

    @property
    def profile(self) -> Optional[UserProfile]:
        return self._profile

    @property
    def last_synced_uid(self) -> Optional[str]:
        return self._last_synced_uid

    def on_auth_state_changed(self, user: Optional[AuthUser]) -> Optional[asyncio.Task]:
        """
        React to an auth-state change. Call from inside the event loop.

        Returns:
            The scheduled sync task, or None when nothing was scheduled
        """
        if user is None:
            self._debouncer.cancel_all()
            self._current_uid = None
            self._last_synced_uid = None
            self._profile = None
            self._status = SyncStatus.IDLE
            return None

        if user.uid == self._last_synced_uid:
            return None
        if self._current_uid not in (None, user.uid):
            # a different account signed in; the previous one's sync is moot
            self._debouncer.cancel_all()
            self._last_synced_uid = None
        self._current_uid = user.uid

        self._status = SyncStatus.SCHEDULED
        self._audit.log(AuditEventBuilder.identity_sync(
            AuditEventType.IDENTITY_SYNC_SCHEDULED, user.uid
        ))
        return self._debouncer.schedule(user.uid, lambda: self.sync_now(user))

    async def sync_now(self, user: AuthUser) -> Optional[UserProfile]:
        """Sync immediately, retrying network failures. Never raises ApiError."""
        self._last_synced_uid = user.uid
        self._status = SyncStatus.SYNCING
        attempts = 0

        retrying = AsyncRetrying(
            retry=retry_if_exception_type(NetworkError),
            stop=stop_after_attempt(self._settings.max_attempts),
            wait=wait_exponential(
                multiplier=self._settings.backoff_initial_seconds,
                max=self._settings.backoff_max_seconds,
            ),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    attempts += 1
                    profile = await self._api.sync_identity(user.uid, user.email)
        except NetworkError as e:
            self._last_synced_uid = None
            self._status = SyncStatus.PENDING
            self._audit.log(AuditEventBuilder.identity_sync(
                AuditEventType.IDENTITY_SYNC_PENDING, user.uid, attempts, str(e)
            ))
            return None
        except ApiError as e:
            self._last_synced_uid = None
            self._status = SyncStatus.FAILED
            self._audit.log(AuditEventBuilder.identity_sync(
                AuditEventType.IDENTITY_SYNC_FAILED, user.uid, attempts, str(e)
            ))
            return None

        self._profile = profile
        self._status = SyncStatus.SUCCEEDED
        if self._profile_cache is not None:
            self._profile_cache.set(profile)
        self._audit.log(AuditEventBuilder.identity_sync(
            AuditEventType.IDENTITY_SYNC_SUCCEEDED, user.uid, attempts
        ))
        return profile

    def cancel_all(self) -> None:
        self._debouncer.cancel_all()
