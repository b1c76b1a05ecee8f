"""Debounced identity sync."""

from household_core.sync.debounce import KeyedDebouncer
from household_core.sync.identity import IdentitySyncScheduler, SyncStatus

__all__ = ["IdentitySyncScheduler", "KeyedDebouncer", "SyncStatus"]
