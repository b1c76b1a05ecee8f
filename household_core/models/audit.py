"""
Audit Models for the household core

Every household selection change, cache invalidation, rejected mutation and
identity-sync outcome produces one AuditEvent. Events are written to the
structured log and kept in a bounded in-memory tail.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Household selection
    HOUSEHOLD_SELECTED = "household_selected"
    HOUSEHOLD_FALLBACK_SELECTED = "household_fallback_selected"
    HOUSEHOLD_RECONCILED = "household_reconciled"
    HOUSEHOLD_CLEARED = "household_cleared"
    HOUSEHOLD_NOT_FOUND = "household_not_found"
    HOUSEHOLD_REMOVED = "household_removed"

    # Cache coherence
    CACHE_INVALIDATED = "cache_invalidated"
    CACHE_REFETCHED = "cache_refetched"
    STALE_RESPONSE_DISCARDED = "stale_response_discarded"
    CACHE_WRITE_FAILED = "cache_write_failed"

    # Mutations
    SPLIT_VALIDATION_FAILED = "split_validation_failed"
    MUTATION_REJECTED = "mutation_rejected"
    MUTATION_COMMITTED = "mutation_committed"
    PERMISSION_DIVERGENCE = "permission_divergence"

    # Identity sync
    IDENTITY_SYNC_SCHEDULED = "identity_sync_scheduled"
    IDENTITY_SYNC_SUCCEEDED = "identity_sync_succeeded"
    IDENTITY_SYNC_PENDING = "identity_sync_pending"
    IDENTITY_SYNC_FAILED = "identity_sync_failed"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """A single audit event."""

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'household', 'cache_key', 'transaction')"
    )
    entity_id: Optional[str] = None
    household_id: Optional[str] = Field(
        default=None,
        description="Household the event happened in, when there is one"
    )
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by an explicit user action?"
    )

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "household_id": self.household_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.household_selected(record_id, "Home", user_action=True)
    """

    @staticmethod
    def household_selected(
        household_id: str,
        name: Optional[str],
        previous_id: Optional[str],
        user_action: bool = True,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.HOUSEHOLD_SELECTED,
            entity_type="household",
            entity_id=household_id,
            household_id=household_id,
            description=f"Household selected: {name or household_id}",
            details={"previous_household_id": previous_id},
            is_user_action=user_action,
        )

    @staticmethod
    def household_fallback_selected(household_id: str, name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.HOUSEHOLD_FALLBACK_SELECTED,
            entity_type="household",
            entity_id=household_id,
            household_id=household_id,
            description=f"No stored selection; personal household {name or household_id} selected",
        )

    @staticmethod
    def household_reconciled(
        household_id: str,
        old_name: Optional[str],
        new_name: str,
        old_role: Optional[str],
        new_role: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.HOUSEHOLD_RECONCILED,
            entity_type="household",
            entity_id=household_id,
            household_id=household_id,
            description="Stored household name/role updated from server",
            details={
                "name": [old_name, new_name],
                "role": [old_role, new_role],
            },
        )

    @staticmethod
    def household_cleared(previous_id: Optional[str], reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.HOUSEHOLD_CLEARED,
            entity_type="household",
            entity_id=previous_id,
            description=f"Household selection cleared: {reason}",
            details={"reason": reason},
        )

    @staticmethod
    def household_not_found(household_id: str, known_ids: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.HOUSEHOLD_NOT_FOUND,
            severity=AuditSeverity.WARNING,
            entity_type="household",
            entity_id=household_id,
            household_id=household_id,
            description="Selected household is not in the server household list",
            details={"known_household_ids": known_ids},
        )

    @staticmethod
    def household_removed(household_id: str, was_selected: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.HOUSEHOLD_REMOVED,
            entity_type="household",
            entity_id=household_id,
            household_id=household_id,
            description="Household no longer available to this user",
            details={"was_selected": was_selected},
        )

    @staticmethod
    def cache_invalidated(
        household_id: Optional[str],
        keys: list[str],
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CACHE_INVALIDATED,
            severity=AuditSeverity.DEBUG,
            entity_type="cache_key",
            household_id=household_id,
            correlation_id=correlation_id,
            description=f"Invalidated {len(keys)} cache entries ({reason})",
            details={"keys": keys, "reason": reason},
        )

    @staticmethod
    def cache_refetched(
        household_id: str,
        keys: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CACHE_REFETCHED,
            severity=AuditSeverity.DEBUG,
            entity_type="cache_key",
            household_id=household_id,
            correlation_id=correlation_id,
            description=f"Refetched {len(keys)} collections",
            details={"keys": keys},
        )

    @staticmethod
    def stale_response_discarded(
        key: str,
        household_id: Optional[str],
        current_household_id: Optional[str],
        reason: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STALE_RESPONSE_DISCARDED,
            entity_type="cache_key",
            entity_id=key,
            household_id=household_id,
            description=f"Discarded late response for {key}: {reason}",
            details={
                "current_household_id": current_household_id,
                "reason": reason,
            },
        )

    @staticmethod
    def cache_write_failed(key: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CACHE_WRITE_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="storage_key",
            entity_id=key,
            description=f"Local storage write failed for {key}",
            error_message=error_message,
        )

    @staticmethod
    def split_validation_failed(
        household_id: Optional[str],
        issues: list[dict],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SPLIT_VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="transaction",
            household_id=household_id,
            description=f"Transaction rejected before sending: {len(issues)} issues",
            details={"issues": issues},
            is_user_action=True,
        )

    @staticmethod
    def mutation_rejected(
        resource: str,
        household_id: Optional[str],
        status: Optional[int],
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type=resource,
            household_id=household_id,
            description=f"Server rejected {resource} mutation",
            details={"status": status},
            error_message=error_message,
        )

    @staticmethod
    def mutation_committed(
        resource: str,
        action: str,
        entity_id: Optional[str],
        household_id: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_COMMITTED,
            entity_type=resource,
            entity_id=entity_id,
            household_id=household_id,
            description=f"{resource} {action} committed",
            details={"action": action},
            is_user_action=True,
        )

    @staticmethod
    def permission_divergence(
        household_id: Optional[str],
        error_message: str,
        account_ids: Optional[list[str]] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERMISSION_DIVERGENCE,
            severity=AuditSeverity.ERROR,
            entity_type="permission",
            household_id=household_id,
            description="Client and server permission rules disagree",
            details={"account_ids": account_ids or []},
            error_message=error_message,
        )

    @staticmethod
    def identity_sync(
        event_type: AuditEventType,
        uid: str,
        attempts: int = 0,
        error_message: Optional[str] = None,
    ) -> AuditEvent:
        severity = {
            AuditEventType.IDENTITY_SYNC_PENDING: AuditSeverity.WARNING,
            AuditEventType.IDENTITY_SYNC_FAILED: AuditSeverity.ERROR,
        }.get(event_type, AuditSeverity.INFO)
        return AuditEvent(
            event_type=event_type,
            severity=severity,
            entity_type="user",
            entity_id=uid,
            description=f"Identity sync: {event_type.value.replace('identity_sync_', '')}",
            details={"attempts": attempts},
            error_message=error_message,
        )
