"""
Audit Logger

Every selection change, cache invalidation, discarded response, rejected
mutation and identity-sync outcome goes through here.

The audit logger:
- Is synchronous, so store notifications and cache drops stay ordered with
  their log lines
- Keeps a bounded tail of recent events for inspection and tests
- Supports correlation IDs to trace related events
"""

import logging
from collections import deque
from typing import Optional
from uuid import UUID, uuid4

import structlog

from household_core.models.audit import AuditEvent, AuditEventType, AuditSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Send structlog output to stderr through stdlib logging at level."""
    logging.basicConfig(format="%(message)s", level=level)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (JSON lines through structlog)
    2. An in-memory ring of the most recent events
    """

    def __init__(self, buffer_size: int = 500):
        """
        Initialize audit logger.

        Args:
            buffer_size: How many recent events to keep in memory.
        """
        self._recent: deque[AuditEvent] = deque(maxlen=buffer_size)
        self._logger = structlog.get_logger("household_core.audit")

    def log(self, event: AuditEvent) -> None:
        """Log an audit event at its severity and remember it."""
        log_dict = event.to_log_dict()

        if event.severity == AuditSeverity.ERROR:
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        self._recent.append(event)

    @property
    def recent_events(self) -> list[AuditEvent]:
        """Recent events, oldest first."""
        return list(self._recent)

    def events_of_type(self, event_type: AuditEventType) -> list[AuditEvent]:
        return [event for event in self._recent if event.event_type == event_type]

    def clear(self) -> None:
        self._recent.clear()


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action (e.g., a household switch).
    Pass it through all subsequent operations.
    """
    return uuid4()
