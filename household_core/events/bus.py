"""
Typed in-process event bus.

Handlers are keyed by event class and run synchronously, in subscription
order, inside publish(). A handler exception propagates to the publisher.
"""

from datetime import datetime, timezone
from typing import Callable, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from household_core.models.household import SelectionRecord


class Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    ts: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class HouseholdSelected(Event):
    """A (possibly new) selection record was swapped in."""

    record: SelectionRecord
    previous: Optional[SelectionRecord] = None
    external: bool = Field(
        default=False,
        description="The change came from another process through shared storage"
    )


class HouseholdSelectionCleared(Event):
    previous: Optional[SelectionRecord] = None
    external: bool = False


E = TypeVar("E", bound=Event)


class EventBus:
    def __init__(self):
        self._subscribers: dict[type, list[Callable]] = {}

    def subscribe(self, event_type: type[E], handler: Callable[[E], None]) -> Callable[[], None]:
        """Register a handler; returns a function that removes it again."""
        self._subscribers.setdefault(event_type, []).append(handler)

        def unsubscribe() -> None:
            self.unsubscribe(event_type, handler)

        return unsubscribe

    def unsubscribe(self, event_type: type, handler: Callable) -> None:
        handlers = self._subscribers.get(event_type)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def publish(self, event: Event) -> int:
        """Deliver to handlers of the event's exact class. Returns how many ran."""
        handlers = list(self._subscribers.get(type(event), []))
        for handler in handlers:
            handler(event)
        return len(handlers)
