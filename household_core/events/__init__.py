"""In-process event bus and the events the household core publishes."""

from household_core.events.bus import (
    Event,
    EventBus,
    HouseholdSelected,
    HouseholdSelectionCleared,
)

__all__ = [
    "Event",
    "EventBus",
    "HouseholdSelected",
    "HouseholdSelectionCleared",
]
