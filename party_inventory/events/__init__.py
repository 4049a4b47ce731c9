"""Event system for the party inventory core."""

from .event_bus import EventBus
from .event_types import (
    BaseEvent,
    CharactersChanged,
    GroupsChanged,
    InventoryMessage,
    ItemsChanged,
    OwnershipsChanged,
    UsersChanged,
)

__all__ = [
    "BaseEvent",
    "CharactersChanged",
    "EventBus",
    "GroupsChanged",
    "InventoryMessage",
    "ItemsChanged",
    "OwnershipsChanged",
    "UsersChanged",
]
