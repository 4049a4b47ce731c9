"""
Event types published by the party inventory core.

Events are published after the mutation that triggered them is committed in
memory, and before the corresponding document write has necessarily
completed. Payload lists are copies; subscribers may keep them.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime

from ..models.character import PlayerCharacter
from ..models.group import Group
from ..models.item import InventoryItem
from ..models.ownership import ItemOwnership
from ..models.user import UserInfo


def _default_timestamp() -> datetime:
    """Factory function for default timestamp."""
    return datetime.now(UTC)


@dataclass
class BaseEvent:
    """
    Base class for all inventory events.

    `sequence_number` is assigned by the event bus on publish and increases
    monotonically, so subscribers can check delivery order.
    """

    timestamp: datetime = field(default_factory=_default_timestamp, init=False)
    event_type: str = field(default="", init=False)
    sequence_number: int = field(default=0, init=False)

    def __post_init__(self) -> None:
        self.event_type = type(self).__name__


@dataclass
class ItemsChanged(BaseEvent):
    """The item list of a group changed; carries the full current list."""

    group_id: str
    items: list[InventoryItem] = field(default_factory=list)


@dataclass
class OwnershipsChanged(BaseEvent):
    """
    Ownership records changed.

    `item_id` names the item whose claims changed, or is None when the change
    spans several items (load, character removal).
    """

    group_id: str
    item_id: str | None = None
    ownerships: list[ItemOwnership] = field(default_factory=list)


@dataclass
class CharactersChanged(BaseEvent):
    group_id: str
    characters: list[PlayerCharacter] = field(default_factory=list)


@dataclass
class UsersChanged(BaseEvent):
    users: list[UserInfo] = field(default_factory=list)


@dataclass
class GroupsChanged(BaseEvent):
    groups: list[Group] = field(default_factory=list)
    current_group_id: str | None = None


@dataclass
class InventoryMessage(BaseEvent):
    """A short human-readable notice such as "Added Longsword."."""

    group_id: str
    message: str
    level: str = "info"
