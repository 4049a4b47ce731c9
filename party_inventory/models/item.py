"""
Inventory item models.

Items are stored per unit: `weight` and `value` describe one unit and the
totals are derived from `quantity`.
"""

import uuid
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


class ItemCategory(str, Enum):
    """Closed set of item categories."""

    ARMOR = "Armor"
    WEAPON = "Weapon"
    SHIELD = "Shield"
    JEWELRY = "Jewelry"
    CONSUMABLE = "Consumable"
    TOOL = "Tool"
    BOOK = "Book"
    CURRENCY = "Currency"
    MAGIC_ITEM = "MagicItem"
    AMMUNITION = "Ammunition"
    MISCELLANEOUS = "Miscellaneous"
    QUEST_ITEM = "QuestItem"

    @property
    def display_name(self) -> str:
        """Human-readable category name."""
        return _CATEGORY_DISPLAY_NAMES.get(self, self.value)

    @classmethod
    def parse(cls, raw: str | None) -> "ItemCategory":
        """
        Resolve a category from loosely formatted text.

        Accepts enum values ("MagicItem"), display names ("Magic Item") and any
        casing. Unknown text falls back to MISCELLANEOUS.
        """
        if not raw:
            return cls.MISCELLANEOUS
        normalized = raw.replace(" ", "").replace("_", "").lower()
        for category in cls:
            if category.value.lower() == normalized:
                return category
        return cls.MISCELLANEOUS


_CATEGORY_DISPLAY_NAMES = {
    ItemCategory.MAGIC_ITEM: "Magic Item",
    ItemCategory.QUEST_ITEM: "Quest Item",
}


class PlayerNote(BaseModel):
    """A free-text note a player attached to an item."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    player_name: str = Field(..., description="Name of the player who wrote the note")
    note: str = Field(..., description="Note text")
    date_added: datetime = Field(default_factory=utc_now)


class InventoryItem(BaseModel):
    """
    A stack of identical items in the shared party inventory.

    `owner` is a legacy single-owner label kept for display; actual claims live
    in the ownership ledger.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        validate_assignment=True,
    )

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Item unique identifier")
    name: str = Field(..., min_length=1, description="Item name")
    category: ItemCategory = Field(default=ItemCategory.MISCELLANEOUS)
    quantity: int = Field(default=1, ge=0)
    weight: float = Field(default=0.0, ge=0, description="Weight of one unit in lbs")
    value: int = Field(default=0, ge=0, description="Value of one unit in gold pieces")
    description: str = ""
    properties: dict[str, str] = Field(default_factory=dict)
    owner: str = ""
    thumbnail_url: str = ""
    source_url: str = ""
    date_added: datetime = Field(default_factory=utc_now)
    last_modified: datetime = Field(default_factory=utc_now)
    player_notes: list[PlayerNote] = Field(default_factory=list)

    def __repr__(self) -> str:
        return f"<InventoryItem(id={self.id}, name={self.name}, quantity={self.quantity})>"

    @property
    def total_weight(self) -> float:
        return self.weight * self.quantity

    @property
    def total_value(self) -> int:
        return self.value * self.quantity

    @property
    def category_display_name(self) -> str:
        return self.category.display_name

    def touch(self) -> None:
        """Update the last_modified timestamp to current time."""
        self.last_modified = utc_now()

    def weight_display(self) -> str:
        if self.quantity == 1:
            return f"{self.weight:.1f} lbs"
        return f"{self.weight:.1f} lbs each ({self.total_weight:.1f} lbs total)"

    def value_display(self) -> str:
        if self.quantity == 1:
            return f"{self.value} gp"
        return f"{self.value} gp each ({self.total_value} gp total)"

    def quantity_display(self, ownership_summary: str | None = None) -> str:
        """
        Quantity label, optionally annotated with who holds the stack.

        Falls back to the legacy owner label when no ownership summary is given.
        """
        owner = ownership_summary or self.owner
        if owner:
            return f"x{self.quantity} (Owner: {owner})"
        return f"x{self.quantity}"

    def add_player_note(self, player_name: str, note: str) -> PlayerNote:
        player_note = PlayerNote(player_name=player_name, note=note)
        self.player_notes.append(player_note)
        self.touch()
        return player_note

    def remove_player_note(self, player_name: str, note: str) -> int:
        """Remove every matching note; returns how many were removed."""
        kept = [n for n in self.player_notes if not (n.player_name == player_name and n.note == note)]
        removed = len(self.player_notes) - len(kept)
        if removed:
            self.player_notes = kept
            self.touch()
        return removed

    def notes_from_player(self, player_name: str) -> list[PlayerNote]:
        return [n for n in self.player_notes if n.player_name == player_name]

    def matches(self, text: str) -> bool:
        """Case-insensitive match over name, description, category and owner label."""
        needle = text.strip().lower()
        if not needle:
            return True
        haystacks = (self.name, self.description, self.category_display_name, self.owner)
        return any(needle in h.lower() for h in haystacks if h)
