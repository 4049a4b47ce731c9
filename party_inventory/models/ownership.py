"""
Ownership records linking characters to part of an item stack.

Ownership is tracked per character, not per user, because one user may play
several characters.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .item import utc_now

PARTY_STORAGE_LABEL = "Party Storage"


class ItemOwnership(BaseModel):
    """How many units of one item a character has claimed."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        validate_assignment=True,
    )

    item_id: str
    character_id: str
    quantity_owned: int = Field(..., gt=0)
    claimed_date: datetime = Field(default_factory=utc_now)
    notes: str = Field(default="", description='Free text such as "equipped" or "in backpack"')

    @property
    def key(self) -> tuple[str, str]:
        return (self.item_id, self.character_id)


class OwnershipShare(BaseModel):
    """One line of an item's ownership breakdown, used for display."""

    model_config = ConfigDict(frozen=True)

    character_id: str | None
    character_name: str
    quantity: int

    @property
    def is_party_storage(self) -> bool:
        return self.character_id is None

    def __str__(self) -> str:
        return f"{self.character_name}: {self.quantity}"
