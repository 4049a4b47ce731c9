"""
Persisted document models.

Each document is loaded and saved independently. A group's inventory
document is split into named slices; every writer replaces only its own slice
during a load-merge-write cycle.
"""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..logging.enhanced_logging_config import get_logger
from .character import PlayerCharacter
from .group import Group
from .item import InventoryItem
from .ownership import ItemOwnership
from .user import UserInfo

logger = get_logger(__name__)


class DocumentSlice(StrEnum):
    """Independently owned parts of a group inventory document."""

    ITEMS = "items"
    OWNERSHIPS = "item_ownerships"
    CHARACTERS = "characters"
    USERS = "users"


_DOCUMENT_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def _owned(record: dict[str, Any]) -> int:
    raw = record.get("quantityOwned", record.get("quantity_owned", 0))
    try:
        quantity = int(raw)
    except (TypeError, ValueError):
        return 0
    # Fractional quantities are not claims either.
    return quantity if float(raw) == quantity else 0


class InventoryDocument(BaseModel):
    """Per-group inventory document."""

    model_config = _DOCUMENT_CONFIG

    group_id: str
    group_name: str = ""
    version: int = Field(default=0, ge=0)
    last_saved: datetime | None = None
    items: list[InventoryItem] = Field(default_factory=list)
    item_ownerships: list[ItemOwnership] = Field(default_factory=list)
    characters: list[PlayerCharacter] = Field(default_factory=list)
    users: list[UserInfo] = Field(default_factory=list)

    @field_validator("item_ownerships", mode="before")
    @classmethod
    def drop_empty_ownerships(cls, value: Any) -> Any:
        """Records with quantityOwned <= 0 are equivalent to no record."""
        if not isinstance(value, list):
            return value
        kept = [r for r in value if not (isinstance(r, dict) and _owned(r) <= 0)]
        if len(kept) != len(value):
            logger.warning("Dropped empty ownership records", dropped=len(value) - len(kept))
        return kept

    def to_storage(self) -> dict[str, Any]:
        """JSON-ready dict using the on-disk camelCase keys."""
        return self.model_dump(by_alias=True, mode="json")

    def replace_slice(self, slice_name: DocumentSlice, records: list[Any]) -> "InventoryDocument":
        """Return a copy with one slice replaced by the given records."""
        return self.model_copy(update={slice_name.value: list(records)})


class GroupRegistryDocument(BaseModel):
    model_config = _DOCUMENT_CONFIG

    groups: list[Group] = Field(default_factory=list)
    current_group_id: str | None = None

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class UserRegistryDocument(BaseModel):
    model_config = _DOCUMENT_CONFIG

    users: list[UserInfo] = Field(default_factory=list)

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")
