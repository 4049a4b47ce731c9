"""Pydantic models for the party inventory core."""

from .catalog import CatalogItemDetails, CatalogSearchResult
from .character import DEFAULT_CHARACTER_AVATAR, PlayerCharacter
from .document import DocumentSlice, GroupRegistryDocument, InventoryDocument, UserRegistryDocument
from .group import DEFAULT_GROUP_AVATAR, Group, GroupMember, GroupPermission, GroupSettings
from .item import InventoryItem, ItemCategory, PlayerNote, utc_now
from .ownership import PARTY_STORAGE_LABEL, ItemOwnership, OwnershipShare
from .user import UserInfo

__all__ = [
    "CatalogItemDetails",
    "CatalogSearchResult",
    "DEFAULT_CHARACTER_AVATAR",
    "DEFAULT_GROUP_AVATAR",
    "DocumentSlice",
    "Group",
    "GroupMember",
    "GroupPermission",
    "GroupRegistryDocument",
    "GroupSettings",
    "InventoryDocument",
    "InventoryItem",
    "ItemCategory",
    "ItemOwnership",
    "OwnershipShare",
    "PARTY_STORAGE_LABEL",
    "PlayerCharacter",
    "PlayerNote",
    "UserInfo",
    "UserRegistryDocument",
    "utc_now",
]
