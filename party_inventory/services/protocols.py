"""
Read-only collaborator protocols consumed by the inventory core.

The item store and ownership ledger never mutate directory data; they only
resolve ids through these protocols.
"""

# pylint: disable=unnecessary-ellipsis  # Reason: Protocol method bodies use ... per typing.Protocol convention

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from party_inventory.models.catalog import CatalogItemDetails, CatalogSearchResult
    from party_inventory.models.character import PlayerCharacter


@runtime_checkable
class CharacterLookup(Protocol):
    """
    Resolve character ids for validation and display.

    Implemented by party_inventory.services.directories.CharacterDirectory.
    """

    def get_character(self, character_id: str) -> PlayerCharacter | None:
        """Get a character by id, or None if unknown."""
        ...


class CatalogLookup(Protocol):
    """
    External item catalog (rule-content sources).

    The catalog normalizes whatever the external source returns; the core
    only consumes CatalogItemDetails via ItemStore.import_catalog_item().
    """

    async def search(self, term: str) -> list[CatalogSearchResult]:
        """Search the catalog by free text."""
        ...

    async def fetch_details(self, ref: CatalogSearchResult) -> CatalogItemDetails | None:
        """Fetch normalized details for one search result."""
        ...
