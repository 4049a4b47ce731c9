"""
Persistence protocols for the party inventory core.

Services depend on these protocols rather than on PersistenceGateway so that
tests can substitute in-memory or failing implementations.
"""

# pylint: disable=unnecessary-ellipsis  # Reason: Protocol method bodies use ... per typing.Protocol convention

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from pydantic import BaseModel

    from party_inventory.models.document import (
        DocumentSlice,
        GroupRegistryDocument,
        InventoryDocument,
        UserRegistryDocument,
    )


class GroupDocumentPersistence(Protocol):
    """
    Load and save slices of per-group inventory documents.

    Implemented by party_inventory.persistence.gateway.PersistenceGateway.
    """

    async def load_group(self, group_id: str, group_name: str = "") -> InventoryDocument:
        """Load a group document, or a fresh default when missing or unreadable."""
        ...

    def save_slice(
        self,
        group_id: str,
        slice_name: DocumentSlice,
        records: Sequence[BaseModel],
        *,
        group_name: str | None = None,
    ) -> asyncio.Task[bool]:
        """Snapshot records now and schedule a load-merge-write of one slice."""
        ...


class RegistryPersistence(Protocol):
    """Load and save the group and user registry documents."""

    async def load_groups(self) -> GroupRegistryDocument:
        """Load the group registry."""
        ...

    def save_groups(self, registry: GroupRegistryDocument) -> asyncio.Task[bool]:
        """Schedule a write of the group registry."""
        ...

    async def load_users(self) -> UserRegistryDocument:
        """Load the user registry."""
        ...

    def save_users(self, registry: UserRegistryDocument) -> asyncio.Task[bool]:
        """Schedule a write of the user registry."""
        ...

    async def delete_group(self, group_id: str) -> bool:
        """Back up and delete a group's inventory document."""
        ...
