"""
Item store: the authoritative collection of a group's shared items.

Mutations follow one pattern: validate, commit to memory, schedule the save
of the affected slice, publish events. Nothing awaits before the commit, so
two mutations on the same event loop can never interleave half-way.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import TYPE_CHECKING

from ..config.models import InventoryConfig
from ..error_types import ErrorMessages
from ..events.event_bus import EventBus
from ..events.event_types import InventoryMessage, ItemsChanged
from ..exceptions import ErrorContext, InventoryCapacityError
from ..logging.enhanced_logging_config import get_logger
from ..models.catalog import CatalogItemDetails
from ..models.document import DocumentSlice, InventoryDocument
from ..models.item import InventoryItem, ItemCategory, utc_now
from ..persistence.protocols import GroupDocumentPersistence
from .consistency_enforcer import ConsistencyEnforcer

if TYPE_CHECKING:
    from .ownership_ledger import OwnershipLedger

logger = get_logger(__name__)

SAMPLE_ITEMS: tuple[dict, ...] = (
    {
        "name": "Longsword",
        "category": ItemCategory.WEAPON,
        "weight": 3.0,
        "value": 15,
        "owner": "Host",
        "description": "A versatile blade favoured by fighters.",
        "properties": {"Damage": "1d8 slashing", "Versatile": "1d10"},
    },
    {
        "name": "Health Potion",
        "category": ItemCategory.CONSUMABLE,
        "quantity": 3,
        "weight": 0.5,
        "value": 50,
        "description": "Restores 2d4+2 hit points.",
    },
    {
        "name": "Gold Coins",
        "category": ItemCategory.CURRENCY,
        "quantity": 150,
        "weight": 0.02,
        "value": 1,
        "description": "Standard currency.",
    },
)


class ItemStore:
    """
    Items of one group, keyed by id, in insertion order.

    Reads return copies; callers change items only through the store so that
    every change is validated and persisted.
    """

    def __init__(
        self,
        group_id: str,
        persistence: GroupDocumentPersistence,
        event_bus: EventBus,
        config: InventoryConfig,
        *,
        group_name: str = "",
        enforcer: ConsistencyEnforcer | None = None,
    ) -> None:
        self.group_id = group_id
        self.group_name = group_name
        self.persistence = persistence
        self.event_bus = event_bus
        self.config = config
        self.enforcer = enforcer or ConsistencyEnforcer()
        self._items: dict[str, InventoryItem] = {}
        self._ledger: OwnershipLedger | None = None
        self.last_save: asyncio.Task[bool] | None = None

    def attach_ledger(self, ledger: OwnershipLedger) -> None:
        """Wire the ledger that must be consulted before items shrink or disappear."""
        self._ledger = ledger

    @property
    def ledger(self) -> OwnershipLedger:
        if self._ledger is None:
            raise RuntimeError("ItemStore has no ownership ledger attached")
        return self._ledger

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def lookup(self, item_id: str) -> InventoryItem | None:
        item = self._items.get(item_id)
        return item.model_copy(deep=True) if item else None

    def find_by_name_category(self, name: str, category: ItemCategory) -> InventoryItem | None:
        item = self._find(name, category)
        return item.model_copy(deep=True) if item else None

    def items(self) -> list[InventoryItem]:
        return [item.model_copy(deep=True) for item in self._items.values()]

    def items_by_category(self, category: ItemCategory) -> list[InventoryItem]:
        return [item.model_copy(deep=True) for item in self._items.values() if item.category == category]

    def used_categories(self) -> list[ItemCategory]:
        """Categories that have at least one item, in enum order."""
        used = {item.category for item in self._items.values()}
        return [category for category in ItemCategory if category in used]

    def search(self, text: str) -> list[InventoryItem]:
        return [item.model_copy(deep=True) for item in self._items.values() if item.matches(text)]

    def total_weight(self) -> float:
        return sum(item.total_weight for item in self._items.values())

    def total_value(self) -> int:
        return sum(item.total_value for item in self._items.values())

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def add_item(self, candidate: InventoryItem, *, durable: bool = False) -> InventoryItem:
        """
        Add an item, merging into an existing stack with the same name and category.

        Args:
            candidate: Item to add; its quantity is added to a matching stack.
            durable: When True, return only after the items slice is on disk.

        Raises:
            InvalidQuantityError: candidate quantity is zero or negative
            InventoryCapacityError: the store is full and nothing merges
        """
        context = ErrorContext(group_id=self.group_id, operation="add_item")
        self.enforcer.validate_new_item_quantity(candidate.quantity, context)

        existing = self._find(candidate.name, candidate.category)
        if existing is not None:
            existing.quantity += candidate.quantity
            existing.touch()
            result = existing
            message = f"Combined {candidate.quantity}x {candidate.name} with existing stack."
        else:
            if len(self._items) >= self.config.max_items:
                raise InventoryCapacityError(
                    f"Inventory already holds {self.config.max_items} items",
                    context,
                    max_items=self.config.max_items,
                    user_friendly=ErrorMessages.INVENTORY_FULL,
                )
            result = self._insert(candidate)
            message = f"Added {result.name}."

        logger.info(
            "Item added",
            group_id=self.group_id,
            item_id=result.id,
            item_name=result.name,
            quantity=result.quantity,
            merged=existing is not None,
        )
        self._commit(message)
        snapshot = result.model_copy(deep=True)
        await self._maybe_wait(durable)
        return snapshot

    async def update_quantity(
        self, item_id: str, new_quantity: int, *, durable: bool = False
    ) -> InventoryItem | None:
        """
        Set an item's quantity.

        A quantity of zero or less deletes the item and its ownership records.
        Shrinking below the claimed total follows the configured
        quantity_reduction_policy.

        Returns:
            The updated item, or None if the id is unknown or the item was deleted.

        Raises:
            QuantityBelowAllocationError: shrink rejected by the "reject" policy
        """
        item = self._items.get(item_id)
        if item is None:
            logger.debug("update_quantity on unknown item", group_id=self.group_id, item_id=item_id)
            return None
        if new_quantity <= 0:
            await self.delete_item(item_id, durable=durable)
            return None

        plan = self.enforcer.plan_quantity_change(
            item,
            new_quantity,
            self.ledger.get_ownerships_for_item(item_id),
            self.config.quantity_reduction_policy,
        )
        # Claims shrink before the item does, so no save ever persists an
        # over-allocated pair of slices.
        if plan.releases_allocations:
            self.ledger.release_allocations(plan)

        old_quantity = item.quantity
        item.quantity = new_quantity
        item.touch()
        logger.info(
            "Item quantity updated",
            group_id=self.group_id,
            item_id=item_id,
            old_quantity=old_quantity,
            new_quantity=new_quantity,
            released_claims=len(plan.adjustments),
        )
        self._commit()
        snapshot = item.model_copy(deep=True)
        await self._maybe_wait(durable)
        return snapshot

    async def delete_item(self, item_id: str, *, durable: bool = False) -> bool:
        """
        Remove an item after purging every ownership record that references it.

        Returns:
            False if the id is unknown (nothing happens), True otherwise.
        """
        item = self._items.get(item_id)
        if item is None:
            return False
        self.ledger.purge_item(item_id)
        del self._items[item_id]
        logger.info("Item deleted", group_id=self.group_id, item_id=item_id, item_name=item.name)
        self._commit(f"Removed {item.name}.")
        await self._maybe_wait(durable)
        return True

    def add_player_note(self, item_id: str, player_name: str, note: str) -> InventoryItem | None:
        item = self._items.get(item_id)
        if item is None:
            return None
        item.add_player_note(player_name, note)
        self._commit()
        return item.model_copy(deep=True)

    def remove_player_note(self, item_id: str, player_name: str, note: str) -> bool:
        item = self._items.get(item_id)
        if item is None or not item.remove_player_note(player_name, note):
            return False
        self._commit()
        return True

    async def import_catalog_item(self, details: CatalogItemDetails, quantity: int = 1) -> InventoryItem:
        """Add an item built from normalized catalog details (merge rules apply)."""
        candidate = InventoryItem(
            name=details.name,
            category=ItemCategory.parse(details.category),
            quantity=quantity,
            weight=details.weight_per_unit,
            value=details.value_per_unit,
            description=details.description,
            properties=dict(details.properties),
            source_url=details.source_url,
        )
        return await self.add_item(candidate)

    # ------------------------------------------------------------------
    # Loading and persistence
    # ------------------------------------------------------------------

    def load(self, document: InventoryDocument) -> None:
        """Replace in-memory items with the document's items slice."""
        self.group_name = document.group_name or self.group_name
        self._items = {}
        for item in document.items:
            if item.id in self._items:
                logger.warning("Duplicate item id in document; keeping first", group_id=self.group_id, item_id=item.id)
                continue
            self._items[item.id] = item.model_copy(deep=True)
        logger.info("Items loaded", group_id=self.group_id, count=len(self._items))
        self.event_bus.publish(ItemsChanged(group_id=self.group_id, items=self.items()))

    async def seed_sample_inventory(self) -> bool:
        """Create the sample items when the store is empty and seeding is enabled."""
        if self._items or not self.config.seed_sample_items:
            return False
        for sample in SAMPLE_ITEMS:
            self._insert(InventoryItem(**sample))
        logger.info("Seeded sample inventory", group_id=self.group_id, count=len(SAMPLE_ITEMS))
        self._commit()
        return True

    def persist(self) -> asyncio.Task[bool]:
        """Schedule a save of the full items slice."""
        self.last_save = self.persistence.save_slice(
            self.group_id, DocumentSlice.ITEMS, list(self._items.values()), group_name=self.group_name or None
        )
        return self.last_save

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _find(self, name: str, category: ItemCategory) -> InventoryItem | None:
        return next((i for i in self._items.values() if i.name == name and i.category == category), None)

    def _insert(self, candidate: InventoryItem) -> InventoryItem:
        item = candidate.model_copy(deep=True)
        if item.id in self._items:
            item = item.model_copy(update={"id": str(uuid.uuid4())})
        now = utc_now()
        item.date_added = now
        item.last_modified = now
        self._items[item.id] = item
        return item

    def _commit(self, message: str | None = None) -> None:
        self.persist()
        self.event_bus.publish(ItemsChanged(group_id=self.group_id, items=self.items()))
        if message:
            self.event_bus.publish(InventoryMessage(group_id=self.group_id, message=message))

    async def _maybe_wait(self, durable: bool) -> None:
        if durable and self.last_save is not None:
            await asyncio.shield(self.last_save)
