"""
Ownership ledger: which character holds how much of which item.

Whatever no character holds is Party Storage. Party Storage is never stored;
it is always computed as item.quantity minus the claimed total.
"""

from __future__ import annotations

import asyncio

from ..error_types import ErrorMessages
from ..events.event_bus import EventBus
from ..events.event_types import OwnershipsChanged
from ..exceptions import ErrorContext, ResourceNotFoundError, ValidationError
from ..logging.enhanced_logging_config import get_logger
from ..models.document import DocumentSlice, InventoryDocument
from ..models.item import InventoryItem
from ..models.ownership import PARTY_STORAGE_LABEL, ItemOwnership, OwnershipShare
from ..persistence.mutation_guard import DocumentMutationGuard
from ..persistence.protocols import GroupDocumentPersistence
from .consistency_enforcer import ConsistencyEnforcer, QuantityChangePlan, RepairResult
from .item_store import ItemStore
from .protocols import CharacterLookup

logger = get_logger(__name__)

UNKNOWN_CHARACTER_NAME = "Unknown"


class OwnershipLedger:
    """
    Ownership records of one group, keyed by (item_id, character_id).

    Constructing a ledger attaches it to the item store, which then routes
    item deletion and quantity shrinking through it.
    """

    def __init__(
        self,
        item_store: ItemStore,
        persistence: GroupDocumentPersistence,
        event_bus: EventBus,
        *,
        characters: CharacterLookup | None = None,
        guard: DocumentMutationGuard | None = None,
        enforcer: ConsistencyEnforcer | None = None,
    ) -> None:
        self.item_store = item_store
        self.persistence = persistence
        self.event_bus = event_bus
        self.characters = characters
        self.guard = guard or DocumentMutationGuard()
        self.enforcer = enforcer or item_store.enforcer
        self._records: dict[tuple[str, str], ItemOwnership] = {}
        self.last_save: asyncio.Task[bool] | None = None
        item_store.attach_ledger(self)

    @property
    def group_id(self) -> str:
        return self.item_store.group_id

    def attach_characters(self, characters: CharacterLookup) -> None:
        self.characters = characters

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_ownerships_for_item(self, item_id: str) -> list[ItemOwnership]:
        return [o.model_copy() for o in self._records.values() if o.item_id == item_id]

    def ownerships_for_character(self, character_id: str) -> list[ItemOwnership]:
        return [o.model_copy() for o in self._records.values() if o.character_id == character_id]

    def all_ownerships(self) -> list[ItemOwnership]:
        return [o.model_copy() for o in self._records.values()]

    def allocated_quantity(self, item_id: str) -> int:
        return self.enforcer.allocated(item_id, self._records.values())

    def compute_unallocated(self, item: InventoryItem) -> int:
        """Party Storage quantity for an item."""
        return self.enforcer.unallocated(item, self._records.values())

    def ownership_breakdown(self, item_id: str) -> list[OwnershipShare]:
        """
        Per-character shares of an item followed by Party Storage.

        Party Storage is listed only when something is left unclaimed.
        Unknown item ids yield an empty list.
        """
        item = self.item_store.lookup(item_id)
        if item is None:
            return []
        shares = [
            OwnershipShare(
                character_id=o.character_id,
                character_name=self._character_name(o.character_id),
                quantity=o.quantity_owned,
            )
            for o in self._records.values()
            if o.item_id == item_id
        ]
        remainder = self.compute_unallocated(item)
        if remainder > 0:
            shares.append(OwnershipShare(character_id=None, character_name=PARTY_STORAGE_LABEL, quantity=remainder))
        return shares

    def ownership_summary(self, item_id: str) -> str:
        """Display string such as "Aria: 4, Borin: 3, Party Storage: 3"."""
        return ", ".join(str(share) for share in self.ownership_breakdown(item_id))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def assign_ownership(
        self,
        item_id: str,
        character_id: str,
        requested_qty: int,
        *,
        mutation_token: str | None = None,
        notes: str | None = None,
        durable: bool = False,
    ) -> ItemOwnership | None:
        """
        Claim `requested_qty` more units of an item for a character.

        Args:
            item_id: Item to claim from
            character_id: Claiming character
            requested_qty: Units to add to the character's claim
            mutation_token: Optional idempotency token; a repeated token is
                ignored and the current record is returned unchanged
            notes: Optional note stored on the record
            durable: When True, return only after the ownership slice is on disk

        Returns:
            The character's record after the claim (None only for a suppressed
            duplicate whose record no longer exists).

        Raises:
            ResourceNotFoundError: unknown item, or unknown character when a
                character lookup is attached
            InvalidQuantityError: requested_qty is zero or negative
            AllocationExceededError: requested_qty exceeds Party Storage
        """
        context = ErrorContext(
            group_id=self.group_id, item_id=item_id, character_id=character_id, operation="assign_ownership"
        )
        item = self._require_item(item_id, context)
        self._require_character(character_id, context)

        decision = self.guard.register_token(self.group_id, mutation_token)
        if decision.duplicate:
            existing = self._records.get((item_id, character_id))
            return existing.model_copy() if existing else None

        try:
            new_total = self.enforcer.validate_assignment(
                item, self.get_ownerships_for_item(item_id), character_id, requested_qty, context
            )
        except ValidationError:
            self.guard.forget_token(self.group_id, mutation_token)
            raise

        key = (item_id, character_id)
        record = self._records.get(key)
        if record is None:
            record = ItemOwnership(
                item_id=item_id, character_id=character_id, quantity_owned=new_total, notes=notes or ""
            )
            self._records[key] = record
        else:
            record.quantity_owned = new_total
            if notes is not None:
                record.notes = notes

        logger.info(
            "Ownership assigned",
            group_id=self.group_id,
            item_id=item_id,
            character_id=character_id,
            requested=requested_qty,
            quantity_owned=new_total,
            unallocated=self.compute_unallocated(item),
        )
        self._commit(item_id)
        snapshot = record.model_copy()
        await self._maybe_wait(durable)
        return snapshot

    async def return_to_party(self, item_id: str, character_id: str, *, durable: bool = False) -> bool:
        """
        Release a character's whole claim on an item back to Party Storage.

        Returns:
            False (and does nothing) when the character holds no claim.
        """
        record = self._records.pop((item_id, character_id), None)
        if record is None:
            return False
        logger.info(
            "Ownership returned to party",
            group_id=self.group_id,
            item_id=item_id,
            character_id=character_id,
            released=record.quantity_owned,
        )
        self._commit(item_id)
        await self._maybe_wait(durable)
        return True

    async def set_ownership(
        self,
        item_id: str,
        character_id: str,
        new_qty: int,
        *,
        notes: str | None = None,
        durable: bool = False,
    ) -> ItemOwnership | None:
        """
        Set a character's claim on an item to exactly `new_qty`.

        Zero or less returns the claim to the party and yields None.

        Raises:
            ResourceNotFoundError: unknown item or character
            AllocationExceededError: new_qty exceeds Party Storage plus the
                character's own current claim
        """
        if new_qty <= 0:
            await self.return_to_party(item_id, character_id, durable=durable)
            return None

        context = ErrorContext(
            group_id=self.group_id, item_id=item_id, character_id=character_id, operation="set_ownership"
        )
        item = self._require_item(item_id, context)
        self._require_character(character_id, context)
        self.enforcer.validate_set(item, self.get_ownerships_for_item(item_id), character_id, new_qty, context)

        key = (item_id, character_id)
        record = self._records.get(key)
        if record is None:
            record = ItemOwnership(item_id=item_id, character_id=character_id, quantity_owned=new_qty)
            self._records[key] = record
        else:
            record.quantity_owned = new_qty
        if notes is not None:
            record.notes = notes

        logger.info(
            "Ownership set", group_id=self.group_id, item_id=item_id, character_id=character_id, quantity=new_qty
        )
        self._commit(item_id)
        snapshot = record.model_copy()
        await self._maybe_wait(durable)
        return snapshot

    # ------------------------------------------------------------------
    # Cascades (synchronous; called by the item store and directories)
    # ------------------------------------------------------------------

    def purge_item(self, item_id: str) -> int:
        """Remove every record for an item; returns how many were removed."""
        doomed = self.enforcer.dependents_of(item_id, self._records.values())
        for record in doomed:
            del self._records[record.key]
        if doomed:
            logger.info("Purged ownerships of deleted item", group_id=self.group_id, item_id=item_id, count=len(doomed))
            self._commit(item_id)
        return len(doomed)

    def release_allocations(self, plan: QuantityChangePlan) -> None:
        """Apply the claim adjustments of a quantity change plan."""
        for character_id, keep in plan.adjustments.items():
            key = (plan.item_id, character_id)
            if keep <= 0:
                self._records.pop(key, None)
            elif key in self._records:
                self._records[key].quantity_owned = keep
        if plan.adjustments:
            logger.info(
                "Released allocations for shrinking item",
                group_id=self.group_id,
                item_id=plan.item_id,
                new_quantity=plan.new_quantity,
                adjustments=plan.adjustments,
            )
            self._commit(plan.item_id)

    def purge_character(self, character_id: str) -> int:
        """Remove every record held by a character; returns how many were removed."""
        doomed = [key for key, record in self._records.items() if record.character_id == character_id]
        for key in doomed:
            del self._records[key]
        if doomed:
            logger.info(
                "Purged ownerships of removed character",
                group_id=self.group_id,
                character_id=character_id,
                count=len(doomed),
            )
            self._commit(None)
        return len(doomed)

    # ------------------------------------------------------------------
    # Loading and persistence
    # ------------------------------------------------------------------

    def load(self, document: InventoryDocument) -> RepairResult:
        """
        Restore records from a document and repair rule violations found on disk.

        The item store must be loaded first. Repaired records are saved back.
        """
        result = self.enforcer.repair(self.item_store.items(), document.item_ownerships)
        self._records = {record.key: record for record in result.ownerships}
        if result.changed:
            logger.warning(
                "Repaired inconsistent ownership records",
                group_id=self.group_id,
                issues=result.issues,
                kept=len(self._records),
            )
            self.persist()
        logger.info("Ownerships loaded", group_id=self.group_id, count=len(self._records))
        self.event_bus.publish(OwnershipsChanged(group_id=self.group_id, ownerships=self.all_ownerships()))
        return result

    def persist(self) -> asyncio.Task[bool]:
        """Schedule a save of the full ownership slice."""
        self.last_save = self.persistence.save_slice(
            self.group_id, DocumentSlice.OWNERSHIPS, list(self._records.values())
        )
        return self.last_save

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_item(self, item_id: str, context: ErrorContext) -> InventoryItem:
        item = self.item_store.lookup(item_id)
        if item is None:
            raise ResourceNotFoundError(
                f"Item {item_id} not found",
                context,
                resource_type="item",
                resource_id=item_id,
                user_friendly=ErrorMessages.ITEM_NOT_FOUND,
            )
        return item

    def _require_character(self, character_id: str, context: ErrorContext) -> None:
        if self.characters is None:
            return
        if self.characters.get_character(character_id) is None:
            raise ResourceNotFoundError(
                f"Character {character_id} not found",
                context,
                resource_type="character",
                resource_id=character_id,
                user_friendly=ErrorMessages.CHARACTER_NOT_FOUND,
            )

    def _character_name(self, character_id: str) -> str:
        if self.characters is None:
            return character_id
        character = self.characters.get_character(character_id)
        return character.name if character else UNKNOWN_CHARACTER_NAME

    def _commit(self, item_id: str | None) -> None:
        self.persist()
        ownerships = self.get_ownerships_for_item(item_id) if item_id else self.all_ownerships()
        self.event_bus.publish(OwnershipsChanged(group_id=self.group_id, item_id=item_id, ownerships=ownerships))

    async def _maybe_wait(self, durable: bool) -> None:
        if durable and self.last_save is not None:
            await asyncio.shield(self.last_save)
