"""
Cross-cutting consistency rules for items and ownership records.

Pure functions over in-memory records: no I/O, no awaiting, no mutation of
the arguments. The item store and ownership ledger call these before they
commit anything, so a raised error always leaves state unchanged.

The rule they protect, for every item i:

    sum(o.quantity_owned for o in ownerships if o.item_id == i.id) <= i.quantity
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from ..config.models import QuantityReductionPolicy
from ..error_types import ErrorMessages
from ..exceptions import (
    AllocationExceededError,
    ErrorContext,
    InvalidQuantityError,
    QuantityBelowAllocationError,
)
from ..models.item import InventoryItem
from ..models.ownership import ItemOwnership


@dataclass(frozen=True)
class QuantityChangePlan:
    """
    Outcome of shrinking or growing an item.

    `adjustments` maps character id to the quantity that character keeps;
    0 means the record is removed.
    """

    item_id: str
    new_quantity: int
    adjustments: dict[str, int] = field(default_factory=dict)

    @property
    def releases_allocations(self) -> bool:
        return bool(self.adjustments)


@dataclass(frozen=True)
class RepairResult:
    ownerships: list[ItemOwnership]
    issues: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.issues)


def _newest_first(records: Iterable[ItemOwnership]) -> list[ItemOwnership]:
    return sorted(records, key=lambda o: o.claimed_date, reverse=True)


@dataclass(frozen=True)
class ConsistencyEnforcer:
    """Validation and reconciliation rules shared by the item store and the ledger."""

    def allocated(self, item_id: str, ownerships: Iterable[ItemOwnership]) -> int:
        return sum(o.quantity_owned for o in ownerships if o.item_id == item_id)

    def unallocated(self, item: InventoryItem, ownerships: Iterable[ItemOwnership]) -> int:
        """Party Storage remainder; negative only if the state is already inconsistent."""
        return item.quantity - self.allocated(item.id, ownerships)

    def validate_assignment(
        self,
        item: InventoryItem,
        ownerships: Sequence[ItemOwnership],
        character_id: str,
        requested: int,
        context: ErrorContext | None = None,
    ) -> int:
        """
        Check that `requested` more units can be claimed by a character.

        Returns:
            The character's total after the claim.

        Raises:
            InvalidQuantityError: requested is zero or negative
            AllocationExceededError: requested exceeds the unallocated remainder
        """
        context = context or ErrorContext(item_id=item.id, character_id=character_id, operation="assign_ownership")
        self._require_positive(requested, context)
        available = self.unallocated(item, ownerships)
        if requested > available:
            raise AllocationExceededError(
                f"Cannot assign {requested} of {item.name}: only {max(available, 0)} unallocated",
                context,
                requested=requested,
                available=max(available, 0),
                user_friendly=ErrorMessages.ALLOCATION_EXCEEDED,
            )
        current = next(
            (o.quantity_owned for o in ownerships if o.item_id == item.id and o.character_id == character_id), 0
        )
        return current + requested

    def validate_set(
        self,
        item: InventoryItem,
        ownerships: Sequence[ItemOwnership],
        character_id: str,
        new_quantity: int,
        context: ErrorContext | None = None,
    ) -> None:
        """
        Check that a character's claim can be set to exactly `new_quantity`.

        The character's own current claim does not count against the cap.
        """
        context = context or ErrorContext(item_id=item.id, character_id=character_id, operation="set_ownership")
        self._require_positive(new_quantity, context)
        others = sum(o.quantity_owned for o in ownerships if o.item_id == item.id and o.character_id != character_id)
        available = item.quantity - others
        if new_quantity > available:
            raise AllocationExceededError(
                f"Cannot set {item.name} claim to {new_quantity}: only {max(available, 0)} available",
                context,
                requested=new_quantity,
                available=max(available, 0),
                user_friendly=ErrorMessages.ALLOCATION_EXCEEDED,
            )

    def validate_new_item_quantity(self, quantity: int, context: ErrorContext | None = None) -> None:
        self._require_positive(quantity, context or ErrorContext(operation="add_item"))

    def dependents_of(self, item_id: str, ownerships: Iterable[ItemOwnership]) -> list[ItemOwnership]:
        """Ownership records that must be purged before the item is removed."""
        return [o for o in ownerships if o.item_id == item_id]

    def plan_quantity_change(
        self,
        item: InventoryItem,
        new_quantity: int,
        ownerships: Sequence[ItemOwnership],
        policy: QuantityReductionPolicy,
    ) -> QuantityChangePlan:
        """
        Decide how claims follow an item's new positive quantity.

        REJECT raises when claims would exceed the new quantity.
        RELEASE_MOST_RECENT trims the newest claims first.
        PROPORTIONAL scales every claim by new/allocated, rounding down.

        Raises:
            QuantityBelowAllocationError: under REJECT when claims exceed the new quantity
        """
        records = [o for o in ownerships if o.item_id == item.id]
        allocated = sum(o.quantity_owned for o in records)
        if new_quantity >= allocated:
            return QuantityChangePlan(item_id=item.id, new_quantity=new_quantity)

        if policy is QuantityReductionPolicy.REJECT:
            raise QuantityBelowAllocationError(
                f"Cannot reduce {item.name} to {new_quantity}: characters hold {allocated}",
                ErrorContext(item_id=item.id, operation="update_quantity"),
                new_quantity=new_quantity,
                allocated=allocated,
                user_friendly=ErrorMessages.QUANTITY_BELOW_ALLOCATION,
            )

        if policy is QuantityReductionPolicy.PROPORTIONAL:
            adjustments = {o.character_id: o.quantity_owned * new_quantity // allocated for o in records}
        else:
            adjustments = self._trim_newest_first(records, allocated - new_quantity)
        changed = {cid: qty for cid, qty in adjustments.items() if qty != self._held(records, cid)}
        return QuantityChangePlan(item_id=item.id, new_quantity=new_quantity, adjustments=changed)

    def repair(self, items: Iterable[InventoryItem], ownerships: Iterable[ItemOwnership]) -> RepairResult:
        """
        Restore the allocation rules on data loaded from disk.

        Drops records for unknown items, merges duplicate (item, character)
        records, and trims over-allocated items newest claim first.
        """
        quantities = {item.id: item.quantity for item in items}
        issues: list[str] = []
        merged: dict[tuple[str, str], ItemOwnership] = {}

        for record in ownerships:
            if record.item_id not in quantities:
                issues.append(f"dropped ownership of unknown item {record.item_id} by {record.character_id}")
                continue
            existing = merged.get(record.key)
            if existing is None:
                merged[record.key] = record.model_copy()
                continue
            issues.append(f"merged duplicate ownership of {record.item_id} by {record.character_id}")
            merged[record.key] = existing.model_copy(
                update={
                    "quantity_owned": existing.quantity_owned + record.quantity_owned,
                    "claimed_date": min(existing.claimed_date, record.claimed_date),
                }
            )

        by_item: dict[str, list[ItemOwnership]] = defaultdict(list)
        for record in merged.values():
            by_item[record.item_id].append(record)

        for item_id, records in by_item.items():
            allocated = sum(o.quantity_owned for o in records)
            excess = allocated - quantities[item_id]
            if excess <= 0:
                continue
            issues.append(f"item {item_id} over-allocated by {excess}; trimmed newest claims")
            for character_id, keep in self._trim_newest_first(records, excess).items():
                key = (item_id, character_id)
                if keep <= 0:
                    del merged[key]
                else:
                    merged[key] = merged[key].model_copy(update={"quantity_owned": keep})

        return RepairResult(ownerships=list(merged.values()), issues=issues)

    @staticmethod
    def _held(records: Sequence[ItemOwnership], character_id: str) -> int:
        return next((o.quantity_owned for o in records if o.character_id == character_id), 0)

    @staticmethod
    def _trim_newest_first(records: Sequence[ItemOwnership], excess: int) -> dict[str, int]:
        """Quantities to keep after releasing `excess` units, newest claims first."""
        adjustments: dict[str, int] = {}
        for record in _newest_first(records):
            if excess <= 0:
                break
            released = min(record.quantity_owned, excess)
            adjustments[record.character_id] = record.quantity_owned - released
            excess -= released
        return adjustments

    @staticmethod
    def _require_positive(quantity: int, context: ErrorContext) -> None:
        if quantity <= 0:
            raise InvalidQuantityError(
                f"Quantity must be positive, got {quantity}",
                context,
                value=quantity,
                user_friendly=ErrorMessages.INVALID_QUANTITY,
            )
