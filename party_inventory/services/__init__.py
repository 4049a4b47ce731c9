"""Inventory services: item store, ownership ledger, rules and directories."""

from .consistency_enforcer import ConsistencyEnforcer, QuantityChangePlan, RepairResult
from .directories import CharacterDirectory, GroupDirectory, UserDirectory
from .item_store import SAMPLE_ITEMS, ItemStore
from .ownership_ledger import OwnershipLedger
from .protocols import CatalogLookup, CharacterLookup

__all__ = [
    "SAMPLE_ITEMS",
    "CatalogLookup",
    "CharacterDirectory",
    "CharacterLookup",
    "ConsistencyEnforcer",
    "GroupDirectory",
    "ItemStore",
    "OwnershipLedger",
    "QuantityChangePlan",
    "RepairResult",
    "UserDirectory",
]
