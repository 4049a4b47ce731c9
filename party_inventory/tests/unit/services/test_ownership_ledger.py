"""
Unit tests for OwnershipLedger.

The allocation rule is checked after every step:
sum of claims on an item never exceeds the item's quantity.
"""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from party_inventory.events.event_types import InventoryMessage, ItemsChanged, OwnershipsChanged
from party_inventory.exceptions import AllocationExceededError, InvalidQuantityError, ResourceNotFoundError
from party_inventory.models.document import InventoryDocument
from party_inventory.models.item import InventoryItem, ItemCategory
from party_inventory.models.ownership import ItemOwnership

TEST_GROUP_ID = "group_test"


def assert_allocation_rule(item_store, ledger) -> None:
    for item in item_store.items():
        assert ledger.allocated_quantity(item.id) <= item.quantity
    for record in ledger.all_ownerships():
        assert record.quantity_owned > 0
        assert record.item_id in item_store


@pytest.fixture
def rope_of_ten(item_store, ledger, make_item):
    """Add a Rope stack of 10 and return it."""

    async def _add():
        return await item_store.add_item(make_item("Rope", ItemCategory.TOOL, 10))

    return _add


@pytest.mark.asyncio
async def test_claims_up_to_the_stack_and_no_further(item_store, ledger, rope_of_ten, aria, borin, gateway):
    item = await rope_of_ten()

    await ledger.assign_ownership(item.id, aria.id, 4)
    assert ledger.compute_unallocated(item_store.lookup(item.id)) == 6

    with pytest.raises(AllocationExceededError):
        await ledger.assign_ownership(item.id, borin.id, 7)
    assert ledger.compute_unallocated(item_store.lookup(item.id)) == 6

    await ledger.assign_ownership(item.id, borin.id, 6)
    assert ledger.compute_unallocated(item_store.lookup(item.id)) == 0
    assert_allocation_rule(item_store, ledger)
    await gateway.flush()


@pytest.mark.asyncio
async def test_return_to_party_releases_whole_claim(item_store, ledger, rope_of_ten, aria, borin, gateway):
    item = await rope_of_ten()
    await ledger.assign_ownership(item.id, aria.id, 4)
    await ledger.assign_ownership(item.id, borin.id, 6)

    assert await ledger.return_to_party(item.id, aria.id) is True

    assert [o.character_id for o in ledger.get_ownerships_for_item(item.id)] == [borin.id]
    assert ledger.compute_unallocated(item_store.lookup(item.id)) == 4
    assert_allocation_rule(item_store, ledger)
    await gateway.flush()


@pytest.mark.asyncio
async def test_return_to_party_is_idempotent(item_store, ledger, rope_of_ten, aria, gateway):
    item = await rope_of_ten()
    await ledger.assign_ownership(item.id, aria.id, 4)

    assert await ledger.return_to_party(item.id, aria.id) is True
    assert await ledger.return_to_party(item.id, aria.id) is False
    assert await ledger.return_to_party("missing", aria.id) is False
    assert ledger.all_ownerships() == []
    await gateway.flush()


@pytest.mark.asyncio
async def test_deleting_item_removes_every_claim(item_store, ledger, rope_of_ten, aria, borin, gateway):
    item = await rope_of_ten()
    await ledger.assign_ownership(item.id, aria.id, 4)
    await ledger.assign_ownership(item.id, borin.id, 6)

    assert await item_store.delete_item(item.id) is True

    assert item_store.lookup(item.id) is None
    assert ledger.get_ownerships_for_item(item.id) == []
    assert_allocation_rule(item_store, ledger)

    await gateway.flush()
    document = await gateway.load_group(TEST_GROUP_ID)
    assert document.items == []
    assert document.item_ownerships == []


@pytest.mark.asyncio
async def test_repeat_claims_accumulate_in_one_record(item_store, ledger, rope_of_ten, aria, gateway):
    item = await rope_of_ten()
    await ledger.assign_ownership(item.id, aria.id, 2)
    record = await ledger.assign_ownership(item.id, aria.id, 3, notes="in backpack")

    assert record.quantity_owned == 5
    assert record.notes == "in backpack"
    assert len(ledger.get_ownerships_for_item(item.id)) == 1
    await gateway.flush()


@pytest.mark.asyncio
@pytest.mark.parametrize("requested", [0, -1])
async def test_non_positive_claims_are_rejected(item_store, ledger, rope_of_ten, aria, requested, gateway):
    item = await rope_of_ten()
    with pytest.raises(InvalidQuantityError):
        await ledger.assign_ownership(item.id, aria.id, requested)
    assert ledger.all_ownerships() == []
    await gateway.flush()


@pytest.mark.asyncio
async def test_unknown_item_or_character_is_reported(item_store, ledger, rope_of_ten, aria, gateway):
    item = await rope_of_ten()
    with pytest.raises(ResourceNotFoundError) as exc_info:
        await ledger.assign_ownership("missing", aria.id, 1)
    assert exc_info.value.resource_type == "item"

    with pytest.raises(ResourceNotFoundError) as exc_info:
        await ledger.assign_ownership(item.id, "char_nobody", 1)
    assert exc_info.value.resource_type == "character"
    assert ledger.all_ownerships() == []
    await gateway.flush()


@pytest.mark.asyncio
async def test_duplicate_mutation_token_is_applied_once(item_store, ledger, rope_of_ten, aria, gateway):
    item = await rope_of_ten()
    first = await ledger.assign_ownership(item.id, aria.id, 3, mutation_token="click-1")
    second = await ledger.assign_ownership(item.id, aria.id, 3, mutation_token="click-1")

    assert first.quantity_owned == 3
    assert second.quantity_owned == 3
    assert ledger.allocated_quantity(item.id) == 3

    await ledger.assign_ownership(item.id, aria.id, 3, mutation_token="click-2")
    assert ledger.allocated_quantity(item.id) == 6
    await gateway.flush()


@pytest.mark.asyncio
async def test_rejected_mutation_token_can_be_retried(item_store, ledger, rope_of_ten, aria, gateway):
    item = await rope_of_ten()
    with pytest.raises(AllocationExceededError):
        await ledger.assign_ownership(item.id, aria.id, 11, mutation_token="tok")

    await item_store.update_quantity(item.id, 11)
    record = await ledger.assign_ownership(item.id, aria.id, 11, mutation_token="tok")
    assert record.quantity_owned == 11
    await gateway.flush()


@pytest.mark.asyncio
async def test_set_ownership(item_store, ledger, rope_of_ten, aria, borin, gateway):
    item = await rope_of_ten()
    await ledger.assign_ownership(item.id, aria.id, 4)
    await ledger.assign_ownership(item.id, borin.id, 3)

    record = await ledger.set_ownership(item.id, aria.id, 7)
    assert record.quantity_owned == 7

    with pytest.raises(AllocationExceededError):
        await ledger.set_ownership(item.id, aria.id, 8)

    assert await ledger.set_ownership(item.id, aria.id, 0) is None
    assert [o.character_id for o in ledger.get_ownerships_for_item(item.id)] == [borin.id]
    assert_allocation_rule(item_store, ledger)
    await gateway.flush()


@pytest.mark.asyncio
async def test_breakdown_and_summary(item_store, ledger, rope_of_ten, aria, borin, gateway):
    item = await rope_of_ten()
    await ledger.assign_ownership(item.id, aria.id, 4)
    await ledger.assign_ownership(item.id, borin.id, 3)

    shares = ledger.ownership_breakdown(item.id)
    assert [(s.character_name, s.quantity) for s in shares] == [("Aria", 4), ("Borin", 3), ("Party Storage", 3)]
    assert shares[-1].is_party_storage
    assert ledger.ownership_summary(item.id) == "Aria: 4, Borin: 3, Party Storage: 3"

    await ledger.assign_ownership(item.id, borin.id, 3)
    assert ledger.ownership_summary(item.id) == "Aria: 4, Borin: 6"
    assert ledger.ownership_breakdown("missing") == []
    await gateway.flush()


@pytest.mark.asyncio
async def test_claims_per_character(item_store, ledger, make_item, aria, borin, gateway):
    rope = await item_store.add_item(make_item("Rope", quantity=5))
    torch = await item_store.add_item(make_item("Torch", quantity=5))
    await ledger.assign_ownership(rope.id, aria.id, 1)
    await ledger.assign_ownership(torch.id, aria.id, 2)
    await ledger.assign_ownership(torch.id, borin.id, 3)

    assert {o.item_id for o in ledger.ownerships_for_character(aria.id)} == {rope.id, torch.id}
    assert ledger.purge_character(aria.id) == 2
    assert ledger.ownerships_for_character(aria.id) == []
    assert ledger.allocated_quantity(torch.id) == 3
    await gateway.flush()


@pytest.mark.asyncio
async def test_ownership_events_follow_item_events(item_store, ledger, event_bus, rope_of_ten, aria, gateway):
    seen: list[str] = []
    event_bus.subscribe(ItemsChanged, lambda e: seen.append("items"))
    event_bus.subscribe(InventoryMessage, lambda e: seen.append("message"))
    event_bus.subscribe(OwnershipsChanged, lambda e: seen.append(f"ownerships:{len(e.ownerships)}"))

    item = await rope_of_ten()
    await ledger.assign_ownership(item.id, aria.id, 2)
    await item_store.delete_item(item.id)
    await event_bus.join()

    # The purge is announced before the item disappears.
    assert seen == ["items", "message", "ownerships:1", "ownerships:0", "items", "message"]
    await gateway.flush()
    await event_bus.shutdown()


@pytest.mark.asyncio
async def test_mixed_operations_keep_the_allocation_rule(item_store, ledger, make_item, aria, borin, gateway):
    potion = await item_store.add_item(make_item("Health Potion", ItemCategory.CONSUMABLE, 3))
    arrows = await item_store.add_item(make_item("Arrow", ItemCategory.AMMUNITION, 40))

    steps = [
        ledger.assign_ownership(potion.id, aria.id, 2),
        ledger.assign_ownership(arrows.id, borin.id, 20),
        ledger.assign_ownership(arrows.id, aria.id, 20),
        item_store.add_item(make_item("Arrow", ItemCategory.AMMUNITION, 10)),
        ledger.set_ownership(arrows.id, borin.id, 30),
        ledger.return_to_party(potion.id, aria.id),
        item_store.update_quantity(potion.id, 1),
    ]
    for step in steps:
        await step
        assert_allocation_rule(item_store, ledger)

    with pytest.raises(AllocationExceededError):
        await ledger.assign_ownership(arrows.id, aria.id, 1)
    assert_allocation_rule(item_store, ledger)
    await gateway.flush()


@pytest.mark.asyncio
async def test_concurrent_item_and_claim_saves_both_reach_disk(item_store, ledger, rope_of_ten, aria, gateway):
    item = await rope_of_ten()
    await ledger.assign_ownership(item.id, aria.id, 4)
    items_save = item_store.last_save
    claims_save = ledger.last_save

    assert await asyncio.gather(items_save, claims_save) == [True, True]
    document = await gateway.load_group(TEST_GROUP_ID)
    assert [i.id for i in document.items] == [item.id]
    assert [(o.character_id, o.quantity_owned) for o in document.item_ownerships] == [(aria.id, 4)]


@pytest.mark.asyncio
async def test_durable_claim(item_store, ledger, rope_of_ten, aria, gateway):
    item = await rope_of_ten()
    await ledger.assign_ownership(item.id, aria.id, 1, durable=True)
    assert ledger.last_save.done()
    document = await gateway.load_group(TEST_GROUP_ID)
    assert document.item_ownerships[0].character_id == aria.id


@pytest.mark.asyncio
async def test_load_repairs_documents_that_break_the_rule(item_store, ledger, aria, borin, gateway):
    early = datetime(2024, 1, 1, tzinfo=UTC)
    rope = InventoryItem(id="rope", name="Rope", quantity=5)
    document = InventoryDocument.model_validate(
        {
            "groupId": TEST_GROUP_ID,
            "version": 4,
            "items": [rope.model_dump(by_alias=True, mode="json")],
            "itemOwnerships": [
                {"itemId": "rope", "characterId": aria.id, "quantityOwned": 4, "claimedDate": early.isoformat()},
                {
                    "itemId": "rope",
                    "characterId": borin.id,
                    "quantityOwned": 3,
                    "claimedDate": (early + timedelta(days=1)).isoformat(),
                },
                {"itemId": "ghost", "characterId": aria.id, "quantityOwned": 1},
                {"itemId": "rope", "characterId": borin.id, "quantityOwned": 0},
            ],
        }
    )

    item_store.load(document)
    result = ledger.load(document)

    assert result.changed
    held = {o.character_id: o.quantity_owned for o in ledger.get_ownerships_for_item("rope")}
    assert held == {aria.id: 4, borin.id: 1}
    assert_allocation_rule(item_store, ledger)

    # The repaired records are written back.
    await gateway.flush()
    reloaded = await gateway.load_group(TEST_GROUP_ID)
    assert sorted(o.quantity_owned for o in reloaded.item_ownerships) == [1, 4]


@pytest.mark.asyncio
async def test_load_clean_document_does_not_write(item_store, ledger, aria, gateway):
    rope = InventoryItem(id="rope", name="Rope", quantity=5)
    document = InventoryDocument(
        group_id=TEST_GROUP_ID,
        items=[rope],
        item_ownerships=[ItemOwnership(item_id="rope", character_id=aria.id, quantity_owned=2)],
    )
    item_store.load(document)
    result = ledger.load(document)

    assert result.changed is False
    assert ledger.last_save is None
    assert ledger.allocated_quantity("rope") == 2
