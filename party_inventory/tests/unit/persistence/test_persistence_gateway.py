"""
Unit tests for PersistenceGateway.

Exercises the load-merge-write cycle against real files under tmp_path, with
unittest.mock used only to inject storage failures.
"""

import asyncio
import json
from unittest.mock import patch

import pytest

from party_inventory.config.models import StorageConfig
from party_inventory.exceptions import PersistenceError
from party_inventory.models.character import PlayerCharacter
from party_inventory.models.document import DocumentSlice, GroupRegistryDocument, UserRegistryDocument
from party_inventory.models.group import Group
from party_inventory.models.item import InventoryItem
from party_inventory.models.ownership import ItemOwnership
from party_inventory.models.user import UserInfo
from party_inventory.persistence.gateway import PersistenceGateway

GROUP = "group_test"


def _document_path(gateway: PersistenceGateway, group_id: str = GROUP):
    return gateway.store.path_for(gateway.group_key(group_id))


def _read_json(path):
    return json.loads(path.read_text(encoding="utf-8"))


@pytest.mark.asyncio
async def test_load_missing_document_returns_default(gateway):
    document = await gateway.load_group(GROUP, "Test Party")
    assert document.group_id == GROUP
    assert document.group_name == "Test Party"
    assert document.version == 0
    assert document.items == []


@pytest.mark.asyncio
async def test_save_then_load_round_trip(gateway):
    item = InventoryItem(name="Rope", quantity=10, weight=10.0, value=1)
    ownership = ItemOwnership(item_id=item.id, character_id="char_aria", quantity_owned=4, notes="coiled")

    assert await gateway.save_slice(GROUP, DocumentSlice.ITEMS, [item], group_name="Test Party") is True
    assert await gateway.save_slice(GROUP, DocumentSlice.OWNERSHIPS, [ownership]) is True

    document = await gateway.load_group(GROUP)
    assert document.group_name == "Test Party"
    assert document.version == 2
    assert document.last_saved is not None
    assert document.items[0].id == item.id
    assert document.items[0].name == "Rope"
    assert document.item_ownerships[0].quantity_owned == 4
    assert document.item_ownerships[0].notes == "coiled"


@pytest.mark.asyncio
async def test_on_disk_document_uses_camel_case_keys(gateway):
    item = InventoryItem(name="Rope")
    await gateway.save_slice(GROUP, DocumentSlice.ITEMS, [item])

    raw = _read_json(_document_path(gateway))
    assert raw["groupId"] == GROUP
    assert raw["version"] == 1
    assert raw["itemOwnerships"] == []
    assert set(raw["items"][0]) >= {"id", "name", "category", "quantity", "dateAdded", "lastModified"}


@pytest.mark.asyncio
async def test_concurrent_saves_of_disjoint_slices_both_survive(gateway):
    """Items and ownerships saved before either completes: both land on disk."""
    item = InventoryItem(name="Torch", quantity=5)
    ownership = ItemOwnership(item_id=item.id, character_id="char_aria", quantity_owned=2)

    items_save = gateway.save_slice(GROUP, DocumentSlice.ITEMS, [item])
    ownerships_save = gateway.save_slice(GROUP, DocumentSlice.OWNERSHIPS, [ownership])
    assert not items_save.done()
    assert not ownerships_save.done()

    assert await asyncio.gather(items_save, ownerships_save) == [True, True]

    raw = _read_json(_document_path(gateway))
    assert [i["name"] for i in raw["items"]] == ["Torch"]
    assert [o["characterId"] for o in raw["itemOwnerships"]] == ["char_aria"]
    assert raw["version"] == 2


@pytest.mark.asyncio
async def test_concurrent_saves_of_every_slice_survive(gateway):
    item = InventoryItem(name="Torch")
    saves = [
        gateway.save_slice(GROUP, DocumentSlice.ITEMS, [item]),
        gateway.save_slice(
            GROUP, DocumentSlice.OWNERSHIPS, [ItemOwnership(item_id=item.id, character_id="c", quantity_owned=1)]
        ),
        gateway.save_slice(GROUP, DocumentSlice.CHARACTERS, [PlayerCharacter(id="c", name="Aria")]),
        gateway.save_slice(GROUP, DocumentSlice.USERS, [UserInfo(client_id=3, name="Sam")]),
    ]
    assert all(await asyncio.gather(*saves))

    document = await gateway.load_group(GROUP)
    assert len(document.items) == 1
    assert len(document.item_ownerships) == 1
    assert document.characters[0].name == "Aria"
    assert document.users[0].client_id == 3


@pytest.mark.asyncio
async def test_slice_is_snapshotted_when_scheduled(gateway):
    items = [InventoryItem(name="Rope", quantity=1)]
    save = gateway.save_slice(GROUP, DocumentSlice.ITEMS, items)
    items[0].quantity = 99
    items.append(InventoryItem(name="Lantern"))
    await save

    document = await gateway.load_group(GROUP)
    assert [(i.name, i.quantity) for i in document.items] == [("Rope", 1)]


@pytest.mark.asyncio
async def test_later_save_of_same_slice_wins(gateway):
    first = gateway.save_slice(GROUP, DocumentSlice.ITEMS, [InventoryItem(name="Rope")])
    second = gateway.save_slice(GROUP, DocumentSlice.ITEMS, [InventoryItem(name="Lantern")])
    await asyncio.gather(first, second)

    document = await gateway.load_group(GROUP)
    assert [i.name for i in document.items] == ["Lantern"]


@pytest.mark.asyncio
async def test_corrupt_document_is_backed_up_and_treated_as_missing(gateway):
    path = _document_path(gateway)
    path.parent.mkdir(parents=True)
    path.write_text("{ definitely not json", encoding="utf-8")

    document = await gateway.load_group(GROUP)

    assert document.items == []
    backups = list(path.parent.glob(f"{gateway.group_key(GROUP)}_backup_*.json"))
    assert len(backups) == 1
    assert backups[0].read_text(encoding="utf-8") == "{ definitely not json"


@pytest.mark.asyncio
async def test_schema_invalid_document_is_treated_as_missing(gateway):
    path = _document_path(gateway)
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps({"groupId": GROUP, "version": 1, "items": [{"name": "x"}], "itemOwnerships": []}))

    document = await gateway.load_group(GROUP)
    assert document.items == []


@pytest.mark.asyncio
async def test_save_over_schema_invalid_document_recovers(gateway):
    """A bad slice on disk must not block saves of the other slices."""
    path = _document_path(gateway)
    path.parent.mkdir(parents=True)
    path.write_text(
        json.dumps(
            {
                "groupId": GROUP,
                "version": 4,
                "items": [],
                "itemOwnerships": [],
                "characters": [{"id": "c", "name": "x", "level": -1}],
            }
        ),
        encoding="utf-8",
    )
    assert (await gateway.load_group(GROUP)).characters == []

    first = await gateway.save_slice(GROUP, DocumentSlice.ITEMS, [InventoryItem(name="Rope")])
    second = await gateway.save_slice(GROUP, DocumentSlice.ITEMS, [InventoryItem(name="Lantern")])
    assert (first, second) == (True, True)

    document = await gateway.load_group(GROUP)
    assert [i.name for i in document.items] == ["Lantern"]
    assert document.characters == []
    assert list(path.parent.glob(f"{gateway.group_key(GROUP)}_backup_*.json"))


@pytest.mark.asyncio
async def test_merge_drops_empty_ownership_records_on_disk(gateway):
    path = _document_path(gateway)
    path.parent.mkdir(parents=True)
    path.write_text(
        json.dumps(
            {
                "groupId": GROUP,
                "version": 1,
                "items": [],
                "itemOwnerships": [
                    {"itemId": "i", "characterId": "a", "quantityOwned": 2},
                    {"itemId": "i", "characterId": "b", "quantityOwned": 0},
                ],
            }
        ),
        encoding="utf-8",
    )

    assert await gateway.save_slice(GROUP, DocumentSlice.ITEMS, [InventoryItem(id="i", name="Rope", quantity=5)])
    raw = _read_json(path)
    assert [o["characterId"] for o in raw["itemOwnerships"]] == ["a"]
    assert raw["version"] == 2


@pytest.mark.asyncio
async def test_save_over_corrupt_document_replaces_it(gateway):
    path = _document_path(gateway)
    path.parent.mkdir(parents=True)
    path.write_text("garbage", encoding="utf-8")

    assert await gateway.save_slice(GROUP, DocumentSlice.ITEMS, [InventoryItem(name="Rope")]) is True
    raw = _read_json(path)
    assert raw["items"][0]["name"] == "Rope"
    assert raw["version"] == 1


@pytest.mark.asyncio
async def test_load_timeout_is_treated_as_missing(storage_config):
    gateway = PersistenceGateway(storage_config.model_copy(update={"io_timeout_seconds": 0.01}))
    await gateway.save_slice(GROUP, DocumentSlice.ITEMS, [InventoryItem(name="Rope")])

    async def never_finishes(*_args, **_kwargs):
        await asyncio.sleep(1)

    with patch("party_inventory.persistence.gateway.asyncio.to_thread", side_effect=never_finishes):
        document = await gateway.load_group(GROUP)

    assert document.items == []
    # The file itself is untouched.
    assert (await gateway.load_group(GROUP)).items[0].name == "Rope"


@pytest.mark.asyncio
async def test_write_failure_resolves_false_and_is_not_raised(gateway):
    with patch.object(gateway.store, "write", side_effect=OSError("disk full")):
        result = await gateway.save_slice(GROUP, DocumentSlice.ITEMS, [InventoryItem(name="Rope")])
    assert result is False
    assert not _document_path(gateway).exists()

    # The next save writes the full slice again.
    assert await gateway.save_slice(GROUP, DocumentSlice.ITEMS, [InventoryItem(name="Rope")]) is True


@pytest.mark.asyncio
async def test_persistence_disabled_skips_disk(storage_config):
    gateway = PersistenceGateway(storage_config.model_copy(update={"enable_persistence": False}))
    assert await gateway.save_slice(GROUP, DocumentSlice.ITEMS, [InventoryItem(name="Rope")]) is True
    assert not _document_path(gateway).exists()
    assert (await gateway.load_group(GROUP)).items == []


@pytest.mark.asyncio
async def test_shutdown_waits_for_in_flight_saves_then_refuses_new_ones(gateway):
    saves = [gateway.save_slice(GROUP, DocumentSlice.ITEMS, [InventoryItem(name=f"Item {n}")]) for n in range(5)]
    assert gateway.pending_saves == 5

    await gateway.shutdown()

    assert all(save.done() for save in saves)
    assert gateway.pending_saves == 0
    assert gateway.is_closed
    raw = _read_json(_document_path(gateway))
    assert raw["items"][0]["name"] == "Item 4"
    assert raw["version"] == 5

    with pytest.raises(PersistenceError):
        gateway.save_slice(GROUP, DocumentSlice.ITEMS, [])


@pytest.mark.asyncio
async def test_flush_waits_for_every_pending_save(gateway):
    gateway.save_slice(GROUP, DocumentSlice.ITEMS, [InventoryItem(name="Rope")])
    gateway.save_slice("other", DocumentSlice.ITEMS, [InventoryItem(name="Lantern")])
    await gateway.flush()
    assert gateway.pending_saves == 0
    assert await gateway.exists(GROUP)
    assert await gateway.exists("other")


@pytest.mark.asyncio
async def test_delete_group_backs_up_first(gateway):
    await gateway.save_slice(GROUP, DocumentSlice.ITEMS, [InventoryItem(name="Rope")])

    assert await gateway.delete_group(GROUP) is True
    assert not await gateway.exists(GROUP)
    backups = list(_document_path(gateway).parent.glob("*_backup_*.json"))
    assert len(backups) == 1
    assert await gateway.delete_group(GROUP) is False


@pytest.mark.asyncio
async def test_backup_group(gateway):
    assert await gateway.backup_group(GROUP) is None
    await gateway.save_slice(GROUP, DocumentSlice.ITEMS, [InventoryItem(name="Rope")])
    backup = await gateway.backup_group(GROUP)
    assert backup is not None
    assert _read_json(backup)["items"][0]["name"] == "Rope"


@pytest.mark.asyncio
async def test_storage_info(gateway):
    assert await gateway.storage_info(GROUP) == f"No save file exists for: {GROUP}"
    await gateway.save_slice(GROUP, DocumentSlice.ITEMS, [InventoryItem(name="Rope")])
    info = await gateway.storage_info(GROUP)
    assert info.startswith(f"Group: {GROUP} | Size: ")
    assert " KB | Modified: " in info


@pytest.mark.asyncio
async def test_group_keys_are_sanitized(tmp_path):
    gateway = PersistenceGateway(StorageConfig(data_dir=str(tmp_path), max_key_length=10))
    await gateway.save_slice("../My Campaign!", DocumentSlice.ITEMS, [InventoryItem(name="Rope")])
    assert (tmp_path / ".._My_Camp_inventory.json").exists()


@pytest.mark.asyncio
async def test_registries_round_trip(gateway):
    group = Group.create("Dragon Heist", "user_1")
    await gateway.save_groups(GroupRegistryDocument(groups=[group], current_group_id=group.id))
    await gateway.save_users(UserRegistryDocument(users=[UserInfo(client_id=5, user_id="user_1", name="Sam")]))

    groups = await gateway.load_groups()
    users = await gateway.load_users()
    assert groups.current_group_id == group.id
    assert groups.groups[0].members[0].user_id == "user_1"
    assert users.users[0].name == "Sam"


@pytest.mark.asyncio
async def test_missing_registries_load_empty(gateway):
    assert (await gateway.load_groups()).groups == []
    assert (await gateway.load_users()).users == []
