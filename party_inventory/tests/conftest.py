"""
Shared fixtures for the party inventory test suite.

Every test gets its own data directory under tmp_path; nothing touches the
real data/inventory directory.
"""

import os

import pytest

from party_inventory.config.models import AppConfig, InventoryConfig, LoggingConfig, StorageConfig
from party_inventory.events.event_bus import EventBus
from party_inventory.models.character import PlayerCharacter
from party_inventory.models.item import InventoryItem, ItemCategory
from party_inventory.persistence.gateway import PersistenceGateway
from party_inventory.services.item_store import ItemStore
from party_inventory.services.ownership_ledger import OwnershipLedger

os.environ.setdefault("PARTY_LOGGING_ENVIRONMENT", "unit_test")

TEST_GROUP_ID = "group_test"


class FakeCharacters:
    """Minimal CharacterLookup backed by a dict."""

    def __init__(self, *characters: PlayerCharacter) -> None:
        self.by_id = {c.id: c for c in characters}

    def get_character(self, character_id: str) -> PlayerCharacter | None:
        return self.by_id.get(character_id)


@pytest.fixture
def storage_config(tmp_path):
    """Storage rooted in a per-test directory."""
    return StorageConfig(data_dir=str(tmp_path / "inventory"), io_timeout_seconds=5.0)


@pytest.fixture
def inventory_config():
    """Inventory settings with seeding and autosave off."""
    return InventoryConfig(seed_sample_items=False, autosave_interval_seconds=0)


@pytest.fixture
def app_config(storage_config, inventory_config, tmp_path):
    return AppConfig(
        storage=storage_config,
        inventory=inventory_config,
        logging=LoggingConfig(environment="unit_test", log_base=str(tmp_path / "logs"), disable_logging=True),
    )


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def gateway(storage_config):
    return PersistenceGateway(storage_config)


@pytest.fixture
def aria():
    return PlayerCharacter(id="char_aria", name="Aria", owner_user_id="user_1", character_class="Rogue")


@pytest.fixture
def borin():
    return PlayerCharacter(id="char_borin", name="Borin", owner_user_id="user_2", character_class="Fighter")


@pytest.fixture
def characters(aria, borin):
    return FakeCharacters(aria, borin)


@pytest.fixture
def item_store(gateway, event_bus, inventory_config):
    return ItemStore(TEST_GROUP_ID, gateway, event_bus, inventory_config, group_name="Test Party")


@pytest.fixture
def ledger(item_store, gateway, event_bus, characters):
    return OwnershipLedger(item_store, gateway, event_bus, characters=characters)


@pytest.fixture
def make_item():
    """Factory for item candidates."""

    def _make(name: str = "Rope", category: ItemCategory = ItemCategory.TOOL, quantity: int = 1, **kwargs):
        return InventoryItem(name=name, category=category, quantity=quantity, **kwargs)

    return _make
