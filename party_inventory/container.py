"""
InventoryContainer: explicit wiring and lifecycle for the inventory core.

Construct one per process (or per test), call initialize(), and shut it down
when done:

    async with InventoryContainer(config) as container:
        await container.item_store.add_item(item)

Nothing here is a singleton; consumers receive the services they need from
the container that built them.
"""

import asyncio
from typing import Any

from .config import AppConfig, get_config
from .events.event_bus import EventBus
from .logging.enhanced_logging_config import get_logger, setup_enhanced_logging
from .models.group import Group
from .persistence.gateway import PersistenceGateway
from .persistence.mutation_guard import DocumentMutationGuard
from .services.consistency_enforcer import ConsistencyEnforcer
from .services.directories import CharacterDirectory, GroupDirectory, UserDirectory
from .services.item_store import ItemStore
from .services.ownership_ledger import OwnershipLedger

logger = get_logger(__name__)


class InventoryContainer:
    """
    Builds and owns the inventory services.

    Services are NOT created in __init__; call initialize() (or use
    `async with`) first.
    """

    def __init__(self, config: AppConfig | None = None) -> None:
        self.config: AppConfig = config or get_config()
        self.event_bus: EventBus | None = None
        self.guard: DocumentMutationGuard | None = None
        self.persistence: PersistenceGateway | None = None
        self.enforcer = ConsistencyEnforcer()

        self.group_directory: GroupDirectory | None = None
        self.user_directory: UserDirectory | None = None
        self.character_directory: CharacterDirectory | None = None
        self.item_store: ItemStore | None = None
        self.ownership_ledger: OwnershipLedger | None = None

        self._autosave_task: asyncio.Task | None = None
        self._initialized = False
        self._initialization_lock = asyncio.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def current_group(self) -> Group | None:
        return self.group_directory.current_group() if self.group_directory else None

    async def __aenter__(self) -> "InventoryContainer":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    async def initialize(self) -> None:
        """Load the registries and the current group's document, then start autosave."""
        async with self._initialization_lock:
            if self._initialized:
                logger.warning("Container already initialized - skipping re-initialization")
                return

            setup_enhanced_logging(self.config.to_legacy_dict())
            logger.info("Initializing InventoryContainer", data_dir=str(self.config.storage.data_dir))

            try:
                self.event_bus = EventBus()
                self.guard = DocumentMutationGuard()
                self.persistence = PersistenceGateway(self.config.storage, guard=self.guard)
                self.group_directory = GroupDirectory(self.persistence, self.event_bus, self.config.inventory)
                self.user_directory = UserDirectory(self.persistence, self.persistence, self.event_bus)

                await self.user_directory.load()
                await self.group_directory.load()
                await self.user_directory.ensure_default_user()
                users = self.user_directory.users()
                creator = users[0].user_id if users else ""
                await self.group_directory.ensure_default_group(creator)

                group = self.group_directory.current_group()
                if group is None:
                    raise RuntimeError("No current group after loading the group registry")
                await self._open_group(group)

                self._start_autosave()
                self._initialized = True
                logger.info("InventoryContainer initialization complete", group_id=group.id)
            except Exception as e:
                logger.error("Failed to initialize inventory container", error=str(e), exc_info=True)
                raise RuntimeError(f"Failed to initialize inventory container: {e}") from e

    async def switch_group(self, group_id: str) -> bool:
        """
        Make another group current and load its inventory document.

        Saves already scheduled for the previous group are awaited first.
        """
        self._require_initialized()
        if not await self.group_directory.set_current_group(group_id):
            return False
        await self.persistence.flush()
        await self._open_group(self.group_directory.current_group())
        return True

    async def delete_group(self, group_id: str) -> bool:
        """
        Delete a group and its inventory document.

        When the deleted group was open, the services are reopened on the
        group the registry falls back to.
        """
        self._require_initialized()
        was_open = self.item_store is not None and self.item_store.group_id == group_id
        if was_open:
            # Saves still queued for the group would recreate its document.
            await self.persistence.flush()
        if not await self.group_directory.delete_group(group_id):
            return False
        if was_open:
            await self.persistence.flush()
            await self._open_group(self.group_directory.current_group())
        return True

    async def save_all(self) -> bool:
        """Re-persist every slice of the current group; True when all writes succeeded."""
        self._require_initialized()
        # Ownerships are written before items so a crash between the two never
        # leaves claims that outnumber the items on disk.
        tasks = [
            self.ownership_ledger.persist(),
            self.item_store.persist(),
            self.character_directory.persist(),
            *self.user_directory.persist(),
            self.group_directory.persist(),
        ]
        results = await asyncio.gather(*tasks)
        return all(results)

    async def shutdown(self) -> None:
        """Stop autosave, let in-flight saves finish, then stop the event bus."""
        if not self._initialized:
            return
        logger.info("Shutting down InventoryContainer")
        await self._stop_autosave()
        await self.persistence.shutdown()
        await self.event_bus.shutdown()
        self._initialized = False
        logger.info("InventoryContainer shutdown complete")

    async def _open_group(self, group: Group) -> None:
        document = await self.persistence.load_group(group.id, group.name)

        self.item_store = ItemStore(
            group.id,
            self.persistence,
            self.event_bus,
            self.config.inventory,
            group_name=group.name,
            enforcer=self.enforcer,
        )
        self.ownership_ledger = OwnershipLedger(self.item_store, self.persistence, self.event_bus, guard=self.guard)
        self.character_directory = CharacterDirectory(
            group.id, self.persistence, self.event_bus, ledger=self.ownership_ledger
        )
        self.ownership_ledger.attach_characters(self.character_directory)
        self.user_directory.set_group(group.id)

        self.item_store.load(document)
        self.character_directory.load(document)
        self.ownership_ledger.load(document)
        await self.item_store.seed_sample_inventory()
        logger.info(
            "Opened group inventory",
            group_id=group.id,
            group_name=group.name,
            items=len(self.item_store),
            version=document.version,
        )

    def _start_autosave(self) -> None:
        interval = self.config.inventory.autosave_interval_seconds
        if interval <= 0:
            logger.debug("Autosave disabled")
            return
        self._autosave_task = asyncio.create_task(self._autosave_loop(interval), name="party-inventory-autosave")

    async def _autosave_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            ok = await self.save_all()
            logger.debug("Autosave completed", success=ok)

    async def _stop_autosave(self) -> None:
        task = self._autosave_task
        self._autosave_task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError("Container not initialized - call initialize() first")
