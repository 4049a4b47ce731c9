"""
Directory collaborators: characters, users and groups.

Each directory owns its records and persists them itself (the characters and
users slices of the group document, the user registry, the group registry).
The inventory core reads characters only through the CharacterLookup
protocol; the one write that crosses over is removing a character, which asks
the ownership ledger to drop that character's claims.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import TYPE_CHECKING

from ..config.models import InventoryConfig
from ..events.event_bus import EventBus
from ..events.event_types import CharactersChanged, GroupsChanged, UsersChanged
from ..logging.enhanced_logging_config import get_logger
from ..models.character import PlayerCharacter
from ..models.document import DocumentSlice, GroupRegistryDocument, InventoryDocument, UserRegistryDocument
from ..models.group import Group, GroupPermission
from ..models.item import utc_now
from ..models.user import UserInfo
from ..persistence.protocols import GroupDocumentPersistence, RegistryPersistence

if TYPE_CHECKING:
    from .ownership_ledger import OwnershipLedger
    from .protocols import CharacterLookup

logger = get_logger(__name__)

FALLBACK_GROUP_NAME = "My Campaign"
FALLBACK_GROUP_DESCRIPTION = "Default campaign group"
DEFAULT_USER_NAME = "Admin"


class CharacterDirectory:
    """Characters of one group, stored in the characters slice of its document."""

    def __init__(
        self,
        group_id: str,
        persistence: GroupDocumentPersistence,
        event_bus: EventBus,
        *,
        ledger: OwnershipLedger | None = None,
    ) -> None:
        self.group_id = group_id
        self.persistence = persistence
        self.event_bus = event_bus
        self.ledger = ledger
        self._characters: dict[str, PlayerCharacter] = {}
        self.last_save: asyncio.Task[bool] | None = None

    def load(self, document: InventoryDocument) -> None:
        self._characters = {c.id: c.model_copy() for c in document.characters}
        logger.info("Characters loaded", group_id=self.group_id, count=len(self._characters))
        self._publish()

    def get_character(self, character_id: str) -> PlayerCharacter | None:
        character = self._characters.get(character_id)
        return character.model_copy() if character else None

    def characters(self) -> list[PlayerCharacter]:
        return [c.model_copy() for c in self._characters.values()]

    def characters_by_user(self, user_id: str) -> list[PlayerCharacter]:
        return [c.model_copy() for c in self._characters.values() if c.owner_user_id == user_id]

    def active_character_for_user(self, user_id: str) -> PlayerCharacter | None:
        character = next(
            (c for c in self._characters.values() if c.owner_user_id == user_id and c.is_active), None
        )
        return character.model_copy() if character else None

    async def add_character(self, character: PlayerCharacter) -> PlayerCharacter:
        """Add a character, replacing any existing character with the same id."""
        stored = character.model_copy()
        replaced = stored.id in self._characters
        self._characters[stored.id] = stored
        logger.info(
            "Character saved",
            group_id=self.group_id,
            character_id=stored.id,
            character_name=stored.name,
            replaced=replaced,
        )
        self._commit()
        return stored.model_copy()

    async def remove_character(self, character_id: str) -> bool:
        """Remove a character and every ownership record it holds."""
        if self._characters.pop(character_id, None) is None:
            return False
        if self.ledger is not None:
            self.ledger.purge_character(character_id)
        logger.info("Character removed", group_id=self.group_id, character_id=character_id)
        self._commit()
        return True

    async def set_active_character(self, user_id: str, character_id: str) -> bool:
        """Make one of a user's characters the active one; the others become inactive."""
        target = self._characters.get(character_id)
        if target is None or target.owner_user_id != user_id:
            return False
        for character in self._characters.values():
            if character.owner_user_id == user_id:
                character.is_active = character.id == character_id
        target.last_played = utc_now()
        self._commit()
        return True

    def persist(self) -> asyncio.Task[bool]:
        self.last_save = self.persistence.save_slice(
            self.group_id, DocumentSlice.CHARACTERS, list(self._characters.values())
        )
        return self.last_save

    def _commit(self) -> None:
        self.persist()
        self._publish()

    def _publish(self) -> None:
        self.event_bus.publish(CharactersChanged(group_id=self.group_id, characters=self.characters()))


class UserDirectory:
    """
    Local users.

    The user registry document is authoritative; a snapshot of the users is
    also written into the current group's document.
    """

    def __init__(
        self,
        persistence: RegistryPersistence,
        group_persistence: GroupDocumentPersistence,
        event_bus: EventBus,
        *,
        group_id: str | None = None,
    ) -> None:
        self.persistence = persistence
        self.group_persistence = group_persistence
        self.event_bus = event_bus
        self.group_id = group_id
        self._users: list[UserInfo] = []
        self.last_saves: list[asyncio.Task[bool]] = []

    async def load(self) -> None:
        registry = await self.persistence.load_users()
        self._users = list(registry.users)
        logger.info("Users loaded", count=len(self._users))
        self._publish()

    def set_group(self, group_id: str | None) -> None:
        self.group_id = group_id

    def users(self) -> list[UserInfo]:
        return [u.model_copy() for u in self._users]

    def get_by_client_id(self, client_id: int) -> UserInfo | None:
        user = self._find(client_id)
        return user.model_copy() if user else None

    def get_by_name(self, name: str) -> UserInfo | None:
        wanted = name.casefold()
        user = next((u for u in self._users if u.name.casefold() == wanted), None)
        return user.model_copy() if user else None

    async def add_user(self, user: UserInfo) -> UserInfo:
        """
        Add or replace a user.

        A client_id of 0 is replaced by a generated one; an empty name becomes
        "User_<client_id>".
        """
        stored = user.model_copy()
        if stored.client_id == 0:
            stored.client_id = self._generate_client_id()
        if not stored.name:
            stored.name = f"User_{stored.client_id}"
        self._users = [u for u in self._users if u.client_id != stored.client_id]
        self._users.append(stored)
        logger.info("User saved", client_id=stored.client_id, user_name=stored.name)
        self._commit()
        return stored.model_copy()

    async def remove_user(self, client_id: int) -> bool:
        kept = [u for u in self._users if u.client_id != client_id]
        if len(kept) == len(self._users):
            return False
        self._users = kept
        logger.info("User removed", client_id=client_id)
        self._commit()
        return True

    async def set_permission(self, client_id: int, permission: GroupPermission) -> bool:
        user = self._find(client_id)
        if user is None:
            return False
        user.permission = permission
        self._commit()
        return True

    async def set_online(self, client_id: int, online: bool) -> bool:
        """Toggle a user's online flag; going online stamps connection_time."""
        user = self._find(client_id)
        if user is None:
            return False
        user.is_online = online
        if online:
            user.connection_time = utc_now()
        self._commit()
        return True

    async def ensure_default_user(self, name: str = DEFAULT_USER_NAME, user_id: str | None = None) -> UserInfo | None:
        """
        Create an online Admin user when no users exist.

        Returns the created user, or None when users already exist.
        """
        if self._users:
            return None
        user = await self.add_user(
            UserInfo(
                user_id=user_id or str(uuid.uuid4()),
                name=name,
                permission=GroupPermission.ADMIN,
                connection_time=utc_now(),
                is_online=True,
            )
        )
        logger.info("Created default admin user", user_name=user.name, client_id=user.client_id)
        return user

    def persist(self) -> list[asyncio.Task[bool]]:
        """Schedule the registry save and, with a current group, the group's users slice."""
        saves = [self.persistence.save_users(UserRegistryDocument(users=self._users))]
        if self.group_id:
            saves.append(self.group_persistence.save_slice(self.group_id, DocumentSlice.USERS, self._users))
        self.last_saves = saves
        return saves

    def _find(self, client_id: int) -> UserInfo | None:
        return next((u for u in self._users if u.client_id == client_id), None)

    def _generate_client_id(self) -> int:
        # 100ns ticks since the epoch, bumped past any id already in use
        candidate = time.time_ns() // 100
        taken = {u.client_id for u in self._users}
        while candidate in taken:
            candidate += 1
        return candidate

    def _commit(self) -> None:
        self.persist()
        self._publish()

    def _publish(self) -> None:
        self.event_bus.publish(UsersChanged(users=self.users()))


class GroupDirectory:
    """Group registry with the currently selected group."""

    def __init__(
        self,
        persistence: RegistryPersistence,
        event_bus: EventBus,
        config: InventoryConfig,
    ) -> None:
        self.persistence = persistence
        self.event_bus = event_bus
        self.config = config
        self._groups: list[Group] = []
        self._current_group_id: str | None = None
        self.last_save: asyncio.Task[bool] | None = None

    async def load(self) -> None:
        registry = await self.persistence.load_groups()
        self._groups = list(registry.groups)
        current = registry.current_group_id
        self._current_group_id = current if self._find(current) else None
        if self._current_group_id is None and self._groups:
            self._current_group_id = self._groups[0].id
        logger.info("Groups loaded", count=len(self._groups), current_group_id=self._current_group_id)
        self._publish()

    @property
    def current_group_id(self) -> str | None:
        return self._current_group_id

    def groups(self) -> list[Group]:
        return [g.model_copy(deep=True) for g in self._groups]

    def get_group(self, group_id: str) -> Group | None:
        group = self._find(group_id)
        return group.model_copy(deep=True) if group else None

    def current_group(self) -> Group | None:
        return self.get_group(self._current_group_id) if self._current_group_id else None

    def user_groups(self, user_id: str) -> list[Group]:
        return [g.model_copy(deep=True) for g in self._groups if g.has_member(user_id)]

    def group_characters(self, group_id: str, characters: CharacterLookup) -> list[PlayerCharacter]:
        """Characters registered with a group that the lookup can resolve."""
        group = self._find(group_id)
        if group is None:
            return []
        resolved = (characters.get_character(cid) for cid in group.character_ids())
        return [c for c in resolved if c is not None]

    async def set_current_group(self, group_id: str) -> bool:
        if self._find(group_id) is None:
            return False
        self._current_group_id = group_id
        logger.info("Current group set", group_id=group_id)
        self._commit()
        return True

    async def create_group(
        self, name: str, creator_user_id: str, description: str = "", *, group_id: str | None = None
    ) -> Group:
        """Create a group with its creator as Admin."""
        group = Group.create(name, creator_user_id, description)
        if group_id:
            group.id = group_id
        self._groups.append(group)
        if self._current_group_id is None:
            self._current_group_id = group.id
        logger.info("Group created", group_id=group.id, group_name=name, creator_user_id=creator_user_id)
        self._commit()
        return group.model_copy(deep=True)

    async def update_group(self, group: Group) -> bool:
        for index, existing in enumerate(self._groups):
            if existing.id == group.id:
                updated = group.model_copy(deep=True)
                updated.touch()
                self._groups[index] = updated
                self._commit()
                return True
        return False

    async def delete_group(self, group_id: str) -> bool:
        """
        Delete a group and its inventory document (after a backup).

        Deleting the current group switches to the first remaining group, or
        creates a fresh default group when none remain.
        """
        group = self._find(group_id)
        if group is None:
            return False
        self._groups.remove(group)
        if self._current_group_id == group_id:
            self._current_group_id = self._groups[0].id if self._groups else None
        logger.info("Group deleted", group_id=group_id, group_name=group.name)
        self._commit()
        await self.persistence.delete_group(group_id)
        if not self._groups:
            await self.create_group(FALLBACK_GROUP_NAME, group.creator_user_id, FALLBACK_GROUP_DESCRIPTION)
        return True

    async def add_member(
        self, group_id: str, user_id: str, permission: GroupPermission = GroupPermission.MEMBER
    ) -> bool:
        group = self._find(group_id)
        if group is None or not group.add_member(user_id, permission):
            return False
        self._commit()
        return True

    async def remove_member(self, group_id: str, user_id: str) -> bool:
        """Remove a member; the group's creator cannot be removed."""
        group = self._find(group_id)
        if group is None:
            return False
        if group.creator_user_id == user_id:
            logger.warning("Cannot remove group creator", group_id=group_id, user_id=user_id)
            return False
        if not group.remove_member(user_id):
            return False
        self._commit()
        return True

    async def update_member_permission(self, group_id: str, user_id: str, permission: GroupPermission) -> bool:
        group = self._find(group_id)
        member = group.get_member(user_id) if group else None
        if group is None or member is None:
            return False
        member.permission = permission
        group.touch()
        self._commit()
        return True

    async def add_character_to_group(self, group_id: str, user_id: str, character_id: str) -> bool:
        group = self._find(group_id)
        member = group.get_member(user_id) if group else None
        if group is None or member is None:
            logger.warning("User is not a member of group", group_id=group_id, user_id=user_id)
            return False
        if character_id in member.character_ids:
            return False
        member.character_ids.append(character_id)
        group.touch()
        self._commit()
        return True

    async def remove_character_from_group(self, group_id: str, character_id: str) -> bool:
        group = self._find(group_id)
        if group is None:
            return False
        for member in group.members:
            if character_id in member.character_ids:
                member.character_ids.remove(character_id)
                group.touch()
                self._commit()
                return True
        return False

    async def ensure_default_group(self, creator_user_id: str = "") -> Group | None:
        """
        Create the configured default group when the registry is empty.

        Returns the created group, or None when groups already exist.
        """
        if self._groups:
            return None
        return await self.create_group(
            self.config.default_group_name, creator_user_id, group_id=self.config.default_group_id
        )

    def persist(self) -> asyncio.Task[bool]:
        self.last_save = self.persistence.save_groups(
            GroupRegistryDocument(groups=self._groups, current_group_id=self._current_group_id)
        )
        return self.last_save

    def _find(self, group_id: str | None) -> Group | None:
        if not group_id:
            return None
        return next((g for g in self._groups if g.id == group_id), None)

    def _commit(self) -> None:
        self.persist()
        self._publish()

    def _publish(self) -> None:
        self.event_bus.publish(GroupsChanged(groups=self.groups(), current_group_id=self._current_group_id))
