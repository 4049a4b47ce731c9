"""
Group (campaign) models.

A group owns one inventory document; members carry a permission level and
the ids of the characters they play in that group.
"""

import uuid
from datetime import datetime
from enum import IntEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .item import utc_now

DEFAULT_GROUP_AVATAR = "Group_Default"


class GroupPermission(IntEnum):
    """Ordered permission levels; higher values include the lower ones."""

    VIEWER = 0
    MEMBER = 1
    EDITOR = 2
    MODERATOR = 3
    ADMIN = 4


_CAMEL_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    extra="ignore",
    validate_assignment=True,
)


class GroupSettings(BaseModel):
    model_config = _CAMEL_CONFIG

    allow_members_to_invite: bool = False
    require_approval_for_new_members: bool = True
    allow_members_to_add_items: bool = True
    max_members: int = Field(default=10, ge=1)


class GroupMember(BaseModel):
    model_config = _CAMEL_CONFIG

    user_id: str
    permission: GroupPermission = GroupPermission.MEMBER
    joined_date: datetime = Field(default_factory=utc_now)
    character_ids: list[str] = Field(default_factory=list)


class Group(BaseModel):
    """A gaming group with its members and settings."""

    model_config = _CAMEL_CONFIG

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Group unique identifier")
    name: str = "New Campaign"
    description: str = ""
    avatar: str = DEFAULT_GROUP_AVATAR
    creator_user_id: str = ""
    date_created: datetime = Field(default_factory=utc_now)
    last_activity: datetime = Field(default_factory=utc_now)
    members: list[GroupMember] = Field(default_factory=list)
    settings: GroupSettings = Field(default_factory=GroupSettings)

    @classmethod
    def create(cls, name: str, creator_user_id: str, description: str = "") -> "Group":
        """Create a group with its creator as the Admin member."""
        group = cls(name=name, creator_user_id=creator_user_id, description=description)
        if creator_user_id:
            group.add_member(creator_user_id, GroupPermission.ADMIN)
        return group

    def touch(self) -> None:
        self.last_activity = utc_now()

    def get_member(self, user_id: str) -> GroupMember | None:
        return next((m for m in self.members if m.user_id == user_id), None)

    def has_member(self, user_id: str) -> bool:
        return self.get_member(user_id) is not None

    def add_member(self, user_id: str, permission: GroupPermission = GroupPermission.MEMBER) -> bool:
        """Add a member; returns False when the user already belongs to the group."""
        if self.has_member(user_id):
            return False
        self.members.append(GroupMember(user_id=user_id, permission=permission))
        self.touch()
        return True

    def remove_member(self, user_id: str) -> bool:
        kept = [m for m in self.members if m.user_id != user_id]
        if len(kept) == len(self.members):
            return False
        self.members = kept
        self.touch()
        return True

    def user_has_permission(self, user_id: str, required: GroupPermission) -> bool:
        member = self.get_member(user_id)
        if member is None:
            return False
        return member.permission >= required

    def character_ids(self) -> list[str]:
        """All character ids across members, without duplicates, in member order."""
        seen: dict[str, None] = {}
        for member in self.members:
            for character_id in member.character_ids:
                seen.setdefault(character_id, None)
        return list(seen)
