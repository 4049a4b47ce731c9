"""Player character model."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .item import utc_now

DEFAULT_CHARACTER_AVATAR = "Avatar_Default"


class PlayerCharacter(BaseModel):
    """
    A character played by one user.

    Characters, not users, hold item ownerships; a user may have several.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        validate_assignment=True,
    )

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Character unique identifier")
    name: str = Field(..., min_length=1)
    owner_user_id: str = ""
    character_class: str = Field(default="", alias="class")
    level: int = Field(default=1, ge=0)
    avatar: str = DEFAULT_CHARACTER_AVATAR
    notes: str = ""
    date_created: datetime = Field(default_factory=utc_now)
    last_played: datetime = Field(default_factory=utc_now)
    is_active: bool = False

    def __repr__(self) -> str:
        return f"<PlayerCharacter(id={self.id}, name={self.name}, owner_user_id={self.owner_user_id})>"
