"""User registry model."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .group import GroupPermission


class UserInfo(BaseModel):
    """
    A local user known to this installation.

    `client_id` 0 means "not assigned yet"; the user directory generates one
    when the user is added.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        validate_assignment=True,
    )

    client_id: int = Field(default=0, ge=0)
    user_id: str = ""
    name: str = ""
    permission: GroupPermission = GroupPermission.MEMBER
    connection_time: datetime | None = None
    is_online: bool = False
