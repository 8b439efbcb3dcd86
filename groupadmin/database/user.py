"""
ORM for user information.
"""

from typing import TYPE_CHECKING

from sqlmodel import Field, Relationship, SQLModel

from groupadmin.core.user import UserData
from groupadmin.core.uuid import UUID, uuid7
from groupadmin.database.group import GroupMembership

if TYPE_CHECKING:
    from .group import Group


class User(SQLModel, table=True):
    user_id: UUID = Field(primary_key=True, default_factory=uuid7)

    # Always stored stripped and lower case; see service.user.normalize_username
    username: str = Field(unique=True)
    email: str | None = None

    # Attributes read by the automatic group rules.
    admin: bool = False
    moderator: bool = False
    trust_level: int = 0
    active: bool = True

    groups: list["Group"] = Relationship(
        back_populates="members",
        link_model=GroupMembership,
    )

    @property
    def staff(self) -> bool:
        return self.admin or self.moderator

    def to_core(self) -> UserData:
        return UserData(
            user_id=self.user_id,
            username=self.username,
            email=self.email,
            admin=self.admin,
            moderator=self.moderator,
            trust_level=self.trust_level,
            active=self.active,
        )
