"""
Group ORM
"""

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Column, DateTime
from sqlmodel import Field, Relationship, SQLModel

from groupadmin.core.group import GroupData, GroupSummary
from groupadmin.core.uuid import UUID, uuid7

if TYPE_CHECKING:
    from .user import User


class GroupMembership(SQLModel, table=True):
    """
    A record of a user's group membership.
    """

    user_id: Optional[UUID] = Field(
        primary_key=True, foreign_key="user.user_id", ondelete="CASCADE"
    )
    group_id: Optional[UUID] = Field(
        primary_key=True, foreign_key="group.group_id", ondelete="CASCADE"
    )


class Group(SQLModel, table=True):
    group_id: UUID = Field(primary_key=True, default_factory=uuid7)

    name: str = Field(unique=True)
    created_at: datetime | None = Field(
        sa_column=Column(DateTime(timezone=True)), default=None
    )

    # Automatic groups are maintained by the refresher and cannot be edited
    # through the admin routes. Only ever set when the group is created.
    automatic: bool = False
    alias_level: int = 0
    visible: bool = True

    members: list["User"] = Relationship(
        back_populates="groups",
        link_model=GroupMembership,
        sa_relationship_kwargs=dict(lazy="joined"),
    )

    @property
    def user_count(self) -> int:
        return len(self.members)

    @property
    def usernames(self) -> str:
        return ",".join(sorted(member.username for member in self.members))

    def has_member(self, user: "User") -> bool:
        return any(member.user_id == user.user_id for member in self.members)

    def to_summary(self) -> GroupSummary:
        return GroupSummary(
            id=self.group_id,
            name=self.name,
            user_count=self.user_count,
            automatic=self.automatic,
            alias_level=self.alias_level,
            visible=self.visible,
        )

    def to_core(self) -> GroupData:
        """
        Convert this Group ORM object to a GroupData core object.
        """
        return GroupData(
            **self.to_summary().model_dump(),
            created_at=self.created_at,
            usernames=self.usernames,
            members=[member.to_core() for member in self.members],
        )
