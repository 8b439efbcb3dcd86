"""
Core group data models.
"""

from datetime import datetime

from pydantic import BaseModel

from groupadmin.core.uuid import UUID

from .user import UserData


class GroupSummary(BaseModel):
    """
    The row returned for each group in the admin group listing.
    """

    id: UUID
    name: str
    user_count: int
    automatic: bool
    alias_level: int
    visible: bool


class GroupData(GroupSummary):
    created_at: datetime | None
    # Comma separated, sorted
    usernames: str
    members: list[UserData]
