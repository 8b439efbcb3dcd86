"""
A shared user object that is serialized.
"""

from pydantic import BaseModel

from groupadmin.core.uuid import UUID


class UserData(BaseModel):
    user_id: UUID
    username: str
    email: str | None
    admin: bool
    moderator: bool
    trust_level: int
    active: bool
