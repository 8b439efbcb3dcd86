"""
Pydantic models for request/responses to APIs.
"""

from pydantic import BaseModel, Field

# Usernames may arrive as a single name, a comma separated string, or a list.
UsernameList = str | list[str] | None


class GroupCreationRequest(BaseModel):
    name: str
    usernames: UsernameList = None
    alias_level: int = 0
    visible: bool = True


class GroupReplaceRequest(BaseModel):
    name: str
    usernames: UsernameList = None
    alias_level: int | None = None
    visible: bool | None = None


class MembershipChanges(BaseModel):
    add: UsernameList = None
    delete: UsernameList = None


class GroupPatchRequest(BaseModel):
    changes: MembershipChanges = Field(default_factory=MembershipChanges)


class SuccessResponse(BaseModel):
    success: str = "OK"


class ValidationErrorDetail(BaseModel):
    field: str
    message: str
