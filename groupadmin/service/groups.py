"""
Service layer for groups.

Membership edits resolve usernames through `service.user.resolve_usernames`,
so names that do not belong to a user are skipped rather than rejected.
Automatic groups are maintained by `service.automatic` and every mutating
operation here refuses to touch them.
"""

import functools
import inspect
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog.typing import FilteringBoundLogger

from groupadmin.core.uuid import UUID
from groupadmin.database.group import Group
from groupadmin.database.user import User

from . import user as user_service


class GroupNotFound(Exception):
    pass


class GroupValidationError(Exception):
    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


class GroupExistsError(GroupValidationError):
    def __init__(self, name: str):
        super().__init__(field="name", message=f"Group {name} already exists")


class AutomaticGroupError(Exception):
    pass


def normalize_name(name: str) -> str:
    """
    Strip whitespace from a group name.

    Raises
    ------
    GroupValidationError
        If nothing is left of the name.
    """
    name = (name or "").strip()

    if not name:
        raise GroupValidationError(field="name", message="Group name cannot be blank")

    return name


def refuse_automatic(func):
    """
    Guard for operations that mutate a group. The wrapped coroutine must take
    `group` and `log` arguments; if the group is automatic it is never called
    and `AutomaticGroupError` is raised instead.
    """
    signature = inspect.signature(func)

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        arguments = signature.bind(*args, **kwargs).arguments
        group: Group = arguments["group"]

        if group.automatic:
            log: FilteringBoundLogger = arguments["log"]
            await log.awarning(
                "group.automatic_protected",
                group_id=group.group_id,
                group_name=group.name,
                operation=func.__name__,
            )
            raise AutomaticGroupError(
                f"Group {group.name} is automatic and cannot be modified"
            )

        return await func(*args, **kwargs)

    return wrapper


async def create(
    name: str,
    usernames: str | Iterable[str] | None,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    alias_level: int = 0,
    visible: bool = True,
) -> Group:
    """
    Create a new, non-automatic, group.

    Parameters
    ----------
    name: str
        The name of the new group. Leading and trailing whitespace is removed.
    usernames: str | Iterable[str] | None
        The users who should initially be in the group. Names that do not
        belong to a user are skipped.
    alias_level: int
        Group policy attribute, stored as-is.
    visible: bool
        Group policy attribute, stored as-is.

    Raises
    ------
    GroupValidationError
        If the name is blank.
    GroupExistsError
        If a group with this name already exists.
    """
    name = normalize_name(name)

    log = log.bind(group_name=name)

    members = await user_service.resolve_usernames(
        usernames=usernames, conn=conn, log=log
    )

    log = log.bind(number_of_members=len(members))

    group = Group(
        name=name,
        created_at=datetime.now(tz=timezone.utc),
        automatic=False,
        alias_level=alias_level,
        visible=visible,
        members=members,
    )

    try:
        conn.add(group)
        await conn.flush()
    except IntegrityError as e:
        log = log.bind(error=e)
        await log.ainfo("group.exists")
        raise GroupExistsError(name)

    await log.ainfo("group.created", group_id=group.group_id)

    return group


async def get_group_list(
    conn: AsyncSession,
    log: FilteringBoundLogger,
    username: str | None = None,
) -> list[Group]:
    """
    Get a list of all groups.

    Parameters
    ----------
    conn: AsyncSession
        The database session.
    log: FilteringBoundLogger
        Logger instance.
    username: str | None
        If given, only the groups this user is a member of are returned.

    Returns
    -------
    list[Group]
        The groups, ordered by name.
    """
    query = select(Group).order_by(Group.name)

    if username:
        username = user_service.normalize_username(username)
        query = query.where(Group.members.any(User.username == username))

    log = log.bind(for_username=username)

    result = await conn.execute(query)
    groups = list(result.unique().scalars().all())

    await log.adebug("group.listed", number_of_groups=len(groups))

    return groups


async def read_by_id(
    group_id: UUID,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    for_update: bool = False,
) -> Group:
    """
    Read a group by its ID.

    Parameters
    ----------
    group_id: UUID
        The ID of the group to read.
    conn: AsyncSession
        The database session.
    log: FilteringBoundLogger
        Logger instance.
    for_update: bool
        Lock the group row until the end of the transaction. Use this before
        changing membership so that concurrent edits to the same group are
        serialized.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    """
    log = log.bind(group_id=group_id)

    query = select(Group).where(Group.group_id == group_id)

    if for_update:
        # Take the lock before loading members, so a transaction that waited
        # on it reads the membership the previous holder committed.
        await conn.execute(
            select(Group.group_id).where(Group.group_id == group_id).with_for_update()
        )
        query = query.execution_options(populate_existing=True)

    result = await conn.execute(query)
    group = result.unique().scalar_one_or_none()

    if not group:
        await log.ainfo("group.not_found")
        raise GroupNotFound(f"Group with id {group_id} not found")

    await log.adebug("group.found")
    return group


async def read_by_name(
    name: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Group:
    """
    Read a group by its name.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    """
    name = name.strip()
    log = log.bind(group_name=name)
    result = await conn.execute(select(Group).where(Group.name == name))
    group = result.unique().scalar_one_or_none()
    if not group:
        await log.ainfo("group.not_found")
        raise GroupNotFound(f"Group with name {name} not found")
    await log.adebug("group.found")
    return group


@refuse_automatic
async def replace(
    group: Group,
    name: str,
    usernames: str | Iterable[str] | None,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    alias_level: int | None = None,
    visible: bool | None = None,
) -> Group:
    """
    Rename a group and set its members to exactly `usernames`. Anyone not in
    the new list is removed.

    Parameters
    ----------
    group: Group
        The group to change, ideally read with `for_update=True`.
    name: str
        The new name. Leading and trailing whitespace is removed.
    usernames: str | Iterable[str] | None
        The complete new member list. Names that do not belong to a user are
        skipped.
    alias_level: int | None
        New alias level, unchanged if None.
    visible: bool | None
        New visibility, unchanged if None.

    Raises
    ------
    AutomaticGroupError
        If the group is automatic.
    GroupValidationError
        If the name is blank.
    GroupExistsError
        If another group already has this name.
    """
    name = normalize_name(name)

    log = log.bind(group_id=group.group_id, group_name=name)

    members = await user_service.resolve_usernames(
        usernames=usernames, conn=conn, log=log
    )

    group.name = name
    group.members = members

    if alias_level is not None:
        group.alias_level = alias_level

    if visible is not None:
        group.visible = visible

    try:
        await conn.flush()
    except IntegrityError as e:
        log = log.bind(error=e)
        await log.ainfo("group.exists")
        raise GroupExistsError(name)

    await log.ainfo("group.members.replaced", number_of_members=len(members))

    return group


@refuse_automatic
async def apply_changes(
    group: Group,
    add: str | Iterable[str] | None,
    delete: str | Iterable[str] | None,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Group:
    """
    Add and remove members of a group.

    Adding a current member, removing a non-member, and names that do not
    belong to a user are all no-ops. Additions are applied before removals.

    Parameters
    ----------
    group: Group
        The group to change, ideally read with `for_update=True`.
    add: str | Iterable[str] | None
        Usernames to add.
    delete: str | Iterable[str] | None
        Usernames to remove.

    Raises
    ------
    AutomaticGroupError
        If the group is automatic.
    """
    log = log.bind(group_id=group.group_id, group_name=group.name)

    added = 0
    removed = 0

    to_add = await user_service.resolve_usernames(usernames=add, conn=conn, log=log)
    to_delete = await user_service.resolve_usernames(
        usernames=delete, conn=conn, log=log
    )

    for user in to_add:
        if not group.has_member(user):
            group.members.append(user)
            added += 1

    for user in to_delete:
        if group.has_member(user):
            group.members.remove(user)
            removed += 1

    await conn.flush()

    await log.ainfo(
        "group.members.changed",
        added=added,
        removed=removed,
        number_of_members=group.user_count,
    )

    return group


@refuse_automatic
async def delete_group(
    group: Group,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> None:
    """
    Delete a group along with its membership records.

    Raises
    ------
    AutomaticGroupError
        If the group is automatic.
    """
    log = log.bind(group_id=group.group_id, group_name=group.name)
    await conn.delete(group)
    await conn.flush()
    await log.ainfo("group.deleted")
