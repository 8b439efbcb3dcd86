"""
Service layer for users, including resolution of usernames for membership
edits.
"""

from typing import Iterable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog.typing import FilteringBoundLogger

from groupadmin.core.uuid import UUID
from groupadmin.database.user import User


class UserNotFound(Exception):
    pass


class UserExistsError(Exception):
    pass


def normalize_username(username: str) -> str:
    return username.strip().lower()


def parse_usernames(raw: str | Iterable[str] | None) -> list[str]:
    """
    Turn the username payload of a membership edit into a list of normalized
    usernames. Accepts a single username, a comma separated string, or a list
    of either. Blank entries are dropped and duplicates collapsed, keeping the
    first occurrence.
    """
    if raw is None:
        return []

    if isinstance(raw, str):
        raw = [raw]

    usernames = []

    for entry in raw:
        for username in entry.split(","):
            username = normalize_username(username)
            if username and username not in usernames:
                usernames.append(username)

    return usernames


async def resolve_usernames(
    usernames: str | Iterable[str] | None,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> list[User]:
    """
    Find the users that exist among `usernames`.

    Names that do not belong to a user are skipped; an empty list is a valid
    result. No ordering is guaranteed.

    Parameters
    ----------
    usernames: str | Iterable[str] | None
        Usernames in any of the forms accepted by `parse_usernames`.
    conn: AsyncSession
        The database session.
    log: FilteringBoundLogger
        Logger instance.
    """
    names = parse_usernames(usernames)

    if not names:
        return []

    result = await conn.execute(select(User).where(User.username.in_(names)))
    users = list(result.unique().scalars().all())

    if len(users) != len(names):
        found = {user.username for user in users}
        await log.adebug(
            "user.resolve.skipped",
            unresolved=[name for name in names if name not in found],
        )

    return users


async def create(
    username: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    email: str | None = None,
    admin: bool = False,
    moderator: bool = False,
    trust_level: int = 0,
    active: bool = True,
) -> User:
    """
    Creates a user, if they do not exist.

    Raises
    ------
    UserExistsError
        If a user with this username already exists.
    """
    username = normalize_username(username)

    log = log.bind(username=username, admin=admin, moderator=moderator)

    user = User(
        username=username,
        email=email,
        admin=admin,
        moderator=moderator,
        trust_level=trust_level,
        active=active,
    )

    try:
        conn.add(user)
        await conn.flush()
    except IntegrityError:
        await log.ainfo("user.create.exists")
        raise UserExistsError(f"User with username {username} already exists")

    log = log.bind(user_id=user.user_id)
    await log.ainfo("user.created")

    return user


async def read_by_id(user_id: UUID, conn: AsyncSession) -> User:
    res = await conn.get(User, user_id)

    if res is None:
        raise UserNotFound(f"User with ID {user_id} not found in the database")

    return res


async def read_by_name(username: str, conn: AsyncSession) -> User:
    username = normalize_username(username)

    query = select(User).filter(User.username == username)
    res = (await conn.execute(query)).unique().scalar_one_or_none()

    if res is None:
        raise UserNotFound(f"User with name {username} not found in the database")

    return res


async def delete(username: str, conn: AsyncSession, log: FilteringBoundLogger):
    """
    Deletes the user and, with them, their group memberships.
    """
    user = await read_by_name(username=username, conn=conn)

    log = log.bind(user_id=user.user_id, username=user.username)

    await conn.delete(user)
    await conn.flush()

    await log.ainfo("user.deleted")
