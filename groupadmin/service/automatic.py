"""
Automatic groups: groups whose membership is derived from user attributes
rather than edited by administrators.

Each automatic group is matched to a rule by name. A rule returns a SQL
criterion over `User`; refreshing a group sets its members to exactly the users
matching that criterion. Rules are supplied to `AutomaticGroupRefresher`, so
deployments (and tests) can swap in their own.
"""

from datetime import datetime, timezone
from typing import Callable, Mapping

from sqlalchemy import ColumnElement, and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog.typing import FilteringBoundLogger

from groupadmin.database.group import Group
from groupadmin.database.user import User

AutomaticGroupRule = Callable[[], ColumnElement[bool]]


def trust_level_rule(level: int) -> AutomaticGroupRule:
    def rule() -> ColumnElement[bool]:
        return and_(User.active, User.trust_level >= level)

    return rule


DEFAULT_RULES: dict[str, AutomaticGroupRule] = {
    "admins": lambda: User.admin,
    "moderators": lambda: User.moderator,
    "staff": lambda: or_(User.admin, User.moderator),
    **{f"trust_level_{level}": trust_level_rule(level) for level in range(5)},
}


class AutomaticGroupRefresher:
    """
    Creates and refreshes the automatic groups described by `rules`.
    """

    rules: Mapping[str, AutomaticGroupRule]

    def __init__(self, rules: Mapping[str, AutomaticGroupRule] | None = None):
        self.rules = DEFAULT_RULES if rules is None else rules

    async def ensure_groups(
        self, conn: AsyncSession, log: FilteringBoundLogger
    ) -> list[Group]:
        """
        Create any automatic group that has a rule but no row yet. Returns the
        newly created groups.

        A rule whose name is already taken by an ordinary group is skipped
        with a warning; that group is never refreshed.
        """
        result = await conn.execute(
            select(Group.name, Group.automatic).where(
                Group.name.in_(list(self.rules))
            )
        )
        existing = dict(result.tuples().all())

        created = []

        for name in self.rules:
            if name in existing:
                if not existing[name]:
                    await log.awarning("group.automatic.name_taken", group_name=name)
                continue

            group = Group(
                name=name,
                created_at=datetime.now(tz=timezone.utc),
                automatic=True,
                members=[],
            )
            conn.add(group)
            created.append(group)

        if created:
            await conn.flush()
            await log.ainfo(
                "group.automatic.created", group_names=[g.name for g in created]
            )

        return created

    async def refresh_group(
        self, group: Group, conn: AsyncSession, log: FilteringBoundLogger
    ) -> Group:
        """
        Set the members of an automatic group to the users matching its rule.

        Raises
        ------
        KeyError
            If there is no rule for this group.
        """
        rule = self.rules[group.name]

        log = log.bind(group_id=group.group_id, group_name=group.name)

        result = await conn.execute(select(User).where(rule()))
        members = list(result.unique().scalars().all())

        group.members = members
        await conn.flush()

        await log.adebug("group.refresh.done", number_of_members=len(members))

        return group

    async def refresh_all(self, conn: AsyncSession, log: FilteringBoundLogger) -> None:
        """
        Bring every automatic group up to date. A group that fails to refresh
        is rolled back to its savepoint and logged; the rest still refresh.
        """
        await self.ensure_groups(conn=conn, log=log)

        result = await conn.execute(
            select(Group).where(Group.automatic).order_by(Group.name)
        )
        groups = list(result.unique().scalars().all())

        refreshed = 0

        for group in groups:
            # Attributes expire if the savepoint rolls back.
            group_id, group_name = group.group_id, group.name

            if group_name not in self.rules:
                await log.awarning(
                    "group.refresh.no_rule", group_id=group_id, group_name=group_name
                )
                continue

            try:
                async with conn.begin_nested():
                    await self.refresh_group(group=group, conn=conn, log=log)
                refreshed += 1
            except Exception as e:
                await log.aexception(
                    "group.refresh.failed",
                    group_id=group_id,
                    group_name=group_name,
                    error=str(e),
                )

        await log.ainfo(
            "group.refresh.complete",
            number_of_groups=len(groups),
            number_refreshed=refreshed,
        )
