"""
Tests the automatic group refresher.
"""

import pytest
from structlog.testing import capture_logs
from sqlalchemy import and_, false, text

from groupadmin.database.user import User
from groupadmin.service import groups as groups_service
from groupadmin.service import user as user_service
from groupadmin.service.automatic import AutomaticGroupRefresher, trust_level_rule


async def members_of(session_manager, logger, name: str) -> set[str]:
    async with session_manager.session() as conn:
        async with conn.begin():
            group = await groups_service.read_by_name(name=name, conn=conn, log=logger)
            assert group.automatic
            return {member.username for member in group.members}


@pytest.mark.asyncio(loop_scope="session")
async def test_refresh_is_idempotent(session_manager, logger, make_users):
    (senior,) = await make_users("senior", trust_level=3)
    (junior,) = await make_users("junior", trust_level=1)
    (inactive,) = await make_users("inactive", trust_level=4, active=False)

    candidates = [senior, junior, inactive]

    refresher = AutomaticGroupRefresher(
        rules={
            "test_trust_level_2": lambda: and_(
                trust_level_rule(2)(), User.username.in_(candidates)
            )
        }
    )

    for _ in range(2):
        async with session_manager.session() as conn:
            async with conn.begin():
                await refresher.refresh_all(conn=conn, log=logger)

        assert await members_of(session_manager, logger, "test_trust_level_2") == {
            senior
        }

    # Promote the junior user and refresh again
    async with session_manager.session() as conn:
        async with conn.begin():
            user = await user_service.read_by_name(username=junior, conn=conn)
            user.trust_level = 2
            await refresher.refresh_all(conn=conn, log=logger)

    assert await members_of(session_manager, logger, "test_trust_level_2") == {
        senior,
        junior,
    }


@pytest.mark.asyncio(loop_scope="session")
async def test_default_rules(session_manager, logger, make_users):
    (admin,) = await make_users("admin", admin=True)
    (moderator,) = await make_users("moderator", moderator=True, trust_level=4)

    async with session_manager.session() as conn:
        async with conn.begin():
            await AutomaticGroupRefresher().refresh_all(conn=conn, log=logger)

    admins = await members_of(session_manager, logger, "admins")
    assert admin in admins
    assert moderator not in admins

    moderators = await members_of(session_manager, logger, "moderators")
    assert moderator in moderators
    assert admin not in moderators

    staff = await members_of(session_manager, logger, "staff")
    assert {admin, moderator} <= staff

    trust_level_0 = await members_of(session_manager, logger, "trust_level_0")
    assert {admin, moderator} <= trust_level_0

    trust_level_4 = await members_of(session_manager, logger, "trust_level_4")
    assert moderator in trust_level_4
    assert admin not in trust_level_4


@pytest.mark.asyncio(loop_scope="session")
async def test_ensure_groups_only_creates_missing(session_manager, logger):
    refresher = AutomaticGroupRefresher(rules={"test_ensure_once": false})

    async with session_manager.session() as conn:
        async with conn.begin():
            created = await refresher.ensure_groups(conn=conn, log=logger)
            assert [g.name for g in created] == ["test_ensure_once"]
            assert created[0].automatic

    async with session_manager.session() as conn:
        async with conn.begin():
            assert await refresher.ensure_groups(conn=conn, log=logger) == []


@pytest.mark.asyncio(loop_scope="session")
async def test_failing_rule_does_not_stop_others(session_manager, logger, make_users):
    (username,) = await make_users("survivor")

    refresher = AutomaticGroupRefresher(
        rules={
            "test_broken_a": lambda: text("no_such_column = 1"),
            "test_working_b": lambda: User.username == username,
        }
    )

    async with session_manager.session() as conn:
        async with conn.begin():
            await refresher.refresh_all(conn=conn, log=logger)

    assert await members_of(session_manager, logger, "test_broken_a") == set()
    assert await members_of(session_manager, logger, "test_working_b") == {username}


@pytest.mark.asyncio(loop_scope="session")
async def test_raising_rule_does_not_stop_others(session_manager, logger, make_users):
    (username,) = await make_users("survivor")

    def misconfigured():
        raise ValueError("rule misconfigured")

    refresher = AutomaticGroupRefresher(
        rules={
            "test_raising_a": misconfigured,
            "test_still_working_b": lambda: User.username == username,
        }
    )

    async with session_manager.session() as conn:
        async with conn.begin():
            await refresher.refresh_all(conn=conn, log=logger)

    assert await members_of(session_manager, logger, "test_raising_a") == set()
    assert await members_of(session_manager, logger, "test_still_working_b") == {
        username
    }


@pytest.mark.asyncio(loop_scope="session")
async def test_rule_name_taken_by_ordinary_group(session_manager, logger, make_users):
    (member,) = await make_users("member")
    (matched,) = await make_users("matched")

    async with session_manager.session() as conn:
        async with conn.begin():
            await groups_service.create(
                name="test_taken_rule_name", usernames=member, conn=conn, log=logger
            )

    refresher = AutomaticGroupRefresher(
        rules={"test_taken_rule_name": lambda: User.username == matched}
    )

    with capture_logs() as logs:
        async with session_manager.session() as conn:
            async with conn.begin():
                assert await refresher.ensure_groups(conn=conn, log=logger) == []
                await refresher.refresh_all(conn=conn, log=logger)

    assert "group.automatic.name_taken" in [log["event"] for log in logs]

    async with session_manager.session() as conn:
        async with conn.begin():
            group = await groups_service.read_by_name(
                name="test_taken_rule_name", conn=conn, log=logger
            )
            assert not group.automatic
            assert group.usernames == member
