"""
Core configuration
"""

import os
from uuid import uuid4

import pytest_asyncio
import structlog

from groupadmin.config.settings import Settings
from groupadmin.database.user import User
from groupadmin.service import groups as groups_service
from groupadmin.service import user as user_service
from groupadmin.service.automatic import AutomaticGroupRefresher


@pytest_asyncio.fixture(scope="session")
def database_container(tmp_path_factory):
    if os.environ.get("GROUPADMIN_TEST_POSTGRES"):
        from testcontainers.postgres import PostgresContainer

        with PostgresContainer() as container:
            yield {
                "database_type": "postgres",
                "database_user": container.username,
                "database_password": container.password,
                "database_port": container.get_exposed_port(container.port),
                "database_host": "localhost",
                "database_db": container.dbname,
                "database_echo": True,
            }
    else:
        yield {
            "database_type": "sqlite",
            "database_db": str(tmp_path_factory.mktemp("db") / "groupadmin.db"),
            "database_echo": True,
        }


@pytest_asyncio.fixture(scope="session")
def server_settings(database_container):
    yield Settings(**database_container, bootstrap_automatic_groups=False)


@pytest_asyncio.fixture(scope="session")
def database(server_settings: Settings):
    manager = server_settings.sync_manager()
    manager.create_all()
    yield
    manager.engine.dispose()


@pytest_asyncio.fixture(scope="session")
def session_manager(server_settings: Settings, database):
    yield server_settings.async_manager()


@pytest_asyncio.fixture(scope="session")
def logger():
    yield structlog.get_logger()


@pytest_asyncio.fixture(scope="session")
def make_users(session_manager, logger):
    """
    Create users with unique names, so that tests sharing the database do not
    collide. Returns the usernames in the order requested.
    """

    async def make(*prefixes: str, **attributes) -> list[str]:
        usernames = []

        async with session_manager.session() as conn:
            async with conn.begin():
                for prefix in prefixes:
                    user = await user_service.create(
                        username=f"{prefix}_{uuid4().hex[:8]}",
                        conn=conn,
                        log=logger,
                        **attributes,
                    )
                    usernames.append(user.username)

        return usernames

    yield make


@pytest_asyncio.fixture(scope="session")
def read_group(session_manager, logger):
    """
    Read a group by ID in a fresh session, so assertions see what was
    committed.
    """

    async def read(group_id):
        async with session_manager.session() as conn:
            async with conn.begin():
                return await groups_service.read_by_id(
                    group_id=group_id, conn=conn, log=logger
                )

    yield read


@pytest_asyncio.fixture(scope="session")
async def automatic_group(session_manager, logger, make_users):
    """
    An automatic group with a single member, created and filled the way the
    refresher does it.
    """
    (username,) = await make_users("automatic_member")

    refresher = AutomaticGroupRefresher(
        rules={"test_automatic_group": lambda: User.username == username}
    )

    async with session_manager.session() as conn:
        async with conn.begin():
            (group,) = await refresher.ensure_groups(conn=conn, log=logger)
            await refresher.refresh_group(group=group, conn=conn, log=logger)
            GROUP_ID = group.group_id

    yield GROUP_ID
