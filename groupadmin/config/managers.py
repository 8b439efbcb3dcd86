"""
Core client, including session management.
"""

from sqlalchemy import URL, Engine, event, make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel, create_engine

from groupadmin.database.meta import ALL_TABLES

TABLES = [table.__table__ for table in ALL_TABLES]


def use_explicit_sqlite_transactions(engine: Engine):
    """
    The sqlite drivers defer BEGIN until the first write, which breaks
    SAVEPOINT. Hand transaction control to SQLAlchemy instead.

    Transactions begin IMMEDIATE, taking the write lock up front. SQLite
    ignores FOR UPDATE, and two deferred transactions that read the same group
    and then write would fail to upgrade their locks. Instead the second one
    waits for the first to commit.
    """

    @event.listens_for(engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class SyncSessionManager:
    """
    A manager for synchronous sessions. Expected usage of this class to interact:

    manager = SyncSessionManager(conn_url)

    with manager.session() as conn:
        group = conn.get(Group, group_id)
    """

    connection_url: str | URL
    engine: Engine
    session: sessionmaker

    def __init__(self, connection_url: str | URL, echo: bool = False):
        self.connection_url = connection_url
        self.engine = create_engine(self.connection_url, echo=echo)
        if make_url(connection_url).get_backend_name() == "sqlite":
            use_explicit_sqlite_transactions(self.engine)
        self.session = sessionmaker(self.engine)

    def create_all(self):
        """
        Run the `SQLModel.metadata.create_all` migration tool. Required
        to set up the table schema.
        """
        with self.engine.begin() as conn:
            SQLModel.metadata.create_all(conn, tables=TABLES)

    def drop_all(self):
        """
        Run the `SQLModel.metadata.drop_all` deletion method. WARNING: this
        will delete all data in your database; you probably don't want to do this
        unless you are writing a test.
        """
        with self.engine.begin() as conn:
            SQLModel.metadata.drop_all(conn, tables=TABLES)


class AsyncSessionManager:
    """
    A manager for asynchronous sessions. Expected usage of this class to interact:

    manager = AsyncSessionManager(conn_url)

    async with manager.session() as conn:
        async with conn.begin():
            group = await read_by_id(group_id=group_id, conn=conn, log=log)
    """

    connection_url: str | URL
    engine: AsyncEngine
    session: async_sessionmaker

    def __init__(self, connection_url: str | URL, echo: bool = False):
        self.connection_url = connection_url
        self.engine = create_async_engine(self.connection_url, echo=echo)
        if make_url(connection_url).get_backend_name() == "sqlite":
            use_explicit_sqlite_transactions(self.engine.sync_engine)
        self.session = async_sessionmaker(self.engine, expire_on_commit=False)

    async def create_all(self):
        """
        Run the `SQLModel.metadata.create_all` migration tool. Required
        to set up the table schema.
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all, tables=TABLES)

    async def drop_all(self):
        """
        Run the `SQLModel.metadata.drop_all` deletion method. WARNING: this
        will delete all data in your database; you probably don't want to do this
        unless you are writing a test.
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.drop_all, tables=TABLES)
