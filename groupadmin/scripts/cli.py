"""
A simple CLI for running and maintaining the server.
"""

import asyncio
import sys

import uvicorn
from structlog import get_logger


def run_server():
    from groupadmin.config.settings import Settings

    settings = Settings()
    uvicorn.run("groupadmin.api.app:app", host=settings.host, port=settings.port)


def setup():
    """
    Create the table schema and any missing automatic groups.
    """
    from groupadmin.config.settings import Settings
    from groupadmin.service.automatic import AutomaticGroupRefresher

    settings = Settings()
    settings.sync_manager().create_all()

    async def bootstrap():
        manager = settings.async_manager()
        async with manager.session() as conn:
            async with conn.begin():
                await AutomaticGroupRefresher().ensure_groups(
                    conn=conn, log=get_logger()
                )
        await manager.engine.dispose()

    asyncio.run(bootstrap())


def refresh():
    """
    Recompute the members of every automatic group once.
    """
    from groupadmin.config.settings import Settings
    from groupadmin.service.automatic import AutomaticGroupRefresher

    settings = Settings()

    async def refresh_all():
        manager = settings.async_manager()
        async with manager.session() as conn:
            async with conn.begin():
                await AutomaticGroupRefresher().refresh_all(conn=conn, log=get_logger())
        await manager.engine.dispose()

    asyncio.run(refresh_all())


def main():
    try:
        command = sys.argv[1]
    except IndexError:
        command = None

    if command == "run":
        run_server()
    elif command == "setup":
        setup()
        print("Setup complete")
    elif command == "refresh":
        refresh()
        print("Automatic groups refreshed")
    else:
        print("Supported commands are groupadmin run, groupadmin setup, or groupadmin refresh")
        exit(1)
