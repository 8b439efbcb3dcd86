"""
FastAPI app
"""

from importlib.metadata import version

from fastapi import FastAPI

from .dependencies import DATABASE_MANAGER, SETTINGS, get_refresher, logger
from .groups import group_admin_routes
from .handlers import add_exception_handlers

settings = SETTINGS()


async def lifespan(app: FastAPI):
    app.settings = settings

    if settings.create_tables:
        await DATABASE_MANAGER.create_all()

    # Ensure that the automatic groups exist before anyone lists them
    if settings.bootstrap_automatic_groups:
        async with DATABASE_MANAGER.session() as session:
            async with session.begin():
                await get_refresher().ensure_groups(conn=session, log=logger())

    yield


app = FastAPI(
    lifespan=lifespan,
    title="Group Administration API",
    summary="Administrative management of user groups and their members.",
    version=version("groupadmin"),
)

app = add_exception_handlers(app)

app.include_router(group_admin_routes, prefix="/admin/groups")
