"""
Dependencies used by the API.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger
from structlog.typing import FilteringBoundLogger

from groupadmin.config.settings import Settings
from groupadmin.service.automatic import AutomaticGroupRefresher


@lru_cache
def SETTINGS():
    return Settings()


DATABASE_MANAGER = SETTINGS().async_manager()


async def get_async_session():
    # One transaction per request: committed on success, rolled back if the
    # route raises.
    async with DATABASE_MANAGER.session() as session:
        async with session.begin():
            yield session


def logger():
    return get_logger()


@lru_cache
def get_refresher():
    return AutomaticGroupRefresher()


DatabaseDependency = Annotated[AsyncSession, Depends(get_async_session)]
LoggerDependency = Annotated[FilteringBoundLogger, Depends(logger)]
RefresherDependency = Annotated[AutomaticGroupRefresher, Depends(get_refresher)]
