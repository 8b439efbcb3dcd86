"""
Exception handlers shared by all routes.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from structlog import get_logger

from groupadmin.service.groups import GroupNotFound


def group_not_found_handler(request: Request, exc: GroupNotFound) -> JSONResponse:
    """
    Turns a `GroupNotFound` raised anywhere below a route into a 404.
    """
    log = get_logger()
    log.info("api.group_not_found", url=str(request.url), error=str(exc))

    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)}
    )


def add_exception_handlers(app: FastAPI) -> FastAPI:
    app.add_exception_handler(GroupNotFound, group_not_found_handler)
    return app
