"""
Fixtures for testing the HTTP API against the test database.
"""

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from groupadmin.api.app import app
from groupadmin.api.dependencies import get_async_session


@pytest_asyncio.fixture(scope="session")
async def client(session_manager):
    async def get_test_session():
        async with session_manager.session() as session:
            async with session.begin():
                yield session

    app.dependency_overrides[get_async_session] = get_test_session

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        yield client

    app.dependency_overrides.clear()
