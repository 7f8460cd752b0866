# Copyright (C) 2024 RabbitTrail Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Pytest fixtures. Services and the HTTP app run against InMemoryStorage, so no database is needed."""

import pytest
from httpx import ASGITransport, AsyncClient

from rabbittrail_server import rate_limit
from rabbittrail_server.auth import create_access_token
from rabbittrail_server.database import get_storage
from rabbittrail_server.main import app
from rabbittrail_server.storage import InMemoryStorage


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def store():
    return InMemoryStorage()


@pytest.fixture
def make_user(store):
    """Create a user straight in the store (no password hashing)."""

    async def _make(username: str, email: str | None = None):
        return await store.create_user(
            username,
            email or f"{username}@example.com",
            "not-a-real-hash",
            username.title(),
        )

    return _make


@pytest.fixture
async def client(store):
    app.dependency_overrides[get_storage] = lambda: store
    rate_limit.reset()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
    rate_limit.reset()


def auth_headers(user_id: int) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user_id)})}"}


@pytest.fixture
def headers():
    """Bearer headers for a user id."""
    return auth_headers
