# Copyright (C) 2024 RabbitTrail Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Auth endpoint tests."""

import pytest
from httpx import AsyncClient

pytestmark = pytest.mark.anyio

PASSWORD = "testpass123"


async def _register(client: AsyncClient, username: str, email: str | None = None, **extra):
    return await client.post(
        "/api/v1/auth/register",
        json={
            "username": username,
            "email": email or f"{username}@example.com",
            "password": PASSWORD,
            **extra,
        },
    )


async def test_login_invalid_credentials(client: AsyncClient):
    """Login with wrong password returns 401."""
    r = await client.post(
        "/api/v1/auth/login",
        json={"username": "nonexistent", "password": "wrong"},
    )
    assert r.status_code == 401
    assert "detail" in r.json()


async def test_register_and_login(client: AsyncClient):
    """Register a user, log in and call /me with the token."""
    reg = await _register(client, "alice", "Alice@Example.com", display_name="Alice A.")
    assert reg.status_code == 201
    data = reg.json()
    assert data["username"] == "alice"
    assert data["email"] == "alice@example.com"
    assert data["display_name"] == "Alice A."
    assert data["joined_project_id"] is None

    wrong = await client.post(
        "/api/v1/auth/login", json={"username": "alice", "password": "nope"}
    )
    assert wrong.status_code == 401

    login = await client.post(
        "/api/v1/auth/login", json={"username": "alice", "password": PASSWORD}
    )
    assert login.status_code == 200
    token = login.json()["access_token"]
    assert login.json()["token_type"] == "bearer"

    me = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["id"] == data["id"]


async def test_display_name_defaults_to_username(client: AsyncClient):
    reg = await _register(client, "bob")
    assert reg.json()["display_name"] == "bob"


async def test_duplicate_username_or_email(client: AsyncClient):
    assert (await _register(client, "alice")).status_code == 201
    dup_name = await _register(client, "alice", "other@example.com")
    assert dup_name.status_code == 409
    assert dup_name.json()["code"] == "conflict"
    dup_email = await _register(client, "alice2", "ALICE@example.com")
    assert dup_email.status_code == 409


async def test_register_rejects_bad_email(client: AsyncClient):
    r = await _register(client, "alice", "not-an-email")
    assert r.status_code == 400
    body = r.json()
    assert body["code"] == "validation_error"
    assert any(e["field"].endswith("email") for e in body["errors"])


async def test_me_requires_auth(client: AsyncClient):
    """GET /auth/me without token returns 401."""
    r = await client.get("/api/v1/auth/me")
    assert r.status_code == 401
    r = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer garbage"})
    assert r.status_code == 401


async def test_update_profile(client: AsyncClient, make_user, headers):
    alice = await make_user("alice")
    await make_user("bob")
    r = await client.patch(
        "/api/v1/auth/me",
        json={"display_name": "Detective Alice", "email": "Alice.New@Example.com"},
        headers=headers(alice.id),
    )
    assert r.status_code == 200
    assert r.json()["display_name"] == "Detective Alice"
    assert r.json()["email"] == "alice.new@example.com"

    taken = await client.patch(
        "/api/v1/auth/me", json={"email": "bob@example.com"}, headers=headers(alice.id)
    )
    assert taken.status_code == 409

    blank = await client.patch(
        "/api/v1/auth/me", json={"display_name": "  "}, headers=headers(alice.id)
    )
    assert blank.status_code == 400


async def test_register_is_rate_limited(client: AsyncClient):
    for _ in range(5):
        r = await client.post("/api/v1/auth/register", json={})
        assert r.status_code == 400
    r = await client.post("/api/v1/auth/register", json={})
    assert r.status_code == 429


async def test_overlong_display_name_is_400(client: AsyncClient, make_user, headers):
    reg = await _register(client, "carol", display_name="c" * 300)
    assert reg.status_code == 400
    assert reg.json()["detail"] == "Display name too long"

    alice = await make_user("alice")
    r = await client.patch(
        "/api/v1/auth/me", json={"display_name": "d" * 400}, headers=headers(alice.id)
    )
    assert r.status_code == 400
    assert r.json()["code"] == "validation_error"
