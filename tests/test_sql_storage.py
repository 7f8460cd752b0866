# Copyright (C) 2024 RabbitTrail Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""SqlStorage against a real PostgreSQL database.

Set RABBITTRAIL_TEST_DATABASE_URL (postgresql+asyncpg://...) to run these.
Tables are dropped and recreated for every test.
"""

import os
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from rabbittrail_server.errors import AlreadyUsed, Conflict, Expired
from rabbittrail_server.models import Base, InvitationStatus, Role
from rabbittrail_server.models.timestamp import utcnow
from rabbittrail_server.services import entries, invitations, projects
from rabbittrail_server.storage import SqlStorage, Storage

DATABASE_URL = os.environ.get("RABBITTRAIL_TEST_DATABASE_URL")

pytestmark = [
    pytest.mark.anyio,
    pytest.mark.skipif(not DATABASE_URL, reason="RABBITTRAIL_TEST_DATABASE_URL not set"),
]


@pytest.fixture
async def sessions():
    engine = create_async_engine(DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def sql_store(sessions):
    async with sessions() as session:
        yield SqlStorage(session)


async def _user(store, name):
    async with store.transaction():
        return await store.create_user(name, f"{name}@x.com", "hash", name)


async def test_sql_store_satisfies_protocol(sql_store):
    assert isinstance(sql_store, Storage)


async def test_create_project_writes_owner_row(sql_store):
    owner = await _user(sql_store, "owner")
    project = await projects.create_project(sql_store, owner.id, "Case")
    rows = await sql_store.list_collaborators(project.id)
    assert [(c.user_id, c.role) for c in rows] == [(owner.id, Role.OWNER)]


async def test_duplicate_collaborator_is_conflict(sql_store):
    owner = await _user(sql_store, "owner")
    project = await projects.create_project(sql_store, owner.id, "Case")
    with pytest.raises(Conflict):
        async with sql_store.transaction():
            await sql_store.add_collaborator(project.id, owner.id, Role.EDITOR)
    assert (await sql_store.get_collaborator(project.id, owner.id)).role == Role.OWNER


async def test_cascade_delete(sql_store):
    owner = await _user(sql_store, "owner")
    project = await projects.create_project(sql_store, owner.id, "Case")
    await entries.create_entry(sql_store, project.id, owner.id, title="Lead", tags=["a"])
    await invitations.issue_invitation(sql_store, project.id, "bob@x.com", "editor", owner.id)

    await projects.delete_project(sql_store, project.id, owner.id)
    assert await sql_store.get_project(project.id) is None
    assert await sql_store.list_entries(project.id) == []
    assert await sql_store.list_collaborators(project.id) == []
    assert await sql_store.list_invitations(project.id) == []


async def test_bare_project_delete_with_dependents_is_conflict(sql_store):
    owner = await _user(sql_store, "owner")
    project = await projects.create_project(sql_store, owner.id, "Case")
    with pytest.raises(Conflict):
        async with sql_store.transaction():
            await sql_store.delete_project(project.id)
    assert await sql_store.get_project(project.id) is not None


async def test_accept_once(sql_store):
    owner = await _user(sql_store, "owner")
    project = await projects.create_project(sql_store, owner.id, "Case")
    outcome = await invitations.issue_invitation(sql_store, project.id, "bob@x.com", "viewer", owner.id)
    bob = await _user(sql_store, "bob")

    collab = await invitations.accept(sql_store, outcome.invitation.token, bob.id)
    assert collab.role == Role.VIEWER
    inv = await sql_store.get_invitation_by_token(outcome.invitation.token)
    assert inv.status == InvitationStatus.ACCEPTED
    assert inv.accepted_at is not None
    with pytest.raises(AlreadyUsed):
        await invitations.accept(sql_store, outcome.invitation.token, bob.id)


async def test_accept_from_two_sessions(sessions):
    async with sessions() as s1, sessions() as s2:
        a, b = SqlStorage(s1), SqlStorage(s2)
        owner = await _user(a, "owner")
        project = await projects.create_project(a, owner.id, "Case")
        outcome = await invitations.issue_invitation(a, project.id, "bob@x.com", "editor", owner.id)
        bob = await _user(a, "bob")
        token = outcome.invitation.token

        stale = await invitations.resolve_token(b, token)
        await s2.commit()

        await invitations.accept(a, token, bob.id)
        # The status-guarded update refuses a transition based on a stale read
        async with b.transaction():
            assert not await b.transition_invitation(stale.id, InvitationStatus.ACCEPTED)
        with pytest.raises(AlreadyUsed):
            await invitations.accept(b, token, bob.id)
        assert len([c for c in await b.list_collaborators(project.id) if c.user_id == bob.id]) == 1


async def test_second_pending_invitation_is_conflict(sql_store):
    owner = await _user(sql_store, "owner")
    project = await projects.create_project(sql_store, owner.id, "Case")
    expires = utcnow() + timedelta(days=1)
    async with sql_store.transaction():
        first = await sql_store.create_invitation(project.id, "bob@x.com", Role.EDITOR, "t1", expires, owner.id)
    with pytest.raises(Conflict):
        async with sql_store.transaction():
            await sql_store.create_invitation(project.id, "bob@x.com", Role.EDITOR, "t2", expires, owner.id)

    # Only pending rows are constrained
    async with sql_store.transaction():
        assert await sql_store.transition_invitation(first.id, InvitationStatus.EXPIRED)
        await sql_store.create_invitation(project.id, "bob@x.com", Role.EDITOR, "t3", expires, owner.id)
    assert len(await sql_store.list_invitations(project.id)) == 2


async def test_lazy_expiry(sql_store):
    owner = await _user(sql_store, "owner")
    project = await projects.create_project(sql_store, owner.id, "Case")
    async with sql_store.transaction():
        inv = await sql_store.create_invitation(
            project.id, "bob@x.com", Role.EDITOR, "old", utcnow() - timedelta(seconds=1), owner.id
        )
    with pytest.raises(Expired):
        await invitations.resolve_token(sql_store, inv.token)
    outcome = await invitations.issue_invitation(sql_store, project.id, "bob@x.com", "editor", owner.id)
    assert outcome.status == "invited"
    assert (await sql_store.get_invitation_by_token("old")).status == InvitationStatus.EXPIRED
