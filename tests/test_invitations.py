# Copyright (C) 2024 RabbitTrail Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Invitation lifecycle: issue, resolve, accept, expiry and races."""

import asyncio
from datetime import timedelta

import pytest

from rabbittrail_server.errors import (
    AlreadyUsed,
    Conflict,
    EmailMismatch,
    Expired,
    Forbidden,
    NotFound,
    ValidationError,
)
from rabbittrail_server.models.enums import InvitationStatus, Role
from rabbittrail_server.models.timestamp import utcnow
from rabbittrail_server.services import invitations, projects, users

pytestmark = pytest.mark.anyio


@pytest.fixture
async def project(store, make_user):
    owner = await make_user("u1")
    return await projects.create_project(store, owner.id, "P1")


async def _invite(store, project, email="bob@x.com", role="editor", **kwargs):
    outcome = await invitations.issue_invitation(
        store, project.id, email, role, project.owner_id, **kwargs
    )
    assert outcome.status == "invited"
    return outcome.invitation


def _expire(store, invitation):
    store.invitations[invitation.id].expires_at = utcnow() - timedelta(seconds=1)


def _rows_for(store, project_id, user_id):
    return [
        c for c in store.collaborators.values() if c.project_id == project_id and c.user_id == user_id
    ]


async def test_invite_register_accept_scenario(store, project):
    """Owner invites an email without an account; the new account accepts once."""
    owner_rows = [c for c in store.collaborators.values() if c.project_id == project.id]
    assert [(c.user_id, c.role) for c in owner_rows] == [(project.owner_id, Role.OWNER)]

    inv = await _invite(store, project)
    assert inv.status == InvitationStatus.PENDING
    assert inv.token

    bob, joined = await users.register(store, "bob", "bob@x.com", "secret")
    assert joined is None

    collab = await invitations.accept(store, inv.token, bob.id)
    assert (collab.project_id, collab.user_id, collab.role) == (project.id, bob.id, Role.EDITOR)
    stored = store.invitations[inv.id]
    assert stored.status == InvitationStatus.ACCEPTED
    assert stored.accepted_at is not None

    with pytest.raises(AlreadyUsed):
        await invitations.accept(store, inv.token, bob.id)
    assert len(_rows_for(store, project.id, bob.id)) == 1


async def test_tokens_are_long_and_distinct(store, project):
    tokens = {
        (await _invite(store, project, f"user{i}@x.com")).token for i in range(20)
    }
    assert len(tokens) == 20
    # token_urlsafe(32) -> 43 url-safe characters
    assert all(len(t) >= 43 for t in tokens)


async def test_default_expiry_is_seven_days(store, project):
    before = utcnow()
    inv = await _invite(store, project)
    assert before + timedelta(days=7) <= inv.expires_at <= utcnow() + timedelta(days=7)


async def test_custom_lifetime(store, project):
    inv = await _invite(store, project, expires_in=timedelta(hours=1))
    assert inv.expires_at <= utcnow() + timedelta(hours=1)
    with pytest.raises(ValidationError):
        await invitations.issue_invitation(
            store, project.id, "z@x.com", "editor", project.owner_id, expires_in=timedelta(0)
        )


async def test_unknown_token(store, make_user):
    user = await make_user("bob", "bob@x.com")
    with pytest.raises(NotFound):
        await invitations.resolve_token(store, "no-such-token")
    with pytest.raises(NotFound):
        await invitations.accept(store, "no-such-token", user.id)


async def test_expired_invitation_still_pending(store, make_user, project):
    inv = await _invite(store, project)
    _expire(store, inv)
    bob = await make_user("bob", "bob@x.com")
    assert store.invitations[inv.id].status == InvitationStatus.PENDING

    with pytest.raises(Expired):
        await invitations.resolve_token(store, inv.token)
    with pytest.raises(Expired):
        await invitations.accept(store, inv.token, bob.id)
    assert _rows_for(store, project.id, bob.id) == []


async def test_expired_invitation_is_replaced_on_reissue(store, project):
    old = await _invite(store, project)
    _expire(store, old)
    assert await invitations.list_pending(store, project.id, project.owner_id) == []

    new = await _invite(store, project)
    assert new.token != old.token
    assert store.invitations[old.id].status == InvitationStatus.EXPIRED
    assert [i.id for i in await invitations.list_pending(store, project.id, project.owner_id)] == [new.id]


async def test_email_mismatch_creates_nothing(store, make_user, project):
    inv = await _invite(store, project)
    mallory = await make_user("mallory", "mallory@x.com")
    with pytest.raises(EmailMismatch):
        await invitations.accept(store, inv.token, mallory.id)
    assert _rows_for(store, project.id, mallory.id) == []
    assert store.invitations[inv.id].status == InvitationStatus.PENDING


async def test_email_match_ignores_case(store, make_user, project):
    inv = await _invite(store, project, "Bob@X.com")
    bob = await make_user("bob", "bob@x.com")
    collab = await invitations.accept(store, inv.token, bob.id)
    assert collab.user_id == bob.id


async def test_accept_when_already_member_rolls_back(store, make_user, project):
    """The status change is undone when the collaborator row already exists."""
    inv = await _invite(store, project)
    bob = await make_user("bob", "bob@x.com")
    await store.add_collaborator(project.id, bob.id, Role.VIEWER)

    with pytest.raises(Conflict):
        await invitations.accept(store, inv.token, bob.id)
    assert store.invitations[inv.id].status == InvitationStatus.PENDING
    assert store.invitations[inv.id].accepted_at is None
    assert [c.role for c in _rows_for(store, project.id, bob.id)] == [Role.VIEWER]


async def test_concurrent_accepts_create_one_row(store, make_user, project):
    inv = await _invite(store, project)
    bob = await make_user("bob", "bob@x.com")

    results = await asyncio.gather(
        invitations.accept(store, inv.token, bob.id),
        invitations.accept(store, inv.token, bob.id),
        return_exceptions=True,
    )
    accepted = [r for r in results if not isinstance(r, Exception)]
    failed = [r for r in results if isinstance(r, Exception)]
    assert len(accepted) == 1
    assert len(failed) == 1
    assert isinstance(failed[0], AlreadyUsed)
    assert len(_rows_for(store, project.id, bob.id)) == 1


async def test_concurrent_issue_creates_one_invitation(store, project):
    results = await asyncio.gather(
        *(
            invitations.issue_invitation(store, project.id, "bob@x.com", "editor", project.owner_id)
            for _ in range(3)
        )
    )
    assert sorted(r.status for r in results) == ["invited", "pending", "pending"]
    assert len({r.invitation.token for r in results}) == 1
    assert len(store.invitations) == 1


async def test_store_rejects_second_pending_invitation(store, project):
    """The pending-invitation uniqueness holds below the service too."""
    inv = await _invite(store, project)
    with pytest.raises(Conflict):
        await store.create_invitation(
            project.id, "bob@x.com", Role.EDITOR, "other-token", inv.expires_at, project.owner_id
        )


async def test_guarded_transition(store, project):
    inv = await _invite(store, project)
    assert await store.transition_invitation(inv.id, InvitationStatus.ACCEPTED)
    assert not await store.transition_invitation(inv.id, InvitationStatus.ACCEPTED)
    assert not await store.transition_invitation(inv.id, InvitationStatus.EXPIRED)


async def test_describe_invitation(store, project):
    inv = await _invite(store, project, role="viewer")
    found, found_project = await invitations.describe_invitation(store, inv.token)
    assert found.id == inv.id
    assert found.role == Role.VIEWER
    assert found_project.title == "P1"


async def test_list_pending_owner_only(store, make_user, project):
    editor = await make_user("ed")
    await store.add_collaborator(project.id, editor.id, Role.EDITOR)
    await _invite(store, project)
    with pytest.raises(Forbidden):
        await invitations.list_pending(store, project.id, editor.id)
    assert len(await invitations.list_pending(store, project.id, project.owner_id)) == 1


async def test_register_with_invitation_joins_project(store, project):
    inv = await _invite(store, project, role="viewer")
    bob, collab = await users.register(
        store, "bob", "BOB@x.com", "secret", invitation_token=inv.token
    )
    assert bob.email == "bob@x.com"
    assert (collab.project_id, collab.user_id, collab.role) == (project.id, bob.id, Role.VIEWER)
    assert store.invitations[inv.id].status == InvitationStatus.ACCEPTED


async def test_register_with_wrong_email_creates_no_account(store, project):
    inv = await _invite(store, project)
    with pytest.raises(EmailMismatch):
        await users.register(store, "eve", "eve@x.com", "secret", invitation_token=inv.token)
    assert await store.get_user_by_username("eve") is None
    assert store.invitations[inv.id].status == InvitationStatus.PENDING


async def test_register_with_expired_token_creates_no_account(store, project):
    inv = await _invite(store, project)
    _expire(store, inv)
    with pytest.raises(Expired):
        await users.register(store, "bob", "bob@x.com", "secret", invitation_token=inv.token)
    assert store.users.keys() == {project.owner_id}
