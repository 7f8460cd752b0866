# Copyright (C) 2024 RabbitTrail Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Role evaluation and the owner/editor/viewer permission matrix."""

import pytest

from rabbittrail_server.config import settings
from rabbittrail_server.errors import Forbidden, NotFound
from rabbittrail_server.models.enums import Role
from rabbittrail_server.models.timestamp import utcnow
from rabbittrail_server.services import access, projects
from rabbittrail_server.storage import EntryRecord

pytestmark = pytest.mark.anyio


@pytest.fixture
async def project(store, make_user):
    owner = await make_user("owner")
    return await projects.create_project(store, owner.id, "Missing hiker")


async def test_role_of_owner_editor_viewer_and_stranger(store, make_user, project):
    editor = await make_user("ed")
    viewer = await make_user("vi")
    stranger = await make_user("st")
    await store.add_collaborator(project.id, editor.id, Role.EDITOR)
    await store.add_collaborator(project.id, viewer.id, Role.VIEWER)

    assert await access.role_of(store, project.id, project.owner_id) == Role.OWNER
    assert await access.role_of(store, project.id, editor.id) == Role.EDITOR
    assert await access.role_of(store, project.id, viewer.id) == Role.VIEWER
    assert await access.role_of(store, project.id, stranger.id) is None
    assert await access.has_access(store, project.id, viewer.id)
    assert not await access.has_access(store, project.id, stranger.id)


async def test_ownership_comes_from_project_row(store, project):
    """The owner keeps the owner role even if the mirrored collaborator row is gone."""
    await store.delete_collaborators_for_project(project.id)
    assert await access.role_of(store, project.id, project.owner_id) == Role.OWNER


async def test_role_of_missing_project_is_none(store, make_user):
    user = await make_user("nobody")
    assert await access.role_of(store, 999, user.id) is None


async def test_require_access_not_found_before_forbidden(store, make_user, project):
    stranger = await make_user("st")
    with pytest.raises(NotFound):
        await access.require_access(store, 999, stranger.id)
    with pytest.raises(Forbidden):
        await access.require_access(store, project.id, stranger.id)
    found, role = await access.require_access(store, project.id, project.owner_id)
    assert found.id == project.id
    assert role == Role.OWNER


@pytest.mark.parametrize("role", [Role.EDITOR, Role.VIEWER])
async def test_require_owner_denies_every_other_role(store, make_user, project, role):
    member = await make_user("member")
    await store.add_collaborator(project.id, member.id, role)
    with pytest.raises(Forbidden) as exc:
        await access.require_owner(store, project.id, member.id, "delete the project")
    assert exc.value.message == "Only the owner can delete the project"
    assert (await access.require_owner(store, project.id, project.owner_id)).id == project.id


async def test_require_owner_missing_project(store, make_user):
    user = await make_user("u")
    with pytest.raises(NotFound):
        await access.require_owner(store, 42, user.id)


def test_viewer_cannot_create_entries_by_default():
    assert access.can_create_entry(Role.OWNER)
    assert access.can_create_entry(Role.EDITOR)
    assert not access.can_create_entry(Role.VIEWER)
    assert not access.can_create_entry(None)


def test_viewer_create_is_configurable(monkeypatch):
    monkeypatch.setattr(settings, "viewer_can_create_entries", True)
    assert access.can_create_entry(Role.VIEWER)
    assert not access.can_create_entry(None)


def _entry(created_by_id: int) -> EntryRecord:
    now = utcnow()
    return EntryRecord(
        id=1,
        project_id=1,
        created_by_id=created_by_id,
        title="Footprints",
        created_at=now,
        updated_at=now,
    )


def test_can_modify_entry_owner_or_author():
    entry = _entry(created_by_id=5)
    assert access.can_modify_entry(Role.OWNER, entry, 1)
    assert access.can_modify_entry(Role.EDITOR, entry, 5)
    assert access.can_modify_entry(Role.VIEWER, entry, 5)
    assert not access.can_modify_entry(Role.EDITOR, entry, 6)
    # Authors who left the project lose the override
    assert not access.can_modify_entry(None, entry, 5)
