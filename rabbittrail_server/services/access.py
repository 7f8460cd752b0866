# Copyright (C) 2024 RabbitTrail Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Project access rules. Every read and write path asks here before touching the store.

Roles:
    owner   - full control: project settings, collaborators, invitations, any entry
    editor  - read everything, add entries, change or delete own entries
    viewer  - read everything; may add entries only if viewer_can_create_entries is set
"""

import logging

from rabbittrail_server.config import settings
from rabbittrail_server.errors import Forbidden, NotFound
from rabbittrail_server.models.enums import Role
from rabbittrail_server.storage import EntryRecord, ProjectRecord, Storage

logger = logging.getLogger(__name__)


async def _role_in(store: Storage, project: ProjectRecord, user_id: int) -> Role | None:
    # Ownership comes from the project row; the owner's collaborator row mirrors it
    if project.owner_id == user_id:
        return Role.OWNER
    collab = await store.get_collaborator(project.id, user_id)
    return collab.role if collab else None


async def role_of(store: Storage, project_id: int, user_id: int) -> Role | None:
    """Return the user's role on the project, or None for no access (or no such project)."""
    project = await store.get_project(project_id)
    if not project:
        return None
    return await _role_in(store, project, user_id)


async def has_access(store: Storage, project_id: int, user_id: int) -> bool:
    return await role_of(store, project_id, user_id) is not None


async def require_access(store: Storage, project_id: int, user_id: int) -> tuple[ProjectRecord, Role]:
    """Load the project and the caller's role. NotFound if missing, Forbidden without a role."""
    project = await store.get_project(project_id)
    if not project:
        raise NotFound("Project not found")
    role = await _role_in(store, project, user_id)
    if role is None:
        logger.debug("User %s denied access to project %s", user_id, project_id)
        raise Forbidden("You don't have access to this project")
    return project, role


async def require_owner(
    store: Storage, project_id: int, user_id: int, action: str = "do this"
) -> ProjectRecord:
    """Load the project, failing unless the caller owns it."""
    project = await store.get_project(project_id)
    if not project:
        raise NotFound("Project not found")
    if await _role_in(store, project, user_id) != Role.OWNER:
        logger.debug("User %s is not owner of project %s (%s)", user_id, project_id, action)
        raise Forbidden(f"Only the owner can {action}")
    return project


def can_create_entry(role: Role | None) -> bool:
    if role in (Role.OWNER, Role.EDITOR):
        return True
    return role == Role.VIEWER and settings.viewer_can_create_entries


def can_modify_entry(role: Role | None, entry: EntryRecord, user_id: int) -> bool:
    """Owner may change any entry; anyone still on the project may change their own."""
    if role is None:
        return False
    return role == Role.OWNER or entry.created_by_id == user_id
