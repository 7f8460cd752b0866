# Copyright (C) 2024 RabbitTrail Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Collaborator management. The owner's row can't be re-roled or removed here."""

import logging
from datetime import timedelta

from rabbittrail_server.errors import Forbidden, NotFound
from rabbittrail_server.models.enums import Role
from rabbittrail_server.services.access import require_access, require_owner
from rabbittrail_server.services.invitations import (
    InvitationOutcome,
    issue_invitation,
    parse_grant_role,
)
from rabbittrail_server.storage import CollaboratorRecord, Storage, UserRecord

logger = logging.getLogger(__name__)


async def list_collaborators(
    store: Storage, project_id: int, user_id: int
) -> list[tuple[CollaboratorRecord, UserRecord]]:
    """Collaborators with their user records. Any role may look."""
    await require_access(store, project_id, user_id)
    collaborators = await store.list_collaborators(project_id)
    users = {u.id: u for u in await store.get_users(c.user_id for c in collaborators)}
    return [(c, users[c.user_id]) for c in collaborators if c.user_id in users]


async def add_collaborator(
    store: Storage,
    project_id: int,
    user_id: int,
    email: str,
    role: str | Role = Role.EDITOR,
    expires_in: timedelta | None = None,
) -> InvitationOutcome:
    """Add by email; emails without an account get a pending invitation instead."""
    return await issue_invitation(store, project_id, email, role, user_id, expires_in)


async def _require_non_owner_target(
    store: Storage, project_id: int, target_user_id: int, action: str
) -> CollaboratorRecord:
    project = await store.get_project(project_id)
    target = await store.get_collaborator(project_id, target_user_id)
    if not target:
        raise NotFound("Collaborator not found")
    if target.role == Role.OWNER or project.owner_id == target_user_id:
        raise Forbidden(f"The project owner cannot be {action}")
    return target


async def update_collaborator_role(
    store: Storage, project_id: int, user_id: int, target_user_id: int, role: str | Role
) -> CollaboratorRecord:
    await require_owner(store, project_id, user_id, "change collaborator roles")
    new_role = parse_grant_role(role)
    await _require_non_owner_target(store, project_id, target_user_id, "re-assigned")
    async with store.transaction():
        collab = await store.update_collaborator_role(project_id, target_user_id, new_role)
    logger.info("User %s is now %s on project %s", target_user_id, new_role.value, project_id)
    return collab


async def remove_collaborator(
    store: Storage, project_id: int, user_id: int, target_user_id: int
) -> None:
    await require_owner(store, project_id, user_id, "remove collaborators")
    await _require_non_owner_target(store, project_id, target_user_id, "removed")
    async with store.transaction():
        await store.remove_collaborator(project_id, target_user_id)
    logger.info("User %s removed from project %s", target_user_id, project_id)
