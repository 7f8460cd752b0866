# Copyright (C) 2024 RabbitTrail Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Project commands: create, read, update, archive, export and cascade delete."""

import logging

from rabbittrail_server.errors import ValidationError
from rabbittrail_server.models.enums import Role
from rabbittrail_server.models.timestamp import utcnow
from rabbittrail_server.services.access import require_access, require_owner
from rabbittrail_server.storage import ProjectRecord, Storage

logger = logging.getLogger(__name__)


def _clean_title(title: str | None) -> str:
    title = (title or "").strip()
    if not title:
        raise ValidationError("Title is required")
    if len(title) > 255:
        raise ValidationError("Title too long")
    return title


async def create_project(
    store: Storage, owner_id: int, title: str, description: str | None = None
) -> ProjectRecord:
    """Create a project and its owner collaborator row in one transaction."""
    title = _clean_title(title)
    async with store.transaction():
        project = await store.create_project(title, description, owner_id)
        await store.add_collaborator(project.id, owner_id, Role.OWNER)
    logger.info("Project %s created by user %s", project.id, owner_id)
    return project


async def list_projects(
    store: Storage, user_id: int, include_archived: bool = True
) -> list[ProjectRecord]:
    projects = await store.list_projects_for_user(user_id)
    if not include_archived:
        projects = [p for p in projects if not p.archived]
    return projects


async def get_project(store: Storage, project_id: int, user_id: int) -> tuple[ProjectRecord, Role]:
    return await require_access(store, project_id, user_id)


async def update_project(
    store: Storage,
    project_id: int,
    user_id: int,
    **changes: str | None,
) -> ProjectRecord:
    """Apply the given title and/or description. A description of None clears it."""
    await require_owner(store, project_id, user_id, "modify project details")
    fields = {}
    if "title" in changes:
        fields["title"] = _clean_title(changes["title"])
    if "description" in changes:
        fields["description"] = changes["description"]
    if not fields:
        return await store.get_project(project_id)
    async with store.transaction():
        return await store.update_project(project_id, **fields)


async def set_archived(store: Storage, project_id: int, user_id: int, archived: bool) -> ProjectRecord:
    """Archive or restore a project. Archiving an archived project keeps its original timestamp."""
    project = await require_owner(
        store, project_id, user_id, "archive the project" if archived else "unarchive the project"
    )
    if project.archived == archived:
        return project
    async with store.transaction():
        project = await store.update_project(
            project_id, archived=archived, archived_at=utcnow() if archived else None
        )
    logger.info("Project %s %s", project_id, "archived" if archived else "unarchived")
    return project


async def delete_project(store: Storage, project_id: int, user_id: int) -> None:
    """Delete the project with its entries, collaborators and invitations."""
    await require_owner(store, project_id, user_id, "delete the project")
    async with store.transaction():
        entries = await store.delete_entries_for_project(project_id)
        collaborators = await store.delete_collaborators_for_project(project_id)
        invitations = await store.delete_invitations_for_project(project_id)
        await store.delete_project(project_id)
    logger.info(
        "Project %s deleted (%d entries, %d collaborators, %d invitations)",
        project_id,
        entries,
        collaborators,
        invitations,
    )


async def export_project(store: Storage, project_id: int, user_id: int) -> dict:
    """Everything a collaborator can see in a project, as one JSON-ready document."""
    project, _role = await require_access(store, project_id, user_id)
    entries = await store.list_entries(project_id)
    collaborators = await store.list_collaborators(project_id)
    users = {u.id: u for u in await store.get_users(c.user_id for c in collaborators)}
    return {
        "exported_at": utcnow().isoformat(),
        "project": {
            "id": project.id,
            "title": project.title,
            "description": project.description,
            "owner_id": project.owner_id,
            "archived": project.archived,
            "created_at": project.created_at.isoformat(),
        },
        "collaborators": [
            {
                "user_id": c.user_id,
                "username": users[c.user_id].username if c.user_id in users else None,
                "display_name": users[c.user_id].display_name if c.user_id in users else None,
                "role": c.role.value,
            }
            for c in collaborators
        ],
        "entries": [
            {
                "id": e.id,
                "title": e.title,
                "description": e.description,
                "latitude": e.latitude,
                "longitude": e.longitude,
                "entry_type": e.entry_type,
                "media_url_image": e.media_url_image,
                "media_url_audio": e.media_url_audio,
                "tags": e.tags,
                "links": e.links,
                "created_by_id": e.created_by_id,
                "created_at": e.created_at.isoformat(),
                "updated_at": e.updated_at.isoformat(),
            }
            for e in entries
        ],
    }
