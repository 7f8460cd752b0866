# Copyright (C) 2024 RabbitTrail Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Project API routes."""

from fastapi import APIRouter, Depends, Query, Response, status

from rabbittrail_server.auth import get_current_user_id
from rabbittrail_server.database import get_storage
from rabbittrail_server.models.enums import Role
from rabbittrail_server.services import projects
from rabbittrail_server.storage import Storage
from rabbittrail_server.api.schemas import ProjectCreate, ProjectResponse, ProjectUpdate

router = APIRouter(prefix="/projects", tags=["projects"])


@router.get("", response_model=list[ProjectResponse])
async def list_projects(
    include_archived: bool = Query(True, description="Include archived projects"),
    user_id: int = Depends(get_current_user_id),
    store: Storage = Depends(get_storage),
) -> list[ProjectResponse]:
    """List projects the current user owns or collaborates on."""
    found = await projects.list_projects(store, user_id, include_archived=include_archived)
    return [ProjectResponse.model_validate(p) for p in found]


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    data: ProjectCreate,
    user_id: int = Depends(get_current_user_id),
    store: Storage = Depends(get_storage),
) -> ProjectResponse:
    """Create a project owned by the current user."""
    project = await projects.create_project(store, user_id, data.title, data.description)
    return ProjectResponse.model_validate(project).model_copy(update={"role": Role.OWNER})


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: int,
    user_id: int = Depends(get_current_user_id),
    store: Storage = Depends(get_storage),
) -> ProjectResponse:
    """Get project by ID, with the caller's role."""
    project, role = await projects.get_project(store, project_id, user_id)
    return ProjectResponse.model_validate(project).model_copy(update={"role": role})


@router.patch("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: int,
    data: ProjectUpdate,
    user_id: int = Depends(get_current_user_id),
    store: Storage = Depends(get_storage),
) -> ProjectResponse:
    """Update title/description. Owner only."""
    project = await projects.update_project(
        store, project_id, user_id, **data.model_dump(exclude_unset=True)
    )
    return ProjectResponse.model_validate(project)


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: int,
    user_id: int = Depends(get_current_user_id),
    store: Storage = Depends(get_storage),
) -> Response:
    """Delete a project with all its entries, collaborators and invitations. Owner only."""
    await projects.delete_project(store, project_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{project_id}/archive", response_model=ProjectResponse)
async def archive_project(
    project_id: int,
    user_id: int = Depends(get_current_user_id),
    store: Storage = Depends(get_storage),
) -> ProjectResponse:
    """Archive a project. Owner only."""
    project = await projects.set_archived(store, project_id, user_id, True)
    return ProjectResponse.model_validate(project)


@router.post("/{project_id}/unarchive", response_model=ProjectResponse)
async def unarchive_project(
    project_id: int,
    user_id: int = Depends(get_current_user_id),
    store: Storage = Depends(get_storage),
) -> ProjectResponse:
    """Restore an archived project. Owner only."""
    project = await projects.set_archived(store, project_id, user_id, False)
    return ProjectResponse.model_validate(project)


@router.get("/{project_id}/export")
async def export_project(
    project_id: int,
    user_id: int = Depends(get_current_user_id),
    store: Storage = Depends(get_storage),
) -> dict:
    """Download the project, its entries and collaborators as JSON."""
    return await projects.export_project(store, project_id, user_id)
