# Copyright (C) 2024 RabbitTrail Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Entry API routes."""

from fastapi import APIRouter, Depends, Response, status

from rabbittrail_server.auth import get_current_user_id
from rabbittrail_server.database import get_storage
from rabbittrail_server.services import entries
from rabbittrail_server.storage import Storage
from rabbittrail_server.api.schemas import EntryCreate, EntryResponse, EntryUpdate

router = APIRouter(tags=["entries"])


@router.get("/projects/{project_id}/entries", response_model=list[EntryResponse])
async def list_entries(
    project_id: int,
    user_id: int = Depends(get_current_user_id),
    store: Storage = Depends(get_storage),
) -> list[EntryResponse]:
    """List entries of a project, newest first."""
    return [EntryResponse.model_validate(e) for e in await entries.list_entries(store, project_id, user_id)]


@router.post(
    "/projects/{project_id}/entries",
    response_model=EntryResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_entry(
    project_id: int,
    data: EntryCreate,
    user_id: int = Depends(get_current_user_id),
    store: Storage = Depends(get_storage),
) -> EntryResponse:
    """Add an entry to a project. Media fields hold references to already-uploaded files."""
    entry = await entries.create_entry(store, project_id, user_id, **data.model_dump())
    return EntryResponse.model_validate(entry)


@router.get("/entries/{entry_id}", response_model=EntryResponse)
async def get_entry(
    entry_id: int,
    user_id: int = Depends(get_current_user_id),
    store: Storage = Depends(get_storage),
) -> EntryResponse:
    """Get entry by ID."""
    return EntryResponse.model_validate(await entries.get_entry(store, entry_id, user_id))


@router.patch("/entries/{entry_id}", response_model=EntryResponse)
async def update_entry(
    entry_id: int,
    data: EntryUpdate,
    user_id: int = Depends(get_current_user_id),
    store: Storage = Depends(get_storage),
) -> EntryResponse:
    """Update an entry. Project owner or the entry's author only."""
    entry = await entries.update_entry(
        store, entry_id, user_id, **data.model_dump(exclude_unset=True)
    )
    return EntryResponse.model_validate(entry)


@router.delete("/entries/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_entry(
    entry_id: int,
    user_id: int = Depends(get_current_user_id),
    store: Storage = Depends(get_storage),
) -> Response:
    """Delete an entry. Project owner or the entry's author only."""
    await entries.delete_entry(store, entry_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
