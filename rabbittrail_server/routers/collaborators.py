# Copyright (C) 2024 RabbitTrail Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Collaborator API routes."""

from fastapi import APIRouter, Depends, Response, status

from rabbittrail_server.auth import get_current_user_id
from rabbittrail_server.database import get_storage
from rabbittrail_server.models.enums import Role
from rabbittrail_server.services import collaborators
from rabbittrail_server.services.invitations import InvitationOutcome
from rabbittrail_server.storage import Storage, UserRecord
from rabbittrail_server.api.schemas import (
    CollaboratorAdd,
    CollaboratorAddResponse,
    CollaboratorResponse,
    CollaboratorRoleUpdate,
    InvitationResponse,
    PublicUser,
)

router = APIRouter(prefix="/projects/{project_id}/collaborators", tags=["collaborators"])


def _public_user(user: UserRecord, show_email: bool) -> PublicUser:
    public = PublicUser.model_validate(user)
    return public if show_email else public.model_copy(update={"email": None})


def _outcome_response(outcome: InvitationOutcome) -> CollaboratorAddResponse:
    invitation = None
    if outcome.invitation:
        invitation = InvitationResponse.model_validate(outcome.invitation).model_copy(
            update={"invite_link": outcome.invite_link}
        )
    return CollaboratorAddResponse(
        status=outcome.status,
        email=outcome.email,
        role=outcome.role,
        collaborator=(
            CollaboratorResponse.model_validate(outcome.collaborator)
            if outcome.collaborator
            else None
        ),
        invitation=invitation,
    )


@router.get("", response_model=list[CollaboratorResponse])
async def list_collaborators(
    project_id: int,
    user_id: int = Depends(get_current_user_id),
    store: Storage = Depends(get_storage),
) -> list[CollaboratorResponse]:
    """List collaborators (owner included) with their public profile.

    Emails are shown to the owner, who manages sharing by email; other members
    only see their own.
    """
    rows = await collaborators.list_collaborators(store, project_id, user_id)
    is_owner = any(c.role == Role.OWNER and c.user_id == user_id for c, _u in rows)
    return [
        CollaboratorResponse.model_validate(c).model_copy(
            update={"user": _public_user(u, show_email=is_owner or u.id == user_id)}
        )
        for c, u in rows
    ]


@router.post("", response_model=CollaboratorAddResponse)
async def add_collaborator(
    project_id: int,
    data: CollaboratorAdd,
    response: Response,
    user_id: int = Depends(get_current_user_id),
    store: Storage = Depends(get_storage),
) -> CollaboratorAddResponse:
    """Add a collaborator by email. Owner only.

    Registered emails are added straight away (201). Unknown emails get a
    pending invitation whose link the caller passes on (201). Repeating the
    request for an existing member or a live invitation changes nothing (200).
    """
    outcome = await collaborators.add_collaborator(
        store, project_id, user_id, data.email, data.role
    )
    if outcome.status in ("added", "invited"):
        response.status_code = status.HTTP_201_CREATED
    return _outcome_response(outcome)


@router.patch("/{target_user_id}", response_model=CollaboratorResponse)
async def update_collaborator(
    project_id: int,
    target_user_id: int,
    data: CollaboratorRoleUpdate,
    user_id: int = Depends(get_current_user_id),
    store: Storage = Depends(get_storage),
) -> CollaboratorResponse:
    """Change a collaborator's role (editor or viewer). Owner only."""
    collab = await collaborators.update_collaborator_role(
        store, project_id, user_id, target_user_id, data.role
    )
    return CollaboratorResponse.model_validate(collab)


@router.delete("/{target_user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_collaborator(
    project_id: int,
    target_user_id: int,
    user_id: int = Depends(get_current_user_id),
    store: Storage = Depends(get_storage),
) -> Response:
    """Remove a collaborator. Owner only; the owner can't be removed."""
    await collaborators.remove_collaborator(store, project_id, user_id, target_user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
