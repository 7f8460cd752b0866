# Copyright (C) 2024 RabbitTrail Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Invitation API routes: list pending (owner), inspect a token (public), accept."""

from fastapi import APIRouter, Depends

from rabbittrail_server.auth import get_current_user_id
from rabbittrail_server.database import get_storage
from rabbittrail_server.rate_limit import rate_limit_dep
from rabbittrail_server.services import invitations
from rabbittrail_server.storage import Storage
from rabbittrail_server.api.schemas import (
    CollaboratorResponse,
    InvitationInfo,
    InvitationResponse,
    ProjectSummary,
)

router = APIRouter(tags=["invitations"])


@router.get("/projects/{project_id}/invitations", response_model=list[InvitationResponse])
async def list_invitations(
    project_id: int,
    user_id: int = Depends(get_current_user_id),
    store: Storage = Depends(get_storage),
) -> list[InvitationResponse]:
    """Pending, unexpired invitations of a project, with their links. Owner only."""
    pending = await invitations.list_pending(store, project_id, user_id)
    return [
        InvitationResponse.model_validate(inv).model_copy(
            update={"invite_link": invitations.invite_link(inv.token)}
        )
        for inv in pending
    ]


@router.get(
    "/invitations/{token}",
    response_model=InvitationInfo,
    dependencies=[Depends(rate_limit_dep)],
)
async def get_invitation(
    token: str,
    store: Storage = Depends(get_storage),
) -> InvitationInfo:
    """Public: what project an invitation link leads to. No link is echoed back."""
    inv, project = await invitations.describe_invitation(store, token)
    return InvitationInfo(
        invitation=InvitationResponse.model_validate(inv),
        project=ProjectSummary.model_validate(project),
    )


@router.post(
    "/invitations/{token}/accept",
    response_model=CollaboratorResponse,
    dependencies=[Depends(rate_limit_dep)],
)
async def accept_invitation(
    token: str,
    user_id: int = Depends(get_current_user_id),
    store: Storage = Depends(get_storage),
) -> CollaboratorResponse:
    """Join the invitation's project as the signed-in user. The account email must match."""
    collab = await invitations.accept(store, token, user_id)
    return CollaboratorResponse.model_validate(collab)
