# Copyright (C) 2024 RabbitTrail Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Project invitations: issue by email, resolve a token, accept as a collaborator.

Lifecycle: pending -> accepted on a valid accept; pending -> expired once
expires_at passes (checked when read, there is no sweeper). Both end states
are final. Emails are compared lower-cased.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from rabbittrail_server.config import settings
from rabbittrail_server.errors import (
    AlreadyUsed,
    Conflict,
    EmailMismatch,
    Expired,
    NotFound,
    ValidationError,
)
from rabbittrail_server.models.enums import InvitationStatus, Role
from rabbittrail_server.models.timestamp import utcnow
from rabbittrail_server.services.access import require_owner
from rabbittrail_server.storage import (
    CollaboratorRecord,
    InvitationRecord,
    ProjectRecord,
    Storage,
    UserRecord,
)

logger = logging.getLogger(__name__)

# 32 bytes -> 256 bits of entropy
TOKEN_BYTES = 32


@dataclass
class InvitationOutcome:
    """Result of inviting an email to a project.

    status is one of:
        added           - the email belongs to a user, who is now a collaborator
        already_member  - that user was already on the project; nothing changed
        invited         - a new pending invitation was created
        pending         - a live invitation already existed and is returned as-is
    """

    status: str
    email: str
    role: Role
    collaborator: CollaboratorRecord | None = None
    invitation: InvitationRecord | None = None
    invite_link: str | None = None


def normalize_email(email: str) -> str:
    return email.strip().lower()


def parse_grant_role(role: str | Role) -> Role:
    """Role that may be granted to a collaborator. Never owner."""
    try:
        parsed = role if isinstance(role, Role) else Role.parse(role)
    except ValueError:
        raise ValidationError(f"Unknown role: {role}") from None
    if parsed == Role.OWNER:
        raise ValidationError("The owner role cannot be granted")
    return parsed


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def is_expired(invitation: InvitationRecord, now: datetime | None = None) -> bool:
    return _aware(invitation.expires_at) <= (now or utcnow())


def invite_link(token: str) -> str:
    base = settings.app_base_url.rstrip("/")
    return f"{base}/auth?invitation={token}"


def new_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


async def _close_pending(store: Storage, project_id: int, email: str) -> None:
    """Retire a pending invitation for an email whose user is now on the project."""
    pending = await store.get_pending_invitation(project_id, email)
    if not pending:
        return
    status = InvitationStatus.EXPIRED if is_expired(pending) else InvitationStatus.ACCEPTED
    await store.transition_invitation(pending.id, status)
    logger.info("Invitation %s closed as %s, user is a member", pending.id, status.value)


async def _issue(
    store: Storage,
    project_id: int,
    email: str,
    role: Role,
    invited_by: int,
    expires_in: timedelta,
) -> InvitationOutcome:
    user = await store.get_user_by_email(email)
    if user:
        existing = await store.get_collaborator(project_id, user.id)
        if existing:
            await _close_pending(store, project_id, email)
            return InvitationOutcome("already_member", email, existing.role, collaborator=existing)
        collab = await store.add_collaborator(project_id, user.id, role)
        await _close_pending(store, project_id, email)
        logger.info("User %s added to project %s as %s", user.id, project_id, role.value)
        return InvitationOutcome("added", email, role, collaborator=collab)

    pending = await store.get_pending_invitation(project_id, email)
    if pending:
        if not is_expired(pending):
            return InvitationOutcome(
                "pending", email, pending.role, invitation=pending, invite_link=invite_link(pending.token)
            )
        await store.transition_invitation(pending.id, InvitationStatus.EXPIRED)

    inv = await store.create_invitation(
        project_id=project_id,
        email=email,
        role=role,
        token=new_token(),
        expires_at=utcnow() + expires_in,
        invited_by_id=invited_by,
    )
    logger.info("Invitation %s issued for project %s (expires %s)", inv.id, project_id, inv.expires_at)
    return InvitationOutcome("invited", email, role, invitation=inv, invite_link=invite_link(inv.token))


async def issue_invitation(
    store: Storage,
    project_id: int,
    email: str,
    role: str | Role,
    invited_by: int,
    expires_in: timedelta | None = None,
) -> InvitationOutcome:
    """Give ``email`` access to the project, directly if it has an account, else by invitation.

    Only the project owner may call this. Sending the link is left to the caller.
    """
    await require_owner(store, project_id, invited_by, "add collaborators")
    email = normalize_email(email)
    if not email or "@" not in email or len(email) > 255:
        raise ValidationError("A valid email is required")
    grant = parse_grant_role(role)
    if expires_in is None:
        expires_in = timedelta(days=settings.invitation_expire_days)
    if expires_in <= timedelta(0):
        raise ValidationError("Invitation lifetime must be positive")

    # The pending-invitation and collaborator constraints catch a concurrent
    # issue for the same email; the second attempt then sees the winner's row.
    retries = 1
    while True:
        try:
            async with store.transaction():
                return await _issue(store, project_id, email, grant, invited_by, expires_in)
        except Conflict:
            if not retries:
                raise
            retries -= 1
            logger.info("Concurrent invitation for project %s, retrying", project_id)


async def resolve_token(store: Storage, token: str) -> InvitationRecord:
    """Return the pending invitation for ``token``. NotFound, AlreadyUsed or Expired otherwise."""
    inv = await store.get_invitation_by_token(token)
    if not inv:
        raise NotFound("Invitation not found")
    if inv.status == InvitationStatus.ACCEPTED:
        raise AlreadyUsed()
    if inv.status == InvitationStatus.EXPIRED or is_expired(inv):
        raise Expired()
    return inv


async def describe_invitation(store: Storage, token: str) -> tuple[InvitationRecord, ProjectRecord]:
    """Invitation plus the project it leads to, for the sign-up page."""
    inv = await resolve_token(store, token)
    project = await store.get_project(inv.project_id)
    if not project:
        raise NotFound("Project not found")
    return inv, project


async def redeem(store: Storage, token: str, user: UserRecord) -> CollaboratorRecord:
    """Accept ``token`` for ``user``. Must run inside ``store.transaction()``.

    The status change and the collaborator row are written together; if the
    collaborator insert fails the status change is rolled back with it.
    """
    inv = await resolve_token(store, token)
    if normalize_email(user.email) != inv.email:
        raise EmailMismatch()
    if not await store.transition_invitation(inv.id, InvitationStatus.ACCEPTED):
        # Another accept got there between our read and this update
        raise AlreadyUsed()
    try:
        return await store.add_collaborator(inv.project_id, user.id, inv.role)
    except Conflict:
        raise Conflict("You are already a collaborator on this project") from None


async def accept(store: Storage, token: str, user_id: int) -> CollaboratorRecord:
    """Accept an invitation as an existing, signed-in user."""
    user = await store.get_user(user_id)
    if not user:
        raise NotFound("User not found")
    async with store.transaction():
        collab = await redeem(store, token, user)
    logger.info("User %s accepted invitation to project %s", user_id, collab.project_id)
    return collab


async def list_pending(store: Storage, project_id: int, user_id: int) -> list[InvitationRecord]:
    """Live invitations of a project. Owner only."""
    await require_owner(store, project_id, user_id, "view invitations")
    now = utcnow()
    return [
        inv
        for inv in await store.list_invitations(project_id, InvitationStatus.PENDING)
        if not is_expired(inv, now)
    ]
