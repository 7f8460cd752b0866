# Copyright (C) 2024 RabbitTrail Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Storage protocol shared by the SQLAlchemy store and the in-memory test double.

The store only does CRUD and simple filtered queries. Authorization and
cross-entity rules (owner row on project creation, cascade on project
deletion) belong to the services, which group calls with ``transaction()``.

Integrity failures (duplicate collaborator, duplicate pending invitation,
dangling project reference) surface as ``errors.Conflict``.
"""

from contextlib import AbstractAsyncContextManager
from collections.abc import Iterable
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from rabbittrail_server.models.enums import InvitationStatus, Role
from rabbittrail_server.storage.records import (
    CollaboratorRecord,
    EntryRecord,
    InvitationRecord,
    ProjectRecord,
    UserRecord,
)

# Entry columns a caller may set on create/update
ENTRY_FIELDS = (
    "title",
    "description",
    "latitude",
    "longitude",
    "entry_type",
    "media_url_image",
    "media_url_audio",
    "tags",
    "links",
)

USER_FIELDS = ("display_name", "email", "password_hash")
PROJECT_FIELDS = ("title", "description", "archived", "archived_at")


@runtime_checkable
class Storage(Protocol):
    """Protocol for the persistence store."""

    def transaction(self) -> AbstractAsyncContextManager[None]:
        """Group calls: commit when the block exits cleanly, roll back on any exception. Not re-entrant."""
        ...

    # Users
    async def get_user(self, user_id: int) -> UserRecord | None: ...

    async def get_users(self, user_ids: Iterable[int]) -> list[UserRecord]: ...

    async def get_user_by_username(self, username: str) -> UserRecord | None: ...

    async def get_user_by_email(self, email: str) -> UserRecord | None: ...

    async def create_user(
        self, username: str, email: str, password_hash: str, display_name: str
    ) -> UserRecord: ...

    async def update_user(self, user_id: int, **fields: Any) -> UserRecord: ...

    # Projects
    async def get_project(self, project_id: int) -> ProjectRecord | None: ...

    async def list_projects_for_user(self, user_id: int) -> list[ProjectRecord]:
        """Projects the user owns or collaborates on, newest first."""
        ...

    async def create_project(
        self, title: str, description: str | None, owner_id: int
    ) -> ProjectRecord: ...

    async def update_project(self, project_id: int, **fields: Any) -> ProjectRecord: ...

    async def delete_project(self, project_id: int) -> None:
        """Delete the project row only. Dependent rows must be removed first."""
        ...

    # Collaborators
    async def get_collaborator(self, project_id: int, user_id: int) -> CollaboratorRecord | None: ...

    async def list_collaborators(self, project_id: int) -> list[CollaboratorRecord]: ...

    async def add_collaborator(self, project_id: int, user_id: int, role: Role) -> CollaboratorRecord:
        """Insert a grant. Raises Conflict if (project, user) already has one."""
        ...

    async def update_collaborator_role(
        self, project_id: int, user_id: int, role: Role
    ) -> CollaboratorRecord: ...

    async def remove_collaborator(self, project_id: int, user_id: int) -> bool: ...

    async def delete_collaborators_for_project(self, project_id: int) -> int: ...

    # Entries
    async def get_entry(self, entry_id: int) -> EntryRecord | None: ...

    async def list_entries(self, project_id: int) -> list[EntryRecord]: ...

    async def create_entry(self, project_id: int, created_by_id: int, **fields: Any) -> EntryRecord: ...

    async def update_entry(self, entry_id: int, **fields: Any) -> EntryRecord: ...

    async def delete_entry(self, entry_id: int) -> bool: ...

    async def delete_entries_for_project(self, project_id: int) -> int: ...

    # Invitations
    async def get_invitation_by_token(self, token: str) -> InvitationRecord | None: ...

    async def get_pending_invitation(self, project_id: int, email: str) -> InvitationRecord | None: ...

    async def list_invitations(
        self, project_id: int, status: InvitationStatus | None = None
    ) -> list[InvitationRecord]: ...

    async def create_invitation(
        self,
        project_id: int,
        email: str,
        role: Role,
        token: str,
        expires_at: datetime,
        invited_by_id: int | None,
    ) -> InvitationRecord:
        """Insert a pending invitation. Raises Conflict if one is already pending for (project, email)."""
        ...

    async def transition_invitation(
        self,
        invitation_id: int,
        to_status: InvitationStatus,
        from_status: InvitationStatus = InvitationStatus.PENDING,
    ) -> bool:
        """Move an invitation between states only if it is still in ``from_status``.

        Returns False when no row matched, i.e. someone else moved it first.
        """
        ...

    async def delete_invitations_for_project(self, project_id: int) -> int: ...


def check_fields(fields: dict[str, Any], allowed: tuple[str, ...]) -> None:
    """Reject column names a store method does not allow writing."""
    unknown = set(fields) - set(allowed)
    if unknown:
        raise ValueError(f"Cannot set {', '.join(sorted(unknown))}")
