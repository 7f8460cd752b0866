# Copyright (C) 2024 RabbitTrail Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""SQLAlchemy (PostgreSQL) implementation of Storage over one AsyncSession."""

import logging
from collections.abc import Iterable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import DataError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rabbittrail_server.errors import Conflict, NotFound, ValidationError
from rabbittrail_server.models import (
    Entry,
    InvitationStatus,
    Project,
    ProjectCollaborator,
    ProjectInvitation,
    Role,
    User,
)
from rabbittrail_server.models.timestamp import utcnow
from rabbittrail_server.storage.base import ENTRY_FIELDS, PROJECT_FIELDS, USER_FIELDS, check_fields
from rabbittrail_server.storage.records import (
    CollaboratorRecord,
    EntryRecord,
    InvitationRecord,
    ProjectRecord,
    UserRecord,
)

logger = logging.getLogger(__name__)


def _user(u: User) -> UserRecord:
    return UserRecord(
        id=u.id,
        username=u.username,
        email=u.email,
        password_hash=u.password_hash,
        display_name=u.display_name,
        created_at=u.created_at,
    )


def _project(p: Project) -> ProjectRecord:
    return ProjectRecord(
        id=p.id,
        title=p.title,
        description=p.description,
        owner_id=p.owner_id,
        created_at=p.created_at,
        archived=p.archived,
        archived_at=p.archived_at,
    )


def _collaborator(c: ProjectCollaborator) -> CollaboratorRecord:
    return CollaboratorRecord(
        id=c.id,
        project_id=c.project_id,
        user_id=c.user_id,
        role=Role(c.role),
    )


def _entry(e: Entry) -> EntryRecord:
    return EntryRecord(
        id=e.id,
        project_id=e.project_id,
        created_by_id=e.created_by_id,
        title=e.title,
        description=e.description,
        latitude=e.latitude,
        longitude=e.longitude,
        entry_type=e.entry_type,
        media_url_image=e.media_url_image,
        media_url_audio=e.media_url_audio,
        tags=list(e.tags or []),
        links=list(e.links or []),
        created_at=e.created_at,
        updated_at=e.updated_at,
    )


def _invitation(i: ProjectInvitation) -> InvitationRecord:
    return InvitationRecord(
        id=i.id,
        project_id=i.project_id,
        email=i.email,
        role=Role(i.role),
        token=i.token,
        status=InvitationStatus(i.status),
        created_at=i.created_at,
        expires_at=i.expires_at,
        accepted_at=i.accepted_at,
        invited_by_id=i.invited_by_id,
    )


class SqlStorage:
    """Storage backed by a relational database. One instance per request session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    @asynccontextmanager
    async def transaction(self):
        try:
            yield
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

    async def _flush(self, what: str) -> None:
        """Flush pending writes. Constraint violations become Conflict, bad values ValidationError."""
        try:
            await self.session.flush()
        except IntegrityError as e:
            logger.info("Integrity violation writing %s: %s", what, e.orig)
            raise Conflict(f"{what} conflicts with existing data") from e
        except DataError as e:
            # Values the services let through but the column cannot hold
            logger.info("Invalid value writing %s: %s", what, e.orig)
            raise ValidationError(f"{what} has a value that does not fit") from e

    async def _one(self, stmt):
        # populate_existing: guarded UPDATEs below bypass the identity map
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def _all(self, stmt) -> list:
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def _get(self, model, ident: int):
        return await self.session.get(model, ident, populate_existing=True)

    # Users

    async def get_user(self, user_id: int) -> UserRecord | None:
        u = await self._get(User, user_id)
        return _user(u) if u else None

    async def get_users(self, user_ids: Iterable[int]) -> list[UserRecord]:
        ids = list(set(user_ids))
        if not ids:
            return []
        return [_user(u) for u in await self._all(select(User).where(User.id.in_(ids)))]

    async def get_user_by_username(self, username: str) -> UserRecord | None:
        u = await self._one(select(User).where(User.username == username))
        return _user(u) if u else None

    async def get_user_by_email(self, email: str) -> UserRecord | None:
        u = await self._one(select(User).where(User.email == email))
        return _user(u) if u else None

    async def create_user(
        self, username: str, email: str, password_hash: str, display_name: str
    ) -> UserRecord:
        user = User(
            username=username,
            email=email,
            password_hash=password_hash,
            display_name=display_name,
        )
        self.session.add(user)
        await self._flush("User")
        return _user(user)

    async def update_user(self, user_id: int, **fields: Any) -> UserRecord:
        check_fields(fields, USER_FIELDS)
        user = await self._get(User, user_id)
        if not user:
            raise NotFound("User not found")
        for key, value in fields.items():
            setattr(user, key, value)
        await self._flush("User")
        return _user(user)

    # Projects

    async def get_project(self, project_id: int) -> ProjectRecord | None:
        p = await self._get(Project, project_id)
        return _project(p) if p else None

    async def list_projects_for_user(self, user_id: int) -> list[ProjectRecord]:
        shared = select(ProjectCollaborator.project_id).where(ProjectCollaborator.user_id == user_id)
        rows = await self._all(
            select(Project)
            .where(or_(Project.owner_id == user_id, Project.id.in_(shared)))
            .order_by(Project.created_at.desc(), Project.id.desc())
        )
        return [_project(p) for p in rows]

    async def create_project(
        self, title: str, description: str | None, owner_id: int
    ) -> ProjectRecord:
        project = Project(title=title, description=description, owner_id=owner_id, archived=False)
        self.session.add(project)
        await self._flush("Project")
        return _project(project)

    async def update_project(self, project_id: int, **fields: Any) -> ProjectRecord:
        check_fields(fields, PROJECT_FIELDS)
        project = await self._get(Project, project_id)
        if not project:
            raise NotFound("Project not found")
        for key, value in fields.items():
            setattr(project, key, value)
        await self._flush("Project")
        return _project(project)

    async def delete_project(self, project_id: int) -> None:
        try:
            await self.session.execute(
                delete(Project)
                .where(Project.id == project_id)
                .execution_options(synchronize_session=False)
            )
        except IntegrityError as e:
            # A row created concurrently still points at the project
            raise Conflict("Project still has entries, collaborators or invitations") from e

    # Collaborators

    async def get_collaborator(self, project_id: int, user_id: int) -> CollaboratorRecord | None:
        c = await self._one(
            select(ProjectCollaborator).where(
                ProjectCollaborator.project_id == project_id,
                ProjectCollaborator.user_id == user_id,
            )
        )
        return _collaborator(c) if c else None

    async def list_collaborators(self, project_id: int) -> list[CollaboratorRecord]:
        rows = await self._all(
            select(ProjectCollaborator)
            .where(ProjectCollaborator.project_id == project_id)
            .order_by(ProjectCollaborator.id)
        )
        return [_collaborator(c) for c in rows]

    async def add_collaborator(self, project_id: int, user_id: int, role: Role) -> CollaboratorRecord:
        collab = ProjectCollaborator(project_id=project_id, user_id=user_id, role=Role(role).value)
        self.session.add(collab)
        await self._flush("Collaborator")
        return _collaborator(collab)

    async def update_collaborator_role(
        self, project_id: int, user_id: int, role: Role
    ) -> CollaboratorRecord:
        collab = await self._one(
            select(ProjectCollaborator).where(
                ProjectCollaborator.project_id == project_id,
                ProjectCollaborator.user_id == user_id,
            )
        )
        if not collab:
            raise NotFound("Collaborator not found")
        collab.role = Role(role).value
        await self._flush("Collaborator")
        return _collaborator(collab)

    async def remove_collaborator(self, project_id: int, user_id: int) -> bool:
        result = await self.session.execute(
            delete(ProjectCollaborator)
            .where(
                ProjectCollaborator.project_id == project_id,
                ProjectCollaborator.user_id == user_id,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def delete_collaborators_for_project(self, project_id: int) -> int:
        result = await self.session.execute(
            delete(ProjectCollaborator)
            .where(ProjectCollaborator.project_id == project_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    # Entries

    async def get_entry(self, entry_id: int) -> EntryRecord | None:
        e = await self._get(Entry, entry_id)
        return _entry(e) if e else None

    async def list_entries(self, project_id: int) -> list[EntryRecord]:
        rows = await self._all(
            select(Entry)
            .where(Entry.project_id == project_id)
            .order_by(Entry.created_at.desc(), Entry.id.desc())
        )
        return [_entry(e) for e in rows]

    async def create_entry(self, project_id: int, created_by_id: int, **fields: Any) -> EntryRecord:
        check_fields(fields, ENTRY_FIELDS)
        entry = Entry(project_id=project_id, created_by_id=created_by_id, **fields)
        self.session.add(entry)
        await self._flush("Entry")
        return _entry(entry)

    async def update_entry(self, entry_id: int, **fields: Any) -> EntryRecord:
        check_fields(fields, ENTRY_FIELDS)
        entry = await self._get(Entry, entry_id)
        if not entry:
            raise NotFound("Entry not found")
        for key, value in fields.items():
            setattr(entry, key, value)
        entry.updated_at = utcnow()
        await self._flush("Entry")
        return _entry(entry)

    async def delete_entry(self, entry_id: int) -> bool:
        result = await self.session.execute(
            delete(Entry).where(Entry.id == entry_id).execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def delete_entries_for_project(self, project_id: int) -> int:
        result = await self.session.execute(
            delete(Entry)
            .where(Entry.project_id == project_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    # Invitations

    async def get_invitation_by_token(self, token: str) -> InvitationRecord | None:
        inv = await self._one(select(ProjectInvitation).where(ProjectInvitation.token == token))
        return _invitation(inv) if inv else None

    async def get_pending_invitation(self, project_id: int, email: str) -> InvitationRecord | None:
        inv = await self._one(
            select(ProjectInvitation).where(
                ProjectInvitation.project_id == project_id,
                ProjectInvitation.email == email,
                ProjectInvitation.status == InvitationStatus.PENDING.value,
            )
        )
        return _invitation(inv) if inv else None

    async def list_invitations(
        self, project_id: int, status: InvitationStatus | None = None
    ) -> list[InvitationRecord]:
        stmt = select(ProjectInvitation).where(ProjectInvitation.project_id == project_id)
        if status is not None:
            stmt = stmt.where(ProjectInvitation.status == InvitationStatus(status).value)
        rows = await self._all(stmt.order_by(ProjectInvitation.created_at.desc(), ProjectInvitation.id.desc()))
        return [_invitation(i) for i in rows]

    async def create_invitation(
        self,
        project_id: int,
        email: str,
        role: Role,
        token: str,
        expires_at: datetime,
        invited_by_id: int | None,
    ) -> InvitationRecord:
        inv = ProjectInvitation(
            project_id=project_id,
            email=email,
            role=Role(role).value,
            token=token,
            status=InvitationStatus.PENDING.value,
            expires_at=expires_at,
            invited_by_id=invited_by_id,
        )
        self.session.add(inv)
        await self._flush("Invitation")
        return _invitation(inv)

    async def transition_invitation(
        self,
        invitation_id: int,
        to_status: InvitationStatus,
        from_status: InvitationStatus = InvitationStatus.PENDING,
    ) -> bool:
        values: dict[str, Any] = {"status": InvitationStatus(to_status).value}
        if to_status == InvitationStatus.ACCEPTED:
            values["accepted_at"] = utcnow()
        result = await self.session.execute(
            update(ProjectInvitation)
            .where(
                ProjectInvitation.id == invitation_id,
                ProjectInvitation.status == InvitationStatus(from_status).value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def delete_invitations_for_project(self, project_id: int) -> int:
        result = await self.session.execute(
            delete(ProjectInvitation)
            .where(ProjectInvitation.project_id == project_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
