# Copyright (C) 2024 RabbitTrail Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""In-memory Storage for tests. Same contract as SqlStorage, including constraint checks."""

import asyncio
import copy
from collections.abc import Iterable
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime
from typing import Any

from rabbittrail_server.errors import Conflict, NotFound
from rabbittrail_server.models.enums import InvitationStatus, Role
from rabbittrail_server.models.timestamp import utcnow
from rabbittrail_server.storage.base import ENTRY_FIELDS, PROJECT_FIELDS, USER_FIELDS, check_fields
from rabbittrail_server.storage.records import (
    CollaboratorRecord,
    EntryRecord,
    InvitationRecord,
    ProjectRecord,
    UserRecord,
)

_TABLES = ("users", "projects", "collaborators", "entries", "invitations")


class InMemoryStorage:
    """Dict-backed store. Transactions are serialized and restored from a snapshot on failure."""

    def __init__(self):
        self.users: dict[int, UserRecord] = {}
        self.projects: dict[int, ProjectRecord] = {}
        self.collaborators: dict[int, CollaboratorRecord] = {}
        self.entries: dict[int, EntryRecord] = {}
        self.invitations: dict[int, InvitationRecord] = {}
        self._next_id: dict[str, int] = {name: 1 for name in _TABLES}
        self._lock = asyncio.Lock()

    def _new_id(self, table: str) -> int:
        ident = self._next_id[table]
        self._next_id[table] += 1
        return ident

    @asynccontextmanager
    async def transaction(self):
        async with self._lock:
            snapshot = copy.deepcopy({name: getattr(self, name) for name in _TABLES})
            try:
                yield
            except Exception:
                for name, rows in snapshot.items():
                    setattr(self, name, rows)
                raise

    # Users

    async def get_user(self, user_id: int) -> UserRecord | None:
        u = self.users.get(user_id)
        return replace(u) if u else None

    async def get_users(self, user_ids: Iterable[int]) -> list[UserRecord]:
        return [replace(self.users[i]) for i in set(user_ids) if i in self.users]

    async def get_user_by_username(self, username: str) -> UserRecord | None:
        for u in self.users.values():
            if u.username == username:
                return replace(u)
        return None

    async def get_user_by_email(self, email: str) -> UserRecord | None:
        for u in self.users.values():
            if u.email == email:
                return replace(u)
        return None

    async def create_user(
        self, username: str, email: str, password_hash: str, display_name: str
    ) -> UserRecord:
        if any(u.username == username or u.email == email for u in self.users.values()):
            raise Conflict("User conflicts with existing data")
        user = UserRecord(
            id=self._new_id("users"),
            username=username,
            email=email,
            password_hash=password_hash,
            display_name=display_name,
            created_at=utcnow(),
        )
        self.users[user.id] = user
        return replace(user)

    async def update_user(self, user_id: int, **fields: Any) -> UserRecord:
        check_fields(fields, USER_FIELDS)
        user = self.users.get(user_id)
        if not user:
            raise NotFound("User not found")
        email = fields.get("email")
        if email is not None and any(
            u.email == email and u.id != user_id for u in self.users.values()
        ):
            raise Conflict("User conflicts with existing data")
        self.users[user_id] = replace(user, **fields)
        return replace(self.users[user_id])

    # Projects

    async def get_project(self, project_id: int) -> ProjectRecord | None:
        p = self.projects.get(project_id)
        return replace(p) if p else None

    async def list_projects_for_user(self, user_id: int) -> list[ProjectRecord]:
        shared = {c.project_id for c in self.collaborators.values() if c.user_id == user_id}
        found = [
            p for p in self.projects.values() if p.owner_id == user_id or p.id in shared
        ]
        found.sort(key=lambda p: (p.created_at, p.id), reverse=True)
        return [replace(p) for p in found]

    async def create_project(
        self, title: str, description: str | None, owner_id: int
    ) -> ProjectRecord:
        if owner_id not in self.users:
            raise Conflict("Project conflicts with existing data")
        project = ProjectRecord(
            id=self._new_id("projects"),
            title=title,
            description=description,
            owner_id=owner_id,
            created_at=utcnow(),
        )
        self.projects[project.id] = project
        return replace(project)

    async def update_project(self, project_id: int, **fields: Any) -> ProjectRecord:
        check_fields(fields, PROJECT_FIELDS)
        project = self.projects.get(project_id)
        if not project:
            raise NotFound("Project not found")
        self.projects[project_id] = replace(project, **fields)
        return replace(self.projects[project_id])

    async def delete_project(self, project_id: int) -> None:
        dependents = (
            any(e.project_id == project_id for e in self.entries.values())
            or any(c.project_id == project_id for c in self.collaborators.values())
            or any(i.project_id == project_id for i in self.invitations.values())
        )
        if dependents:
            raise Conflict("Project still has entries, collaborators or invitations")
        self.projects.pop(project_id, None)

    # Collaborators

    def _find_collaborator(self, project_id: int, user_id: int) -> CollaboratorRecord | None:
        for c in self.collaborators.values():
            if c.project_id == project_id and c.user_id == user_id:
                return c
        return None

    async def get_collaborator(self, project_id: int, user_id: int) -> CollaboratorRecord | None:
        c = self._find_collaborator(project_id, user_id)
        return replace(c) if c else None

    async def list_collaborators(self, project_id: int) -> list[CollaboratorRecord]:
        return [
            replace(c)
            for c in sorted(self.collaborators.values(), key=lambda c: c.id)
            if c.project_id == project_id
        ]

    async def add_collaborator(self, project_id: int, user_id: int, role: Role) -> CollaboratorRecord:
        if project_id not in self.projects or user_id not in self.users:
            raise Conflict("Collaborator conflicts with existing data")
        if self._find_collaborator(project_id, user_id):
            raise Conflict("Collaborator conflicts with existing data")
        collab = CollaboratorRecord(
            id=self._new_id("collaborators"),
            project_id=project_id,
            user_id=user_id,
            role=Role(role),
        )
        self.collaborators[collab.id] = collab
        return replace(collab)

    async def update_collaborator_role(
        self, project_id: int, user_id: int, role: Role
    ) -> CollaboratorRecord:
        collab = self._find_collaborator(project_id, user_id)
        if not collab:
            raise NotFound("Collaborator not found")
        collab.role = Role(role)
        return replace(collab)

    async def remove_collaborator(self, project_id: int, user_id: int) -> bool:
        collab = self._find_collaborator(project_id, user_id)
        if not collab:
            return False
        del self.collaborators[collab.id]
        return True

    async def delete_collaborators_for_project(self, project_id: int) -> int:
        doomed = [k for k, c in self.collaborators.items() if c.project_id == project_id]
        for k in doomed:
            del self.collaborators[k]
        return len(doomed)

    # Entries

    async def get_entry(self, entry_id: int) -> EntryRecord | None:
        e = self.entries.get(entry_id)
        return replace(e) if e else None

    async def list_entries(self, project_id: int) -> list[EntryRecord]:
        found = [e for e in self.entries.values() if e.project_id == project_id]
        found.sort(key=lambda e: (e.created_at, e.id), reverse=True)
        return [replace(e) for e in found]

    async def create_entry(self, project_id: int, created_by_id: int, **fields: Any) -> EntryRecord:
        check_fields(fields, ENTRY_FIELDS)
        if project_id not in self.projects or created_by_id not in self.users:
            raise Conflict("Entry conflicts with existing data")
        now = utcnow()
        entry = EntryRecord(
            id=self._new_id("entries"),
            project_id=project_id,
            created_by_id=created_by_id,
            created_at=now,
            updated_at=now,
            **fields,
        )
        self.entries[entry.id] = entry
        return replace(entry)

    async def update_entry(self, entry_id: int, **fields: Any) -> EntryRecord:
        check_fields(fields, ENTRY_FIELDS)
        entry = self.entries.get(entry_id)
        if not entry:
            raise NotFound("Entry not found")
        self.entries[entry_id] = replace(entry, **fields, updated_at=utcnow())
        return replace(self.entries[entry_id])

    async def delete_entry(self, entry_id: int) -> bool:
        return self.entries.pop(entry_id, None) is not None

    async def delete_entries_for_project(self, project_id: int) -> int:
        doomed = [k for k, e in self.entries.items() if e.project_id == project_id]
        for k in doomed:
            del self.entries[k]
        return len(doomed)

    # Invitations

    async def get_invitation_by_token(self, token: str) -> InvitationRecord | None:
        for i in self.invitations.values():
            if i.token == token:
                return replace(i)
        return None

    async def get_pending_invitation(self, project_id: int, email: str) -> InvitationRecord | None:
        for i in self.invitations.values():
            if (
                i.project_id == project_id
                and i.email == email
                and i.status == InvitationStatus.PENDING
            ):
                return replace(i)
        return None

    async def list_invitations(
        self, project_id: int, status: InvitationStatus | None = None
    ) -> list[InvitationRecord]:
        found = [
            i
            for i in self.invitations.values()
            if i.project_id == project_id and (status is None or i.status == status)
        ]
        found.sort(key=lambda i: (i.created_at, i.id), reverse=True)
        return [replace(i) for i in found]

    async def create_invitation(
        self,
        project_id: int,
        email: str,
        role: Role,
        token: str,
        expires_at: datetime,
        invited_by_id: int | None,
    ) -> InvitationRecord:
        if project_id not in self.projects:
            raise Conflict("Invitation conflicts with existing data")
        if any(i.token == token for i in self.invitations.values()):
            raise Conflict("Invitation conflicts with existing data")
        if await self.get_pending_invitation(project_id, email):
            raise Conflict("Invitation conflicts with existing data")
        inv = InvitationRecord(
            id=self._new_id("invitations"),
            project_id=project_id,
            email=email,
            role=Role(role),
            token=token,
            status=InvitationStatus.PENDING,
            created_at=utcnow(),
            expires_at=expires_at,
            invited_by_id=invited_by_id,
        )
        self.invitations[inv.id] = inv
        return replace(inv)

    async def transition_invitation(
        self,
        invitation_id: int,
        to_status: InvitationStatus,
        from_status: InvitationStatus = InvitationStatus.PENDING,
    ) -> bool:
        inv = self.invitations.get(invitation_id)
        if not inv or inv.status != from_status:
            return False
        inv.status = InvitationStatus(to_status)
        if inv.status == InvitationStatus.ACCEPTED:
            inv.accepted_at = utcnow()
        return True

    async def delete_invitations_for_project(self, project_id: int) -> int:
        doomed = [k for k, i in self.invitations.items() if i.project_id == project_id]
        for k in doomed:
            del self.invitations[k]
        return len(doomed)
