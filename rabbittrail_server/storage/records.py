# Copyright (C) 2024 RabbitTrail Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Plain records returned by every Storage implementation."""

from dataclasses import dataclass, field
from datetime import datetime

from rabbittrail_server.models.enums import InvitationStatus, Role


@dataclass
class UserRecord:
    id: int
    username: str
    email: str
    password_hash: str
    display_name: str
    created_at: datetime


@dataclass
class ProjectRecord:
    id: int
    title: str
    description: str | None
    owner_id: int
    created_at: datetime
    archived: bool = False
    archived_at: datetime | None = None


@dataclass
class CollaboratorRecord:
    id: int
    project_id: int
    user_id: int
    role: Role


@dataclass
class EntryRecord:
    id: int
    project_id: int
    created_by_id: int
    title: str
    created_at: datetime
    updated_at: datetime
    description: str | None = None
    latitude: str | None = None
    longitude: str | None = None
    entry_type: str = "note"
    media_url_image: str | None = None
    media_url_audio: str | None = None
    tags: list[str] = field(default_factory=list)
    links: list[str] = field(default_factory=list)


@dataclass
class InvitationRecord:
    id: int
    project_id: int
    email: str
    role: Role
    token: str
    status: InvitationStatus
    created_at: datetime
    expires_at: datetime
    accepted_at: datetime | None = None
    invited_by_id: int | None = None
