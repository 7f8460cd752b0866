# Copyright (C) 2024 RabbitTrail Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Database models."""

from rabbittrail_server.models.base import Base
from rabbittrail_server.models.enums import EntryType, InvitationStatus, Role
from rabbittrail_server.models.user import User
from rabbittrail_server.models.project import Project, ProjectCollaborator
from rabbittrail_server.models.entry import Entry
from rabbittrail_server.models.invitation import ProjectInvitation

__all__ = [
    "Base",
    "EntryType",
    "InvitationStatus",
    "Role",
    "User",
    "Project",
    "ProjectCollaborator",
    "Entry",
    "ProjectInvitation",
]
