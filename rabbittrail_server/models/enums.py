# Copyright (C) 2024 RabbitTrail Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Enumerated column values shared by models, storage and API schemas."""

import enum


class Role(str, enum.Enum):
    """Access level of a user on a project."""

    OWNER = "owner"
    EDITOR = "editor"
    VIEWER = "viewer"

    @classmethod
    def parse(cls, value: str) -> "Role":
        """Parse a role name. ``collaborator`` is the older name for ``editor``."""
        value = value.strip().lower()
        if value == "collaborator":
            return cls.EDITOR
        return cls(value)


class InvitationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"


class EntryType(str, enum.Enum):
    EVIDENCE = "evidence"
    LEAD = "lead"
    INTERVIEW = "interview"
    NOTE = "note"
