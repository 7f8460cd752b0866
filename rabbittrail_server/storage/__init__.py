# Copyright (C) 2024 RabbitTrail Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Persistence store: protocol, SQLAlchemy implementation and in-memory test double."""

from rabbittrail_server.storage.base import Storage
from rabbittrail_server.storage.memory import InMemoryStorage
from rabbittrail_server.storage.records import (
    CollaboratorRecord,
    EntryRecord,
    InvitationRecord,
    ProjectRecord,
    UserRecord,
)
from rabbittrail_server.storage.sql import SqlStorage

__all__ = [
    "Storage",
    "SqlStorage",
    "InMemoryStorage",
    "UserRecord",
    "ProjectRecord",
    "CollaboratorRecord",
    "EntryRecord",
    "InvitationRecord",
]
