# Copyright (C) 2024 RabbitTrail Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Entry model - a geotagged record inside a project."""

from datetime import datetime
from sqlalchemy import JSON, DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from rabbittrail_server.models.base import Base
from rabbittrail_server.models.enums import EntryType
from rabbittrail_server.models.timestamp import TimestampMixin, utcnow


class Entry(Base, TimestampMixin):
    """Evidence, lead, interview or note pinned to an optional location."""

    __tablename__ = "entries"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id"), nullable=False, index=True)
    created_by_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Decimal strings, kept verbatim so no precision is lost
    latitude: Mapped[str | None] = mapped_column(String(32), nullable=True)
    longitude: Mapped[str | None] = mapped_column(String(32), nullable=True)
    entry_type: Mapped[str] = mapped_column(String(16), nullable=False, default=EntryType.NOTE.value)
    media_url_image: Mapped[str | None] = mapped_column(Text, nullable=True)
    media_url_audio: Mapped[str | None] = mapped_column(Text, nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    links: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
