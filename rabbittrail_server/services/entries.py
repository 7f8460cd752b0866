# Copyright (C) 2024 RabbitTrail Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Entry commands. Changes to an entry need the owner role or authorship of that entry."""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from rabbittrail_server.errors import Forbidden, NotFound, ValidationError
from rabbittrail_server.models.enums import EntryType
from rabbittrail_server.services.access import (
    can_create_entry,
    can_modify_entry,
    require_access,
    role_of,
)
from rabbittrail_server.storage import EntryRecord, Storage

logger = logging.getLogger(__name__)

# Column widths of entries.title and entries.latitude/longitude
TITLE_MAX = 255
COORDINATE_MAX = 32


def _coordinate(value: str | None, name: str, limit: int) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    if not value:
        return None
    if len(value) > COORDINATE_MAX:
        raise ValidationError(f"{name} is too long")
    try:
        number = Decimal(value)
    except InvalidOperation:
        raise ValidationError(f"{name} must be a decimal number") from None
    if not number.is_finite() or abs(number) > limit:
        raise ValidationError(f"{name} must be between -{limit} and {limit}")
    return value


def _clean(fields: dict[str, Any], creating: bool) -> dict[str, Any]:
    """Validate entry fields; only keys present in ``fields`` are returned."""
    out = dict(fields)
    if creating or "title" in out:
        title = (out.get("title") or "").strip()
        if not title:
            raise ValidationError("Title is required")
        if len(title) > TITLE_MAX:
            raise ValidationError("Title too long")
        out["title"] = title
    if "latitude" in out:
        out["latitude"] = _coordinate(out["latitude"], "Latitude", 90)
    if "longitude" in out:
        out["longitude"] = _coordinate(out["longitude"], "Longitude", 180)
    if "entry_type" in out:
        try:
            out["entry_type"] = EntryType(out["entry_type"] or EntryType.NOTE).value
        except ValueError:
            raise ValidationError(f"Unknown entry type: {out['entry_type']}") from None
    for key in ("tags", "links"):
        if key in out:
            out[key] = [str(v).strip() for v in (out[key] or []) if str(v).strip()]
    return out


async def list_entries(store: Storage, project_id: int, user_id: int) -> list[EntryRecord]:
    await require_access(store, project_id, user_id)
    return await store.list_entries(project_id)


async def _load(store: Storage, entry_id: int, user_id: int):
    entry = await store.get_entry(entry_id)
    if not entry:
        raise NotFound("Entry not found")
    role = await role_of(store, entry.project_id, user_id)
    if role is None:
        raise Forbidden("You don't have access to this entry")
    return entry, role


async def get_entry(store: Storage, entry_id: int, user_id: int) -> EntryRecord:
    entry, _role = await _load(store, entry_id, user_id)
    return entry


async def create_entry(store: Storage, project_id: int, user_id: int, **fields: Any) -> EntryRecord:
    _project, role = await require_access(store, project_id, user_id)
    if not can_create_entry(role):
        raise Forbidden("Viewers cannot add entries to this project")
    data = _clean(fields, creating=True)
    data.setdefault("entry_type", EntryType.NOTE.value)
    data.setdefault("tags", [])
    data.setdefault("links", [])
    async with store.transaction():
        entry = await store.create_entry(project_id, user_id, **data)
    logger.info("Entry %s added to project %s by user %s", entry.id, project_id, user_id)
    return entry


async def update_entry(store: Storage, entry_id: int, user_id: int, **fields: Any) -> EntryRecord:
    entry, role = await _load(store, entry_id, user_id)
    if not can_modify_entry(role, entry, user_id):
        raise Forbidden("Only the project owner or the entry's author can edit this entry")
    data = _clean(fields, creating=False)
    async with store.transaction():
        return await store.update_entry(entry_id, **data)


async def delete_entry(store: Storage, entry_id: int, user_id: int) -> None:
    entry, role = await _load(store, entry_id, user_id)
    if not can_modify_entry(role, entry, user_id):
        raise Forbidden("Only the project owner or the entry's author can delete this entry")
    async with store.transaction():
        await store.delete_entry(entry_id)
    logger.info("Entry %s deleted by user %s", entry_id, user_id)
