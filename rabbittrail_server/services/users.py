# Copyright (C) 2024 RabbitTrail Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Accounts: registration (optionally through an invitation), login check, profile edits."""

import logging

from rabbittrail_server.auth import hash_password, verify_password
from rabbittrail_server.errors import Conflict, EmailMismatch, NotFound, ValidationError
from rabbittrail_server.services.invitations import normalize_email, redeem, resolve_token
from rabbittrail_server.storage import CollaboratorRecord, Storage, UserRecord

logger = logging.getLogger(__name__)


def _clean_username(username: str) -> str:
    username = username.strip()
    if not username:
        raise ValidationError("Username required")
    if len(username) > 64:
        raise ValidationError("Username too long")
    return username


def _check_length(value: str, limit: int, what: str) -> str:
    # Widths of the users columns
    if len(value) > limit:
        raise ValidationError(f"{what} too long")
    return value


async def register(
    store: Storage,
    username: str,
    email: str,
    password: str,
    display_name: str | None = None,
    invitation_token: str | None = None,
) -> tuple[UserRecord, CollaboratorRecord | None]:
    """Create an account. With an invitation token the new user joins that project too.

    The token is checked before anything is written, and the account and the
    membership are created together or not at all.
    """
    username = _clean_username(username)
    email = normalize_email(email)
    if not password:
        raise ValidationError("Password required")
    display_name = _check_length((display_name or "").strip() or username, 255, "Display name")
    _check_length(email, 255, "Email")

    if invitation_token:
        inv = await resolve_token(store, invitation_token)
        if inv.email != email:
            raise EmailMismatch()

    if await store.get_user_by_username(username):
        raise Conflict("Username already registered")
    if await store.get_user_by_email(email):
        raise Conflict("Email already registered")

    collab = None
    async with store.transaction():
        user = await store.create_user(username, email, hash_password(password), display_name)
        if invitation_token:
            collab = await redeem(store, invitation_token, user)
    logger.info("User %s registered%s", user.id, " via invitation" if collab else "")
    return user, collab


async def authenticate(store: Storage, username: str, password: str) -> UserRecord | None:
    user = await store.get_user_by_username(username.strip())
    if not user or not verify_password(password, user.password_hash):
        return None
    return user


async def get_user(store: Storage, user_id: int) -> UserRecord:
    user = await store.get_user(user_id)
    if not user:
        raise NotFound("User not found")
    return user


async def update_profile(
    store: Storage,
    user_id: int,
    display_name: str | None = None,
    email: str | None = None,
) -> UserRecord:
    """Change the caller's own display name and/or email."""
    user = await get_user(store, user_id)
    fields = {}
    if display_name is not None:
        display_name = display_name.strip()
        if not display_name:
            raise ValidationError("Display name cannot be empty")
        fields["display_name"] = _check_length(display_name, 255, "Display name")
    if email is not None:
        email = normalize_email(email)
        _check_length(email, 255, "Email")
        if email != user.email:
            other = await store.get_user_by_email(email)
            if other:
                raise Conflict("Email already registered")
            fields["email"] = email
    if not fields:
        return user
    async with store.transaction():
        return await store.update_user(user_id, **fields)
