# Copyright (C) 2024 RabbitTrail Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Pydantic schemas for API request/response."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from rabbittrail_server.models.enums import InvitationStatus, Role


# Auth
class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserCreate(BaseModel):
    username: str
    email: EmailStr
    password: str
    display_name: str | None = None
    # Token from an invitation link; the new account joins that project
    invitation_token: str | None = None


class UserLogin(BaseModel):
    username: str
    password: str


class ProfileUpdate(BaseModel):
    display_name: str | None = None
    email: EmailStr | None = None


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    display_name: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RegisteredUserResponse(UserResponse):
    joined_project_id: int | None = None


class PublicUser(BaseModel):
    id: int
    username: str
    # Only the project owner and the user themself get the email
    email: str | None = None
    display_name: str

    model_config = ConfigDict(from_attributes=True)


# Projects
class ProjectCreate(BaseModel):
    title: str
    description: str | None = None


class ProjectUpdate(BaseModel):
    title: str | None = None
    description: str | None = None


class ProjectResponse(BaseModel):
    id: int
    title: str
    description: str | None = None
    owner_id: int
    created_at: datetime
    archived: bool = False
    archived_at: datetime | None = None
    # Caller's role; set on single-project reads
    role: Role | None = None

    model_config = ConfigDict(from_attributes=True)


# Collaborators
class CollaboratorAdd(BaseModel):
    email: EmailStr
    role: str = Role.EDITOR.value


class CollaboratorRoleUpdate(BaseModel):
    role: str


class CollaboratorResponse(BaseModel):
    id: int
    project_id: int
    user_id: int
    role: Role
    user: PublicUser | None = None

    model_config = ConfigDict(from_attributes=True)


# Invitations
class InvitationResponse(BaseModel):
    id: int
    project_id: int
    email: str
    role: Role
    status: InvitationStatus
    created_at: datetime
    expires_at: datetime
    invite_link: str | None = None

    model_config = ConfigDict(from_attributes=True)


class ProjectSummary(BaseModel):
    id: int
    title: str
    description: str | None = None

    model_config = ConfigDict(from_attributes=True)


class InvitationInfo(BaseModel):
    invitation: InvitationResponse
    project: ProjectSummary


class CollaboratorAddResponse(BaseModel):
    # added | already_member | invited | pending
    status: str
    email: str
    role: Role
    collaborator: CollaboratorResponse | None = None
    invitation: InvitationResponse | None = None


# Entries
class EntryCreate(BaseModel):
    title: str
    description: str | None = None
    latitude: str | None = None
    longitude: str | None = None
    entry_type: str = "note"
    media_url_image: str | None = None
    media_url_audio: str | None = None
    tags: list[str] = Field(default_factory=list)
    links: list[str] = Field(default_factory=list)

    model_config = ConfigDict(coerce_numbers_to_str=True)


class EntryUpdate(BaseModel):
    """Partial update; only fields sent by the client are applied."""

    title: str | None = None
    description: str | None = None
    latitude: str | None = None
    longitude: str | None = None
    entry_type: str | None = None
    media_url_image: str | None = None
    media_url_audio: str | None = None
    tags: list[str] | None = None
    links: list[str] | None = None

    model_config = ConfigDict(coerce_numbers_to_str=True)


class EntryResponse(BaseModel):
    id: int
    project_id: int
    created_by_id: int
    title: str
    description: str | None = None
    latitude: str | None = None
    longitude: str | None = None
    entry_type: str
    media_url_image: str | None = None
    media_url_audio: str | None = None
    tags: list[str] = Field(default_factory=list)
    links: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
