# Copyright (C) 2024 RabbitTrail Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Authentication API routes."""

from fastapi import APIRouter, Depends, HTTPException, status

from rabbittrail_server.auth import create_access_token, get_current_user_id
from rabbittrail_server.database import get_storage
from rabbittrail_server.rate_limit import rate_limit_dep
from rabbittrail_server.services import users
from rabbittrail_server.storage import Storage
from rabbittrail_server.api.schemas import (
    ProfileUpdate,
    RegisteredUserResponse,
    Token,
    UserCreate,
    UserLogin,
    UserResponse,
)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=Token, dependencies=[Depends(rate_limit_dep)])
async def login(
    data: UserLogin,
    store: Storage = Depends(get_storage),
) -> Token:
    """Authenticate and return JWT."""
    user = await users.authenticate(store, data.username, data.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        )
    token = create_access_token({"sub": str(user.id)})
    return Token(access_token=token)


@router.post(
    "/register",
    response_model=RegisteredUserResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit_dep)],
)
async def register(
    data: UserCreate,
    store: Storage = Depends(get_storage),
) -> RegisteredUserResponse:
    """Create a new user account. With invitation_token the account also joins the inviting project."""
    user, collab = await users.register(
        store,
        username=data.username,
        email=data.email,
        password=data.password,
        display_name=data.display_name,
        invitation_token=data.invitation_token,
    )
    return RegisteredUserResponse(
        **UserResponse.model_validate(user).model_dump(),
        joined_project_id=collab.project_id if collab else None,
    )


@router.get("/me", response_model=UserResponse)
async def get_me(
    user_id: int = Depends(get_current_user_id),
    store: Storage = Depends(get_storage),
) -> UserResponse:
    """Get current user profile."""
    return UserResponse.model_validate(await users.get_user(store, user_id))


@router.patch("/me", response_model=UserResponse)
async def update_me(
    data: ProfileUpdate,
    user_id: int = Depends(get_current_user_id),
    store: Storage = Depends(get_storage),
) -> UserResponse:
    """Update display name and/or email of the current user."""
    user = await users.update_profile(
        store, user_id, display_name=data.display_name, email=data.email
    )
    return UserResponse.model_validate(user)
