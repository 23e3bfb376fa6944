"""
User administration endpoints. Everything except the own-profile edit is admin only.
"""

import math
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.db.session import get_db
from eventhub.schemas.event import Pagination
from eventhub.schemas.user import (
    ProfileUpdate,
    UserListResponse,
    UserResponse,
    UserUpdate,
    UserUpdateResponse,
)
from eventhub.services import user_service
from eventhub.services.cache_factory import get_cache_sink
from eventhub.services.interfaces.cache_sink import CacheSink
from eventhub.core.security import Caller, get_current_caller, require_admin

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/", response_model=UserListResponse)
async def list_users_endpoint(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=255),
    _: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Users newest first; `search` matches email, first or last name."""
    users, total = await user_service.list_users(db, page, limit, search)
    return UserListResponse(
        users=[UserResponse.model_validate(u) for u in users],
        pagination=Pagination(
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit),
        ),
    )


@router.put("/profile/me", response_model=UserUpdateResponse)
async def update_profile_endpoint(
    changes: ProfileUpdate,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Edit the caller's own email and name. The role cannot be changed here."""
    user = await user_service.update_user(db, caller.user_id, changes)
    return UserUpdateResponse(message="Profile updated successfully", user=UserResponse.model_validate(user))


@router.get("/{user_id}", response_model=UserResponse)
async def get_user_endpoint(
    user_id: int,
    _: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.get_user(db, user_id)


@router.put("/{user_id}", response_model=UserUpdateResponse)
async def update_user_endpoint(
    user_id: int,
    changes: UserUpdate,
    _: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await user_service.update_user(db, user_id, changes)
    return UserUpdateResponse(message="User updated successfully", user=UserResponse.model_validate(user))


@router.delete("/{user_id}")
async def delete_user_endpoint(
    user_id: int,
    caller: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    cache: CacheSink = Depends(get_cache_sink),
):
    """
    Delete a user, the events they created and their reservations.
    Spots held at other events are released first.
    """
    await user_service.delete_user(db, user_id, caller, cache=cache)
    return {"message": "User deleted successfully", "user_id": user_id}
