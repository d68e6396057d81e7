"""
Dashboard statistics and the current user's profile.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AuthenticatedUser
from ..core.dependencies import get_db, get_user
from ..core.schemas import CamelModel
from ..repositories import stats as stats_repo
from ..repositories import users as users_repo

stats_router = APIRouter(tags=["stats"])


class UserOut(CamelModel):
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    role: str
    plan: str
    plan_usage: int
    plan_limit: int
    created_at: Optional[datetime] = None


@stats_router.get("/auth/user", response_model=UserOut)
async def current_user(
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
):
    row = await users_repo.get_user(db, user.user_id)
    if row is None:
        raise HTTPException(status_code=404, detail="User not found")
    return UserOut.model_validate(row)


@stats_router.get("/stats")
async def get_stats(
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
):
    return await stats_repo.get_user_stats(db, user.user_id)
