"""
Pilsa Backend — Profile Routes
===============================

GET  /api/user/profile   profile with credit totals and primary church
POST /api/user/profile   partial update (name, avatarUrl, church)
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from pilsa.config import settings
from pilsa.database import get_db_session
from pilsa.dependencies import get_current_user
from pilsa.schemas.common import ErrorResponse
from pilsa.schemas.user import ProfileResponse, ProfileUpdate
from pilsa.services.auth_base import AuthUser
from pilsa.services.user_service import user_service

router = APIRouter(prefix=settings.api_prefix, tags=["Profile"])

_errors = {
    401: {"description": "Missing or invalid token", "model": ErrorResponse},
    404: {"description": "User profile not found", "model": ErrorResponse},
}


@router.get(
    "/user/profile",
    response_model=ProfileResponse,
    responses=_errors,
    summary="Get the signed-in user's profile",
)
async def get_profile(
    auth_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ProfileResponse:
    profile = await user_service.get_profile(db, auth_user)
    return ProfileResponse(profile=profile)


@router.post(
    "/user/profile",
    response_model=ProfileResponse,
    responses=_errors,
    summary="Update name, avatar or church display name",
)
async def update_profile(
    body: ProfileUpdate,
    auth_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ProfileResponse:
    profile = await user_service.update_profile(db, auth_user, body)
    return ProfileResponse(profile=profile)
