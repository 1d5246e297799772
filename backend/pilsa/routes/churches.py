"""
Pilsa Backend — Church & Membership Routes
===========================================

GET    /api/churches                                 search the directory
GET    /api/user/church-memberships                  list the user's memberships
POST   /api/user/church-memberships                  join / register a church
DELETE /api/user/church-memberships/{id}             leave a church
POST   /api/user/church-memberships/{id}/primary     change the primary church
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pilsa.config import settings
from pilsa.database import get_db_session
from pilsa.dependencies import get_current_user
from pilsa.schemas.church import (
    ChurchListResponse,
    ChurchOut,
    MembershipCreate,
    MembershipListResponse,
    MembershipOut,
    MembershipResponse,
)
from pilsa.schemas.common import ErrorResponse, StatusResponse
from pilsa.services.auth_base import AuthUser
from pilsa.services.church_service import church_service

router = APIRouter(prefix=settings.api_prefix, tags=["Churches"])


@router.get("/churches", response_model=ChurchListResponse, summary="Search churches")
async def search_churches(
    search: Optional[str] = Query(default=None, max_length=100, description="Matches name or address"),
    city: Optional[str] = Query(default=None, max_length=50, description="'전체' or empty for every city"),
    auth_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ChurchListResponse:
    churches = await church_service.search_churches(db, search=search, city=city)
    return ChurchListResponse(churches=[ChurchOut.model_validate(c) for c in churches])


@router.get(
    "/user/church-memberships",
    response_model=MembershipListResponse,
    summary="List the user's church memberships",
)
async def list_memberships(
    auth_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MembershipListResponse:
    memberships = await church_service.list_memberships(db, auth_user)
    return MembershipListResponse(memberships=[MembershipOut.model_validate(m) for m in memberships])


@router.post(
    "/user/church-memberships",
    response_model=MembershipResponse,
    responses={
        400: {"description": "No church given", "model": ErrorResponse},
        404: {"description": "Church not found / invalid code", "model": ErrorResponse},
        409: {"description": "Already registered or limit reached", "model": ErrorResponse},
    },
    summary="Register a church membership",
)
async def register_membership(
    body: MembershipCreate,
    auth_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MembershipResponse:
    membership = await church_service.register_membership(db, auth_user, body)
    return MembershipResponse(membership=MembershipOut.model_validate(membership))


@router.delete(
    "/user/church-memberships/{membership_id}",
    response_model=StatusResponse,
    responses={404: {"description": "Membership not found", "model": ErrorResponse}},
    summary="Remove a church membership",
)
async def remove_membership(
    membership_id: uuid.UUID,
    auth_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> StatusResponse:
    await church_service.remove_membership(db, auth_user, membership_id)
    return StatusResponse(status="deleted")


@router.post(
    "/user/church-memberships/{membership_id}/primary",
    response_model=MembershipResponse,
    responses={
        400: {"description": "Membership was rejected", "model": ErrorResponse},
        404: {"description": "Membership not found", "model": ErrorResponse},
    },
    summary="Make a membership the primary church",
)
async def set_primary_membership(
    membership_id: uuid.UUID,
    auth_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MembershipResponse:
    membership = await church_service.set_primary(db, auth_user, membership_id)
    return MembershipResponse(membership=MembershipOut.model_validate(membership))
