"""Pilsa Backend — Linked social-login provider routes."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from pilsa.config import settings
from pilsa.database import get_db_session
from pilsa.dependencies import get_current_user
from pilsa.schemas.common import ErrorResponse, StatusResponse
from pilsa.schemas.user import (
    ProviderLinkRequest,
    ProviderLinkResponse,
    ProviderListResponse,
)
from pilsa.services.auth_base import AuthUser
from pilsa.services.user_service import user_service

router = APIRouter(prefix=f"{settings.api_prefix}/user/providers", tags=["Providers"])


@router.get("", response_model=ProviderListResponse, summary="List linked providers")
async def list_providers(
    auth_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ProviderListResponse:
    providers = await user_service.list_providers(db, auth_user)
    return ProviderListResponse(providers=providers)


@router.post(
    "/link",
    response_model=ProviderLinkResponse,
    responses={400: {"description": "provider is required", "model": ErrorResponse}},
    summary="Link a social login provider",
)
async def link_provider(
    body: ProviderLinkRequest,
    auth_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ProviderLinkResponse:
    info = await user_service.link_provider(db, auth_user, body)
    return ProviderLinkResponse(provider=info)


@router.post("/disconnect-all", response_model=StatusResponse, summary="Unlink every provider")
async def disconnect_all(
    auth_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> StatusResponse:
    await user_service.disconnect_all(db, auth_user)
    return StatusResponse(status="all_disconnected")


@router.delete(
    "/{provider}",
    response_model=StatusResponse,
    responses={404: {"description": "Provider is not linked", "model": ErrorResponse}},
    summary="Unlink a provider",
)
async def unlink_provider(
    provider: str,
    auth_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> StatusResponse:
    await user_service.unlink_provider(db, auth_user, provider)
    return StatusResponse(status="unlinked")
