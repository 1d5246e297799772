"""
Pilsa Backend — Transcription & Stats Routes
=============================================

POST /api/transcription      save a verse, accrue credits
GET  /api/daily-stats        ?date=YYYY-MM-DD | ?month=YYYY-MM | today
GET  /api/completed-verses   verse keys for the Bible tab's check marks
"""

import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pilsa.config import settings
from pilsa.database import get_db_session
from pilsa.dependencies import get_current_user
from pilsa.schemas.common import ErrorResponse
from pilsa.schemas.transcription import (
    CompletedVersesResponse,
    DayStatsResponse,
    MonthStatsResponse,
    TranscriptionCreate,
    TranscriptionResponse,
)
from pilsa.services.auth_base import AuthUser
from pilsa.services.credit_service import credit_service, parse_day, today_utc

logger = logging.getLogger(__name__)

router = APIRouter(prefix=settings.api_prefix, tags=["Transcription"])


@router.post(
    "/transcription",
    response_model=TranscriptionResponse,
    responses={
        401: {"description": "Missing or invalid token", "model": ErrorResponse},
        404: {"description": "User not found", "model": ErrorResponse},
        500: {"description": "Server error", "model": ErrorResponse},
    },
    summary="Save a transcribed verse",
)
async def create_transcription(
    body: TranscriptionCreate,
    auth_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> TranscriptionResponse:
    return await credit_service.record_transcription(db, auth_user, body)


@router.get(
    "/daily-stats",
    response_model=Union[MonthStatsResponse, DayStatsResponse],
    responses={400: {"description": "Malformed date or month", "model": ErrorResponse}},
    summary="Credits per day",
    description="`month` takes precedence over `date`; with neither, today's (UTC) stats are returned.",
)
async def daily_stats(
    date: Optional[str] = Query(default=None, description="YYYY-MM-DD"),
    month: Optional[str] = Query(default=None, description="YYYY-MM"),
    auth_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> Union[MonthStatsResponse, DayStatsResponse]:
    if month:
        stats = await credit_service.get_month_stats(db, auth_user, month)
        return MonthStatsResponse(month=month, stats=stats)

    day = parse_day(date) if date else today_utc()
    stats = await credit_service.get_day_stats(db, auth_user, day)
    return DayStatsResponse(date=day, stats=stats)


@router.get(
    "/completed-verses",
    response_model=CompletedVersesResponse,
    summary="Verses the user has transcribed",
)
async def completed_verses(
    auth_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> CompletedVersesResponse:
    verses = await credit_service.get_completed_verses(db, auth_user)
    return CompletedVersesResponse(completed_verses=verses)
