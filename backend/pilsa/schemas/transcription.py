"""
Pilsa Backend — Transcription & Credit Schemas
===============================================

Request/response models for saving a transcription, reading daily and
monthly credit stats, and the completed-verse map.

Stats rows mirror the `daily_credits` columns and keep their snake_case
names (`credits_earned`), which is what the calendar view reads.
"""

import datetime as dt
import re
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from pilsa.schemas.common import CamelModel

TranscriptionMode = Literal["easy", "expert"]

# Calendar dates on the wire are exactly YYYY-MM-DD
DAY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class TranscriptionCreate(CamelModel):
    """
    One transcribed verse.

    `date` is the client's local calendar date. When omitted the server uses
    today's UTC date, which differs from the user's day near midnight in
    UTC+9; clients should send it.
    """

    mode: TranscriptionMode
    verse: str = Field(default="", max_length=2000, description="Transcribed verse text")
    credits: int = Field(ge=1, le=1000)
    book: str = Field(min_length=1, max_length=100)
    chapter: int = Field(ge=1, le=200)
    verse_num: int = Field(ge=1, le=200)
    date: Optional[dt.date] = None

    @field_validator("date", mode="before")
    @classmethod
    def date_is_calendar_day(cls, value: Any) -> Any:
        if value is None or isinstance(value, dt.date):
            return value
        if not isinstance(value, str) or not DAY_PATTERN.match(value):
            raise ValueError("date must be YYYY-MM-DD")
        return value


class TranscriptionRecord(CamelModel):
    id: str
    credits: int
    book: str
    chapter: int
    verse_num: int
    date: dt.date


class TranscriptionResponse(CamelModel):
    transcription: TranscriptionRecord
    daily_earned: int = Field(description="Credits earned on `date` after this transcription")


class DailyStats(BaseModel):
    date: dt.date
    credits_earned: int = 0
    credits_spent: int = 0


class DayStatsResponse(BaseModel):
    date: dt.date
    stats: DailyStats


class MonthStatsResponse(BaseModel):
    month: str
    stats: List[DailyStats]


class CompletedVersesResponse(CamelModel):
    completed_verses: Dict[str, bool] = Field(
        description="Keys are '<book>-<chapter>-<verse>'; values are always true",
    )
