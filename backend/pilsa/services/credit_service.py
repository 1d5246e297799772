"""
Pilsa Backend — Transcription & Credit Ledger Service
======================================================

What:  Records transcriptions (credit accrual + reading progress + legacy KV
       mirror) and answers the daily/monthly stats and completed-verse queries.
Who:   Transcription, stats and completed-verse routes.

Write path (POST /api/transcription), all in the request's transaction:
    ┌───────────────┐    ┌────────────────────┐    ┌──────────────────┐
    │ daily_credits │───▶│ transcriptions_    │───▶│ kv_store mirror  │
    │ atomic +=     │    │ progress upsert    │    │ (LEGACY_KV_MIRROR)│
    └───────────────┘    └────────────────────┘    └──────────────────┘

Accrual never reads before writing:
    INSERT INTO daily_credits (user_id, date, credits_earned) VALUES (...)
    ON CONFLICT (user_id, date)
    DO UPDATE SET credits_earned = daily_credits.credits_earned + EXCLUDED.credits_earned
    RETURNING credits_earned
so two transcriptions saved at the same moment both count.
"""

import logging
import re
import uuid
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pilsa.config import settings
from pilsa.exceptions import DatabaseError, ValidationError
from pilsa.models.credit import DailyCredit
from pilsa.models.progress import TranscriptionProgress
from pilsa.models.user import utcnow
from pilsa.schemas.transcription import (
    DAY_PATTERN,
    DailyStats,
    TranscriptionCreate,
    TranscriptionRecord,
    TranscriptionResponse,
)
from pilsa.services.auth_base import AuthUser
from pilsa.services.kv_store import kv_store, transcription_key, transcription_prefix
from pilsa.services.user_service import user_service

logger = logging.getLogger(__name__)

_MONTH_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")


# ── Date helpers ──────────────────────────────────────────────────────────

def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def parse_day(value: str) -> date:
    """'YYYY-MM-DD' → date; anything else is a 400."""
    try:
        if not DAY_PATTERN.match(value):
            raise ValueError(value)
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(
            message=f"Invalid date '{value}'. Expected YYYY-MM-DD.",
            field="date",
        )


def month_bounds(month: str) -> Tuple[date, date]:
    """
    'YYYY-MM' → (first day of the month, first day of the next month).

    The upper bound is exclusive, so February and December need no special
    casing beyond the year rollover.
    """
    match = _MONTH_PATTERN.match(month)
    if not match or not 1 <= int(match.group(2)) <= 12:
        raise ValidationError(
            message=f"Invalid month '{month}'. Expected YYYY-MM.",
            field="month",
        )
    year, mon = int(match.group(1)), int(match.group(2))
    start = date(year, mon, 1)
    end = date(year + 1, 1, 1) if mon == 12 else date(year, mon + 1, 1)
    return start, end


def new_record_id(now: datetime) -> str:
    """'<epoch ms>-<9 hex chars>', sortable by creation time."""
    return f"{int(now.timestamp() * 1000)}-{uuid.uuid4().hex[:9]}"


def verse_key(book: str, chapter: int, verse: int) -> str:
    return f"{book}-{chapter}-{verse}"


class CreditService:
    """Credit accrual and reading-progress queries."""

    async def record_transcription(
        self,
        db: AsyncSession,
        auth_user: AuthUser,
        payload: TranscriptionCreate,
    ) -> TranscriptionResponse:
        """
        Saves one transcribed verse.

        Returns:
            The transcription record and the day's credits after the increment.

        Raises:
            NotFoundError: no user record for this identity
            DatabaseError: any write failed (the whole request rolls back)
        """
        user = await user_service.resolve_user(db, auth_user)
        day = payload.date or today_utc()
        now = utcnow()
        record_id = new_record_id(now)

        credit_stmt = pg_insert(DailyCredit).values(
            user_id=user.id,
            date=day,
            credits_earned=payload.credits,
            credits_spent=0,
            created_at=now,
            updated_at=now,
        )
        credit_stmt = credit_stmt.on_conflict_do_update(
            index_elements=[DailyCredit.user_id, DailyCredit.date],
            set_={
                "credits_earned": DailyCredit.credits_earned + credit_stmt.excluded.credits_earned,
                "updated_at": credit_stmt.excluded.updated_at,
            },
        ).returning(DailyCredit.credits_earned)

        progress_stmt = pg_insert(TranscriptionProgress).values(
            user_id=user.id,
            book=payload.book,
            chapter=payload.chapter,
            verse=payload.verse_num,
            progress_json={"lastUpdated": now.isoformat(), "mode": payload.mode},
            updated_at=now,
        )
        progress_stmt = progress_stmt.on_conflict_do_update(
            index_elements=[TranscriptionProgress.user_id, TranscriptionProgress.book],
            set_={
                "chapter": progress_stmt.excluded.chapter,
                "verse": progress_stmt.excluded.verse,
                "progress_json": progress_stmt.excluded.progress_json,
                "updated_at": progress_stmt.excluded.updated_at,
            },
        )

        try:
            result = await db.execute(credit_stmt)
            daily_earned = result.scalar_one()
            await db.execute(progress_stmt)
        except SQLAlchemyError as e:
            logger.error("Failed to record transcription for user %s: %s", user.id, str(e))
            raise DatabaseError(
                message="Could not save your transcription. Please try again.",
                context={"user_id": str(user.id), "book": payload.book},
            )

        if settings.legacy_kv_mirror:
            await kv_store.set(
                db,
                transcription_key(auth_user.id, record_id),
                {
                    "id": record_id,
                    "userId": auth_user.id,
                    "mode": payload.mode,
                    "verse": payload.verse,
                    "credits": payload.credits,
                    "book": payload.book,
                    "chapter": payload.chapter,
                    "verseNum": payload.verse_num,
                    "date": day.isoformat(),
                    "timestamp": now.isoformat(),
                },
            )

        logger.info(
            "Transcription %s saved: user=%s %s %d:%d +%d credits (day total %d)",
            record_id,
            user.id,
            payload.book,
            payload.chapter,
            payload.verse_num,
            payload.credits,
            daily_earned,
        )

        return TranscriptionResponse(
            transcription=TranscriptionRecord(
                id=record_id,
                credits=payload.credits,
                book=payload.book,
                chapter=payload.chapter,
                verse_num=payload.verse_num,
                date=day,
            ),
            daily_earned=daily_earned,
        )

    async def get_day_stats(self, db: AsyncSession, auth_user: AuthUser, day: date) -> DailyStats:
        """Stats for one date; zeroed when nothing was recorded that day."""
        user = await user_service.resolve_user(db, auth_user)
        try:
            result = await db.execute(
                select(DailyCredit).where(
                    DailyCredit.user_id == user.id,
                    DailyCredit.date == day,
                )
            )
            row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to load stats for user %s on %s: %s", user.id, day, str(e))
            raise DatabaseError(context={"user_id": str(user.id), "date": day.isoformat()})

        if row is None:
            return DailyStats(date=day)
        return DailyStats(
            date=row.date,
            credits_earned=row.credits_earned,
            credits_spent=row.credits_spent,
        )

    async def get_month_stats(self, db: AsyncSession, auth_user: AuthUser, month: str) -> List[DailyStats]:
        """Rows for every recorded day in `month` ('YYYY-MM'), oldest first."""
        start, end = month_bounds(month)
        user = await user_service.resolve_user(db, auth_user)
        try:
            result = await db.execute(
                select(DailyCredit)
                .where(
                    DailyCredit.user_id == user.id,
                    DailyCredit.date >= start,
                    DailyCredit.date < end,
                )
                .order_by(DailyCredit.date)
            )
            rows = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("Failed to load month stats for user %s (%s): %s", user.id, month, str(e))
            raise DatabaseError(context={"user_id": str(user.id), "month": month})

        return [
            DailyStats(date=row.date, credits_earned=row.credits_earned, credits_spent=row.credits_spent)
            for row in rows
        ]

    async def get_completed_verses(self, db: AsyncSession, auth_user: AuthUser) -> Dict[str, bool]:
        """
        '<book>-<chapter>-<verse>' → True for every verse the user has
        transcribed, from the progress table and the legacy KV records.

        Unknown users get an empty map rather than a 404; the Bible tab
        renders without marks.
        """
        user = await user_service.find_user(db, auth_user)
        if user is None:
            return {}

        completed: Dict[str, bool] = {}
        try:
            result = await db.execute(
                select(
                    TranscriptionProgress.book,
                    TranscriptionProgress.chapter,
                    TranscriptionProgress.verse,
                ).where(TranscriptionProgress.user_id == user.id)
            )
            for row in result:
                completed[verse_key(row.book, row.chapter, row.verse)] = True
        except SQLAlchemyError as e:
            logger.error("Failed to load progress for user %s: %s", user.id, str(e))
            raise DatabaseError(context={"user_id": str(user.id), "operation": "completed_verses"})

        for record in await kv_store.get_by_prefix(db, transcription_prefix(auth_user.id)):
            key = self._record_verse_key(record)
            if key:
                completed[key] = True

        return completed

    @staticmethod
    def _record_verse_key(record: object) -> Optional[str]:
        if not isinstance(record, dict):
            return None
        book, chapter, verse = record.get("book"), record.get("chapter"), record.get("verseNum")
        if not (book and chapter and verse):
            return None
        return verse_key(book, chapter, verse)


# ── Singleton Instance ────────────────────────────────────────────────────
credit_service = CreditService()
