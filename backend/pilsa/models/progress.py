"""
Pilsa Backend — Transcription Progress Model
=============================================

What:  ORM model for `transcriptions_progress`: the last transcribed
       position per (user, book).
Who:   CreditService (upsert on every transcription, completed-verse map).

`progress_json` carries free-form client state; the server writes
`{"lastUpdated": <ISO time>, "mode": "easy" | "expert"}`.
"""

import uuid
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from pilsa.database import Base
from pilsa.models.user import utcnow


class TranscriptionProgress(Base):
    """Last verse a user transcribed in a given book."""

    __tablename__ = "transcriptions_progress"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    book: Mapped[str] = mapped_column(String(100), nullable=False)
    chapter: Mapped[int] = mapped_column(Integer, nullable=False)
    verse: Mapped[int] = mapped_column(Integer, nullable=False)

    progress_json: Mapped[Dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default=text("'{}'::jsonb"),
    )

    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        UniqueConstraint("user_id", "book", name="uq_transcriptions_progress_user_book"),
    )

    def __repr__(self) -> str:
        return (
            f"<TranscriptionProgress(user_id={self.user_id}, book='{self.book}', "
            f"chapter={self.chapter}, verse={self.verse})>"
        )
