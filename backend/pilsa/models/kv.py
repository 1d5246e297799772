"""
Pilsa Backend — Legacy Key-Value Store Model
=============================================

What:  ORM model for `kv_store`, a plain `key → JSON` table.
Who:   KVStore service. Transcription records were originally stored here
       under `user:<authUserId>:transcription:<id>`; new transcriptions are
       still mirrored so older clients and exports keep working.
"""

from typing import Any

from sqlalchemy import Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from pilsa.database import Base


class KVEntry(Base):
    """One JSON value stored under a text key."""

    __tablename__ = "kv_store"

    key: Mapped[str] = mapped_column(Text, primary_key=True)
    value: Mapped[Any] = mapped_column(JSONB, nullable=False)

    def __repr__(self) -> str:
        return f"<KVEntry(key='{self.key}')>"
