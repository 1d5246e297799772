"""
Pilsa Backend — Daily Credit Ledger Model
==========================================

What:  ORM model for `daily_credits`: one row per (user, calendar date)
       holding the credits earned and spent that day.
Who:   CreditService (accrual, daily/monthly stats), UserService (totals).

Accrual is an atomic `INSERT ... ON CONFLICT (user_id, date) DO UPDATE`
that adds to `credits_earned`; the unique constraint below is the conflict
target. Profile totals are SUM() over a user's rows.
"""

import datetime as dt
import uuid
from datetime import datetime

from sqlalchemy import Date, ForeignKey, Integer, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from pilsa.database import Base
from pilsa.models.user import utcnow


class DailyCredit(Base):
    """Credits earned/spent by one user on one date."""

    __tablename__ = "daily_credits"

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

    # Client-local calendar date the credits belong to
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)

    credits_earned: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )
    credits_spent: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_daily_credits_user_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<DailyCredit(user_id={self.user_id}, date={self.date}, "
            f"earned={self.credits_earned}, spent={self.credits_spent})>"
        )
