"""
Pilsa Backend — User SQLAlchemy Model
======================================

What:  ORM model for the `users` table: the application-side record of an
       authenticated Supabase user.
Who:   UserService (profile, providers), ChurchService (display church sync),
       CreditService (id resolution).

Table Design:
    - id: internal UUID referenced by every other table
    - auth_user_id: the Supabase Auth user id (`sub` of the access token);
      unique because one auth identity maps to exactly one record
    - church: display name of the primary church. Kept in sync by
      ChurchService after every membership change; also settable directly
      through the profile endpoint for users without a registered church
    - provider: the social login currently linked (google, kakao, apple, ...)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Text, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from pilsa.database import Base


def utcnow() -> datetime:
    """Timezone-aware current time; every timestamp column is stored in UTC."""
    return datetime.now(timezone.utc)


class User(Base):
    """Application user keyed by Supabase auth id."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )

    auth_user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        unique=True,
        comment="Supabase auth.users id",
    )

    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Currently linked social login provider; NULL when disconnected
    provider: Mapped[str | None] = mapped_column(String(50), nullable=True)

    church: Mapped[str | None] = mapped_column(
        String(200),
        nullable=True,
        comment="Display name of the primary church",
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

    def __repr__(self) -> str:
        return f"<User(id={self.id}, auth_user_id={self.auth_user_id})>"
