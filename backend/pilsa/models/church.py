"""
Pilsa Backend — Church & Membership SQLAlchemy Models
======================================================

What:  ORM models for `churches` and `user_church_memberships`.
Who:   ChurchService (search, registration, removal, primary designation),
       UserService (profile church name).

Membership rules enforced by the schema:
    - uq (user_id, church_id): a user joins a given church once
    - partial unique index on user_id WHERE is_primary: at most one primary
      membership per user, even under concurrent requests

Rules enforced by ChurchService (need a count or an ordering):
    - at most `max_church_memberships` approved/pending memberships per user
    - the first active membership becomes primary
    - removing the primary promotes the earliest-joined remaining membership

Status values:
    approved: joined an existing church (by id or code)
    pending:  registered a church manually; awaiting review
    rejected: review declined; does not count toward the limit
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pilsa.database import Base
from pilsa.models.user import utcnow

MEMBERSHIP_APPROVED = "approved"
MEMBERSHIP_PENDING = "pending"
MEMBERSHIP_REJECTED = "rejected"

# Statuses that occupy a membership slot
ACTIVE_MEMBERSHIP_STATUSES = (MEMBERSHIP_APPROVED, MEMBERSHIP_PENDING)

CHURCH_CODE_LENGTH = 6

MEMBERSHIP_UNIQUE_CONSTRAINT = "uq_user_church_memberships_user_church"
PRIMARY_MEMBERSHIP_INDEX = "uq_user_church_memberships_primary"


class Church(Base):
    """A church users can affiliate with, joined by id or by 6-character code."""

    __tablename__ = "churches"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )

    # Upper-case alphanumeric invite code shared by the church
    church_code: Mapped[str | None] = mapped_column(
        String(CHURCH_CODE_LENGTH),
        nullable=True,
        unique=True,
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    city: Mapped[str] = mapped_column(String(50), nullable=False, default="기타")
    district: Mapped[str | None] = mapped_column(String(50), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    member_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )
    pastor: Mapped[str | None] = mapped_column(String(100), nullable=True)
    denomination: Mapped[str | None] = mapped_column(String(100), nullable=True)

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_churches_active_name", "is_active", "name"),
        Index("idx_churches_city", "city"),
    )

    def __repr__(self) -> str:
        return f"<Church(id={self.id}, code='{self.church_code}', name='{self.name}')>"


class UserChurchMembership(Base):
    """Affiliation between a user and a church; one per user is primary."""

    __tablename__ = "user_church_memberships"

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
    church_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("churches.id", ondelete="CASCADE"),
        nullable=False,
    )

    is_primary: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=MEMBERSHIP_APPROVED,
        server_default=text(f"'{MEMBERSHIP_APPROVED}'"),
    )

    joined_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    # Many-to-one; eager so serializers can read membership.church in async code
    church: Mapped[Church] = relationship(lazy="joined")

    __table_args__ = (
        UniqueConstraint("user_id", "church_id", name=MEMBERSHIP_UNIQUE_CONSTRAINT),
        Index(
            PRIMARY_MEMBERSHIP_INDEX,
            "user_id",
            unique=True,
            postgresql_where=text("is_primary"),
        ),
        Index("idx_user_church_memberships_user_joined", "user_id", "joined_at"),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_MEMBERSHIP_STATUSES

    def __repr__(self) -> str:
        return (
            f"<UserChurchMembership(id={self.id}, user_id={self.user_id}, "
            f"church_id={self.church_id}, primary={self.is_primary}, status='{self.status}')>"
        )
