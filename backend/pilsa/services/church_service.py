"""
Pilsa Backend — Church & Membership Service
============================================

What:  Church search, membership registration/removal and primary-church
       designation.
Who:   Church and membership routes.

Membership invariants maintained here (in one request transaction):
    1. At most `max_church_memberships` approved/pending memberships per user
    2. The first active membership is primary
    3. Removing the primary promotes the earliest-joined remaining
       membership, active ones first
    4. users.church mirrors the primary church's name (NULL without one)

The partial unique index on (user_id) WHERE is_primary backs rule 2/3 at the
database level: primary flags are always cleared (and flushed) before a new
one is set.

Register, remove and set-primary lock the user row (SELECT ... FOR UPDATE)
before reading memberships, so one user's changes never interleave and the
count in rule 1 stays accurate.

Registration flow (POST /api/user/church-memberships):
    churchId ──▶ active church by id        (404 "Church not found")
    churchCode ─▶ active church by code     (404 "Invalid church code")
    manualChurch ▶ new church, status=pending
        │
        ▼
    duplicate? (409) ─▶ limit reached? (409) ─▶ insert ─▶ sync users.church
"""

import logging
import secrets
import string
import uuid
from typing import List, Optional

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pilsa.config import settings
from pilsa.database import LIKE_ESCAPE, escape_like
from pilsa.exceptions import ConflictError, DatabaseError, NotFoundError, ValidationError
from pilsa.models.church import (
    ACTIVE_MEMBERSHIP_STATUSES,
    CHURCH_CODE_LENGTH,
    MEMBERSHIP_APPROVED,
    MEMBERSHIP_PENDING,
    MEMBERSHIP_UNIQUE_CONSTRAINT,
    Church,
    UserChurchMembership,
)
from pilsa.models.user import User, utcnow
from pilsa.schemas.church import ManualChurch, MembershipCreate
from pilsa.services.auth_base import AuthUser
from pilsa.services.user_service import user_service

logger = logging.getLogger(__name__)

# City filter value meaning "every city"
ALL_CITIES = "전체"
DEFAULT_CITY = "기타"

_CODE_ALPHABET = string.ascii_uppercase + string.digits
_CODE_ATTEMPTS = 5


def generate_church_code() -> str:
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(CHURCH_CODE_LENGTH))


def violates(error: IntegrityError, constraint: str) -> bool:
    """True when the driver reports `constraint` as the violated one."""
    name = getattr(getattr(error.orig, "__cause__", None), "constraint_name", None)
    if name is None:
        name = getattr(error.orig, "constraint_name", None)
    if name is not None:
        return name == constraint
    return constraint in str(error.orig)


class ChurchService:
    """Stateless; every method receives the request's session."""

    # ── Church directory ──────────────────────────────────────────────────

    async def search_churches(
        self,
        db: AsyncSession,
        search: Optional[str] = None,
        city: Optional[str] = None,
    ) -> List[Church]:
        """Active churches matching name/address and city, ordered by name."""
        query = select(Church).where(Church.is_active.is_(True))

        city = (city or "").strip()
        if city and city != ALL_CITIES:
            query = query.where(Church.city == city)

        term = (search or "").strip()
        if term:
            pattern = f"%{escape_like(term)}%"
            query = query.where(
                or_(
                    Church.name.ilike(pattern, escape=LIKE_ESCAPE),
                    Church.address.ilike(pattern, escape=LIKE_ESCAPE),
                )
            )

        query = query.order_by(Church.name).limit(settings.church_search_limit)

        try:
            result = await db.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Church search failed (search=%r, city=%r): %s", term, city, str(e))
            raise DatabaseError(message="Could not load churches. Please try again.")

    # ── Memberships ───────────────────────────────────────────────────────

    async def list_memberships(self, db: AsyncSession, auth_user: AuthUser) -> List[UserChurchMembership]:
        """The user's memberships, primary first, then oldest first."""
        user = await user_service.resolve_user(db, auth_user)
        try:
            result = await db.execute(
                select(UserChurchMembership)
                .where(UserChurchMembership.user_id == user.id)
                .order_by(
                    UserChurchMembership.is_primary.desc(),
                    UserChurchMembership.joined_at.asc(),
                )
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Failed to list memberships for user %s: %s", user.id, str(e))
            raise DatabaseError(context={"user_id": str(user.id), "operation": "list_memberships"})

    async def register_membership(
        self,
        db: AsyncSession,
        auth_user: AuthUser,
        request: MembershipCreate,
    ) -> UserChurchMembership:
        """
        Joins an existing church or registers a new one.

        Raises:
            ValidationError: none of churchId / churchCode / manualChurch given
            NotFoundError:   unknown church id or code
            ConflictError:   already a member, or membership limit reached
        """
        user = await user_service.resolve_user(db, auth_user, for_update=True)

        manual = request.manual_church
        if request.church_id:
            church = await self._active_church_by_id(db, request.church_id)
            status = MEMBERSHIP_APPROVED
        elif request.church_code:
            church = await self._active_church_by_code(db, request.church_code)
            status = MEMBERSHIP_APPROVED
        elif manual is not None and (manual.name or "").strip() and (manual.address or "").strip():
            church = None
            status = MEMBERSHIP_PENDING
        else:
            raise ValidationError(
                message="churchId, churchCode or manualChurch is required",
                field="church",
            )

        if church is not None and await self._find_membership_for_church(db, user.id, church.id):
            raise ConflictError(
                message="Already registered to this church",
                context={"church_id": str(church.id)},
            )

        active_count = await self._count_active(db, user.id)
        if active_count >= settings.max_church_memberships:
            raise ConflictError(
                message=(
                    f"You can register at most {settings.max_church_memberships} churches. "
                    "Remove one before adding another."
                ),
                context={"limit": settings.max_church_memberships},
            )

        if church is None:
            church = await self._create_manual_church(db, manual)

        is_primary = active_count == 0
        membership = UserChurchMembership(
            user_id=user.id,
            church_id=church.id,
            church=church,
            is_primary=is_primary,
            status=status,
        )

        try:
            if is_primary:
                await self._clear_primary(db, user.id)
            db.add(membership)
            await db.flush()
        except IntegrityError as e:
            if violates(e, MEMBERSHIP_UNIQUE_CONSTRAINT):
                logger.info("Duplicate membership rejected for user %s, church %s", user.id, church.id)
                raise ConflictError(
                    message="Already registered to this church",
                    context={"church_id": str(church.id)},
                )
            logger.warning("Membership insert for user %s hit a constraint: %s", user.id, str(e))
            raise ConflictError(
                message="Your church memberships changed while saving. Please try again.",
                context={"church_id": str(church.id)},
            )
        except SQLAlchemyError as e:
            logger.error("Failed to insert membership for user %s: %s", user.id, str(e))
            raise DatabaseError(
                message="Could not register the church membership. Please try again.",
                context={"user_id": str(user.id)},
            )

        await self._sync_user_church(db, user)
        logger.info(
            "User %s joined church %s (status=%s, primary=%s)",
            user.id,
            church.id,
            status,
            is_primary,
        )
        return membership

    async def remove_membership(
        self,
        db: AsyncSession,
        auth_user: AuthUser,
        membership_id: uuid.UUID,
    ) -> None:
        user = await user_service.resolve_user(db, auth_user, for_update=True)
        membership = await self._get_user_membership(db, user.id, membership_id)
        was_primary = membership.is_primary

        try:
            await db.delete(membership)
            await db.flush()

            if was_primary:
                next_primary = await self._next_primary_candidate(db, user.id)
                if next_primary is not None:
                    next_primary.is_primary = True
                    await db.flush()
                    logger.info("Membership %s promoted to primary for user %s", next_primary.id, user.id)
        except SQLAlchemyError as e:
            logger.error("Failed to delete membership %s: %s", membership_id, str(e))
            raise DatabaseError(
                message="Could not remove the church membership. Please try again.",
                context={"membership_id": str(membership_id)},
            )

        await self._sync_user_church(db, user)
        logger.info("User %s removed membership %s", user.id, membership_id)

    async def set_primary(
        self,
        db: AsyncSession,
        auth_user: AuthUser,
        membership_id: uuid.UUID,
    ) -> UserChurchMembership:
        """Makes one of the user's active memberships the primary one."""
        user = await user_service.resolve_user(db, auth_user, for_update=True)
        membership = await self._get_user_membership(db, user.id, membership_id)

        if not membership.is_active:
            raise ValidationError(
                message="Only approved or pending memberships can be primary",
                field="membershipId",
                context={"status": membership.status},
            )
        if membership.is_primary:
            return membership

        try:
            await self._clear_primary(db, user.id)
            membership.is_primary = True
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to set primary membership %s: %s", membership_id, str(e))
            raise DatabaseError(context={"membership_id": str(membership_id), "operation": "set_primary"})

        await self._sync_user_church(db, user)
        logger.info("User %s set membership %s as primary", user.id, membership_id)
        return membership

    # ── Helpers ───────────────────────────────────────────────────────────

    async def _active_church_by_id(self, db: AsyncSession, church_id: uuid.UUID) -> Church:
        church = await self._scalar(
            db,
            select(Church).where(Church.id == church_id, Church.is_active.is_(True)),
        )
        if church is None:
            raise NotFoundError(resource="church", resource_id=str(church_id), message="Church not found")
        return church

    async def _active_church_by_code(self, db: AsyncSession, code: str) -> Church:
        normalized = code.strip().upper()
        church = await self._scalar(
            db,
            select(Church).where(Church.church_code == normalized, Church.is_active.is_(True)),
        )
        if church is None:
            raise NotFoundError(resource="church", resource_id=normalized, message="Invalid church code")
        return church

    async def _find_membership_for_church(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        church_id: uuid.UUID,
    ) -> Optional[UserChurchMembership]:
        return await self._scalar(
            db,
            select(UserChurchMembership).where(
                UserChurchMembership.user_id == user_id,
                UserChurchMembership.church_id == church_id,
            ),
        )

    async def _get_user_membership(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        membership_id: uuid.UUID,
    ) -> UserChurchMembership:
        # Scoped by user so one user cannot touch another's membership
        membership = await self._scalar(
            db,
            select(UserChurchMembership).where(
                UserChurchMembership.id == membership_id,
                UserChurchMembership.user_id == user_id,
            ),
        )
        if membership is None:
            raise NotFoundError(
                resource="membership",
                resource_id=str(membership_id),
                message="Membership not found",
            )
        return membership

    async def _count_active(self, db: AsyncSession, user_id: uuid.UUID) -> int:
        count = await self._scalar(
            db,
            select(func.count(UserChurchMembership.id)).where(
                UserChurchMembership.user_id == user_id,
                UserChurchMembership.status.in_(ACTIVE_MEMBERSHIP_STATUSES),
            ),
        )
        return int(count or 0)

    async def _next_primary_candidate(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
    ) -> Optional[UserChurchMembership]:
        inactive_last = case(
            (UserChurchMembership.status.in_(ACTIVE_MEMBERSHIP_STATUSES), 0),
            else_=1,
        )
        return await self._scalar(
            db,
            select(UserChurchMembership)
            .where(UserChurchMembership.user_id == user_id)
            .order_by(inactive_last, UserChurchMembership.joined_at.asc())
            .limit(1),
        )

    async def _create_manual_church(self, db: AsyncSession, manual: ManualChurch) -> Church:
        code = await self._unused_church_code(db)
        church = Church(
            church_code=code,
            name=manual.name.strip(),
            address=manual.address.strip(),
            city=(manual.city or "").strip() or DEFAULT_CITY,
            district=manual.district or None,
            phone=manual.phone or None,
            member_count=0,
            pastor=manual.pastor or None,
            denomination=manual.denomination or None,
            is_active=True,
        )
        try:
            db.add(church)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Manual church insert failed: %s", str(e))
            raise DatabaseError(message="Failed to create church", context={"name": church.name})

        logger.info("Registered manual church %s (%s) with code %s", church.id, church.name, code)
        return church

    async def _unused_church_code(self, db: AsyncSession) -> str:
        for _ in range(_CODE_ATTEMPTS):
            code = generate_church_code()
            taken = await self._scalar(db, select(Church.id).where(Church.church_code == code))
            if taken is None:
                return code
        raise DatabaseError(
            message="Failed to create church",
            context={"reason": "could not allocate a unique church code"},
        )

    async def _clear_primary(self, db: AsyncSession, user_id: uuid.UUID) -> None:
        await db.execute(
            update(UserChurchMembership)
            .where(
                UserChurchMembership.user_id == user_id,
                UserChurchMembership.is_primary.is_(True),
            )
            .values(is_primary=False)
        )
        await db.flush()

    async def _sync_user_church(self, db: AsyncSession, user: User) -> None:
        """Copies the primary church's name onto users.church (NULL without one)."""
        try:
            result = await db.execute(
                select(Church.name)
                .join(UserChurchMembership, UserChurchMembership.church_id == Church.id)
                .where(
                    UserChurchMembership.user_id == user.id,
                    UserChurchMembership.is_primary.is_(True),
                )
                .limit(1)
            )
            user.church = result.scalar_one_or_none()
            user.updated_at = utcnow()
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to sync church name for user %s: %s", user.id, str(e))
            raise DatabaseError(context={"user_id": str(user.id), "operation": "sync_user_church"})

    @staticmethod
    async def _scalar(db: AsyncSession, query):
        try:
            result = await db.execute(query)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Church query failed: %s", str(e))
            raise DatabaseError(context={"error_type": type(e).__name__})


# ── Singleton Instance ────────────────────────────────────────────────────
church_service = ChurchService()
