"""
Pilsa Backend — User Service
=============================

What:  Resolves authenticated identities to `users` rows and implements the
       profile and social-provider operations.
Who:   Profile and provider routes; CreditService and ChurchService call
       `resolve_user` to turn an AuthUser into a user id.

Identity resolution:
    AuthUser.id (Supabase auth id) ── users.auth_user_id ──▶ users.id
    Missing row → 404 "User not found", unless AUTO_PROVISION_USERS is on,
    in which case the row is created with an
    INSERT ... ON CONFLICT (auth_user_id) DO NOTHING so two concurrent first
    requests cannot create duplicates.

Profile church resolution order:
    1. name of the church behind the primary membership
    2. users.church (legacy free-text value)
    3. ""
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pilsa.config import settings
from pilsa.exceptions import (
    AuthenticationError,
    DatabaseError,
    NotFoundError,
    ValidationError,
)
from pilsa.models.church import Church, UserChurchMembership
from pilsa.models.credit import DailyCredit
from pilsa.models.user import User, utcnow
from pilsa.schemas.user import (
    Profile,
    ProfileUpdate,
    ProviderInfo,
    ProviderLinkRequest,
)
from pilsa.services.auth_base import AuthUser

logger = logging.getLogger(__name__)


class UserService:
    """Profile reads/writes and the linked-provider bookkeeping on `users`."""

    # ── Identity resolution ───────────────────────────────────────────────

    @staticmethod
    def parse_auth_id(auth_user: AuthUser) -> uuid.UUID:
        try:
            return uuid.UUID(auth_user.id)
        except ValueError:
            raise AuthenticationError(context={"reason": "auth user id is not a UUID"})

    async def find_user(
        self,
        db: AsyncSession,
        auth_user: AuthUser,
        for_update: bool = False,
    ) -> Optional[User]:
        auth_id = self.parse_auth_id(auth_user)
        query = select(User).where(User.auth_user_id == auth_id)
        if for_update:
            query = query.with_for_update()
        try:
            result = await db.execute(query)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Database error looking up user %s: %s", auth_id, str(e))
            raise DatabaseError(context={"operation": "find_user"})

    async def resolve_user(
        self,
        db: AsyncSession,
        auth_user: AuthUser,
        for_update: bool = False,
    ) -> User:
        """
        Returns the user record for an authenticated identity.

        With `for_update` the row stays locked until the request's transaction
        ends, which serializes that user's membership changes.

        Raises:
            NotFoundError: no record and auto-provisioning is disabled
        """
        user = await self.find_user(db, auth_user, for_update=for_update)
        if user is None and settings.auto_provision_users:
            user = await self._provision(db, auth_user, for_update=for_update)
        if user is None:
            raise NotFoundError(resource="user", message="User not found")
        return user

    async def _provision(
        self,
        db: AsyncSession,
        auth_user: AuthUser,
        for_update: bool = False,
    ) -> Optional[User]:
        auth_id = self.parse_auth_id(auth_user)
        stmt = (
            pg_insert(User)
            .values(
                auth_user_id=auth_id,
                email=auth_user.email,
                name=auth_user.display_name,
                avatar_url=auth_user.avatar_url,
                provider=auth_user.provider,
            )
            .on_conflict_do_nothing(index_elements=[User.auth_user_id])
        )
        try:
            await db.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("Failed to provision user %s: %s", auth_id, str(e))
            raise DatabaseError(context={"operation": "provision_user"})

        logger.info("Provisioned user record for auth user %s", auth_id)
        return await self.find_user(db, auth_user, for_update=for_update)

    # ── Profile ───────────────────────────────────────────────────────────

    async def get_profile(self, db: AsyncSession, auth_user: AuthUser) -> Profile:
        user = await self.find_user(db, auth_user)
        if user is None:
            raise NotFoundError(resource="user", message="User profile not found")
        return await self.build_profile(db, user)

    async def update_profile(
        self,
        db: AsyncSession,
        auth_user: AuthUser,
        update: ProfileUpdate,
    ) -> Profile:
        """
        Applies a partial update and returns the recomputed profile.

        Empty strings for name/avatarUrl are ignored; church is stored trimmed.
        """
        user = await self.find_user(db, auth_user)
        if user is None:
            raise NotFoundError(resource="user", message="User profile not found")

        if update.name:
            user.name = update.name
        if update.avatar_url:
            user.avatar_url = update.avatar_url
        if update.church is not None:
            user.church = update.church.strip()
        user.updated_at = utcnow()

        try:
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to update profile for user %s: %s", user.id, str(e))
            raise DatabaseError(
                message="Could not update your profile. Please try again.",
                context={"user_id": str(user.id)},
            )
        return await self.build_profile(db, user)

    async def build_profile(self, db: AsyncSession, user: User) -> Profile:
        try:
            totals = await db.execute(
                select(
                    func.coalesce(func.sum(DailyCredit.credits_earned), 0),
                    func.coalesce(func.sum(DailyCredit.credits_spent), 0),
                ).where(DailyCredit.user_id == user.id)
            )
            earned, spent = totals.one()

            primary = await db.execute(
                select(Church.name)
                .join(UserChurchMembership, UserChurchMembership.church_id == Church.id)
                .where(
                    UserChurchMembership.user_id == user.id,
                    UserChurchMembership.is_primary.is_(True),
                )
                .limit(1)
            )
            primary_church = primary.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to load profile aggregates for user %s: %s", user.id, str(e))
            raise DatabaseError(context={"user_id": str(user.id), "operation": "build_profile"})

        return Profile(
            user_id=user.id,
            email=user.email,
            name=user.name or "User",
            avatar_url=user.avatar_url,
            provider=user.provider,
            church=primary_church or user.church or "",
            credits_earned=int(earned or 0),
            credits_spent=int(spent or 0),
            created_at=user.created_at,
        )

    # ── Social providers ──────────────────────────────────────────────────
    # The users row stores the single currently linked provider

    @staticmethod
    def _provider_info(user: User) -> ProviderInfo:
        return ProviderInfo(
            id=f"{user.id}-{user.provider}",
            provider=user.provider,
            email=user.email,
            name=user.name,
            linked_at=user.updated_at,
        )

    async def list_providers(self, db: AsyncSession, auth_user: AuthUser) -> List[ProviderInfo]:
        user = await self.resolve_user(db, auth_user)
        if not user.provider:
            return []
        return [self._provider_info(user)]

    async def link_provider(
        self,
        db: AsyncSession,
        auth_user: AuthUser,
        request: ProviderLinkRequest,
    ) -> ProviderInfo:
        provider = (request.provider or "").strip()
        if not provider:
            raise ValidationError(message="provider is required", field="provider")

        user = await self.resolve_user(db, auth_user)
        user.provider = provider
        if request.provider_name:
            user.name = request.provider_name
        if request.provider_email:
            user.email = request.provider_email
        user.updated_at = utcnow()
        await self._flush(db, user, "link_provider")

        logger.info("User %s linked provider '%s'", user.id, provider)
        return self._provider_info(user)

    async def unlink_provider(self, db: AsyncSession, auth_user: AuthUser, provider: str) -> None:
        user = await self.resolve_user(db, auth_user)
        if user.provider != provider:
            raise NotFoundError(
                resource="provider",
                resource_id=provider,
                message=f"Provider '{provider}' is not linked",
            )
        user.provider = None
        user.updated_at = utcnow()
        await self._flush(db, user, "unlink_provider")
        logger.info("User %s unlinked provider '%s'", user.id, provider)

    async def disconnect_all(self, db: AsyncSession, auth_user: AuthUser) -> None:
        user = await self.resolve_user(db, auth_user)
        user.provider = None
        user.updated_at = utcnow()
        await self._flush(db, user, "disconnect_all")

    @staticmethod
    async def _flush(db: AsyncSession, user: User, operation: str) -> None:
        try:
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("%s failed for user %s: %s", operation, user.id, str(e))
            raise DatabaseError(context={"user_id": str(user.id), "operation": operation})


# ── Singleton Instance ────────────────────────────────────────────────────
user_service = UserService()
