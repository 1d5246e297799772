"""
Pilsa Backend — User Service Unit Tests
========================================

What we test:
    ✅ Identity resolution: found, missing (404), auto-provisioned
    ✅ Profile: credit totals, church fallback order, name default
    ✅ Profile update: partial fields, church trimming
    ✅ Providers: list/link/unlink/disconnect-all
"""

from unittest.mock import patch

import pytest

from pilsa.exceptions import AuthenticationError, NotFoundError, ValidationError
from pilsa.schemas.user import ProfileUpdate, ProviderLinkRequest
from pilsa.services.auth_base import AuthUser
from pilsa.services.user_service import UserService


class TestResolveUser:
    def setup_method(self):
        self.service = UserService()

    @pytest.mark.asyncio
    async def test_existing_user(self, mock_db_session, make_result, make_user, auth_user):
        user = make_user()
        mock_db_session.execute.return_value = make_result(scalar=user)

        assert await self.service.resolve_user(mock_db_session, auth_user) is user

    @pytest.mark.asyncio
    async def test_missing_user_raises_not_found(self, mock_db_session, make_result, auth_user):
        mock_db_session.execute.return_value = make_result(scalar=None)

        with pytest.raises(NotFoundError) as exc_info:
            await self.service.resolve_user(mock_db_session, auth_user)
        assert exc_info.value.message == "User not found"

    @pytest.mark.asyncio
    async def test_auto_provision_inserts_then_reads_back(self, mock_db_session, make_result, make_user, auth_user):
        user = make_user()
        mock_db_session.execute.side_effect = [
            make_result(scalar=None),
            make_result(),
            make_result(scalar=user),
        ]

        with patch("pilsa.services.user_service.settings.auto_provision_users", True):
            resolved = await self.service.resolve_user(mock_db_session, auth_user)

        assert resolved is user
        insert_stmt = mock_db_session.execute.await_args_list[1].args[0]
        assert "ON CONFLICT" in str(insert_stmt)

    @pytest.mark.asyncio
    async def test_for_update_locks_user_row(self, mock_db_session, make_result, make_user, auth_user):
        mock_db_session.execute.return_value = make_result(scalar=make_user())

        await self.service.resolve_user(mock_db_session, auth_user)
        await self.service.resolve_user(mock_db_session, auth_user, for_update=True)

        plain, locked = (str(call.args[0]) for call in mock_db_session.execute.await_args_list)
        assert "FOR UPDATE" not in plain
        assert locked.endswith("FOR UPDATE")

    @pytest.mark.asyncio
    async def test_provisioned_user_is_read_back_locked(self, mock_db_session, make_result, make_user, auth_user):
        mock_db_session.execute.side_effect = [
            make_result(scalar=None),
            make_result(),
            make_result(scalar=make_user()),
        ]

        with patch("pilsa.services.user_service.settings.auto_provision_users", True):
            await self.service.resolve_user(mock_db_session, auth_user, for_update=True)

        read_back = str(mock_db_session.execute.await_args_list[2].args[0])
        assert "FOR UPDATE" in read_back

    @pytest.mark.asyncio
    async def test_non_uuid_auth_id_is_unauthorized(self, mock_db_session):
        with pytest.raises(AuthenticationError):
            await self.service.find_user(mock_db_session, AuthUser(id="not-a-uuid"))


class TestProfile:
    def setup_method(self):
        self.service = UserService()

    @pytest.mark.asyncio
    async def test_profile_uses_primary_church_and_totals(self, mock_db_session, make_result, make_user, auth_user):
        user = make_user(church="옛교회")
        mock_db_session.execute.side_effect = [
            make_result(scalar=user),
            make_result(one=(120, 15)),
            make_result(scalar="사랑의교회"),
        ]

        profile = await self.service.get_profile(mock_db_session, auth_user)

        assert profile.user_id == user.id
        assert profile.church == "사랑의교회"
        assert profile.credits_earned == 120
        assert profile.credits_spent == 15

    @pytest.mark.asyncio
    async def test_profile_falls_back_to_stored_church_then_empty(self, mock_db_session, make_result, make_user):
        stored = make_user(church="옛교회")
        mock_db_session.execute.side_effect = [make_result(one=(0, 0)), make_result(scalar=None)]
        assert (await self.service.build_profile(mock_db_session, stored)).church == "옛교회"

        bare = make_user(church=None, name=None)
        mock_db_session.execute.side_effect = [make_result(one=(0, 0)), make_result(scalar=None)]
        profile = await self.service.build_profile(mock_db_session, bare)
        assert profile.church == ""
        assert profile.name == "User"

    @pytest.mark.asyncio
    async def test_missing_profile(self, mock_db_session, make_result, auth_user):
        mock_db_session.execute.return_value = make_result(scalar=None)

        with pytest.raises(NotFoundError) as exc_info:
            await self.service.get_profile(mock_db_session, auth_user)
        assert exc_info.value.message == "User profile not found"

    @pytest.mark.asyncio
    async def test_update_ignores_empty_fields_and_trims_church(
        self, mock_db_session, make_result, make_user, auth_user
    ):
        user = make_user(name="원래이름", avatar_url="https://old.example.com/a.png")
        mock_db_session.execute.side_effect = [
            make_result(scalar=user),
            make_result(one=(0, 0)),
            make_result(scalar=None),
        ]

        profile = await self.service.update_profile(
            mock_db_session,
            auth_user,
            ProfileUpdate(name="", avatar_url=None, church="  새교회  "),
        )

        assert user.name == "원래이름"
        assert user.avatar_url == "https://old.example.com/a.png"
        assert user.church == "새교회"
        assert profile.church == "새교회"
        mock_db_session.flush.assert_awaited()


class TestProviders:
    def setup_method(self):
        self.service = UserService()

    @pytest.mark.asyncio
    async def test_list_with_and_without_provider(self, mock_db_session, make_result, make_user, auth_user):
        user = make_user(provider="kakao")
        mock_db_session.execute.return_value = make_result(scalar=user)
        providers = await self.service.list_providers(mock_db_session, auth_user)
        assert [p.id for p in providers] == [f"{user.id}-kakao"]

        user.provider = None
        assert await self.service.list_providers(mock_db_session, auth_user) == []

    @pytest.mark.asyncio
    async def test_link_requires_provider(self, mock_db_session, auth_user):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.link_provider(mock_db_session, auth_user, ProviderLinkRequest(provider="  "))
        assert exc_info.value.message == "provider is required"
        mock_db_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_link_updates_name_and_email(self, mock_db_session, make_result, make_user, auth_user):
        user = make_user(provider=None)
        mock_db_session.execute.return_value = make_result(scalar=user)

        info = await self.service.link_provider(
            mock_db_session,
            auth_user,
            ProviderLinkRequest(provider="apple", provider_name="Apple User", provider_email="a@icloud.com"),
        )

        assert info.provider == "apple"
        assert user.name == "Apple User"
        assert user.email == "a@icloud.com"

    @pytest.mark.asyncio
    async def test_unlink_other_provider_is_not_found(self, mock_db_session, make_result, make_user, auth_user):
        user = make_user(provider="google")
        mock_db_session.execute.return_value = make_result(scalar=user)

        with pytest.raises(NotFoundError):
            await self.service.unlink_provider(mock_db_session, auth_user, "kakao")
        assert user.provider == "google"

        await self.service.unlink_provider(mock_db_session, auth_user, "google")
        assert user.provider is None

    @pytest.mark.asyncio
    async def test_disconnect_all(self, mock_db_session, make_result, make_user, auth_user):
        user = make_user(provider="google")
        mock_db_session.execute.return_value = make_result(scalar=user)

        await self.service.disconnect_all(mock_db_session, auth_user)
        assert user.provider is None
