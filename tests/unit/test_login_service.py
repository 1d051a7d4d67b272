"""Tests for CredentialAuthenticator."""

from unittest.mock import AsyncMock

import pytest

from inventory_gateway.config import Settings
from inventory_gateway.domain.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConfigurationError,
    UpstreamError,
    ValidationError,
)
from inventory_gateway.domain.services import CredentialAuthenticator
from inventory_gateway.infra.supabase import DataServiceConnectionError


@pytest.fixture
def authenticator(settings, fake_supabase) -> CredentialAuthenticator:
    fake_supabase.add_account(
        id="u-1",
        username="jdoe",
        email="jdoe@example.com",
        first_name="John",
        rol="admin",
        password="correct-horse",
    )
    return CredentialAuthenticator(settings, fake_supabase)


class TestCredentialAuthenticator:
    """Tests for local login."""

    @pytest.mark.asyncio
    async def test_successful_login(self, authenticator: CredentialAuthenticator) -> None:
        session = await authenticator.login("jdoe", "correct-horse")

        assert session.access_token == "access-jdoe"
        assert session.refresh_token == "refresh-jdoe"
        assert session.user.id == "u-1"
        assert session.user.rol == "admin"
        assert session.user.login_method == "local"
        assert session.profile is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("username,password", [("", "pw"), ("jdoe", ""), (None, None)])
    async def test_missing_fields(
        self, authenticator: CredentialAuthenticator, username, password
    ) -> None:
        with pytest.raises(ValidationError):
            await authenticator.login(username, password)

    @pytest.mark.asyncio
    async def test_unknown_user_and_wrong_password_look_identical(
        self, authenticator: CredentialAuthenticator
    ) -> None:
        with pytest.raises(AuthenticationError) as unknown:
            await authenticator.login("nobody", "correct-horse")
        with pytest.raises(AuthenticationError) as wrong:
            await authenticator.login("jdoe", "wrong")

        assert unknown.value.public_message == wrong.value.public_message == "Invalid credentials"
        assert unknown.value.error_code == wrong.value.error_code
        assert unknown.value.public_details == wrong.value.public_details == {}

    @pytest.mark.asyncio
    async def test_account_without_email(self, settings, fake_supabase) -> None:
        fake_supabase.add_account(id="u-2", username="ghost")
        authenticator = CredentialAuthenticator(settings, fake_supabase)

        with pytest.raises(AuthenticationError):
            await authenticator.login("ghost", "anything")

    @pytest.mark.asyncio
    async def test_pending_account_reported_after_password(
        self, settings, fake_supabase
    ) -> None:
        fake_supabase.add_account(
            id="p-1",
            username="newbie",
            email="newbie@example.com",
            rol=None,
            is_active=False,
            pending_approval=True,
            password="pw",
        )
        authenticator = CredentialAuthenticator(settings, fake_supabase)

        with pytest.raises(AuthenticationError):
            await authenticator.login("newbie", "wrong")

        with pytest.raises(AuthorizationError) as exc_info:
            await authenticator.login("newbie", "pw")
        assert exc_info.value.public_details == {
            "redirectTo": "/pending-approval",
            "userId": "p-1",
        }

    @pytest.mark.asyncio
    async def test_disabled_account(self, settings, fake_supabase) -> None:
        fake_supabase.add_account(
            id="d-1",
            username="gone",
            email="gone@example.com",
            is_active=False,
            pending_approval=False,
            password="pw",
        )
        authenticator = CredentialAuthenticator(settings, fake_supabase)

        with pytest.raises(AuthorizationError) as exc_info:
            await authenticator.login("gone", "pw")
        assert exc_info.value.public_details["redirectTo"] == "/account-disabled"

    @pytest.mark.asyncio
    async def test_linked_account_gets_profile(self, settings, fake_supabase) -> None:
        fake_supabase.add_account(
            id="u-3",
            username="linked",
            email="linked@example.com",
            oauth_provider="axpert",
            oauth_user_id="ext-3",
            password="pw",
        )
        fake_supabase.auth_users["ext-3"] = {
            "id": "ext-3",
            "email": "linked@example.com",
            "user_metadata": {"first_name": "Lin", "avatar_url": "lin.png"},
        }
        authenticator = CredentialAuthenticator(settings, fake_supabase)

        session = await authenticator.login("linked", "pw")

        assert session.profile is not None
        assert session.profile.first_name == "Lin"
        assert session.profile.avatar_url == (
            "https://provider.example.test/storage/v1/object/public/profiles/lin.png"
        )

    @pytest.mark.asyncio
    async def test_profile_lookup_failure_is_not_fatal(self, settings, fake_supabase) -> None:
        fake_supabase.add_account(
            id="u-4",
            username="linked",
            email="linked@example.com",
            oauth_provider="axpert",
            oauth_user_id="ext-4",
            password="pw",
        )
        fake_supabase.get_auth_user = AsyncMock(side_effect=DataServiceConnectionError("down"))
        authenticator = CredentialAuthenticator(settings, fake_supabase)

        session = await authenticator.login("linked", "pw")

        assert session.profile is None

    @pytest.mark.asyncio
    async def test_data_service_down(self, settings, fake_supabase) -> None:
        fake_supabase.get_account_by_username = AsyncMock(
            side_effect=DataServiceConnectionError("down")
        )
        authenticator = CredentialAuthenticator(settings, fake_supabase)

        with pytest.raises(UpstreamError):
            await authenticator.login("jdoe", "pw")

    @pytest.mark.asyncio
    async def test_password_grant_outage_is_generic(self, settings, fake_supabase) -> None:
        fake_supabase.add_account(id="u-1", username="jdoe", email="jdoe@example.com", password="pw")
        fake_supabase.sign_in_with_password = AsyncMock(
            side_effect=DataServiceConnectionError("down")
        )
        authenticator = CredentialAuthenticator(settings, fake_supabase)

        with pytest.raises(AuthenticationError) as exc_info:
            await authenticator.login("jdoe", "pw")
        assert exc_info.value.public_message == "Invalid credentials"

    @pytest.mark.asyncio
    async def test_missing_configuration(self, cookie_key, fake_supabase) -> None:
        authenticator = CredentialAuthenticator(
            Settings(cookie_encryption_key=cookie_key), fake_supabase
        )

        with pytest.raises(ConfigurationError):
            await authenticator.login("jdoe", "pw")
