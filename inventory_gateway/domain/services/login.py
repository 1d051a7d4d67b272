"""Local username/password authentication.

The account row is looked up by username with service-role credentials, then
the password is verified by the identity service's password grant using the
account email. Unknown usernames and wrong passwords produce the same
``AuthenticationError`` so the endpoint cannot be used to enumerate accounts.
Account state (pending approval, disabled) is only reported after the
password has been verified.
"""

import logging

from inventory_gateway.config import Settings
from inventory_gateway.domain.exceptions import (
    AuthenticationError,
    AuthorizationError,
    UpstreamError,
    ValidationError,
)
from inventory_gateway.domain.models import ExternalProfile, IssuedSession, SessionUser
from inventory_gateway.infra.observability.metrics import record_auth_attempt
from inventory_gateway.infra.supabase import (
    DataServiceClientError,
    DataServiceError,
    SupabaseClient,
)
from inventory_gateway.security.oidc import resolve_avatar_url

logger = logging.getLogger(__name__)

PENDING_APPROVAL_PATH = "/pending-approval"
ACCOUNT_DISABLED_PATH = "/account-disabled"


class CredentialAuthenticator:
    """Verify local credentials and build the session to issue."""

    def __init__(self, settings: Settings, supabase: SupabaseClient) -> None:
        self.settings = settings
        self.supabase = supabase

    def _invalid_credentials(self, reason: str) -> AuthenticationError:
        record_auth_attempt("local", success=False)
        logger.info("Local login rejected", extra={"mode": reason})
        return AuthenticationError(f"Local login rejected: {reason}")

    async def login(self, username: str | None, password: str | None) -> IssuedSession:
        """Authenticate a username/password pair.

        Args:
            username: Account username
            password: Plain password (never logged)

        Returns:
            IssuedSession for the cookie manager

        Raises:
            ValidationError: If either field is empty
            AuthenticationError: Unknown account, wrong password or failed grant (same shape)
            AuthorizationError: Correct password but account pending or disabled
            ConfigurationError: Data-service settings missing
            UpstreamError: Account lookup failed
        """
        if not username or not password:
            raise ValidationError(
                "Username and password are required",
                public_message="Username and password are required",
            )

        self.settings.require("supabase_url", "supabase_anon_key", "supabase_service_role_key")

        try:
            account = await self.supabase.get_account_by_username(username)
        except DataServiceError as e:
            raise UpstreamError(f"Account lookup failed: {e}") from e

        if account is None or not account.get("email"):
            raise self._invalid_credentials("unknown_account")

        try:
            tokens = await self.supabase.sign_in_with_password(account["email"], password)
        except DataServiceClientError as e:
            raise self._invalid_credentials("password_rejected") from e
        except DataServiceError as e:
            logger.warning(f"Password grant failed: {type(e).__name__}")
            raise self._invalid_credentials("password_grant_failed") from e

        account_id = str(account["id"])
        if account.get("pending_approval") and not account.get("is_active"):
            record_auth_attempt("local", success=False)
            raise AuthorizationError(
                "Account pending approval",
                public_message="Account pending approval",
                public_details={"redirectTo": PENDING_APPROVAL_PATH, "userId": account_id},
            )
        if not account.get("is_active"):
            record_auth_attempt("local", success=False)
            raise AuthorizationError(
                "Account is disabled",
                public_message="Account is disabled",
                public_details={"redirectTo": ACCOUNT_DISABLED_PATH, "userId": account_id},
            )

        user = SessionUser.from_account(account, "local")
        profile = await self._linked_profile(account)

        record_auth_attempt("local", success=True)
        logger.info(
            "Local login succeeded",
            extra={"user_id": user.id, "user_role": user.rol, "login_method": "local"},
        )
        return IssuedSession(
            access_token=tokens["access_token"],
            refresh_token=tokens.get("refresh_token"),
            user=user,
            profile=profile,
        )

    async def _linked_profile(self, account: dict) -> ExternalProfile | None:
        """Best-effort external profile for accounts linked to the provider."""
        external_id = account.get("oauth_user_id")
        if account.get("oauth_provider") != self.settings.oauth_provider_name or not external_id:
            return None
        try:
            auth_user = await self.supabase.get_auth_user(str(external_id))
        except DataServiceError as e:
            logger.warning(
                f"Linked profile lookup failed: {type(e).__name__}",
                extra={"account_id": account.get("id")},
            )
            return None
        if not auth_user:
            return None

        meta = auth_user.get("user_metadata") or {}
        return ExternalProfile(
            external_id=str(external_id),
            avatar_url=resolve_avatar_url(
                self.settings.effective_provider_url, meta.get("avatar_url")
            ),
            email=meta.get("email") or auth_user.get("email"),
            first_name=meta.get("first_name"),
            last_name=meta.get("last_name"),
        )
