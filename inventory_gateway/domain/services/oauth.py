"""OAuth 2.0 authorization-code flow with PKCE against the external provider.

Two steps:

1. ``begin_authorization`` creates a state payload and a PKCE pair and
   returns the provider URL to redirect to; the route stores the encoded
   state and the verifier in short-lived cookies.
2. ``complete_authorization`` rebuilds the ``PendingAuthorization`` from the
   callback, claims its nonce once, exchanges the code and routes the result
   to one of three outcomes:

   - ``LINKED``: linking flow; the logged-in account gains the provider identity
   - ``LOGGED_IN``: active account; a full session is issued
   - ``PENDING``: new or inactive account; only pending-user info is kept
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from inventory_gateway.config import Settings
from inventory_gateway.domain.exceptions import (
    AuthenticationError,
    UpstreamError,
    ValidationError,
)
from inventory_gateway.domain.models import (
    PROVIDER_LOGIN_METHOD,
    ExternalProfile,
    IssuedSession,
    PendingUser,
    SessionUser,
)
from inventory_gateway.domain.services.linking import AccountLinkingResolver
from inventory_gateway.infra.observability.metrics import (
    record_auth_attempt,
    record_oauth_callback,
    record_oauth_redirect,
)
from inventory_gateway.infra.session.nonce_store import NonceStore, NonceStoreError
from inventory_gateway.infra.supabase import DataServiceError, SupabaseClient
from inventory_gateway.security.oidc import (
    build_authorization_url,
    callback_url,
    exchange_authorization_code,
    fetch_external_profile,
)
from inventory_gateway.security.pkce import (
    LINKING_MODE,
    PendingAuthorization,
    encode_state,
    generate_pkce_pair,
    new_state,
)

logger = logging.getLogger(__name__)

HOME_PATH = "/"
LINKED_PATH = "/?linked=success"
PENDING_APPROVAL_PATH = "/pending-approval"


class CallbackOutcomeKind(str, Enum):
    LOGGED_IN = "logged_in"
    PENDING = "pending"
    LINKED = "linked"


@dataclass(frozen=True)
class AuthorizationRedirect:
    """Where to send the browser and what to remember in cookies."""

    url: str
    state: str
    verifier: str


@dataclass(frozen=True)
class CallbackOutcome:
    kind: CallbackOutcomeKind
    redirect_to: str
    session: IssuedSession | None = None
    pending_user: PendingUser | None = None
    linked_user: SessionUser | None = None
    profile: ExternalProfile | None = None


class OAuthFlowController:
    """Drive the provider login and linking flows."""

    def __init__(
        self,
        settings: Settings,
        supabase: SupabaseClient,
        nonce_store: NonceStore,
        linking: AccountLinkingResolver,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            settings: Application settings
            supabase: Data-service client for account resolution
            nonce_store: Single-use store for state nonces
            linking: Resolver for the linking outcome
            http_client: Optional client for provider calls (tests inject a mock transport)
        """
        self.settings = settings
        self.supabase = supabase
        self.nonce_store = nonce_store
        self.linking = linking
        self.http_client = http_client

    # ========================================
    # Step 1: redirect to the provider
    # ========================================

    def begin_authorization(
        self,
        origin: str,
        mode: str | None = None,
        current_user: SessionUser | None = None,
    ) -> AuthorizationRedirect:
        """Build the provider authorization redirect.

        Args:
            origin: Public origin of this deployment (scheme://host[:port])
            mode: ``"linking"`` to link the logged-in account, else None
            current_user: User of the current session, if any

        Returns:
            AuthorizationRedirect with URL, encoded state and PKCE verifier

        Raises:
            ConfigurationError: Provider URL or client id missing
            AuthenticationError: Linking requested without a session
            ValidationError: Unknown mode
        """
        self.settings.require("oauth_provider_url", "oauth_client_id")

        if mode == LINKING_MODE:
            if current_user is None:
                raise AuthenticationError(
                    "Linking requires an authenticated session",
                    public_message="Not authenticated",
                )
            state = new_state(mode=LINKING_MODE, original_user_id=current_user.id)
        elif mode:
            raise ValidationError(f"Unknown SSO mode: {mode}", public_message="Invalid mode")
        else:
            state = new_state()

        pkce = generate_pkce_pair()
        encoded_state = encode_state(state)
        url = build_authorization_url(
            provider_url=self.settings.effective_provider_url,  # type: ignore[arg-type]
            client_id=self.settings.oauth_client_id,  # type: ignore[arg-type]
            redirect_uri=callback_url(origin),
            scope=self.settings.oauth_scopes,
            state=encoded_state,
            pkce_challenge=pkce.challenge,
            pkce_challenge_method=pkce.method,
        )

        record_oauth_redirect(state.mode)
        logger.info(
            "Redirecting to external provider",
            extra={"mode": state.mode or "login", "user_id": state.original_user_id},
        )
        return AuthorizationRedirect(url=url, state=encoded_state, verifier=pkce.verifier)

    # ========================================
    # Step 2: callback
    # ========================================

    async def complete_authorization(
        self,
        origin: str,
        *,
        code: str | None,
        state: str | None,
        error: str | None,
        cookie_state: str | None,
        cookie_verifier: str | None,
        current_user: SessionUser | None = None,
    ) -> CallbackOutcome:
        """Finish an authorization from the provider callback.

        Raises:
            AuthenticationError: Provider error, missing code, state mismatch,
                expired or replayed state, failed exchange, unusable profile
            AuthorizationError/NotFoundError: From the linking outcome
            ConfigurationError: Provider settings missing
            UpstreamError: Provider or data service unreachable
        """
        if error:
            raise AuthenticationError(
                f"Provider returned error: {error}",
                public_message="Authorization denied by provider",
            )
        if not code:
            raise AuthenticationError(
                "Callback without authorization code", public_message="No authorization code"
            )

        pending = PendingAuthorization.from_callback(state, cookie_state, cookie_verifier)
        self.settings.require("oauth_provider_url", "oauth_client_id")
        provider_url: str = self.settings.effective_provider_url  # type: ignore[assignment]

        try:
            first_claim = await self.nonce_store.claim(pending.nonce)
        except NonceStoreError as e:
            raise UpstreamError(f"State nonce store failed: {e}") from e
        if not first_claim:
            raise AuthenticationError(
                "OAuth state already used", public_message="Authorization already completed"
            )

        tokens = await exchange_authorization_code(
            provider_url=provider_url,
            client_id=self.settings.oauth_client_id,  # type: ignore[arg-type]
            client_secret=self.settings.oauth_client_secret,
            redirect_uri=callback_url(origin),
            code=code,
            code_verifier=pending.verifier,
            http_client=self.http_client,
            timeout_seconds=self.settings.upstream_timeout_seconds,
        )

        profile = await fetch_external_profile(
            provider_url,
            tokens.access_token,
            self.settings.supabase_anon_key,
            http_client=self.http_client,
            timeout_seconds=self.settings.upstream_timeout_seconds,
        )
        if profile is None or not profile.email or not profile.external_id:
            raise AuthenticationError(
                "External profile unavailable", public_message="Could not load profile"
            )

        if pending.is_linking:
            result = await self.linking.link(
                pending.payload.original_user_id,  # type: ignore[arg-type]
                current_user,
                profile,
            )
            record_oauth_callback(CallbackOutcomeKind.LINKED.value)
            return CallbackOutcome(
                kind=CallbackOutcomeKind.LINKED,
                redirect_to=LINKED_PATH,
                linked_user=result.user,
                profile=profile,
            )

        self.settings.require("supabase_url", "supabase_service_role_key")
        try:
            account = await self._resolve_account(profile)
        except DataServiceError as e:
            raise UpstreamError(f"Account resolution failed: {e}") from e

        account_id = str(account["id"])
        if not account.get("is_active"):
            record_oauth_callback(CallbackOutcomeKind.PENDING.value)
            logger.info("Provider login for inactive account", extra={"account_id": account_id})
            return CallbackOutcome(
                kind=CallbackOutcomeKind.PENDING,
                redirect_to=PENDING_APPROVAL_PATH,
                pending_user=PendingUser(
                    id=account_id,
                    email=account.get("email") or profile.email,
                    first_name=account.get("first_name") or profile.first_name,
                    last_name=account.get("last_name") or profile.last_name,
                    avatar_url=profile.avatar_url,
                ),
            )

        user = SessionUser.from_account(account, PROVIDER_LOGIN_METHOD)
        record_auth_attempt(PROVIDER_LOGIN_METHOD, success=True)
        record_oauth_callback(CallbackOutcomeKind.LOGGED_IN.value)
        return CallbackOutcome(
            kind=CallbackOutcomeKind.LOGGED_IN,
            redirect_to=HOME_PATH,
            session=IssuedSession(
                access_token=tokens.access_token,
                refresh_token=tokens.refresh_token,
                id_token=tokens.id_token,
                user=user,
                profile=profile,
            ),
            profile=profile,
        )

    async def _resolve_account(self, profile: ExternalProfile) -> dict[str, Any]:
        """Find or create the local account for an external profile.

        Lookup order: provider identity, email (auto-link), id equal to the
        external id. Otherwise a pending account is created.
        """
        provider = self.settings.oauth_provider_name
        external_id: str = profile.external_id  # type: ignore[assignment]
        link_fields = {"oauth_provider": provider, "oauth_user_id": external_id}
        metadata = {
            "first_name": profile.first_name,
            "last_name": profile.last_name,
            "avatar_url": profile.avatar_url,
        }

        account = await self.supabase.find_account(
            oauth_provider=provider, oauth_user_id=external_id
        )
        if account is None:
            account = await self.supabase.find_account(email=profile.email)  # type: ignore[arg-type]
            if account is None:
                account = await self.supabase.get_account(external_id)
            if account is not None:
                logger.info(
                    "Auto-linking provider identity to existing account",
                    extra={"account_id": account.get("id")},
                )
                account = (
                    await self.supabase.update_account(str(account["id"]), link_fields)
                    or account
                )

        if account is not None:
            try:
                await self.supabase.upsert_auth_user(external_id, profile.email, metadata)  # type: ignore[arg-type]
            except DataServiceError as e:
                logger.warning(
                    f"Auth metadata refresh failed: {type(e).__name__}",
                    extra={"account_id": account.get("id")},
                )
            return account

        await self.supabase.upsert_auth_user(external_id, profile.email, metadata)  # type: ignore[arg-type]
        email: str = profile.email  # type: ignore[assignment]
        created = await self.supabase.insert_account(
            {
                "id": external_id,
                "email": email,
                "username": email.split("@")[0],
                "first_name": profile.first_name,
                "last_name": profile.last_name,
                "rol": None,
                "is_active": False,
                "pending_approval": True,
                **link_fields,
            }
        )
        logger.info("Pending account created from provider login", extra={"account_id": external_id})
        return created
