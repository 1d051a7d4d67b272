"""Service wiring and FastAPI dependencies.

``GatewayServices`` is built once per application by ``create_http_app`` and
stored on ``app.state``; route handlers receive it through ``get_services``.
"""

import logging
from dataclasses import dataclass

import httpx
from fastapi import Depends, Request

from inventory_gateway.config import Settings
from inventory_gateway.domain.models import SessionUser
from inventory_gateway.domain.services import (
    AccountLinkingResolver,
    AdminApprovalService,
    AuthorizationGateway,
    CredentialAuthenticator,
    OAuthFlowController,
)
from inventory_gateway.infra.session import (
    NonceStore,
    SessionCookieManager,
    create_nonce_store,
)
from inventory_gateway.infra.supabase import SupabaseClient
from inventory_gateway.security.crypto import CookieSealer

logger = logging.getLogger(__name__)


@dataclass
class GatewayServices:
    """Process-wide components shared by all requests."""

    settings: Settings
    supabase: SupabaseClient
    cookies: SessionCookieManager
    nonce_store: NonceStore
    authenticator: CredentialAuthenticator
    linking: AccountLinkingResolver
    oauth: OAuthFlowController
    approval: AdminApprovalService
    gateway: AuthorizationGateway

    @classmethod
    def build(
        cls,
        settings: Settings,
        *,
        supabase: SupabaseClient | None = None,
        nonce_store: NonceStore | None = None,
        provider_http_client: httpx.AsyncClient | None = None,
    ) -> "GatewayServices":
        """Assemble all components from settings.

        Args:
            settings: Application settings
            supabase: Optional pre-built data-service client
            nonce_store: Optional nonce store (defaults per settings)
            provider_http_client: Optional HTTP client for provider calls
        """
        supabase = supabase or SupabaseClient(settings)
        nonce_store = nonce_store or create_nonce_store(settings)
        sealer = CookieSealer(settings.cookie_encryption_key, settings.environment)  # type: ignore[arg-type]
        linking = AccountLinkingResolver(settings, supabase)
        return cls(
            settings=settings,
            supabase=supabase,
            cookies=SessionCookieManager(sealer, secure=settings.secure_cookies),
            nonce_store=nonce_store,
            authenticator=CredentialAuthenticator(settings, supabase),
            linking=linking,
            oauth=OAuthFlowController(
                settings, supabase, nonce_store, linking, http_client=provider_http_client
            ),
            approval=AdminApprovalService(settings, supabase),
            gateway=AuthorizationGateway(settings, supabase),
        )

    async def startup(self) -> None:
        await self.nonce_store.init()

    async def shutdown(self) -> None:
        await self.nonce_store.close()
        await self.supabase.close()


def get_services(request: Request) -> GatewayServices:
    return request.app.state.services


def get_optional_user(
    request: Request,
    services: GatewayServices = Depends(get_services),
) -> SessionUser | None:
    """Session user, or None without an identity cookie.

    Raises:
        AuthenticationError: If the identity cookie is present but invalid
    """
    return services.cookies.read_user(request.cookies)


def get_current_user(
    request: Request,
    services: GatewayServices = Depends(get_services),
) -> SessionUser:
    """Authenticated session user.

    Raises:
        AuthenticationError: If there is no valid session
    """
    return services.cookies.require_user(request.cookies)


def request_origin(request: Request) -> str:
    """Public origin (scheme://host[:port]) the browser used."""
    return f"{request.url.scheme}://{request.url.netloc}"
