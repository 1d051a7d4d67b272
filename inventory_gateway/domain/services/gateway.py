"""Authorization gateway in front of the data service.

Browsers never hold data-service credentials. They call the data proxy with
a ``target`` under ``/rest/v1/``; the gateway decides whether the session may
perform that method on that target and, only then, forwards the request with
service credentials.

Checks, in order (the first failure wins and nothing is forwarded):

1. identity and access-token cookies present and valid (401)
2. account linked to the external provider (403)
3. target under ``/rest/v1/`` (400) and on the allow-list (403)
4. reads allowed; writes need an admin role and an admin-writable entry (403)
"""

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass

import httpx

from inventory_gateway.config import Settings
from inventory_gateway.domain.exceptions import (
    AuthenticationError,
    AuthorizationError,
    UpstreamError,
)
from inventory_gateway.domain.models import SessionUser
from inventory_gateway.infra.observability.metrics import (
    record_authz_check,
    record_proxy_request,
)
from inventory_gateway.infra.supabase import DataServiceError, SupabaseClient
from inventory_gateway.security.authz import (
    PROXY_RULES,
    ProxyRule,
    ProxyTarget,
    check_proxy_method,
    resolve_proxy_target,
)

logger = logging.getLogger(__name__)

RELAYED_REQUEST_HEADERS = ("content-type", "accept", "prefer", "range")
RELAYED_RESPONSE_HEADERS = ("content-type", "content-range", "preference-applied")


@dataclass(frozen=True)
class ProxyDecision:
    """An authorized proxy request."""

    user: SessionUser
    method: str
    target: ProxyTarget


class AuthorizationGateway:
    """Authorize and forward data-proxy requests."""

    def __init__(
        self,
        settings: Settings,
        supabase: SupabaseClient,
        rules: tuple[ProxyRule, ...] = PROXY_RULES,
    ) -> None:
        self.settings = settings
        self.supabase = supabase
        self.rules = rules

    def authorize(
        self,
        user: SessionUser | None,
        access_token: str | None,
        method: str,
        target: str | None,
    ) -> ProxyDecision:
        """Run every check without touching the network.

        Args:
            user: Session user (None when the identity cookie is absent)
            access_token: Access-token cookie value
            method: HTTP method of the incoming request
            target: ``target`` query parameter

        Returns:
            ProxyDecision for ``forward``

        Raises:
            AuthenticationError: No valid session
            AuthorizationError: Not provider-linked, target not allowed, or write denied
            ValidationError: Malformed target
        """
        if user is None or not access_token:
            record_authz_check("proxy_session", allowed=False)
            raise AuthenticationError(
                "Proxy request without session", public_message="Not authenticated"
            )

        if user.oauth_provider != self.settings.oauth_provider_name:
            record_authz_check("proxy_provider_link", allowed=False)
            logger.info(
                "Proxy denied for account not linked to provider",
                extra={"user_id": user.id, "method": method},
            )
            raise AuthorizationError(
                "Account is not linked to the external provider",
                public_message="Account must be linked to use the data service",
            )

        try:
            resolved = resolve_proxy_target(target, self.rules)
            check_proxy_method(method, resolved, user.rol, user_id=user.id)
        except AuthorizationError:
            record_authz_check("proxy_target", allowed=False)
            raise

        record_authz_check("proxy_target", allowed=True)
        return ProxyDecision(user=user, method=method.upper(), target=resolved)

    @staticmethod
    def relayed_headers(headers: Mapping[str, str]) -> dict[str, str]:
        return {name: headers[name] for name in RELAYED_REQUEST_HEADERS if name in headers}

    async def forward(
        self,
        decision: ProxyDecision,
        headers: Mapping[str, str],
        body: bytes | None,
    ) -> httpx.Response:
        """Forward an authorized request and return the streaming upstream response.

        The caller must ``aclose()`` the response.

        Raises:
            ConfigurationError: Data-service settings missing
            UpstreamError: Data service unreachable
        """
        self.settings.require("supabase_url", "supabase_anon_key", "supabase_service_role_key")
        started = time.monotonic()
        try:
            response = await self.supabase.forward(
                decision.method,
                decision.target.path_with_query,
                self.relayed_headers(headers),
                body,
            )
        except DataServiceError as e:
            record_proxy_request(decision.method, 0, time.monotonic() - started)
            raise UpstreamError(f"Data proxy request failed: {e}") from e

        record_proxy_request(decision.method, response.status_code, time.monotonic() - started)
        logger.debug(
            "Proxied data request",
            extra={
                "user_id": decision.user.id,
                "method": decision.method,
                "target": decision.target.path,
                "status_code": response.status_code,
            },
        )
        return response


def filter_response_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Keep only the upstream headers the browser needs."""
    return {name: headers[name] for name in RELAYED_RESPONSE_HEADERS if name in headers}
