"""OAuth 2.0 client helpers for the external identity provider.

The provider is a GoTrue-compatible OAuth server. This module builds the
authorization URL, exchanges an authorization code (with the PKCE verifier)
at the token endpoint, and fetches the external profile with the resulting
access token.

Provider endpoints (relative to the provider base URL):
- ``/auth/v1/oauth/authorize``
- ``/auth/v1/oauth/token``
- ``/auth/v1/user`` and ``/rest/v1/profiles`` for the profile

See also:
- RFC 6749 (OAuth 2.0)
- RFC 7636 (PKCE)
"""

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import httpx

from inventory_gateway.domain.exceptions import AuthenticationError, UpstreamError
from inventory_gateway.domain.models import ExternalProfile
from inventory_gateway.security.pkce import PKCE_METHOD

logger = logging.getLogger(__name__)

AUTHORIZE_PATH = "/auth/v1/oauth/authorize"
TOKEN_PATH = "/auth/v1/oauth/token"
USER_PATH = "/auth/v1/user"
PROFILES_PATH = "/rest/v1/profiles"
AVATAR_BUCKET_PATH = "/storage/v1/object/public/profiles/"
CALLBACK_PATH = "/api/auth/callback"


@dataclass(frozen=True)
class ProviderTokens:
    """Tokens returned by the provider's token endpoint."""

    access_token: str
    refresh_token: str | None = None
    id_token: str | None = None
    expires_in: int | None = None


def callback_url(origin: str) -> str:
    """Redirect URI registered with the provider for this deployment."""
    return f"{origin.rstrip('/')}{CALLBACK_PATH}"


def build_authorization_url(
    provider_url: str,
    client_id: str,
    redirect_uri: str,
    scope: str,
    state: str,
    pkce_challenge: str,
    pkce_challenge_method: str = PKCE_METHOD,
) -> str:
    """Build the provider authorization URL.

    Args:
        provider_url: Provider base URL
        client_id: OAuth client ID
        redirect_uri: Callback URI after authorization
        scope: Space-separated scopes
        state: Encoded anti-forgery state
        pkce_challenge: S256 code challenge
        pkce_challenge_method: Challenge method (always S256)

    Returns:
        Absolute authorization URL

    Example:
        url = build_authorization_url(
            provider_url="https://provider.example.com",
            client_id="inventory",
            redirect_uri="https://app.example.com/api/auth/callback",
            scope="openid profile email",
            state=encode_state(new_state()),
            pkce_challenge=pair.challenge,
        )
    """
    params = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scope": scope,
        "state": state,
        "code_challenge": pkce_challenge,
        "code_challenge_method": pkce_challenge_method,
    }
    return f"{provider_url}{AUTHORIZE_PATH}?{urlencode(params)}"


async def exchange_authorization_code(
    provider_url: str,
    client_id: str,
    client_secret: str | None,
    redirect_uri: str,
    code: str,
    code_verifier: str,
    http_client: httpx.AsyncClient | None = None,
    timeout_seconds: float = 10.0,
) -> ProviderTokens:
    """Exchange an authorization code for tokens.

    Args:
        provider_url: Provider base URL
        client_id: OAuth client ID
        client_secret: OAuth client secret (sent only when configured)
        redirect_uri: Same redirect URI used at authorization
        code: Authorization code from the callback
        code_verifier: PKCE verifier from the ``oauth_code_verifier`` cookie
        http_client: Optional HTTP client (closed only if created here)
        timeout_seconds: Request timeout

    Returns:
        ProviderTokens

    Raises:
        AuthenticationError: If the provider rejects the code or returns no access token
        UpstreamError: If the provider cannot be reached
    """
    form = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri,
        "client_id": client_id,
        "code_verifier": code_verifier,
    }
    if client_secret:
        form["client_secret"] = client_secret

    should_close = http_client is None
    client = http_client or httpx.AsyncClient(timeout=timeout_seconds)
    try:
        response = await client.post(
            f"{provider_url}{TOKEN_PATH}",
            data=form,
            headers={"Accept": "application/json"},
        )
    except httpx.HTTPError as e:
        raise UpstreamError(f"Token endpoint unreachable: {type(e).__name__}") from e
    finally:
        if should_close:
            await client.aclose()

    if response.status_code != 200:
        logger.warning(
            "Token exchange rejected by provider",
            extra={"status_code": response.status_code},
        )
        raise AuthenticationError(
            f"Token exchange failed: HTTP {response.status_code}",
            public_message="Token exchange failed",
        )

    try:
        body = response.json()
    except ValueError as e:
        raise AuthenticationError(
            "Token endpoint returned invalid JSON", public_message="Token exchange failed"
        ) from e

    access_token = body.get("access_token") if isinstance(body, dict) else None
    if not access_token:
        raise AuthenticationError(
            "Token response has no access_token", public_message="No access token received"
        )

    logger.info("Authorization code exchanged")
    return ProviderTokens(
        access_token=access_token,
        refresh_token=body.get("refresh_token"),
        id_token=body.get("id_token"),
        expires_in=body.get("expires_in"),
    )


def resolve_avatar_url(provider_url: str | None, avatar: str | None) -> str | None:
    """Turn a stored avatar path into an absolute URL.

    Absolute URLs are returned unchanged; bare file names live in the public
    ``profiles`` storage bucket of the provider.
    """
    if not avatar:
        return None
    if avatar.startswith("http://") or avatar.startswith("https://"):
        return avatar
    if not provider_url:
        return None
    return f"{provider_url}{AVATAR_BUCKET_PATH}{avatar}"


def _split_full_name(full_name: str | None) -> tuple[str | None, str | None]:
    if not full_name:
        return None, None
    first, _, rest = full_name.strip().partition(" ")
    return first or None, rest.strip() or None


async def fetch_external_profile(
    provider_url: str,
    access_token: str,
    api_key: str | None,
    http_client: httpx.AsyncClient | None = None,
    timeout_seconds: float = 10.0,
) -> ExternalProfile | None:
    """Fetch the caller's profile from the provider.

    Reads the authenticated user, then its ``profiles`` row. Missing profile
    rows fall back to the user metadata.

    Args:
        provider_url: Provider base URL
        access_token: Provider access token
        api_key: Public API key sent as ``apikey``
        http_client: Optional HTTP client (closed only if created here)
        timeout_seconds: Request timeout

    Returns:
        ExternalProfile, or None if the user cannot be read
    """
    headers = {"Authorization": f"Bearer {access_token}"}
    if api_key:
        headers["apikey"] = api_key

    should_close = http_client is None
    client = http_client or httpx.AsyncClient(timeout=timeout_seconds)
    try:
        user_response = await client.get(f"{provider_url}{USER_PATH}", headers=headers)
        if user_response.status_code != 200:
            logger.warning(
                "Provider user lookup failed",
                extra={"status_code": user_response.status_code},
            )
            return None
        user: dict[str, Any] = user_response.json()
        user_id = user.get("id")
        if not user_id:
            return None

        meta = user.get("user_metadata") or {}
        meta_first, meta_last = _split_full_name(meta.get("full_name"))
        first_name = meta.get("first_name") or meta_first
        last_name = meta.get("last_name") or meta_last
        avatar = meta.get("avatar_url")
        email = user.get("email")

        profile_response = await client.get(
            f"{provider_url}{PROFILES_PATH}",
            headers=headers,
            params={"id": f"eq.{user_id}", "select": "*"},
        )
        if profile_response.status_code == 200:
            rows = profile_response.json() or []
            if rows:
                row = rows[0]
                email = row.get("email") or email
                first_name = row.get("first_name") or first_name
                last_name = row.get("last_name") or last_name
                avatar = row.get("avatar_url") or avatar
        else:
            logger.warning(
                "Provider profile lookup failed, using metadata",
                extra={"status_code": profile_response.status_code},
            )
    except (httpx.HTTPError, ValueError) as e:
        logger.warning(f"Provider profile fetch failed: {type(e).__name__}")
        return None
    finally:
        if should_close:
            await client.aclose()

    return ExternalProfile(
        external_id=str(user_id),
        email=email,
        first_name=first_name,
        last_name=last_name,
        avatar_url=resolve_avatar_url(provider_url, avatar),
    )


__all__ = [
    "ProviderTokens",
    "callback_url",
    "build_authorization_url",
    "exchange_authorization_code",
    "fetch_external_profile",
    "resolve_avatar_url",
]
