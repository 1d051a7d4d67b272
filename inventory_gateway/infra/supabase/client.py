"""Async client for the hosted data/auth service.

Wraps the three API surfaces the gateway talks to:

- PostgREST (``/rest/v1/``) for account rows, queried with the service-role
  key so row-level security does not hide pending or inactive accounts
- GoTrue password grant (``/auth/v1/token``) to verify local credentials
- GoTrue admin (``/auth/v1/admin/users``) for user metadata (avatars, names)

It also exposes ``forward`` for the data proxy, which streams an arbitrary
already-authorized request to PostgREST.

No retries are attempted; failures surface immediately as
``DataServiceError`` subclasses.
"""

import logging
from typing import Any

import httpx

from inventory_gateway.config import Settings
from inventory_gateway.infra.supabase.exceptions import (
    DataServiceAuthenticationError,
    DataServiceClientError,
    DataServiceConnectionError,
    DataServiceError,
    DataServiceNotFoundError,
    DataServiceServerError,
)

logger = logging.getLogger(__name__)

ACCOUNTS_TABLE = "users"


class SupabaseClient:
    """Data-service client with a shared connection pool.

    Example:
        client = SupabaseClient(settings)
        account = await client.get_account_by_username("jdoe")
        tokens = await client.sign_in_with_password(account["email"], "secret")
        await client.close()
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            settings: Application settings (URL and keys are read on each call)
            http_client: Optional pre-configured client (tests inject a mock transport)
        """
        self.settings = settings
        self._client = http_client
        self._owns_client = http_client is None
        self.timeout = httpx.Timeout(settings.upstream_timeout_seconds)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
                follow_redirects=False,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ========================================
    # Request helpers
    # ========================================

    def _url(self, path: str) -> str:
        self.settings.require("supabase_url")
        return f"{self.settings.supabase_url}{path}"

    def _service_headers(self) -> dict[str, str]:
        self.settings.require("supabase_service_role_key")
        key = self.settings.supabase_service_role_key
        return {"apikey": key, "Authorization": f"Bearer {key}"}  # type: ignore[dict-item]

    async def _request(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str],
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """Execute a request and decode the JSON body.

        Raises:
            DataServiceError subclass for transport failures and error statuses
        """
        url = self._url(path)
        try:
            response = await self._get_client().request(
                method, url, headers=headers, params=params, json=json
            )
        except httpx.TimeoutException as e:
            raise DataServiceConnectionError(f"Timeout: {method} {path}") from e
        except httpx.HTTPError as e:
            raise DataServiceConnectionError(
                f"Network error: {method} {path}: {type(e).__name__}"
            ) from e

        if response.status_code >= 400:
            self._handle_error_response(response)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise DataServiceServerError(
                f"Invalid JSON from {method} {path}", response.status_code, response.text
            ) from e

    def _handle_error_response(self, response: httpx.Response) -> None:
        """Map HTTP error response to the matching exception.

        Raises:
            Appropriate DataServiceError subclass based on status code
        """
        status_code = response.status_code
        response_body = response.text

        try:
            error_data = response.json()
            error_message = (
                error_data.get("error_description")
                or error_data.get("msg")
                or error_data.get("message")
                or error_data.get("error")
                or response_body
            )
        except (ValueError, AttributeError):
            error_message = response_body

        if status_code == 401:
            raise DataServiceAuthenticationError(
                f"Authentication failed: {error_message}", response_body
            )
        elif status_code == 404:
            raise DataServiceNotFoundError(f"Resource not found: {error_message}", response_body)
        elif 400 <= status_code < 500:
            raise DataServiceClientError(
                f"Client error ({status_code}): {error_message}", status_code, response_body
            )
        raise DataServiceServerError(
            f"Server error ({status_code}): {error_message}", status_code, response_body
        )

    # ========================================
    # Account rows (PostgREST)
    # ========================================

    async def find_account(self, **filters: str) -> dict[str, Any] | None:
        """Return the first account matching all equality filters, or None.

        Example:
            await client.find_account(oauth_user_id="ext-1", oauth_provider="axpert")
        """
        params: dict[str, Any] = {column: f"eq.{value}" for column, value in filters.items()}
        params["select"] = "*"
        params["limit"] = "1"
        rows = await self._request(
            "GET", f"/rest/v1/{ACCOUNTS_TABLE}", headers=self._service_headers(), params=params
        )
        return rows[0] if rows else None

    async def get_account(self, account_id: str) -> dict[str, Any] | None:
        return await self.find_account(id=account_id)

    async def get_account_by_username(self, username: str) -> dict[str, Any] | None:
        return await self.find_account(username=username)

    async def list_pending_accounts(self, user_type: str = "all") -> list[dict[str, Any]]:
        """List accounts awaiting approval, newest first.

        Args:
            user_type: ``all``, ``oauth`` (linked to a provider) or ``local``
        """
        params: dict[str, Any] = {
            "select": "*",
            "pending_approval": "eq.true",
            "is_active": "eq.false",
            "order": "created_at.desc",
        }
        if user_type == "oauth":
            params["oauth_provider"] = f"eq.{self.settings.oauth_provider_name}"
        elif user_type == "local":
            params["or"] = "(oauth_provider.is.null,oauth_provider.eq.traditional)"
        rows = await self._request(
            "GET", f"/rest/v1/{ACCOUNTS_TABLE}", headers=self._service_headers(), params=params
        )
        return rows or []

    async def update_account(
        self, account_id: str, changes: dict[str, Any]
    ) -> dict[str, Any] | None:
        """Patch an account row; returns the updated row or None if it does not exist."""
        headers = {**self._service_headers(), "Prefer": "return=representation"}
        rows = await self._request(
            "PATCH",
            f"/rest/v1/{ACCOUNTS_TABLE}",
            headers=headers,
            params={"id": f"eq.{account_id}"},
            json=changes,
        )
        return rows[0] if rows else None

    async def insert_account(self, record: dict[str, Any]) -> dict[str, Any]:
        headers = {**self._service_headers(), "Prefer": "return=representation"}
        rows = await self._request(
            "POST", f"/rest/v1/{ACCOUNTS_TABLE}", headers=headers, json=record
        )
        if not rows:
            raise DataServiceServerError("Insert returned no row", 500)
        return rows[0]

    async def delete_account(self, account_id: str) -> bool:
        """Delete an account row; returns False if no row matched."""
        headers = {**self._service_headers(), "Prefer": "return=representation"}
        rows = await self._request(
            "DELETE",
            f"/rest/v1/{ACCOUNTS_TABLE}",
            headers=headers,
            params={"id": f"eq.{account_id}"},
        )
        return bool(rows)

    # ========================================
    # Identity service (GoTrue)
    # ========================================

    async def sign_in_with_password(self, email: str, password: str) -> dict[str, Any]:
        """Verify credentials with the password grant.

        Returns:
            Token response with ``access_token`` and ``refresh_token``

        Raises:
            DataServiceClientError: If the credentials are rejected
        """
        self.settings.require("supabase_anon_key")
        headers = {"apikey": self.settings.supabase_anon_key}  # type: ignore[dict-item]
        tokens = await self._request(
            "POST",
            "/auth/v1/token",
            headers=headers,
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        if not tokens or not tokens.get("access_token"):
            raise DataServiceClientError("Password grant returned no access token", 400)
        return tokens

    async def get_auth_user(self, user_id: str) -> dict[str, Any] | None:
        """Fetch an identity-service user (with ``user_metadata``) by id."""
        try:
            return await self._request(
                "GET", f"/auth/v1/admin/users/{user_id}", headers=self._service_headers()
            )
        except DataServiceNotFoundError:
            return None

    async def list_auth_users(self) -> list[dict[str, Any]]:
        body = await self._request(
            "GET",
            "/auth/v1/admin/users",
            headers=self._service_headers(),
            params={"per_page": "1000"},
        )
        if isinstance(body, dict):
            return body.get("users") or []
        return body or []

    async def upsert_auth_user(
        self, user_id: str, email: str, metadata: dict[str, Any]
    ) -> dict[str, Any]:
        """Update a user's metadata, creating the identity user when missing."""
        existing = await self.get_auth_user(user_id)
        if existing is not None:
            return await self._request(
                "PUT",
                f"/auth/v1/admin/users/{user_id}",
                headers=self._service_headers(),
                json={"user_metadata": metadata},
            )
        return await self._request(
            "POST",
            "/auth/v1/admin/users",
            headers=self._service_headers(),
            json={
                "id": user_id,
                "email": email,
                "email_confirm": True,
                "user_metadata": metadata,
            },
        )

    # ========================================
    # Data proxy
    # ========================================

    async def forward(
        self,
        method: str,
        path_with_query: str,
        headers: dict[str, str],
        body: bytes | None,
    ) -> httpx.Response:
        """Send an authorized request to PostgREST and return the streaming response.

        The caller must ``aclose()`` the returned response.

        Args:
            method: HTTP method
            path_with_query: Target under /rest/v1/, including its query string
            headers: Relayed client headers (credentials are added here)
            body: Raw request body

        Raises:
            DataServiceConnectionError: If the request cannot be sent
        """
        self.settings.require("supabase_anon_key")
        request_headers = {
            **headers,
            **self._service_headers(),
            "apikey": self.settings.supabase_anon_key,  # type: ignore[dict-item]
        }
        client = self._get_client()
        request = client.build_request(
            method, self._url(path_with_query), headers=request_headers, content=body or None
        )
        try:
            return await client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise DataServiceConnectionError(
                f"Proxy request failed: {method} {path_with_query}: {type(e).__name__}"
            ) from e


__all__ = ["SupabaseClient", "ACCOUNTS_TABLE", "DataServiceError"]
