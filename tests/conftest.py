"""Shared pytest fixtures.

These fixtures live at `tests/` scope so they are available to both unit and e2e
tests.

Key goals:
- Keep INVENTORY_GATEWAY_* variables from the developer's shell out of Settings.
- Provide in-memory stand-ins for the data service and the external provider
  so the HTTP app can be exercised end to end without the network.
"""

from __future__ import annotations

import os
from typing import Any
from urllib.parse import parse_qs

import httpx
import pytest
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient

from inventory_gateway.api.http import create_http_app
from inventory_gateway.config import Settings
from inventory_gateway.domain.models import SessionUser
from inventory_gateway.infra.session import MemoryNonceStore, SessionCookieManager
from inventory_gateway.infra.session.cookies import ACCESS_TOKEN_COOKIE, USER_COOKIE
from inventory_gateway.infra.supabase import DataServiceClientError
from inventory_gateway.security.crypto import CookieSealer
from inventory_gateway.security.oidc import PROFILES_PATH, TOKEN_PATH, USER_PATH

SUPABASE_URL = "https://data.example.test"
PROVIDER_URL = "https://provider.example.test"


class FakeSupabaseClient:
    """In-memory data service with the same coroutine API as SupabaseClient."""

    def __init__(self, provider_name: str = "axpert") -> None:
        self.provider_name = provider_name
        self.accounts: dict[str, dict[str, Any]] = {}
        self.passwords: dict[str, str] = {}
        self.auth_users: dict[str, dict[str, Any]] = {}
        self.forward_calls: list[tuple[str, str, dict[str, str], bytes | None]] = []
        self.forward_response: httpx.Response | None = None
        self.closed = False

    def add_account(self, password: str | None = None, **fields: Any) -> dict[str, Any]:
        account = {
            "username": None,
            "email": None,
            "first_name": None,
            "last_name": None,
            "rol": "usuario",
            "is_active": True,
            "pending_approval": False,
            "oauth_provider": None,
            "oauth_user_id": None,
            "created_at": "2026-01-01T00:00:00+00:00",
            **fields,
        }
        self.accounts[str(account["id"])] = account
        if password is not None and account.get("email"):
            self.passwords[account["email"]] = password
        return account

    async def find_account(self, **filters: str) -> dict[str, Any] | None:
        for account in self.accounts.values():
            if all(
                account.get(column) is not None and str(account.get(column)) == value
                for column, value in filters.items()
            ):
                return dict(account)
        return None

    async def get_account(self, account_id: str) -> dict[str, Any] | None:
        return await self.find_account(id=account_id)

    async def get_account_by_username(self, username: str) -> dict[str, Any] | None:
        return await self.find_account(username=username)

    async def list_pending_accounts(self, user_type: str = "all") -> list[dict[str, Any]]:
        rows = [
            dict(account)
            for account in self.accounts.values()
            if account.get("pending_approval") and not account.get("is_active")
        ]
        if user_type == "oauth":
            rows = [row for row in rows if row.get("oauth_provider") == self.provider_name]
        elif user_type == "local":
            rows = [row for row in rows if row.get("oauth_provider") in (None, "traditional")]
        return sorted(rows, key=lambda row: row.get("created_at") or "", reverse=True)

    async def update_account(
        self, account_id: str, changes: dict[str, Any]
    ) -> dict[str, Any] | None:
        account = self.accounts.get(account_id)
        if account is None:
            return None
        account.update(changes)
        return dict(account)

    async def insert_account(self, record: dict[str, Any]) -> dict[str, Any]:
        account = {"created_at": "2026-06-01T00:00:00+00:00", **record}
        self.accounts[str(account["id"])] = account
        return dict(account)

    async def delete_account(self, account_id: str) -> bool:
        return self.accounts.pop(account_id, None) is not None

    async def sign_in_with_password(self, email: str, password: str) -> dict[str, Any]:
        if self.passwords.get(email) != password:
            raise DataServiceClientError("Invalid login credentials", 400)
        # Cookie-safe like real JWTs
        local_part = email.split("@")[0]
        return {"access_token": f"access-{local_part}", "refresh_token": f"refresh-{local_part}"}

    async def get_auth_user(self, user_id: str) -> dict[str, Any] | None:
        return self.auth_users.get(user_id)

    async def list_auth_users(self) -> list[dict[str, Any]]:
        return list(self.auth_users.values())

    async def upsert_auth_user(
        self, user_id: str, email: str, metadata: dict[str, Any]
    ) -> dict[str, Any]:
        user = self.auth_users.setdefault(user_id, {"id": user_id, "email": email})
        user["user_metadata"] = metadata
        return user

    async def forward(
        self,
        method: str,
        path_with_query: str,
        headers: dict[str, str],
        body: bytes | None,
    ) -> httpx.Response:
        self.forward_calls.append((method, path_with_query, headers, body))
        if self.forward_response is not None:
            return self.forward_response
        return httpx.Response(200, json=[], headers={"content-type": "application/json"})

    async def close(self) -> None:
        self.closed = True


class FakeProvider:
    """External OAuth provider answering on an httpx mock transport."""

    def __init__(self) -> None:
        self.token_status = 200
        self.token_body: dict[str, Any] = {
            "access_token": "provider-access",
            "refresh_token": "provider-refresh",
            "id_token": "provider-id-token",
        }
        self.user: dict[str, Any] | None = {
            "id": "ext-1",
            "email": "ana@example.com",
            "user_metadata": {"first_name": "Ana", "last_name": "Lopez"},
        }
        self.profiles: list[dict[str, Any]] = [
            {"id": "ext-1", "email": "ana@example.com", "avatar_url": "ana.png"}
        ]
        self.requests: list[httpx.Request] = []

    @property
    def token_requests(self) -> list[dict[str, list[str]]]:
        return [
            parse_qs(request.content.decode())
            for request in self.requests
            if request.url.path == TOKEN_PATH
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == TOKEN_PATH:
            return httpx.Response(self.token_status, json=self.token_body)
        if path == USER_PATH:
            if self.user is None:
                return httpx.Response(401, json={"msg": "invalid token"})
            return httpx.Response(200, json=self.user)
        if path == PROFILES_PATH:
            return httpx.Response(200, json=self.profiles)
        return httpx.Response(404, json={"msg": "not found"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure shell configuration does not leak into Settings()."""
    for name in list(os.environ):
        if name.startswith("INVENTORY_GATEWAY_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def cookie_key() -> str:
    return Fernet.generate_key().decode()


@pytest.fixture
def settings(cookie_key: str) -> Settings:
    return Settings(
        environment="lab",
        supabase_url=SUPABASE_URL,
        supabase_anon_key="anon-key",
        supabase_service_role_key="service-key",
        oauth_provider_url=PROVIDER_URL,
        oauth_client_id="inventory-client",
        cookie_encryption_key=cookie_key,
    )


@pytest.fixture
def sealer(settings: Settings) -> CookieSealer:
    return CookieSealer(settings.cookie_encryption_key, settings.environment)  # type: ignore[arg-type]


@pytest.fixture
def cookie_manager(sealer: CookieSealer) -> SessionCookieManager:
    return SessionCookieManager(sealer, secure=False)


@pytest.fixture
def fake_supabase() -> FakeSupabaseClient:
    return FakeSupabaseClient()


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def nonce_store() -> MemoryNonceStore:
    return MemoryNonceStore()


@pytest.fixture
def app(settings, fake_supabase, fake_provider, nonce_store):
    return create_http_app(
        settings,
        supabase=fake_supabase,  # type: ignore[arg-type]
        nonce_store=nonce_store,
        provider_http_client=fake_provider.client(),
    )


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def sign_in_as(client: TestClient, sealer: CookieSealer):
    """Put a valid session for ``user`` into the test client's cookie jar."""

    def _sign_in(user: SessionUser, access_token: str = "session-access") -> SessionUser:
        client.cookies.set(USER_COOKIE, sealer.seal(user.to_cookie()))
        client.cookies.set(ACCESS_TOKEN_COOKIE, access_token)
        return user

    return _sign_in


@pytest.fixture
def superadmin() -> SessionUser:
    return SessionUser(
        id="sa-1",
        username="root",
        rol="superadmin",
        email="root@example.com",
        oauth_provider="axpert",
    )


@pytest.fixture
def linked_user() -> SessionUser:
    return SessionUser(
        id="u-1",
        username="jdoe",
        rol="usuario",
        email="jdoe@example.com",
        oauth_provider="axpert",
    )


@pytest.fixture
def linked_admin() -> SessionUser:
    return SessionUser(
        id="a-1",
        username="boss",
        rol="admin",
        email="boss@example.com",
        oauth_provider="axpert",
    )
