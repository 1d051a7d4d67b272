"""Tests for the data proxy route."""

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from inventory_gateway.api.http import create_http_app
from inventory_gateway.domain.models import SessionUser
from inventory_gateway.infra.session.cookies import USER_COOKIE
from inventory_gateway.infra.supabase import SupabaseClient

PROXY = "/api/supabase-proxy"


class TestProxyAuthorization:
    """Requests are refused before anything reaches the data service."""

    def test_requires_session(self, client: TestClient, fake_supabase) -> None:
        resp = client.get(PROXY, params={"target": "/rest/v1/muebles"})

        assert resp.status_code == 401
        assert fake_supabase.forward_calls == []

    def test_requires_access_token(
        self, client: TestClient, sealer, linked_user, fake_supabase
    ) -> None:
        client.cookies.set(USER_COOKIE, sealer.seal(linked_user.to_cookie()))

        resp = client.get(PROXY, params={"target": "/rest/v1/muebles"})

        assert resp.status_code == 401
        assert fake_supabase.forward_calls == []

    def test_requires_provider_link(self, client: TestClient, sign_in_as, fake_supabase) -> None:
        sign_in_as(SessionUser(id="l-1", rol="superadmin", oauth_provider=None))

        resp = client.get(PROXY, params={"target": "/rest/v1/muebles"})

        assert resp.status_code == 403
        assert fake_supabase.forward_calls == []

    @pytest.mark.parametrize(
        "target", ["/auth/v1/admin/users", "/rest/v1/../auth/v1/users", "https://evil.test/x"]
    )
    def test_bad_target(
        self, client: TestClient, sign_in_as, linked_admin, fake_supabase, target
    ) -> None:
        sign_in_as(linked_admin)

        resp = client.get(PROXY, params={"target": target})

        assert resp.status_code == 400
        assert fake_supabase.forward_calls == []

    def test_missing_target(self, client: TestClient, sign_in_as, linked_admin) -> None:
        sign_in_as(linked_admin)
        assert client.get(PROXY).status_code == 400

    def test_unlisted_target(
        self, client: TestClient, sign_in_as, linked_admin, fake_supabase
    ) -> None:
        sign_in_as(linked_admin)

        resp = client.get(PROXY, params={"target": "/rest/v1/secrets"})

        assert resp.status_code == 403
        assert fake_supabase.forward_calls == []

    def test_non_admin_reads_but_cannot_write(
        self, client: TestClient, sign_in_as, linked_user, fake_supabase
    ) -> None:
        sign_in_as(linked_user)

        read = client.get(PROXY, params={"target": "/rest/v1/muebles?select=*"})
        write = client.patch(
            PROXY, params={"target": "/rest/v1/muebles?id=eq.1"}, json={"estatus": "BAJA"}
        )

        assert read.status_code == 200
        assert write.status_code == 403
        assert [call[0] for call in fake_supabase.forward_calls] == ["GET"]

    def test_users_is_read_only(
        self, client: TestClient, sign_in_as, superadmin, fake_supabase
    ) -> None:
        sign_in_as(superadmin)

        resp = client.delete(PROXY, params={"target": "/rest/v1/users?id=eq.u-1"})

        assert resp.status_code == 403
        assert fake_supabase.forward_calls == []

    def test_unsupported_method(self, client: TestClient, sign_in_as, linked_admin) -> None:
        sign_in_as(linked_admin)

        resp = client.request("TRACE", PROXY, params={"target": "/rest/v1/muebles"})

        assert resp.status_code == 405


class TestProxyForwarding:
    """Authorized requests are forwarded and the response relayed."""

    def test_admin_write_forwarded(
        self, client: TestClient, sign_in_as, linked_admin, fake_supabase
    ) -> None:
        fake_supabase.forward_response = httpx.Response(
            201,
            json=[{"id": 7}],
            headers={"content-type": "application/json", "preference-applied": "return=representation"},
        )
        sign_in_as(linked_admin)

        resp = client.post(
            PROXY,
            params={"target": "/rest/v1/resguardos"},
            json={"folio": "R-1"},
            headers={"Prefer": "return=representation"},
        )

        assert resp.status_code == 201
        assert resp.json() == [{"id": 7}]
        assert resp.headers["preference-applied"] == "return=representation"

        method, path, headers, body = fake_supabase.forward_calls[0]
        assert method == "POST"
        assert path == "/rest/v1/resguardos"
        assert headers["prefer"] == "return=representation"
        assert "cookie" not in headers
        assert json.loads(body) == {"folio": "R-1"}

    def test_streams_from_data_service(self, settings, sealer, linked_user) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                206,
                content=b'[{"id":1},{"id":2}]',
                headers={
                    "content-type": "application/json",
                    "content-range": "0-1/120",
                    "set-cookie": "sb=leak",
                    "x-internal": "1",
                },
            )

        supabase = SupabaseClient(
            settings, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )
        client = TestClient(create_http_app(settings, supabase=supabase))
        client.cookies.set(USER_COOKIE, sealer.seal(linked_user.to_cookie()))
        client.cookies.set("sb-access-token", "user-token")

        resp = client.get(
            PROXY,
            params={"target": "/rest/v1/muebles?select=id&limit=2"},
            headers={"Range": "0-1"},
        )

        assert resp.status_code == 206
        assert resp.content == b'[{"id":1},{"id":2}]'
        assert resp.headers["content-range"] == "0-1/120"
        assert "set-cookie" not in resp.headers
        assert "x-internal" not in resp.headers

        upstream = seen[0]
        assert upstream.url.host == "data.example.test"
        assert upstream.url.path == "/rest/v1/muebles"
        assert upstream.headers["apikey"] == "anon-key"
        assert upstream.headers["range"] == "0-1"
