"""Tests for roles and the data-proxy policy table."""

import pytest

from inventory_gateway.domain.exceptions import AuthorizationError, ValidationError
from inventory_gateway.security.authz import (
    PROXY_RULES,
    ProxyRule,
    UserRole,
    check_proxy_method,
    check_user_role,
    is_admin_role,
    parse_role,
    resolve_proxy_target,
)


class TestRoles:
    """Tests for role parsing and checks."""

    def test_parse_role(self) -> None:
        assert parse_role("usuario") is UserRole.USUARIO
        assert parse_role("admin") is UserRole.ADMIN
        assert parse_role("superadmin") is UserRole.SUPERADMIN
        assert parse_role("root") is None
        assert parse_role("") is None
        assert parse_role(None) is None

    def test_is_admin_role(self) -> None:
        assert is_admin_role("admin") is True
        assert is_admin_role("superadmin") is True
        assert is_admin_role("usuario") is False
        assert is_admin_role(None) is False

    def test_check_user_role_allows(self) -> None:
        role = check_user_role("superadmin", [UserRole.SUPERADMIN], user_id="u-1")
        assert role is UserRole.SUPERADMIN

    @pytest.mark.parametrize("role", ["admin", "usuario", None, "SUPERADMIN"])
    def test_check_user_role_denies(self, role: str | None) -> None:
        with pytest.raises(AuthorizationError) as exc_info:
            check_user_role(role, [UserRole.SUPERADMIN], action="approve_user")
        assert exc_info.value.public_message == "Insufficient permissions"
        assert exc_info.value.status_code == 403


class TestResolveProxyTarget:
    """Tests for target validation and allow-list matching."""

    def test_allowed_table(self) -> None:
        target = resolve_proxy_target("/rest/v1/muebles?select=*&id=eq.5")

        assert target.path == "/rest/v1/muebles"
        assert target.query == "select=*&id=eq.5"
        assert target.rule.resource == "muebles"
        assert target.path_with_query == "/rest/v1/muebles?select=*&id=eq.5"

    def test_rpc_target(self) -> None:
        target = resolve_proxy_target("/rest/v1/rpc/get_admin_notifications")
        assert target.rule.resource == "rpc/get_admin_notifications"

    def test_longest_match_wins(self) -> None:
        assert resolve_proxy_target("/rest/v1/resguardos_bajas").rule.resource == (
            "resguardos_bajas"
        )
        assert resolve_proxy_target("/rest/v1/directorio_areas").rule.resource == (
            "directorio_areas"
        )

    def test_segment_boundary(self) -> None:
        rules = (ProxyRule("resguardos", admin_writable=True),)

        assert resolve_proxy_target("/rest/v1/resguardos/1", rules).rule.resource == "resguardos"
        with pytest.raises(AuthorizationError):
            resolve_proxy_target("/rest/v1/resguardos_bajas", rules)

    @pytest.mark.parametrize(
        "target",
        [
            None,
            "",
            "/auth/v1/admin/users",
            "https://evil.example.com/rest/v1/muebles",
            "rest/v1/muebles",
            "/rest/v2/muebles",
        ],
    )
    def test_target_outside_rest_root(self, target: str | None) -> None:
        with pytest.raises(ValidationError) as exc_info:
            resolve_proxy_target(target)
        assert exc_info.value.public_message == "Invalid target"

    @pytest.mark.parametrize(
        "target",
        [
            "/rest/v1/muebles/../users",
            "/rest/v1/../auth/v1/admin/users",
            "/rest/v1/muebles/%2e%2e/users",
            "/rest/v1/muebles%2Fusers",
            "/rest/v1/muebles//users",
            "/rest/v1/muebles\\users",
        ],
    )
    def test_traversal_rejected(self, target: str) -> None:
        with pytest.raises(ValidationError):
            resolve_proxy_target(target)

    @pytest.mark.parametrize(
        "target", ["/rest/v1/secrets", "/rest/v1/rpc/drop_everything", "/rest/v1/"]
    )
    def test_unlisted_target_forbidden(self, target: str) -> None:
        with pytest.raises(AuthorizationError) as exc_info:
            resolve_proxy_target(target)
        assert exc_info.value.public_message == "Target not allowed"

    def test_query_string_is_not_checked_for_traversal(self) -> None:
        target = resolve_proxy_target("/rest/v1/muebles?descripcion=ilike.*..*")
        assert target.query == "descripcion=ilike.*..*"


class TestCheckProxyMethod:
    """Tests for the role/method matrix."""

    @pytest.mark.parametrize("role", ["usuario", "admin", "superadmin", None])
    @pytest.mark.parametrize("method", ["GET", "HEAD", "get"])
    def test_reads_allowed_for_every_role(self, method: str, role: str | None) -> None:
        target = resolve_proxy_target("/rest/v1/muebles")
        check_proxy_method(method, target, role)

    @pytest.mark.parametrize("method", ["POST", "PATCH", "PUT", "DELETE"])
    def test_usuario_cannot_write(self, method: str) -> None:
        target = resolve_proxy_target("/rest/v1/muebles")

        with pytest.raises(AuthorizationError) as exc_info:
            check_proxy_method(method, target, "usuario")
        assert exc_info.value.public_message == "Insufficient permissions"

    @pytest.mark.parametrize("role", ["admin", "superadmin"])
    @pytest.mark.parametrize("method", ["POST", "PATCH", "PUT", "DELETE"])
    def test_admins_write_admin_writable_tables(self, method: str, role: str) -> None:
        target = resolve_proxy_target("/rest/v1/resguardos")
        check_proxy_method(method, target, role)

    @pytest.mark.parametrize("role", ["admin", "superadmin"])
    def test_users_table_is_read_only(self, role: str) -> None:
        target = resolve_proxy_target("/rest/v1/users?id=eq.u-1")

        check_proxy_method("GET", target, role)
        with pytest.raises(AuthorizationError) as exc_info:
            check_proxy_method("PATCH", target, role)
        assert exc_info.value.public_message == "Target is read-only"

    def test_unsupported_method(self) -> None:
        target = resolve_proxy_target("/rest/v1/muebles")

        with pytest.raises(ValidationError):
            check_proxy_method("TRACE", target, "superadmin")

    def test_unreadable_rule(self) -> None:
        rules = (ProxyRule("audit", read_allowed=False),)
        target = resolve_proxy_target("/rest/v1/audit", rules)

        with pytest.raises(AuthorizationError):
            check_proxy_method("GET", target, "superadmin")


def test_policy_table_has_unique_resources() -> None:
    resources = [rule.resource for rule in PROXY_RULES]
    assert len(resources) == len(set(resources))
