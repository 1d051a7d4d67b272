"""Authorization: account roles and the data-proxy policy table.

Role hierarchy (closed set):
- usuario: regular inventory user (reads through the proxy)
- admin: may also write inventory and configuration tables
- superadmin: admin plus the account approval workflow

The data proxy only forwards to targets listed in ``PROXY_RULES``. Each rule
names a resource path under ``/rest/v1/`` and whether admins may write to it.
Matching is done on path-segment boundaries, so ``resguardos`` never matches
``resguardos_bajas`` by accident.
"""

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from inventory_gateway.domain.exceptions import AuthorizationError, ValidationError

logger = logging.getLogger(__name__)

REST_ROOT = "/rest/v1/"

READ_METHODS = frozenset({"GET", "HEAD"})
WRITE_METHODS = frozenset({"POST", "PATCH", "PUT", "DELETE"})

# Traversal and encoded-separator tricks that PostgREST paths never need
_SUSPICIOUS_TARGET = re.compile(r"\.\.|\\|//|%2e|%2f|%5c", re.IGNORECASE)


class UserRole(str, Enum):
    """Account roles."""

    USUARIO = "usuario"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


ADMIN_ROLES = frozenset({UserRole.ADMIN, UserRole.SUPERADMIN})


def parse_role(role: str | None) -> UserRole | None:
    """Map a stored role string to ``UserRole``; unknown values map to None."""
    if role is None:
        return None
    try:
        return UserRole(role)
    except ValueError:
        return None


def is_admin_role(role: str | None) -> bool:
    return parse_role(role) in ADMIN_ROLES


def check_user_role(
    role: str | None,
    allowed: Iterable[UserRole],
    *,
    user_id: str | None = None,
    action: str = "operation",
) -> UserRole:
    """Check that a role is in the allowed set.

    Args:
        role: Role string from the session
        allowed: Roles permitted for the action
        user_id: Caller id (for logging)
        action: Description of the action (for logging and the error)

    Returns:
        The parsed role

    Raises:
        AuthorizationError: If the role is missing, unknown or not allowed
    """
    allowed_roles = frozenset(allowed)
    parsed = parse_role(role)
    if parsed not in allowed_roles:
        logger.info(
            "Role check denied",
            extra={"user_id": user_id, "user_role": role, "mode": action},
        )
        raise AuthorizationError(
            f"Role {role!r} not allowed to perform {action}",
            public_message="Insufficient permissions",
            context={"role": role, "allowed": sorted(r.value for r in allowed_roles)},
        )
    return parsed  # type: ignore[return-value]


@dataclass(frozen=True)
class ProxyRule:
    """Allow-list entry for the data proxy.

    Attributes:
        resource: Path under /rest/v1/ (a table or ``rpc/<function>``)
        read_allowed: Whether any authenticated caller may read it
        admin_writable: Whether admin/superadmin callers may write to it
    """

    resource: str
    read_allowed: bool = True
    admin_writable: bool = False

    def matches(self, resource_path: str) -> bool:
        return resource_path == self.resource or resource_path.startswith(self.resource + "/")


PROXY_RULES: tuple[ProxyRule, ...] = (
    # Inventory tables
    ProxyRule("muebles", admin_writable=True),
    ProxyRule("mueblesitea", admin_writable=True),
    ProxyRule("mueblestlaxcala", admin_writable=True),
    ProxyRule("resguardos", admin_writable=True),
    ProxyRule("resguardos_bajas", admin_writable=True),
    # Configuration and lookup tables
    ProxyRule("config", admin_writable=True),
    ProxyRule("directorio", admin_writable=True),
    ProxyRule("area", admin_writable=True),
    ProxyRule("directorio_areas", admin_writable=True),
    ProxyRule("firmas", admin_writable=True),
    ProxyRule("notifications", admin_writable=True),
    ProxyRule("admin_notification_states", admin_writable=True),
    ProxyRule("rpc/get_admin_notifications", admin_writable=True),
    # Account records change only through the approval workflow
    ProxyRule("users", admin_writable=False),
)


@dataclass(frozen=True)
class ProxyTarget:
    """A validated proxy target."""

    path: str
    query: str
    rule: ProxyRule

    @property
    def path_with_query(self) -> str:
        return f"{self.path}?{self.query}" if self.query else self.path


def resolve_proxy_target(
    target: str | None, rules: Iterable[ProxyRule] = PROXY_RULES
) -> ProxyTarget:
    """Validate a proxy target and find its allow-list rule.

    Args:
        target: Value of the ``target`` query parameter
        rules: Allow-list to match against

    Returns:
        ProxyTarget with the matching rule (longest resource wins)

    Raises:
        ValidationError: If the target is missing, not under /rest/v1/ or malformed
        AuthorizationError: If no allow-list entry covers the target
    """
    if not target or not target.startswith(REST_ROOT):
        raise ValidationError(
            f"Proxy target must start with {REST_ROOT}",
            public_message="Invalid target",
            context={"target": target},
        )

    path, _, query = target.partition("?")
    if _SUSPICIOUS_TARGET.search(path):
        raise ValidationError(
            "Proxy target contains traversal sequences",
            public_message="Invalid target",
            context={"target": target},
        )

    resource_path = path[len(REST_ROOT):]
    candidates = [rule for rule in rules if rule.matches(resource_path)]
    if not candidates:
        raise AuthorizationError(
            f"Proxy target not allowed: {resource_path}",
            public_message="Target not allowed",
            context={"target": target},
        )

    rule = max(candidates, key=lambda r: len(r.resource))
    return ProxyTarget(path=path, query=query, rule=rule)


def check_proxy_method(
    method: str,
    target: ProxyTarget,
    role: str | None,
    *,
    user_id: str | None = None,
) -> None:
    """Apply the role/method matrix to a resolved target.

    Reads are allowed on every readable entry. Writes need both an admin role
    and an admin-writable entry.

    Raises:
        ValidationError: For methods outside the supported set
        AuthorizationError: If the caller may not use the method on the target
    """
    method = method.upper()
    if method in READ_METHODS:
        if not target.rule.read_allowed:
            raise AuthorizationError(
                f"Reads not allowed on {target.rule.resource}",
                public_message="Target not allowed",
            )
        return

    if method not in WRITE_METHODS:
        raise ValidationError(f"Unsupported proxy method: {method}", public_message="Method not allowed")

    if not is_admin_role(role):
        logger.info(
            "Proxy write denied for non-admin role",
            extra={"user_id": user_id, "user_role": role, "method": method, "target": target.path},
        )
        raise AuthorizationError(
            f"Role {role!r} may not {method} {target.rule.resource}",
            public_message="Insufficient permissions",
        )

    if not target.rule.admin_writable:
        raise AuthorizationError(
            f"{target.rule.resource} is read-only through the proxy",
            public_message="Target is read-only",
        )


__all__ = [
    "REST_ROOT",
    "READ_METHODS",
    "WRITE_METHODS",
    "UserRole",
    "ADMIN_ROLES",
    "parse_role",
    "is_admin_role",
    "check_user_role",
    "ProxyRule",
    "PROXY_RULES",
    "ProxyTarget",
    "resolve_proxy_target",
    "check_proxy_method",
]
