"""Security primitives: PKCE/state codec, provider OAuth, roles and cookie sealing."""

from inventory_gateway.security.authz import (
    PROXY_RULES,
    ProxyRule,
    UserRole,
    check_proxy_method,
    check_user_role,
    resolve_proxy_target,
)
from inventory_gateway.security.crypto import CookieSealer, DecryptionError
from inventory_gateway.security.pkce import (
    OAuthState,
    PendingAuthorization,
    decode_state,
    encode_state,
    generate_pkce_challenge,
    generate_pkce_verifier,
)

__all__ = [
    "PROXY_RULES",
    "ProxyRule",
    "UserRole",
    "check_proxy_method",
    "check_user_role",
    "resolve_proxy_target",
    "CookieSealer",
    "DecryptionError",
    "OAuthState",
    "PendingAuthorization",
    "decode_state",
    "encode_state",
    "generate_pkce_challenge",
    "generate_pkce_verifier",
]
