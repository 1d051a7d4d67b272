"""Session state: cookie-held sessions and OAuth state nonce claims."""

from inventory_gateway.infra.session.cookies import SessionCookieManager
from inventory_gateway.infra.session.nonce_store import (
    MemoryNonceStore,
    NonceStore,
    NonceStoreError,
    RedisNonceStore,
    create_nonce_store,
)

__all__ = [
    "SessionCookieManager",
    "NonceStore",
    "NonceStoreError",
    "MemoryNonceStore",
    "RedisNonceStore",
    "create_nonce_store",
]
