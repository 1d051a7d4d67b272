"""Single-use claims for OAuth state nonces.

A callback completes a pending authorization only after claiming its state
nonce. A second claim of the same nonce within its lifetime fails, which turns
a replayed callback URL into an authentication error even when the browser
still holds the OAuth cookies.

Backends:
- RedisNonceStore: ``SET key 1 NX EX ttl``; shared by all gateway instances
- MemoryNonceStore: per-process dictionary with expiry; lab and tests

Example:
    store = RedisNonceStore(redis_url=settings.redis_url)
    await store.init()
    if not await store.claim(pending.nonce):
        raise AuthenticationError("replayed state")
"""

import asyncio
import logging
import re
import time
from abc import ABC, abstractmethod

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from inventory_gateway.config import Settings
from inventory_gateway.infra.observability.metrics import record_nonce_claim
from inventory_gateway.security.pkce import STATE_MAX_AGE_SECONDS

logger = logging.getLogger(__name__)

# Nonces are authlib tokens: ASCII letters and digits
_NONCE_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{8,128}$")


class NonceStoreError(Exception):
    """Base exception for nonce store errors."""


class NonceStore(ABC):
    """Abstract base class for nonce claim backends."""

    backend_name = "abstract"

    async def init(self) -> None:
        """Initialize backend connections (no-op by default)."""

    async def close(self) -> None:
        """Release backend connections (no-op by default)."""

    @abstractmethod
    async def _claim(self, nonce: str, ttl_seconds: int) -> bool:
        """Backend-specific claim; True if this is the first claim."""

    async def claim(self, nonce: str, ttl_seconds: int = STATE_MAX_AGE_SECONDS) -> bool:
        """Claim a nonce once.

        Args:
            nonce: State nonce
            ttl_seconds: How long the claim is remembered

        Returns:
            True on the first claim, False if it was already claimed

        Raises:
            NonceStoreError: If the nonce is malformed or the backend fails
        """
        if not _NONCE_PATTERN.match(nonce or ""):
            raise NonceStoreError("Nonce contains invalid characters")
        claimed = await self._claim(nonce, ttl_seconds)
        record_nonce_claim(self.backend_name, "claimed" if claimed else "replayed")
        if not claimed:
            logger.warning("OAuth state nonce replayed")
        return claimed


class MemoryNonceStore(NonceStore):
    """In-process nonce store with lazy expiry."""

    backend_name = "memory"

    def __init__(self) -> None:
        self._claims: dict[str, float] = {}
        self._lock = asyncio.Lock()

    async def _claim(self, nonce: str, ttl_seconds: int) -> bool:
        now = time.monotonic()
        async with self._lock:
            expired = [key for key, expiry in self._claims.items() if expiry <= now]
            for key in expired:
                del self._claims[key]
            if nonce in self._claims:
                return False
            self._claims[nonce] = now + ttl_seconds
            return True


class RedisNonceStore(NonceStore):
    """Redis-backed nonce store for multi-instance deployments."""

    backend_name = "redis"

    def __init__(
        self,
        redis_url: str,
        pool_size: int = 10,
        timeout_seconds: float = 5.0,
        key_prefix: str = "oauth-nonce:",
    ) -> None:
        """Initialize Redis nonce store.

        Args:
            redis_url: Redis connection URL (redis:// or rediss://)
            pool_size: Connection pool size
            timeout_seconds: Operation timeout
            key_prefix: Redis key prefix for nonces
        """
        self.redis_url = redis_url
        self.pool_size = pool_size
        self.timeout_seconds = timeout_seconds
        self.key_prefix = key_prefix

        self._pool: ConnectionPool | None = None
        self._client: Redis | None = None

    async def init(self) -> None:
        """Initialize Redis connection pool and client."""
        try:
            self._pool = ConnectionPool.from_url(
                self.redis_url,
                max_connections=self.pool_size,
                socket_timeout=self.timeout_seconds,
                socket_connect_timeout=self.timeout_seconds,
                decode_responses=True,
            )
            self._client = Redis(connection_pool=self._pool)
            await self._client.ping()  # type: ignore[misc]
            logger.info("Redis nonce store initialized", extra={"pool_size": self.pool_size})
        except RedisError as e:
            raise NonceStoreError(f"Failed to initialize Redis connection: {e}") from e

    async def close(self) -> None:
        """Close Redis connection and pool; errors are logged, not raised."""
        client = self._client
        pool = self._pool
        self._client = None
        self._pool = None

        if client is not None:
            try:
                await client.aclose()
            except RedisError as exc:
                logger.error("Error while closing Redis client", exc_info=exc)

        if pool is not None:
            try:
                await pool.aclose()
            except RedisError as exc:
                logger.error("Error while closing Redis connection pool", exc_info=exc)

    async def _claim(self, nonce: str, ttl_seconds: int) -> bool:
        if not self._client:
            raise NonceStoreError("Nonce store not initialized. Call init() first.")
        try:
            result = await self._client.set(
                f"{self.key_prefix}{nonce}", "1", nx=True, ex=ttl_seconds
            )
        except RedisError as e:
            record_nonce_claim(self.backend_name, "error")
            raise NonceStoreError(f"Failed to claim nonce: {e}") from e
        return bool(result)


def create_nonce_store(settings: Settings) -> NonceStore:
    """Pick the backend for the configured deployment."""
    if settings.redis_url:
        return RedisNonceStore(
            redis_url=settings.redis_url,
            timeout_seconds=settings.redis_timeout_seconds,
        )
    return MemoryNonceStore()


__all__ = [
    "NonceStore",
    "NonceStoreError",
    "MemoryNonceStore",
    "RedisNonceStore",
    "create_nonce_store",
]
