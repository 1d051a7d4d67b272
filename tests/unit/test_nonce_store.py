"""Tests for OAuth state nonce stores."""

import asyncio
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.asyncio import Redis
from redis.exceptions import RedisError

from inventory_gateway.config import Settings
from inventory_gateway.infra.session import (
    MemoryNonceStore,
    NonceStore,
    NonceStoreError,
    RedisNonceStore,
    create_nonce_store,
)

NONCE = "a" * 32


class TestNonceStoreInterface:
    """Tests for NonceStore abstract base class."""

    def test_nonce_store_is_abstract(self) -> None:
        with pytest.raises(TypeError):
            NonceStore()  # type: ignore[abstract]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("nonce", ["", "short", "has spaces in it!", "x" * 129, "a;DEL *"])
    async def test_malformed_nonce_rejected(self, nonce: str) -> None:
        store = MemoryNonceStore()
        with pytest.raises(NonceStoreError):
            await store.claim(nonce)


class TestMemoryNonceStore:
    """Tests for MemoryNonceStore."""

    @pytest.mark.asyncio
    async def test_first_claim_wins(self) -> None:
        store = MemoryNonceStore()

        assert await store.claim(NONCE) is True
        assert await store.claim(NONCE) is False
        assert await store.claim("b" * 32) is True

    @pytest.mark.asyncio
    async def test_concurrent_claims(self) -> None:
        store = MemoryNonceStore()

        results = await asyncio.gather(*(store.claim(NONCE) for _ in range(20)))

        assert results.count(True) == 1

    @pytest.mark.asyncio
    async def test_expired_claim_can_be_made_again(self) -> None:
        store = MemoryNonceStore()
        assert await store.claim(NONCE, ttl_seconds=600) is True

        store._claims[NONCE] = time.monotonic() - 1

        assert await store.claim(NONCE) is True


class TestRedisNonceStore:
    """Tests for RedisNonceStore."""

    @pytest.fixture
    def mock_redis_client(self) -> AsyncMock:
        client = AsyncMock(spec=Redis)
        client.ping = AsyncMock()
        client.set = AsyncMock()
        client.aclose = AsyncMock()
        return client

    @pytest.fixture
    def store(self) -> RedisNonceStore:
        return RedisNonceStore(redis_url="redis://localhost:6379/15", key_prefix="test-nonce:")

    @pytest.mark.asyncio
    async def test_init_creates_connection(self, store: RedisNonceStore) -> None:
        with (
            patch("inventory_gateway.infra.session.nonce_store.ConnectionPool") as mock_pool_class,
            patch("inventory_gateway.infra.session.nonce_store.Redis") as mock_redis_class,
        ):
            mock_pool = MagicMock()
            mock_pool_class.from_url.return_value = mock_pool
            mock_client = AsyncMock(spec=Redis)
            mock_client.ping = AsyncMock()
            mock_redis_class.return_value = mock_client

            await store.init()

            mock_pool_class.from_url.assert_called_once()
            assert mock_pool_class.from_url.call_args.kwargs["decode_responses"] is True
            mock_redis_class.assert_called_once_with(connection_pool=mock_pool)
            mock_client.ping.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_init_failure_raises_error(self, store: RedisNonceStore) -> None:
        with (
            patch("inventory_gateway.infra.session.nonce_store.ConnectionPool"),
            patch("inventory_gateway.infra.session.nonce_store.Redis") as mock_redis_class,
        ):
            mock_client = AsyncMock(spec=Redis)
            mock_client.ping = AsyncMock(side_effect=RedisError("Connection failed"))
            mock_redis_class.return_value = mock_client

            with pytest.raises(NonceStoreError, match="Failed to initialize"):
                await store.init()

    @pytest.mark.asyncio
    async def test_claim_uses_set_nx_ex(
        self, store: RedisNonceStore, mock_redis_client: AsyncMock
    ) -> None:
        store._client = mock_redis_client
        mock_redis_client.set.return_value = True

        assert await store.claim(NONCE, ttl_seconds=600) is True

        mock_redis_client.set.assert_awaited_once_with(
            f"test-nonce:{NONCE}", "1", nx=True, ex=600
        )

    @pytest.mark.asyncio
    async def test_replayed_claim(
        self, store: RedisNonceStore, mock_redis_client: AsyncMock
    ) -> None:
        store._client = mock_redis_client
        mock_redis_client.set.return_value = None

        assert await store.claim(NONCE) is False

    @pytest.mark.asyncio
    async def test_claim_redis_error(
        self, store: RedisNonceStore, mock_redis_client: AsyncMock
    ) -> None:
        store._client = mock_redis_client
        mock_redis_client.set.side_effect = RedisError("Connection lost")

        with pytest.raises(NonceStoreError, match="Failed to claim nonce"):
            await store.claim(NONCE)

    @pytest.mark.asyncio
    async def test_claim_not_initialized(self, store: RedisNonceStore) -> None:
        with pytest.raises(NonceStoreError, match="not initialized"):
            await store.claim(NONCE)

    @pytest.mark.asyncio
    async def test_close_cleanup_resources(
        self, store: RedisNonceStore, mock_redis_client: AsyncMock
    ) -> None:
        mock_pool = MagicMock()
        mock_pool.aclose = AsyncMock()
        store._client = mock_redis_client
        store._pool = mock_pool

        await store.close()

        mock_redis_client.aclose.assert_awaited_once()
        mock_pool.aclose.assert_awaited_once()
        assert store._client is None
        assert store._pool is None


class TestCreateNonceStore:
    """Tests for backend selection."""

    def test_memory_without_redis(self, settings: Settings) -> None:
        assert isinstance(create_nonce_store(settings), MemoryNonceStore)

    def test_redis_when_configured(self, cookie_key: str) -> None:
        settings = Settings(
            redis_url="redis://cache:6379/2",
            redis_timeout_seconds=2.0,
            cookie_encryption_key=cookie_key,
        )
        store = create_nonce_store(settings)

        assert isinstance(store, RedisNonceStore)
        assert store.redis_url == "redis://cache:6379/2"
        assert store.timeout_seconds == 2.0
