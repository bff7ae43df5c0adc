"""Tests unitaires pour les stores Redis (client mocké)."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from app.infrastructure.redis.client import close_redis_client, create_redis_client
from app.infrastructure.redis.exceptions import (
    CredentialStoreError,
    CredentialStoreUnavailableError,
)
from app.infrastructure.redis.stores import RedisSessionStore, RedisTokenStore
from app.schemas.emergency import EmergencyField, EmergencyTokenRecord
from tests.fakes import STAFF_TOKEN, T0, FakeClock, session_for, staff

EMERGENCY_TOKEN = "emergency-token-000000000000000000000000001"


@pytest.fixture
def mock_redis():
    client = MagicMock()
    client.get = AsyncMock(return_value=None)
    client.set = AsyncMock(return_value=True)
    client.delete = AsyncMock(return_value=1)
    return client


@pytest.fixture
def record() -> EmergencyTokenRecord:
    return EmergencyTokenRecord(
        token=EMERGENCY_TOKEN,
        patient_id="p-1",
        scope=frozenset({EmergencyField.BLOOD_TYPE}),
        issued_at=T0,
        expires_at=T0 + timedelta(hours=1),
        issued_by="u-staff",
    )


class TestRedisSessionStore:
    @pytest.mark.asyncio
    async def test_get_uses_prefixed_key(self, mock_redis):
        mock_redis.get.return_value = '{"raw": "payload"}'
        store = RedisSessionStore(mock_redis, key_prefix="test:session")

        raw = await store.get(STAFF_TOKEN)

        assert raw == '{"raw": "payload"}'
        mock_redis.get.assert_awaited_once_with(f"test:session:{STAFF_TOKEN}")

    @pytest.mark.asyncio
    async def test_get_missing(self, mock_redis):
        assert await RedisSessionStore(mock_redis).get(STAFF_TOKEN) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [RedisConnectionError("refused"), RedisTimeoutError()])
    async def test_get_unreachable(self, mock_redis, error):
        mock_redis.get.side_effect = error

        with pytest.raises(CredentialStoreUnavailableError) as exc_info:
            await RedisSessionStore(mock_redis).get(STAFF_TOKEN)

        assert exc_info.value.operation == "session.get"

    @pytest.mark.asyncio
    async def test_get_redis_error(self, mock_redis):
        mock_redis.get.side_effect = ResponseError("WRONGTYPE")

        with pytest.raises(CredentialStoreError) as exc_info:
            await RedisSessionStore(mock_redis).get(STAFF_TOKEN)

        assert not isinstance(exc_info.value, CredentialStoreUnavailableError)

    @pytest.mark.asyncio
    async def test_get_is_not_retried(self, mock_redis):
        """Les lectures sur le chemin de résolution ne sont jamais rejouées."""
        mock_redis.get.side_effect = RedisConnectionError("refused")

        with pytest.raises(CredentialStoreUnavailableError):
            await RedisSessionStore(mock_redis).get(STAFF_TOKEN)

        assert mock_redis.get.await_count == 1

    @pytest.mark.asyncio
    async def test_put_serializes_record(self, mock_redis):
        session = session_for(staff(), STAFF_TOKEN, FakeClock())
        store = RedisSessionStore(mock_redis, key_prefix="s")

        await store.put(session, ttl=300)

        mock_redis.set.assert_awaited_once_with(
            f"s:{STAFF_TOKEN}", session.model_dump_json(), ex=300
        )

    @pytest.mark.asyncio
    async def test_delete(self, mock_redis):
        await RedisSessionStore(mock_redis, key_prefix="s").delete(STAFF_TOKEN)

        mock_redis.delete.assert_awaited_once_with(f"s:{STAFF_TOKEN}")


class TestRedisTokenStore:
    @pytest.mark.asyncio
    async def test_put_only_if_absent(self, mock_redis, record):
        store = RedisTokenStore(mock_redis, key_prefix="e")

        written = await store.put(EMERGENCY_TOKEN, record, ttl=600, only_if_absent=True)

        assert written is True
        mock_redis.set.assert_awaited_once_with(
            f"e:{EMERGENCY_TOKEN}", record.model_dump_json(), ex=600, nx=True
        )

    @pytest.mark.asyncio
    async def test_put_existing_key_with_nx(self, mock_redis, record):
        """SET NX sur une clé existante retourne None côté redis-py."""
        mock_redis.set.return_value = None

        written = await RedisTokenStore(mock_redis).put(
            EMERGENCY_TOKEN, record, ttl=600, only_if_absent=True
        )

        assert written is False

    @pytest.mark.asyncio
    async def test_put_retries_transient_errors(self, mock_redis, record):
        mock_redis.set.side_effect = [RedisConnectionError("reset"), True]

        written = await RedisTokenStore(mock_redis, write_attempts=3).put(
            EMERGENCY_TOKEN, record, ttl=600
        )

        assert written is True
        assert mock_redis.set.await_count == 2

    @pytest.mark.asyncio
    async def test_put_only_if_absent_is_not_retried(self, mock_redis, record):
        """Une réponse perdue après un SET NX acquitté ne doit pas devenir une collision."""
        mock_redis.set.side_effect = [RedisConnectionError("reply lost"), None]

        with pytest.raises(CredentialStoreUnavailableError):
            await RedisTokenStore(mock_redis, write_attempts=3).put(
                EMERGENCY_TOKEN, record, ttl=600, only_if_absent=True
            )

        assert mock_redis.set.await_count == 1

    @pytest.mark.asyncio
    async def test_put_gives_up_after_attempts(self, mock_redis, record):
        mock_redis.set.side_effect = RedisTimeoutError("timeout")

        with pytest.raises(CredentialStoreUnavailableError):
            await RedisTokenStore(mock_redis, write_attempts=2).put(
                EMERGENCY_TOKEN, record, ttl=600
            )

        assert mock_redis.set.await_count == 2

    @pytest.mark.asyncio
    async def test_put_does_not_retry_non_transient_errors(self, mock_redis, record):
        mock_redis.set.side_effect = ResponseError("OOM command not allowed")

        with pytest.raises(CredentialStoreError):
            await RedisTokenStore(mock_redis, write_attempts=3).put(
                EMERGENCY_TOKEN, record, ttl=600
            )

        assert mock_redis.set.await_count == 1

    @pytest.mark.asyncio
    async def test_get_deserializes_record(self, mock_redis, record):
        mock_redis.get.return_value = record.model_dump_json()

        loaded = await RedisTokenStore(mock_redis).get(EMERGENCY_TOKEN)

        assert loaded == record
        assert loaded.scope == frozenset({EmergencyField.BLOOD_TYPE})

    @pytest.mark.asyncio
    async def test_get_missing(self, mock_redis):
        assert await RedisTokenStore(mock_redis).get(EMERGENCY_TOKEN) is None

    @pytest.mark.asyncio
    async def test_get_corrupted_record(self, mock_redis):
        mock_redis.get.return_value = '{"token": "x"}'

        with pytest.raises(CredentialStoreError, match="Corrupted"):
            await RedisTokenStore(mock_redis).get(EMERGENCY_TOKEN)

    @pytest.mark.asyncio
    async def test_revoked_record_round_trip(self, mock_redis, record):
        revoked = record.revoke(T0 + timedelta(minutes=5))
        mock_redis.get.return_value = revoked.model_dump_json()

        loaded = await RedisTokenStore(mock_redis).get(EMERGENCY_TOKEN)

        assert loaded.revoked is True
        assert loaded.revoked_at == T0 + timedelta(minutes=5)

    @pytest.mark.asyncio
    async def test_delete(self, mock_redis):
        await RedisTokenStore(mock_redis, key_prefix="e").delete(EMERGENCY_TOKEN)

        mock_redis.delete.assert_awaited_once_with(f"e:{EMERGENCY_TOKEN}")


class TestRedisClient:
    def test_create_redis_client(self):
        with patch("app.infrastructure.redis.client.redis.from_url") as from_url:
            create_redis_client("redis://cache:6379", db=2, socket_timeout=1.5)

        from_url.assert_called_once_with(
            "redis://cache:6379",
            db=2,
            decode_responses=True,
            socket_timeout=1.5,
            socket_connect_timeout=1.5,
        )

    @pytest.mark.asyncio
    async def test_close_redis_client(self):
        client = MagicMock()
        client.aclose = AsyncMock()

        await close_redis_client(client)

        client.aclose.assert_awaited_once()
