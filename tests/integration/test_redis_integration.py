"""
Tests d'intégration Redis pour les stores de sessions et de tokens d'urgence.

Ces tests utilisent un vrai Redis 7 sur le port 6380 (docker-compose.test.yaml).
"""

import asyncio
from datetime import timedelta

import pytest
from redis.asyncio import Redis

from app.core.config import settings
from app.infrastructure.redis.stores import RedisSessionStore, RedisTokenStore
from app.schemas.emergency import EmergencyAccessGrant, EmergencyTokenInvalid, TokenInvalidReason
from app.schemas.identity import Domain
from app.services.emergency_token_service import EmergencyTokenService
from app.services.session_resolver import SessionResolver
from tests.fakes import STAFF_TOKEN, FakeClock, FakePatientDirectory, session_for, staff


class HeaderCredentials:
    def __init__(self, headers: dict[str, str]):
        self.headers = headers

    def get(self, name: str) -> str | None:
        return None

    def get_header(self, name: str) -> str | None:
        return self.headers.get(name)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_redis_connection(redis_client: Redis):
    """Test connexion basique à Redis."""
    response = await redis_client.ping()
    assert response is True


@pytest.mark.integration
@pytest.mark.asyncio
async def test_session_resolution_through_redis(redis_client: Redis):
    """Une session écrite par le flux de login est résolue par le domaine staff."""
    clock = FakeClock()
    store = RedisSessionStore(redis_client, key_prefix="test:session")
    await store.put(session_for(staff(), STAFF_TOKEN, clock), ttl=60)
    resolver = SessionResolver.from_settings(settings, store, clock=clock)

    result = await resolver.resolve(
        HeaderCredentials({settings.STAFF_SESSION_HEADER: STAFF_TOKEN}), Domain.STAFF
    )

    assert result == staff()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_session_expires_in_redis(redis_client: Redis):
    """Test que la clé de session disparaît avec son TTL Redis."""
    store = RedisSessionStore(redis_client, key_prefix="test:session")
    await store.put(session_for(staff(), STAFF_TOKEN, FakeClock()), ttl=1)

    await asyncio.sleep(1.5)

    assert await store.get(STAFF_TOKEN) is None


@pytest.mark.integration
@pytest.mark.asyncio
async def test_emergency_token_lifecycle(redis_client: Redis):
    """Émission, lectures répétées, révocation durable."""
    clock = FakeClock()
    store = RedisTokenStore(redis_client, key_prefix="test:emergency")
    directory = FakePatientDirectory(organizations={"p-1": {"org-1"}})
    service = EmergencyTokenService.from_settings(settings, store, directory, clock=clock)

    record = await service.issue("p-1", staff(), ttl_seconds=600)
    ttl = await redis_client.ttl(f"test:emergency:{record.token}")
    assert 600 < ttl <= 600 + service.retention

    for _ in range(3):
        assert isinstance(await service.validate(record.token), EmergencyAccessGrant)

    await service.revoke(record.token)
    clock.advance(timedelta(hours=2).total_seconds())

    assert await service.validate(record.token) == EmergencyTokenInvalid(
        TokenInvalidReason.REVOKED
    )


@pytest.mark.integration
@pytest.mark.asyncio
async def test_set_nx_refuses_existing_token(redis_client: Redis):
    """Test que SET NX ne remplace jamais un token existant."""
    clock = FakeClock()
    store = RedisTokenStore(redis_client, key_prefix="test:emergency")
    directory = FakePatientDirectory(organizations={"p-1": {"org-1"}})
    service = EmergencyTokenService.from_settings(settings, store, directory, clock=clock)
    record = await service.issue("p-1", staff(), ttl_seconds=600)

    written = await store.put(record.token, record.revoke(clock()), ttl=60, only_if_absent=True)

    assert written is False
    assert (await store.get(record.token)).revoked is False
