"""Credential Store et Token Store adossés à Redis."""

from app.infrastructure.redis.client import close_redis_client, create_redis_client
from app.infrastructure.redis.credentials import CookieCredentialStore
from app.infrastructure.redis.exceptions import (
    CredentialStoreError,
    CredentialStoreUnavailableError,
)
from app.infrastructure.redis.stores import RedisSessionStore, RedisTokenStore

__all__ = [
    "CookieCredentialStore",
    "CredentialStoreError",
    "CredentialStoreUnavailableError",
    "RedisSessionStore",
    "RedisTokenStore",
    "close_redis_client",
    "create_redis_client",
]
