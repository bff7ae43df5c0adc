"""
Stores Redis pour les sessions et les tokens d'urgence.

Les deux stores partagent le même client (créé dans le lifespan) et ne
gardent aucun état mutable propre. Les erreurs Redis sont converties en
``CredentialStoreError`` pour que les couches supérieures n'aient pas à
connaître redis-py.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

import redis.asyncio as redis
from opentelemetry import trace
from pydantic import ValidationError
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from app.core.observability import token_fingerprint
from app.core.retry import retry_async_operation
from app.infrastructure.redis.exceptions import (
    CredentialStoreError,
    CredentialStoreUnavailableError,
)
from app.schemas.emergency import EmergencyTokenRecord
from app.schemas.session import SessionRecord

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

TRANSIENT_ERRORS: tuple[type[Exception], ...] = (RedisConnectionError, RedisTimeoutError)


async def _guarded(operation: str, call: Callable[[], Awaitable[Any]]) -> Any:
    """Exécute une commande Redis en traduisant les erreurs du client."""
    try:
        return await call()
    except TRANSIENT_ERRORS as e:
        raise CredentialStoreUnavailableError(f"Redis unreachable: {e}", operation) from e
    except RedisError as e:
        raise CredentialStoreError(f"Redis error: {e}", operation) from e


class RedisSessionStore:
    """
    Sessions des quatre domaines, indexées par token opaque.

    La valeur stockée est le JSON d'un ``SessionRecord``. Ce service ne fait que
    lire; ``put`` et ``delete`` servent aux flux de login/logout externes et aux
    tests d'intégration.
    """

    def __init__(self, client: redis.Redis, key_prefix: str = "access:session"):
        self._client = client
        self._key_prefix = key_prefix

    def _key(self, token: str) -> str:
        return f"{self._key_prefix}:{token}"

    async def get(self, token: str) -> str | None:
        """
        Retourne la charge brute d'une session, ou None si absente.

        Raises:
            CredentialStoreError: Si Redis est injoignable ou répond en erreur
        """
        with tracer.start_as_current_span("session_store.get") as span:
            span.set_attribute("db.system", "redis")
            span.set_attribute("session.fingerprint", token_fingerprint(token))
            return await _guarded("session.get", lambda: self._client.get(self._key(token)))

    async def put(self, record: SessionRecord, ttl: int) -> None:
        payload = record.model_dump_json()
        await _guarded(
            "session.put", lambda: self._client.set(self._key(record.token), payload, ex=ttl)
        )

    async def delete(self, token: str) -> None:
        await _guarded("session.delete", lambda: self._client.delete(self._key(token)))


class RedisTokenStore:
    """
    Token Store des liens d'urgence.

    Les écritures sont rejouées sur erreur transitoire (backoff exponentiel) et
    ne retournent qu'une fois acquittées par Redis; une lecture ultérieure voit
    donc toujours la dernière émission ou révocation. Les écritures conditionnelles
    (SET NX) ne sont jamais rejouées: une erreur transitoire remonte telle quelle.
    """

    def __init__(
        self,
        client: redis.Redis,
        key_prefix: str = "access:emergency",
        write_attempts: int = 3,
    ):
        self._client = client
        self._key_prefix = key_prefix
        self._write_attempts = write_attempts

    def _key(self, token: str) -> str:
        return f"{self._key_prefix}:{token}"

    async def _write(self, operation: str, call: Callable[[], Awaitable[Any]]) -> Any:
        return await _guarded(
            operation,
            lambda: retry_async_operation(
                call,
                max_attempts=self._write_attempts,
                exceptions=TRANSIENT_ERRORS,
            ),
        )

    async def put(
        self,
        token: str,
        record: EmergencyTokenRecord,
        ttl: int,
        only_if_absent: bool = False,
    ) -> bool:
        """
        Écrit un enregistrement avec expiration Redis.

        Args:
            token: Token opaque (clé)
            record: Enregistrement à stocker
            ttl: Durée de conservation en secondes
            only_if_absent: N'écrit que si la clé n'existe pas (SET NX)

        Returns:
            True si l'écriture a eu lieu, False si la clé existait déjà (NX)

        Raises:
            CredentialStoreError: Si l'écriture échoue après les tentatives
        """
        payload = record.model_dump_json()
        key = self._key(token)
        with tracer.start_as_current_span("token_store.put") as span:
            span.set_attribute("db.system", "redis")
            span.set_attribute("emergency.fingerprint", token_fingerprint(token))
            span.set_attribute("emergency.only_if_absent", only_if_absent)

            async def _set() -> Any:
                return await self._client.set(key, payload, ex=ttl, nx=only_if_absent)

            if only_if_absent:
                # Un SET NX acquitté mais dont la réponse est perdue se rejouerait en False
                result = await _guarded("emergency.put", _set)
            else:
                result = await self._write("emergency.put", _set)
            return bool(result)

    async def get(self, token: str) -> EmergencyTokenRecord | None:
        """
        Lit un enregistrement, quel que soit son état.

        Raises:
            CredentialStoreError: Si Redis est injoignable ou si l'enregistrement est illisible
        """
        with tracer.start_as_current_span("token_store.get") as span:
            span.set_attribute("db.system", "redis")
            span.set_attribute("emergency.fingerprint", token_fingerprint(token))
            raw = await _guarded("emergency.get", lambda: self._client.get(self._key(token)))
            if raw is None:
                return None
            try:
                return EmergencyTokenRecord.model_validate_json(raw)
            except ValidationError as e:
                logger.error(
                    f"Corrupted emergency token record {token_fingerprint(token)}: "
                    f"{e.error_count()} validation errors"
                )
                raise CredentialStoreError(
                    "Corrupted emergency token record", "emergency.get"
                ) from e

    async def delete(self, token: str) -> None:
        async def _delete() -> Any:
            return await self._client.delete(self._key(token))

        await self._write("emergency.delete", _delete)

