"""
Configuration pytest globale.

Les tests unitaires utilisent des stores en mémoire; seuls les tests marqués
``integration`` nécessitent le Redis lancé via docker-compose.test.yaml.

Usage:
    docker-compose -f docker-compose.test.yaml up -d
    poetry run pytest
    docker-compose -f docker-compose.test.yaml down -v
"""

import os

import pytest
from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError

# Si exécuté dans GitHub Actions, utilise le port standard du service
# Sinon utilise un port exotique pour éviter les conflits en local
IS_GITHUB_ACTIONS = os.getenv("GITHUB_ACTIONS") == "true"

TEST_PORTS = {
    "redis": 6379 if IS_GITHUB_ACTIONS else 6380,
}

# Variables d'environnement pour les tests
# Respecte les variables déjà définies (ex: dans GitHub Actions)
TEST_ENV = {
    "REDIS_URL": os.getenv("REDIS_URL", f"redis://localhost:{TEST_PORTS['redis']}/0"),
    "PATIENT_RECORDS_BASE_URL": os.getenv(
        "PATIENT_RECORDS_BASE_URL", "http://patient-records.test/internal"
    ),
    "ENVIRONMENT": os.getenv("ENVIRONMENT", "test"),
    "DEBUG": os.getenv("DEBUG", "false"),
    "SESSION_COOKIE_SECURE": os.getenv("SESSION_COOKIE_SECURE", "false"),
    "TRUSTED_HOSTS": os.getenv("TRUSTED_HOSTS", "localhost,127.0.0.1,testserver"),
    "OTEL_SERVICE_NAME": os.getenv("OTEL_SERVICE_NAME", "core-clinic-access-test"),
}

# Appliquer les variables d'environnement de test (ne remplace pas si déjà définies)
for key, value in TEST_ENV.items():
    if key not in os.environ:
        os.environ[key] = value


# ============================================================================
# Fixtures Redis
# ============================================================================


@pytest.fixture
async def redis_client():
    """
    Fournit un client Redis réel pour les tests d'intégration.

    Le test est ignoré si Redis n'est pas joignable; la base est vidée
    après chaque test pour isolation.
    """
    client = Redis.from_url(TEST_ENV["REDIS_URL"], encoding="utf-8", decode_responses=True)
    try:
        await client.ping()
    except (RedisConnectionError, OSError):
        await client.aclose()
        pytest.skip(f"Redis non disponible sur {TEST_ENV['REDIS_URL']}")

    yield client

    await client.flushdb()
    await client.aclose()


@pytest.fixture
def test_env():
    """Fournit les variables d'environnement de test."""
    return TEST_ENV.copy()
