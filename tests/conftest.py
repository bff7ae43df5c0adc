"""
Fixtures partagées des tests unitaires et d'API.

Les stores Redis et le service des dossiers patients sont remplacés par les
doubles de ``tests.fakes``; l'horloge est contrôlée par ``FakeClock``.
"""

import pytest
from fastapi.testclient import TestClient

from app.core.config import settings
from app.services.emergency_token_service import EmergencyTokenService
from app.services.session_resolver import SessionResolver
from tests.fakes import (
    FakeClock,
    FakePatientDirectory,
    InMemorySessionStore,
    InMemoryTokenStore,
    session_for,
)

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def session_store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def token_store() -> InMemoryTokenStore:
    return InMemoryTokenStore()


@pytest.fixture
def directory() -> FakePatientDirectory:
    return FakePatientDirectory(
        organizations={"p-1": {"org-1"}, "p-2": {"org-2"}, "p-3": {"org-1", "org-2"}},
        nurse_links={("p-2", "u-indep")},
        data={
            "p-1": {
                "allergies": [{"substance": "Penicillin", "severity": "high"}],
                "blood_type": "O+",
                "emergency_contacts": [{"name": "Ana", "relationship": "sister"}],
                "active_medications": [{"name": "Metformin", "dosage": "500mg"}],
                "diagnoses": ["should never leak"],
            },
        },
    )


@pytest.fixture
def resolver(session_store, clock) -> SessionResolver:
    return SessionResolver.from_settings(settings, session_store, clock=clock)


@pytest.fixture
def emergency_service(token_store, directory, clock) -> EmergencyTokenService:
    return EmergencyTokenService.from_settings(settings, token_store, directory, clock=clock)


@pytest.fixture
def client(resolver, emergency_service, directory, token_store):
    """
    Client HTTP sur l'application, services remplacés par les doubles.

    Le lifespan n'est pas exécuté (pas de ``with``): l'état est posé à la main.
    """
    from app.main import app

    app.state.session_resolver = resolver
    app.state.emergency_service = emergency_service
    app.state.records_client = directory
    app.state.redis_client = None
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        for name in ("session_resolver", "emergency_service", "records_client", "redis_client"):
            if hasattr(app.state, name):
                delattr(app.state, name)


@pytest.fixture
def login(session_store, clock):
    """Enregistre une session et retourne le token."""

    def _login(identity, token: str, ttl: int = 3600) -> str:
        return session_store.add(session_for(identity, token, clock, ttl))

    return _login
