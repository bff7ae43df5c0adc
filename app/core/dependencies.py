"""Dependances FastAPI pour l'injection de services."""

import logging

import redis.asyncio as redis
from fastapi import Request

from app.core.exceptions import StoreUnavailableError
from app.infrastructure.records.client import PatientRecordsClient
from app.services.emergency_token_service import EmergencyTokenService
from app.services.session_resolver import SessionResolver

logger = logging.getLogger(__name__)


def _from_state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        logger.error(
            f"{name} not initialized. "
            f"Ensure the application lifespan properly initializes app.state.{name}"
        )
        raise StoreUnavailableError(
            detail=f"Service dependency {name} is not available", instance=request.url.path
        )
    return value


def get_session_resolver(request: Request) -> SessionResolver:
    """
    Recupere le resolveur de sessions depuis l'etat de l'application.

    Le resolveur est construit dans le lifespan (main.py) et stocke dans
    app.state.session_resolver.

    Raises:
        StoreUnavailableError: Si le resolveur n'est pas initialise (503)
    """
    return _from_state(request, "session_resolver")


def get_emergency_service(request: Request) -> EmergencyTokenService:
    return _from_state(request, "emergency_service")


def get_records_client(request: Request) -> PatientRecordsClient:
    return _from_state(request, "records_client")


def get_redis_client(request: Request) -> redis.Redis:
    return _from_state(request, "redis_client")
