import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware

from app.api.v1 import api as api_v1
from app.core.config import settings
from app.core.exceptions import setup_problem_details_handlers
from app.core.observability import configure_logging, configure_tracing
from app.infrastructure.records.client import PatientRecordsClient
from app.infrastructure.redis.client import close_redis_client, create_redis_client
from app.infrastructure.redis.stores import RedisSessionStore, RedisTokenStore
from app.services.emergency_token_service import EmergencyTokenService
from app.services.session_resolver import SessionResolver

configure_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
configure_tracing(settings.OTEL_RESOURCE_ATTRIBUTES)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Gère le cycle de vie de l'application:
    - Crée le client Redis partagé par le Credential Store et le Token Store.
    - Crée le client du service des dossiers patients.
    - Construit le résolveur de sessions et le service des liens d'urgence.
    - Ferme proprement les clients à l'arrêt.
    """
    logger.info("=== Application Startup ===")

    # 1. Stores Redis (sessions + tokens d'urgence)
    redis_client = create_redis_client(
        settings.REDIS_URL,
        db=settings.REDIS_DB,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
    )
    session_store = RedisSessionStore(redis_client, key_prefix=settings.SESSION_KEY_PREFIX)
    token_store = RedisTokenStore(
        redis_client,
        key_prefix=settings.EMERGENCY_KEY_PREFIX,
        write_attempts=settings.REDIS_WRITE_RETRY_ATTEMPTS,
    )

    # 2. Data Store (liens patient/organisation, données critiques)
    records_client = PatientRecordsClient(
        str(settings.PATIENT_RECORDS_BASE_URL),
        timeout=settings.PATIENT_RECORDS_TIMEOUT,
        retry_attempts=settings.PATIENT_RECORDS_RETRY_ATTEMPTS,
    )
    logger.info(f"Client dossiers patients initialisé: {records_client.base_url}")

    # 3. Services
    app.state.redis_client = redis_client
    app.state.records_client = records_client
    app.state.session_resolver = SessionResolver.from_settings(settings, session_store)
    app.state.emergency_service = EmergencyTokenService.from_settings(
        settings, token_store, records_client
    )

    logger.info("=== Application Startup Complete ===")
    try:
        yield
    finally:
        logger.info("=== Application Shutdown ===")
        await records_client.close()
        await close_redis_client(redis_client)
        logger.info("=== Application Shutdown Complete ===")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description=settings.DESCRIPTION,
    lifespan=lifespan,
    openapi_url=f"{settings.get_api_prefix()}/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc",
)

# Exception handlers RFC 9457 Problem Details
setup_problem_details_handlers(app, expose_internal_errors=settings.DEBUG)

# Middleware CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin) for origin in settings.ALLOWED_ORIGINS],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Middleware Trusted Hosts
if settings.ENVIRONMENT != "development":
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=settings.TRUSTED_HOSTS,
    )

# Include API v1 (current version)
app.include_router(api_v1.router, prefix=settings.get_api_prefix("v1"))
