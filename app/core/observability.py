"""Logging, traces OpenTelemetry et empreintes de tokens pour les logs."""

import hashlib
import logging

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider

logger = logging.getLogger(__name__)


def configure_logging(level: str, fmt: str) -> None:
    """Configure le logging racine une seule fois au démarrage."""
    logging.basicConfig(level=level, format=fmt)
    # Les logs d'accès uvicorn incluent l'URL, donc le token du lien d'urgence
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def configure_tracing(resource: Resource) -> None:
    """
    Installe un TracerProvider portant les attributs du service.

    Sans exporteur configuré, les spans restent locaux (trace_id dans les
    réponses d'erreur et corrélation des logs). Un provider déjà installé,
    par exemple par l'auto-instrumentation, est conservé.
    """
    current = trace.get_tracer_provider()
    if isinstance(current, TracerProvider):
        logger.debug("TracerProvider already configured, keeping it")
        return
    trace.set_tracer_provider(TracerProvider(resource=resource))


def token_fingerprint(token: str) -> str:
    """
    Empreinte courte d'un token, seule forme autorisée dans les logs.

    Example:
        >>> len(token_fingerprint("some-opaque-token-value"))
        12
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:12]
