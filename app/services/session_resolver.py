"""Résolution de l'identité derrière une requête, domaine par domaine.

Chaque domaine d'utilisateurs a son propre résolveur (nom de cookie et
d'en-tête distincts); tous sont enregistrés derrière l'interface unique
``DomainResolver``. La résolution ne lève jamais: toute absence, corruption
ou indisponibilité du store produit un ``Unauthenticated`` typé.
"""

import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Protocol

from opentelemetry import metrics, trace
from pydantic import ValidationError

from app.core.clock import Clock, utc_now
from app.core.config import Settings
from app.core.observability import token_fingerprint
from app.infrastructure.redis.exceptions import CredentialStoreError
from app.schemas.identity import Domain, Identity, Unauthenticated, UnauthenticatedReason
from app.schemas.session import SessionRecord
from app.schemas.utils import TOKEN_PATTERN

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

meter = metrics.get_meter("core-clinic-access.session")

resolutions_counter = meter.create_counter(
    name="identity_resolutions_total",
    description="Total number of identity resolutions by domain and outcome",
    unit="1",
)

_TOKEN_RE = re.compile(TOKEN_PATTERN)

# Ordre de pertinence quand plusieurs domaines échouent
_REASON_PRIORITY = [
    UnauthenticatedReason.STORE_UNAVAILABLE,
    UnauthenticatedReason.MISCONFIGURED,
    UnauthenticatedReason.EXPIRED_SESSION,
    UnauthenticatedReason.DOMAIN_MISMATCH,
    UnauthenticatedReason.UNKNOWN_SESSION,
    UnauthenticatedReason.MALFORMED_CREDENTIAL,
    UnauthenticatedReason.MISSING_CREDENTIAL,
]


class CredentialSource(Protocol):
    """Lecture des credentials bruts de la requête (cookies, en-têtes)."""

    def get(self, name: str) -> str | None: ...

    def get_header(self, name: str) -> str | None: ...


class SessionLookup(Protocol):
    async def get(self, token: str) -> str | None: ...


ResolutionResult = Identity | Unauthenticated


class DomainResolver(ABC):
    """Résolveur d'identité pour un domaine d'utilisateurs."""

    domain: Domain

    @abstractmethod
    async def resolve(self, credentials: CredentialSource) -> ResolutionResult:
        """Retourne l'identité du domaine ou un Unauthenticated typé; ne lève jamais."""


class SessionTokenResolver(DomainResolver):
    """
    Résolveur par token de session opaque.

    Le token est cherché d'abord dans le cookie du domaine, puis dans son
    en-tête. Il est ensuite lu dans le Credential Store et désérialisé en
    ``SessionRecord``; la session doit appartenir au même domaine et ne pas
    être expirée au moment de la lecture.
    """

    def __init__(
        self,
        domain: Domain,
        cookie_name: str,
        header_name: str,
        session_store: SessionLookup,
        clock: Clock = utc_now,
    ):
        self.domain = domain
        self.cookie_name = cookie_name
        self.header_name = header_name
        self._store = session_store
        self._clock = clock

    def _fail(self, reason: UnauthenticatedReason) -> Unauthenticated:
        return Unauthenticated(reason=reason, domain=self.domain)

    def extract(self, credentials: CredentialSource) -> str | None:
        return credentials.get(self.cookie_name) or credentials.get_header(self.header_name)

    async def resolve(self, credentials: CredentialSource) -> ResolutionResult:
        token = self.extract(credentials)
        if not token:
            return self._fail(UnauthenticatedReason.MISSING_CREDENTIAL)
        if not _TOKEN_RE.fullmatch(token):
            return self._fail(UnauthenticatedReason.MALFORMED_CREDENTIAL)

        fingerprint = token_fingerprint(token)
        try:
            raw = await self._store.get(token)
        except CredentialStoreError as e:
            logger.error(f"Credential store unavailable for {self.domain.value} session: {e}")
            return self._fail(UnauthenticatedReason.STORE_UNAVAILABLE)
        except Exception as e:
            # Adaptateur mal câblé: la requête doit rester un Unauthenticated
            logger.exception(f"Credential store misconfigured for {self.domain.value}: {e}")
            return self._fail(UnauthenticatedReason.MISCONFIGURED)

        if raw is None:
            logger.debug(f"Unknown {self.domain.value} session {fingerprint}")
            return self._fail(UnauthenticatedReason.UNKNOWN_SESSION)

        try:
            record = SessionRecord.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(
                f"Corrupted {self.domain.value} session {fingerprint}: "
                f"{e.error_count()} validation errors"
            )
            return self._fail(UnauthenticatedReason.MALFORMED_CREDENTIAL)

        if record.token != token:
            logger.warning(f"Session record key mismatch for {fingerprint}")
            return self._fail(UnauthenticatedReason.MALFORMED_CREDENTIAL)

        if record.identity.domain != self.domain:
            logger.warning(
                f"Session {fingerprint} belongs to domain {record.identity.domain.value}, "
                f"presented as {self.domain.value}"
            )
            return self._fail(UnauthenticatedReason.DOMAIN_MISMATCH)

        if record.is_expired(self._clock()):
            return self._fail(UnauthenticatedReason.EXPIRED_SESSION)

        return record.identity


class SessionResolver:
    """
    Registre des résolveurs par domaine.

    Example:
        ```python
        resolver = SessionResolver.from_settings(settings, session_store)
        result = await resolver.resolve(CookieCredentialStore(request), Domain.STAFF)
        if isinstance(result, Unauthenticated):
            ...
        ```
    """

    def __init__(self, resolvers: Iterable[DomainResolver]):
        self._resolvers: dict[Domain, DomainResolver] = {}
        for resolver in resolvers:
            if resolver.domain in self._resolvers:
                raise ValueError(f"Duplicate resolver for domain {resolver.domain.value}")
            self._resolvers[resolver.domain] = resolver

    @classmethod
    def from_settings(
        cls, settings: Settings, session_store: SessionLookup, clock: Clock = utc_now
    ) -> "SessionResolver":
        """Construit un résolveur par domaine à partir des noms de cookie et d'en-tête."""
        names = {
            Domain.STAFF: (settings.STAFF_SESSION_COOKIE, settings.STAFF_SESSION_HEADER),
            Domain.PATIENT: (settings.PATIENT_SESSION_COOKIE, settings.PATIENT_SESSION_HEADER),
            Domain.NURSE: (settings.NURSE_SESSION_COOKIE, settings.NURSE_SESSION_HEADER),
            Domain.ADMIN: (settings.ADMIN_SESSION_COOKIE, settings.ADMIN_SESSION_HEADER),
        }
        return cls(
            SessionTokenResolver(domain, cookie, header, session_store, clock)
            for domain, (cookie, header) in names.items()
        )

    @property
    def domains(self) -> tuple[Domain, ...]:
        return tuple(self._resolvers)

    async def resolve(self, credentials: CredentialSource, domain: Domain) -> ResolutionResult:
        """
        Résout l'identité d'un domaine.

        Args:
            credentials: Source des cookies et en-têtes de la requête
            domain: Domaine attendu

        Returns:
            L'identité résolue, ou Unauthenticated avec sa raison
        """
        with tracer.start_as_current_span("resolve_identity") as span:
            span.set_attribute("access.domain", domain.value)
            resolver = self._resolvers.get(domain)
            if resolver is None:
                logger.error(f"No resolver registered for domain {domain.value}")
                result: ResolutionResult = Unauthenticated(
                    UnauthenticatedReason.MISCONFIGURED, domain
                )
            else:
                result = await resolver.resolve(credentials)

            if isinstance(result, Unauthenticated):
                outcome = result.reason.value
            else:
                outcome = "resolved"
                span.set_attribute("access.role", result.role.value)
            span.set_attribute("access.outcome", outcome)
            resolutions_counter.add(1, {"domain": domain.value, "outcome": outcome})
            return result

    async def resolve_any(
        self, credentials: CredentialSource, domains: Iterable[Domain]
    ) -> ResolutionResult:
        """
        Résout le premier domaine qui produit une identité, dans l'ordre donné.

        Si aucun domaine n'aboutit, retourne l'échec le plus significatif (un store
        indisponible prime sur un cookie absent).
        """
        failures: list[Unauthenticated] = []
        for domain in domains:
            result = await self.resolve(credentials, domain)
            if not isinstance(result, Unauthenticated):
                return result
            failures.append(result)

        if not failures:
            return Unauthenticated(UnauthenticatedReason.MISCONFIGURED)
        return min(failures, key=lambda failure: _REASON_PRIORITY.index(failure.reason))
