"""Service des liens d'accès d'urgence.

Cycle de vie d'un token: émis, actif, puis expiré (dérivé de l'horloge, jamais
écrit) ou révoqué (écriture explicite et durable). Les deux états finaux sont
terminaux. Un token reste valide pour un nombre quelconque de lectures tant
qu'il est actif; la validité est recalculée à chaque appel.
"""

import logging
import re
import secrets
from collections.abc import Collection, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Protocol

from opentelemetry import metrics, trace

from app.core.clock import Clock, utc_now
from app.core.config import Settings
from app.core.observability import token_fingerprint
from app.schemas.access import Deny
from app.schemas.emergency import (
    DEFAULT_EMERGENCY_FIELDS,
    EmergencyAccessGrant,
    EmergencyField,
    EmergencyTokenInvalid,
    EmergencyTokenRecord,
    EmergencyTokenState,
    EmergencyValidation,
    TokenInvalidReason,
)
from app.schemas.identity import Identity, PatientIdentity, Role, Unauthenticated
from app.schemas.utils import TOKEN_PATTERN
from app.services import role_guard
from app.services.tenant_scope import PatientDirectory, authorize_patient

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

meter = metrics.get_meter("core-clinic-access.emergency")

emergency_validations_counter = meter.create_counter(
    name="emergency_validations_total",
    description="Total number of emergency token validations by outcome",
    unit="1",
)

emergency_tokens_issued_counter = meter.create_counter(
    name="emergency_tokens_issued_total",
    description="Total number of emergency tokens issued",
    unit="1",
)

# 32 octets aléatoires, encodés en 43 caractères URL-safe
TOKEN_BYTES = 32
_ISSUE_ATTEMPTS = 3
_TOKEN_RE = re.compile(TOKEN_PATTERN)


class TokenStore(Protocol):
    async def put(
        self, token: str, record: EmergencyTokenRecord, ttl: int, only_if_absent: bool = False
    ) -> bool: ...

    async def get(self, token: str) -> EmergencyTokenRecord | None: ...

    async def delete(self, token: str) -> None: ...


class IssueRefusalReason(str, Enum):
    NOT_AUTHENTICATED = "not_authenticated"
    ROLE_NOT_PERMITTED = "role_not_permitted"
    PATIENT_OUT_OF_SCOPE = "patient_out_of_scope"


@dataclass(frozen=True)
class IssueRefused:
    """Refus d'émission (ou de révocation) pour l'identité appelante."""

    reason: IssueRefusalReason


class InvalidTtlError(ValueError):
    def __init__(self, ttl: int, minimum: int, maximum: int):
        super().__init__(f"ttl must be between {minimum} and {maximum} seconds, got {ttl}")
        self.ttl = ttl
        self.minimum = minimum
        self.maximum = maximum


class TokenCollisionError(RuntimeError):
    """Aucun token libre après plusieurs tirages (générateur défaillant)."""


class EmergencyTokenService:
    """
    Émission, validation et révocation des tokens d'urgence.

    Example:
        ```python
        service = EmergencyTokenService.from_settings(settings, token_store, records)
        record = await service.issue("p-42", issuer=identity, ttl_seconds=3600)
        result = await service.validate(record.token)
        ```
    """

    def __init__(
        self,
        store: TokenStore,
        directory: PatientDirectory,
        issuer_roles: Collection[Role],
        default_ttl: int = 60 * 60 * 24,
        min_ttl: int = 60,
        max_ttl: int = 60 * 60 * 24 * 30,
        retention: int = 60 * 60 * 24 * 7,
        clock: Clock = utc_now,
    ):
        if not min_ttl <= default_ttl <= max_ttl:
            raise ValueError("default_ttl must lie between min_ttl and max_ttl")
        self._store = store
        self._directory = directory
        self.issuer_roles = frozenset(issuer_roles)
        self.default_ttl = default_ttl
        self.min_ttl = min_ttl
        self.max_ttl = max_ttl
        self.retention = retention
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: TokenStore,
        directory: PatientDirectory,
        clock: Clock = utc_now,
    ) -> "EmergencyTokenService":
        return cls(
            store,
            directory,
            issuer_roles=[Role(role) for role in settings.EMERGENCY_ISSUER_ROLES],
            default_ttl=settings.EMERGENCY_TOKEN_DEFAULT_TTL_SECONDS,
            min_ttl=settings.EMERGENCY_TOKEN_MIN_TTL_SECONDS,
            max_ttl=settings.EMERGENCY_TOKEN_MAX_TTL_SECONDS,
            retention=settings.EMERGENCY_TOKEN_RETENTION_SECONDS,
            clock=clock,
        )

    async def check_issuer(
        self, issuer: Identity | Unauthenticated | None, patient_id: str
    ) -> IssueRefused | None:
        """
        Vérifie qu'une identité peut émettre ou révoquer un lien pour ce patient.

        Passe par le Role Guard (rôles émetteurs) puis par le contrôle de périmètre
        tenant; un patient ne peut agir que pour lui-même.

        Raises:
            TenantIntegrityError: Organisation obligatoire absente pour l'émetteur
        """
        decision = role_guard.authorize(issuer, self.issuer_roles, "emergency-issue")
        if isinstance(decision, Deny):
            return IssueRefused(IssueRefusalReason(decision.reason.value))
        if isinstance(decision.identity, PatientIdentity):
            in_scope = decision.identity.patient_id == patient_id
        else:
            in_scope = await authorize_patient(decision.identity, patient_id, self._directory)
        if not in_scope:
            return IssueRefused(IssueRefusalReason.PATIENT_OUT_OF_SCOPE)
        return None

    def now(self) -> datetime:
        return self._clock()

    def _validate_ttl(self, ttl_seconds: int | None) -> int:
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        if not self.min_ttl <= ttl <= self.max_ttl:
            raise InvalidTtlError(ttl, self.min_ttl, self.max_ttl)
        return ttl

    @staticmethod
    def _normalize_fields(
        fields: Iterable[EmergencyField | str] | None,
    ) -> frozenset[EmergencyField]:
        if fields is None:
            return DEFAULT_EMERGENCY_FIELDS
        normalized = frozenset(EmergencyField(field) for field in fields)
        if not normalized:
            raise ValueError("At least one emergency field is required")
        return normalized

    async def issue(
        self,
        patient_id: str,
        issuer: Identity | Unauthenticated | None,
        ttl_seconds: int | None = None,
        fields: Iterable[EmergencyField | str] | None = None,
    ) -> EmergencyTokenRecord | IssueRefused:
        """
        Émet un nouveau token pour un patient.

        La fenêtre de validité est indépendante de la session de l'émetteur.

        Args:
            patient_id: Patient dont les données critiques seront exposées
            issuer: Identité de l'émetteur
            ttl_seconds: Durée de validité (défaut configuré)
            fields: Champs exposés (tous les champs critiques par défaut)

        Returns:
            L'enregistrement créé, ou IssueRefused si l'émetteur n'est pas autorisé

        Raises:
            InvalidTtlError: TTL hors bornes
            ValueError: Champ inconnu ou liste de champs vide
            TenantIntegrityError: Organisation obligatoire absente pour l'émetteur
            CredentialStoreError: Écriture impossible dans le Token Store
        """
        ttl = self._validate_ttl(ttl_seconds)
        scope = self._normalize_fields(fields)

        with tracer.start_as_current_span("emergency_issue") as span:
            span.set_attribute("patient.id", patient_id)
            span.set_attribute("emergency.ttl_seconds", ttl)

            refusal = await self.check_issuer(issuer, patient_id)
            if refusal is not None:
                span.set_attribute("emergency.refused", refusal.reason.value)
                logger.info(
                    f"Emergency token issue refused for patient {patient_id}: "
                    f"{refusal.reason.value}"
                )
                return refusal

            now = self._clock()
            for _ in range(_ISSUE_ATTEMPTS):
                token = secrets.token_urlsafe(TOKEN_BYTES)
                record = EmergencyTokenRecord(
                    token=token,
                    patient_id=patient_id,
                    scope=scope,
                    issued_at=now,
                    expires_at=now + timedelta(seconds=ttl),
                    issued_by=issuer.principal_id,
                )
                if await self._store.put(token, record, ttl + self.retention, only_if_absent=True):
                    break
                logger.warning(f"Token collision on {token_fingerprint(token)}, redrawing")
            else:
                raise TokenCollisionError("Could not allocate a unique emergency token")

            emergency_tokens_issued_counter.add(1)
            span.set_attribute("emergency.fingerprint", token_fingerprint(token))
            logger.info(
                f"Emergency token {token_fingerprint(token)} issued for patient {patient_id} "
                f"by {issuer.domain.value} {issuer.principal_id}, "
                f"expires {record.expires_at.isoformat()}"
            )
            return record

    async def validate(self, token: str) -> EmergencyValidation:
        """
        Valide un token contre l'horloge courante.

        Lecture seule et idempotente: aucune consommation, aucun cache de validité.
        Un token de forme invalide est rapporté NotFound sans lecture du store.

        Raises:
            CredentialStoreError: Token Store injoignable
        """
        with tracer.start_as_current_span("emergency_validate") as span:
            fingerprint = token_fingerprint(token)
            span.set_attribute("emergency.fingerprint", fingerprint)

            record = await self.lookup(token)
            if record is None:
                result: EmergencyValidation = EmergencyTokenInvalid(TokenInvalidReason.NOT_FOUND)
            else:
                state = record.state(self._clock())
                if state == EmergencyTokenState.REVOKED:
                    result = EmergencyTokenInvalid(TokenInvalidReason.REVOKED)
                elif state == EmergencyTokenState.EXPIRED:
                    result = EmergencyTokenInvalid(TokenInvalidReason.EXPIRED)
                else:
                    result = EmergencyAccessGrant(
                        record.patient_id, record.scope, record.expires_at
                    )

            if isinstance(result, EmergencyTokenInvalid):
                outcome = result.reason.value
                logger.info(f"Emergency token {fingerprint} denied: {outcome}")
            else:
                outcome = "granted"
            span.set_attribute("emergency.outcome", outcome)
            emergency_validations_counter.add(1, {"outcome": outcome})
            return result

    async def lookup(self, token: str) -> EmergencyTokenRecord | None:
        """Retourne l'enregistrement brut, quel que soit son état."""
        if not _is_well_formed(token):
            return None
        return await self._store.get(token)

    async def revoke(
        self, token: str, revoked_by: str | None = None
    ) -> EmergencyTokenRecord | None:
        """
        Révoque un token actif.

        Idempotent: un token déjà révoqué, expiré ou inconnu n'est pas modifié et
        aucune erreur n'est levée. La révocation est réécrite dans le store avec
        la même fenêtre de conservation.

        Returns:
            L'enregistrement après l'appel, ou None si le token est inconnu

        Raises:
            CredentialStoreError: Token Store injoignable
        """
        with tracer.start_as_current_span("emergency_revoke") as span:
            fingerprint = token_fingerprint(token)
            span.set_attribute("emergency.fingerprint", fingerprint)

            record = await self.lookup(token)
            if record is None:
                span.set_attribute("emergency.outcome", "not_found")
                return None

            now = self._clock()
            state = record.state(now)
            if state != EmergencyTokenState.ACTIVE:
                span.set_attribute("emergency.outcome", f"already_{state.value}")
                return record

            revoked = record.revoke(now)
            remaining = int((record.expires_at - now).total_seconds()) + self.retention
            await self._store.put(token, revoked, max(remaining, 1))
            span.set_attribute("emergency.outcome", "revoked")
            logger.info(
                f"Emergency token {fingerprint} for patient {record.patient_id} revoked"
                + (f" by {revoked_by}" if revoked_by else "")
            )
            return revoked


def _is_well_formed(token: str) -> bool:
    return _TOKEN_RE.fullmatch(token) is not None
