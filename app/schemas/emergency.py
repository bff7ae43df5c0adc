"""Schémas Pydantic pour l'accès d'urgence par lien anonyme.

Un token d'urgence donne un accès en lecture, limité dans le temps, aux données
critiques d'un seul patient, sans session. Le token est réutilisable jusqu'à
expiration ou révocation explicite.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

from app.schemas.utils import OpaqueToken, PatientId


class EmergencyField(str, Enum):
    """Champs exposables via un lien d'urgence."""

    ALLERGIES = "allergies"
    BLOOD_TYPE = "blood_type"
    EMERGENCY_CONTACTS = "emergency_contacts"
    ACTIVE_MEDICATIONS = "active_medications"


DEFAULT_EMERGENCY_FIELDS: frozenset[EmergencyField] = frozenset(EmergencyField)


class EmergencyTokenState(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"


class EmergencyTokenRecord(BaseModel):
    """
    Enregistrement persistant d'un token d'urgence dans le Token Store.

    L'expiration n'est jamais stockée comme transition: elle est recalculée
    à chaque lecture contre l'horloge courante. Seule la révocation est écrite.
    """

    model_config = ConfigDict(frozen=True)

    token: str
    patient_id: str
    scope: frozenset[EmergencyField]
    issued_at: AwareDatetime
    expires_at: AwareDatetime
    issued_by: str
    revoked: bool = False
    revoked_at: AwareDatetime | None = None

    def state(self, now: datetime | None = None) -> EmergencyTokenState:
        """
        Calcule l'état courant du token.

        La révocation prime sur l'expiration: un token révoqué puis expiré
        reste rapporté comme révoqué.
        """
        now = now or datetime.now(UTC)
        if self.revoked:
            return EmergencyTokenState.REVOKED
        if now >= self.expires_at:
            return EmergencyTokenState.EXPIRED
        return EmergencyTokenState.ACTIVE

    def revoke(self, now: datetime) -> "EmergencyTokenRecord":
        return self.model_copy(update={"revoked": True, "revoked_at": now})


class TokenInvalidReason(str, Enum):
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    REVOKED = "revoked"


@dataclass(frozen=True)
class EmergencyAccessGrant:
    """Résultat d'une validation réussie."""

    patient_id: str
    scope: frozenset[EmergencyField]
    expires_at: datetime


@dataclass(frozen=True)
class EmergencyTokenInvalid:
    """Résultat d'une validation en échec; la raison reste interne."""

    reason: TokenInvalidReason


EmergencyValidation = EmergencyAccessGrant | EmergencyTokenInvalid


# ============================================================================
# Schémas API
# ============================================================================


class EmergencyTokenCreate(BaseModel):
    """Requête d'émission d'un token d'urgence."""

    patient_id: PatientId
    ttl_seconds: int | None = Field(
        None,
        description="Durée de validité en secondes (défaut configuré côté service)",
    )
    fields: list[EmergencyField] | None = Field(
        None,
        description="Champs exposés; tous les champs critiques si omis",
        min_length=1,
    )


class EmergencyTokenResponse(BaseModel):
    """Token émis, à encoder dans le lien ou le QR code d'urgence."""

    token: OpaqueToken
    patient_id: str
    scope: list[EmergencyField]
    issued_at: datetime
    expires_at: datetime
    state: EmergencyTokenState = EmergencyTokenState.ACTIVE
    revoked_at: datetime | None = None

    @classmethod
    def from_record(
        cls, record: EmergencyTokenRecord, now: datetime | None = None
    ) -> "EmergencyTokenResponse":
        return cls(
            token=record.token,
            patient_id=record.patient_id,
            scope=sorted(record.scope, key=lambda field: field.value),
            issued_at=record.issued_at,
            expires_at=record.expires_at,
            state=record.state(now),
            revoked_at=record.revoked_at,
        )


class EmergencyContact(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    relationship: str | None = None
    phone: str | None = None


class EmergencyMedication(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    dosage: str | None = None
    frequency: str | None = None


class EmergencyAllergy(BaseModel):
    model_config = ConfigDict(extra="ignore")

    substance: str
    severity: str | None = None
    reaction: str | None = None


class EmergencyPayload(BaseModel):
    """
    Charge utile publique et volontairement étroite de l'endpoint d'urgence.

    Seuls les champs présents dans le scope du token sont renseignés; les autres
    restent à ``None`` même si le Data Store les a renvoyés.
    """

    model_config = ConfigDict(extra="ignore")

    allergies: list[EmergencyAllergy] | None = None
    blood_type: str | None = None
    emergency_contacts: list[EmergencyContact] | None = None
    active_medications: list[EmergencyMedication] | None = None
    expires_at: datetime | None = Field(None, description="Fin de validité du lien")

    @classmethod
    def from_data(
        cls, data: dict, scope: frozenset[EmergencyField], expires_at: datetime | None = None
    ) -> "EmergencyPayload":
        allowed = {field.value for field in scope}
        filtered = {key: value for key, value in data.items() if key in allowed}
        return cls(**filtered, expires_at=expires_at)
