"""Schémas Pydantic pour les identités résolues.

Une identité est le principal derrière une requête entrante. Chaque domaine
d'utilisateurs (personnel des organisations, patients, infirmiers, admins analytics)
a sa propre variante; toutes partagent un discriminant ``kind`` qui permet de
désérialiser sans ambiguïté la charge utile d'une session.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.utils import NonEmptyStr


class Role(str, Enum):
    """Rôles connus de la plateforme."""

    ADMIN = "ADMIN"
    CLINICA = "CLINICA"
    MEDICO = "MEDICO"
    FARMACIA = "FARMACIA"
    RECEPCION = "RECEPCION"
    LABORATORIO = "LABORATORIO"
    ENFERMERO = "ENFERMERO"
    PACIENTE = "PACIENTE"
    SUPERADMIN = "SUPERADMIN"


class Domain(str, Enum):
    """Domaines d'utilisateurs, chacun avec son propre mécanisme de session."""

    STAFF = "staff"
    PATIENT = "patient"
    NURSE = "nurse"
    ADMIN = "admin"


class NurseType(str, Enum):
    AFFILIATED = "affiliated"
    INDEPENDENT = "independent"


class _IdentityBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class StaffIdentity(_IdentityBase):
    """Membre du personnel d'une organisation (clinique, cabinet, pharmacie)."""

    kind: Literal["staff"] = "staff"
    user_id: NonEmptyStr
    # Nullable ici pour que l'incohérence remonte via TenantIntegrityError
    organization_id: str | None = Field(None, description="Organisation de rattachement")
    role: Role

    @property
    def domain(self) -> Domain:
        return Domain.STAFF

    @property
    def principal_id(self) -> str:
        return self.user_id


class PatientIdentity(_IdentityBase):
    kind: Literal["patient"] = "patient"
    patient_id: NonEmptyStr

    @property
    def role(self) -> Role:
        return Role.PACIENTE

    @property
    def domain(self) -> Domain:
        return Domain.PATIENT

    @property
    def principal_id(self) -> str:
        return self.patient_id


class NurseIdentity(_IdentityBase):
    """Infirmier affilié à une organisation ou exerçant en indépendant."""

    kind: Literal["nurse"] = "nurse"
    user_id: NonEmptyStr
    nurse_type: NurseType
    organization_id: str | None = Field(
        None, description="Organisation de rattachement (infirmiers affiliés uniquement)"
    )

    @property
    def role(self) -> Role:
        return Role.ENFERMERO

    @property
    def domain(self) -> Domain:
        return Domain.NURSE

    @property
    def principal_id(self) -> str:
        return self.user_id

    @property
    def is_independent(self) -> bool:
        return self.nurse_type == NurseType.INDEPENDENT


class AdminIdentity(_IdentityBase):
    """Administrateur de la surface analytics (hors organisations)."""

    kind: Literal["admin"] = "admin"
    admin_id: NonEmptyStr
    username: NonEmptyStr
    email: str | None = None

    @property
    def role(self) -> Role:
        return Role.SUPERADMIN

    @property
    def domain(self) -> Domain:
        return Domain.ADMIN

    @property
    def principal_id(self) -> str:
        return self.admin_id


Identity = Annotated[
    StaffIdentity | PatientIdentity | NurseIdentity | AdminIdentity,
    Field(discriminator="kind"),
]


class UnauthenticatedReason(str, Enum):
    MISSING_CREDENTIAL = "missing_credential"
    MALFORMED_CREDENTIAL = "malformed_credential"
    UNKNOWN_SESSION = "unknown_session"
    EXPIRED_SESSION = "expired_session"
    DOMAIN_MISMATCH = "domain_mismatch"
    STORE_UNAVAILABLE = "store_unavailable"
    MISCONFIGURED = "misconfigured"


@dataclass(frozen=True)
class Unauthenticated:
    """Résultat typé d'une résolution sans identité valide."""

    reason: UnauthenticatedReason
    domain: Domain | None = None


class IdentityResponse(BaseModel):
    """Représentation API d'une identité résolue et de son périmètre."""

    domain: Domain
    role: Role
    principal_id: str
    organization_id: str | None = Field(
        None, description="Périmètre tenant (null pour les infirmiers indépendants)"
    )
    data_key: str = Field(..., description="Clé de filtrage pour l'accès aux données en aval")
    identity: Identity

    @classmethod
    def from_scoped(cls, caller) -> "IdentityResponse":
        """Construit la réponse depuis un ``ScopedIdentity``."""
        return cls(
            domain=caller.identity.domain,
            role=caller.identity.role,
            principal_id=caller.identity.principal_id,
            organization_id=caller.organization_id,
            data_key=caller.data_key,
            identity=caller.identity,
        )
