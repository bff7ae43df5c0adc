"""Dérivation du périmètre organisation (tenant) d'une identité.

Un périmètre nul n'est légitime que pour l'infirmier indépendant: ses données
sont alors filtrées sur son propre identifiant. Pour le personnel et les
infirmiers affiliés, une organisation absente est une incohérence de données
qui doit remonter comme un refus d'accès, jamais comme un périmètre vide.
"""

import logging
from typing import Protocol

from opentelemetry import trace

from app.infrastructure.records.exceptions import PatientNotFoundError
from app.schemas.access import ProtectedScope, ScopedIdentity
from app.schemas.identity import (
    AdminIdentity,
    Identity,
    NurseIdentity,
    PatientIdentity,
    StaffIdentity,
)

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class TenantIntegrityError(Exception):
    """Périmètre organisation obligatoire manquant ou identité non rattachable à un tenant."""

    def __init__(self, identity: Identity, message: str):
        super().__init__(message)
        self.identity = identity
        self.message = message


class PatientDirectory(Protocol):
    """Liens patient/organisation et patient/infirmier du Data Store."""

    async def organizations_for_patient(self, patient_id: str) -> set[str]: ...

    async def nurse_attends_patient(self, patient_id: str, nurse_user_id: str) -> bool: ...


def scope(identity: Identity) -> str | None:
    """
    Retourne l'organisation de l'identité.

    Returns:
        L'identifiant d'organisation, ou None pour un infirmier indépendant

    Raises:
        TenantIntegrityError: Organisation absente pour le personnel ou un infirmier
            affilié, ou identité sans tenant (patient, admin analytics)
    """
    if isinstance(identity, StaffIdentity):
        if not identity.organization_id:
            logger.error(f"Staff user {identity.user_id} has no organization")
            raise TenantIntegrityError(identity, "Staff identity without organization")
        return identity.organization_id

    if isinstance(identity, NurseIdentity):
        if identity.is_independent:
            return None
        if not identity.organization_id:
            logger.error(f"Affiliated nurse {identity.user_id} has no organization")
            raise TenantIntegrityError(identity, "Affiliated nurse without organization")
        return identity.organization_id

    raise TenantIntegrityError(
        identity, f"{identity.domain.value} identities are not bound to an organization"
    )


def scoped_identity(
    identity: Identity, protected_scope: ProtectedScope | None = None
) -> ScopedIdentity:
    """
    Attache le périmètre et la clé de filtrage à une identité autorisée.

    Le personnel et les infirmiers passent toujours par ``scope()``, même sur un
    périmètre non lié à un tenant, pour que l'incohérence remonte partout.

    Raises:
        TenantIntegrityError: Voir ``scope()``; aussi pour un patient ou un admin
            sur un périmètre déclaré lié à un tenant
    """
    scope_name = protected_scope.name if protected_scope else None
    tenant_bound = protected_scope.tenant_bound if protected_scope else False

    if isinstance(identity, StaffIdentity | NurseIdentity):
        organization_id = scope(identity)
        data_key = organization_id if organization_id is not None else identity.user_id
        return ScopedIdentity(identity, organization_id, data_key, scope_name)

    if tenant_bound:
        raise TenantIntegrityError(
            identity, f"Scope {scope_name} requires an organization-bound identity"
        )
    return ScopedIdentity(identity, None, identity.principal_id, scope_name)


async def authorize_patient(
    identity: Identity, patient_id: str, directory: PatientDirectory
) -> bool:
    """
    Vérifie qu'un patient est dans le périmètre de l'identité.

    - Personnel et infirmier affilié: patient rattaché à l'organisation
    - Infirmier indépendant: patient suivi par cet infirmier
    - Patient: lui-même uniquement
    - Admin analytics: jamais

    Un patient inconnu du Data Store est hors périmètre.

    Raises:
        TenantIntegrityError: Organisation obligatoire absente
        PatientRecordsConnectionError: Data Store injoignable
    """
    with tracer.start_as_current_span("authorize_patient") as span:
        span.set_attribute("access.domain", identity.domain.value)
        span.set_attribute("patient.id", patient_id)

        if isinstance(identity, PatientIdentity):
            allowed = identity.patient_id == patient_id
        elif isinstance(identity, AdminIdentity):
            allowed = False
        else:
            organization_id = scope(identity)
            try:
                if organization_id is None:
                    allowed = await directory.nurse_attends_patient(patient_id, identity.user_id)
                else:
                    organizations = await directory.organizations_for_patient(patient_id)
                    allowed = organization_id in organizations
            except PatientNotFoundError:
                allowed = False

        span.set_attribute("access.patient_in_scope", allowed)
        if not allowed:
            logger.info(
                f"Patient {patient_id} out of scope for {identity.domain.value} "
                f"principal {identity.principal_id}"
            )
        return allowed
