"""
Doubles en mémoire des stores Redis et du service des dossiers patients,
horloge contrôlable et fabriques d'identités.
"""

from datetime import UTC, datetime, timedelta

from app.infrastructure.records.exceptions import PatientNotFoundError
from app.infrastructure.redis.exceptions import CredentialStoreUnavailableError
from app.schemas.emergency import EmergencyTokenRecord
from app.schemas.identity import (
    AdminIdentity,
    NurseIdentity,
    NurseType,
    PatientIdentity,
    Role,
    StaffIdentity,
)
from app.schemas.session import SessionRecord

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


# ============================================================================
# Doubles
# ============================================================================


class FakeClock:
    """Horloge déterministe avançable à la main."""

    def __init__(self, start: datetime = T0):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class InMemorySessionStore:
    """Credential Store en mémoire (charges JSON brutes par token)."""

    def __init__(self):
        self.sessions: dict[str, str] = {}
        self.fail_with: Exception | None = None
        self.reads = 0

    async def get(self, token: str) -> str | None:
        self.reads += 1
        if self.fail_with is not None:
            raise self.fail_with
        return self.sessions.get(token)

    def add(self, record: SessionRecord) -> str:
        self.sessions[record.token] = record.model_dump_json()
        return record.token


class InMemoryTokenStore:
    """Token Store en mémoire avec la sémantique SET NX."""

    def __init__(self):
        self.records: dict[str, EmergencyTokenRecord] = {}
        self.ttls: dict[str, int] = {}
        self.fail_with: Exception | None = None
        self.reads = 0
        self.writes = 0

    async def put(
        self, token: str, record: EmergencyTokenRecord, ttl: int, only_if_absent: bool = False
    ) -> bool:
        if self.fail_with is not None:
            raise self.fail_with
        if only_if_absent and token in self.records:
            return False
        self.writes += 1
        self.records[token] = record
        self.ttls[token] = ttl
        return True

    async def get(self, token: str) -> EmergencyTokenRecord | None:
        self.reads += 1
        if self.fail_with is not None:
            raise self.fail_with
        return self.records.get(token)

    async def delete(self, token: str) -> None:
        self.records.pop(token, None)
        self.ttls.pop(token, None)


class FakePatientDirectory:
    """Liens patient/organisation et patient/infirmier du Data Store."""

    def __init__(
        self,
        organizations: dict[str, set[str]] | None = None,
        nurse_links: set[tuple[str, str]] | None = None,
        data: dict[str, dict] | None = None,
    ):
        self.organizations = organizations or {}
        self.nurse_links = nurse_links or set()
        self.data = data or {}
        self.requested_fields: list[str] = []
        self.fail_with: Exception | None = None

    async def organizations_for_patient(self, patient_id: str) -> set[str]:
        if self.fail_with is not None:
            raise self.fail_with
        if patient_id not in self.organizations:
            raise PatientNotFoundError(patient_id)
        return set(self.organizations[patient_id])

    async def nurse_attends_patient(self, patient_id: str, nurse_user_id: str) -> bool:
        if self.fail_with is not None:
            raise self.fail_with
        return (patient_id, nurse_user_id) in self.nurse_links

    async def emergency_data(self, patient_id: str, fields) -> dict:
        if self.fail_with is not None:
            raise self.fail_with
        self.requested_fields = sorted(fields)
        if patient_id not in self.data:
            raise PatientNotFoundError(patient_id)
        # Renvoie tout, y compris hors scope: le filtrage doit se faire côté accès
        return dict(self.data[patient_id])


def unavailable() -> CredentialStoreUnavailableError:
    return CredentialStoreUnavailableError("Redis unreachable: connection refused", "test")


# ============================================================================
# Identités
# ============================================================================


def staff(role: Role = Role.CLINICA, organization_id: str | None = "org-1", user_id="u-staff"):
    return StaffIdentity(user_id=user_id, organization_id=organization_id, role=role)


def patient(patient_id: str = "p-1") -> PatientIdentity:
    return PatientIdentity(patient_id=patient_id)


def affiliated_nurse(organization_id: str | None = "org-1", user_id="u-nurse") -> NurseIdentity:
    return NurseIdentity(
        user_id=user_id, nurse_type=NurseType.AFFILIATED, organization_id=organization_id
    )


def independent_nurse(user_id: str = "u-indep") -> NurseIdentity:
    return NurseIdentity(user_id=user_id, nurse_type=NurseType.INDEPENDENT)


def admin(admin_id: str = "a-1") -> AdminIdentity:
    return AdminIdentity(admin_id=admin_id, username="analytics", email="ops@example.org")


def session_for(identity, token: str, clock: FakeClock, ttl: int = 3600) -> SessionRecord:
    return SessionRecord(
        token=token,
        identity=identity,
        issued_at=clock(),
        expires_at=clock() + timedelta(seconds=ttl),
    )


# Tokens de forme valide (URL-safe, 16 à 128 caractères)
STAFF_TOKEN = "staff-token-0000000001"
PATIENT_TOKEN = "patient-token-000000001"
NURSE_TOKEN = "nurse-token-0000000001"
ADMIN_TOKEN = "admin-token-0000000001"

