"""Schemas Pydantic pour validation des donnees."""

from app.schemas.access import (
    AccessDecision,
    AccessDecisionResponse,
    Allow,
    Deny,
    DenyReason,
    ProtectedScope,
    ScopedIdentity,
)
from app.schemas.emergency import (
    DEFAULT_EMERGENCY_FIELDS,
    EmergencyAccessGrant,
    EmergencyField,
    EmergencyPayload,
    EmergencyTokenCreate,
    EmergencyTokenInvalid,
    EmergencyTokenRecord,
    EmergencyTokenResponse,
    TokenInvalidReason,
)
from app.schemas.identity import (
    AdminIdentity,
    Domain,
    Identity,
    IdentityResponse,
    NurseIdentity,
    NurseType,
    PatientIdentity,
    Role,
    StaffIdentity,
    Unauthenticated,
    UnauthenticatedReason,
)
from app.schemas.responses import COMMON_RESPONSES, ProblemDetailResponse
from app.schemas.session import SessionRecord

__all__ = [
    "COMMON_RESPONSES",
    "DEFAULT_EMERGENCY_FIELDS",
    "AccessDecision",
    "AccessDecisionResponse",
    "AdminIdentity",
    "Allow",
    "Deny",
    "DenyReason",
    "Domain",
    "EmergencyAccessGrant",
    "EmergencyField",
    "EmergencyPayload",
    "EmergencyTokenCreate",
    "EmergencyTokenInvalid",
    "EmergencyTokenRecord",
    "EmergencyTokenResponse",
    "Identity",
    "IdentityResponse",
    "NurseIdentity",
    "NurseType",
    "PatientIdentity",
    "ProblemDetailResponse",
    "ProtectedScope",
    "Role",
    "ScopedIdentity",
    "SessionRecord",
    "StaffIdentity",
    "TokenInvalidReason",
    "Unauthenticated",
    "UnauthenticatedReason",
]
