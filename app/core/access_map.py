"""Table déclarative des périmètres protégés et des chemins publics."""

import posixpath
import re
from urllib.parse import unquote

from app.schemas.access import ProtectedScope
from app.schemas.identity import Domain, Role

# Chemins jamais gardés (formulaires d'authentification, lien d'urgence)
PUBLIC_PATHS: tuple[str, ...] = (
    "/login",
    "/register",
    "/reset-password",
    "/api/auth",
    "/emergency",
    "/api/emergency",
    "/api/v1/emergency",
    "/api/v1/health",
)

_CLINIC = frozenset({Role.ADMIN, Role.CLINICA})
_MEDIC = frozenset({Role.MEDICO})
_PHARMACY = frozenset({Role.FARMACIA})
_PATIENT = frozenset({Role.PACIENTE})
_NURSE = frozenset({Role.ENFERMERO})
_ROLE_USER = frozenset({Role.RECEPCION, Role.LABORATORIO, Role.ENFERMERO, Role.FARMACIA})
_ANALYTICS = frozenset({Role.SUPERADMIN})
# Authentification seule, sans rôle particulier
_SESSION_DOMAINS = (Domain.STAFF, Domain.NURSE, Domain.PATIENT)
_ANY_ROLE = frozenset(role for role in Role if role != Role.SUPERADMIN)

PROTECTED_SCOPES: tuple[ProtectedScope, ...] = (
    ProtectedScope("clinic-dashboard", "/dashboard/clinic", (Domain.STAFF,), _CLINIC),
    ProtectedScope("medic-dashboard", "/dashboard/medic", (Domain.STAFF,), _MEDIC),
    ProtectedScope("pharmacy-dashboard", "/dashboard/pharmacy", (Domain.STAFF,), _PHARMACY),
    ProtectedScope(
        "patient-dashboard", "/dashboard/patient", (Domain.PATIENT,), _PATIENT, tenant_bound=False
    ),
    ProtectedScope("nurse-dashboard", "/dashboard/nurse", (Domain.NURSE,), _NURSE),
    ProtectedScope(
        "role-user-dashboard", "/dashboard/role-user", (Domain.STAFF, Domain.NURSE), _ROLE_USER
    ),
    ProtectedScope(
        "analytics", "/dashboard/analytics", (Domain.ADMIN,), _ANALYTICS, tenant_bound=False
    ),
    ProtectedScope("clinic-api", "/api/clinic", (Domain.STAFF,), _CLINIC),
    ProtectedScope("medic-api", "/api/medic", (Domain.STAFF,), _MEDIC),
    ProtectedScope("pharmacy-api", "/api/pharmacy", (Domain.STAFF,), _PHARMACY),
    ProtectedScope("patient-api", "/api/patient", (Domain.PATIENT,), _PATIENT, tenant_bound=False),
    ProtectedScope("nurse-api", "/api/nurse", (Domain.NURSE,), _NURSE),
    ProtectedScope("role-user-api", "/api/role-users", (Domain.STAFF, Domain.NURSE), _ROLE_USER),
    ProtectedScope(
        "analytics-api", "/api/analytics", (Domain.ADMIN,), _ANALYTICS, tenant_bound=False
    ),
    ProtectedScope(
        "patients-api", "/api/patients", _SESSION_DOMAINS, _ANY_ROLE, tenant_bound=False
    ),
    ProtectedScope(
        "prescriptions-api", "/api/prescriptions", _SESSION_DOMAINS, _ANY_ROLE, tenant_bound=False
    ),
    ProtectedScope(
        "notifications-api", "/api/notifications", _SESSION_DOMAINS, _ANY_ROLE, tenant_bound=False
    ),
    # Reste de l'application: session exigée, aucun rôle particulier
    ProtectedScope("dashboard", "/dashboard", _SESSION_DOMAINS, _ANY_ROLE, tenant_bound=False),
    ProtectedScope("api", "/api", _SESSION_DOMAINS, _ANY_ROLE, tenant_bound=False),
)

# Domaines pouvant émettre ou révoquer un lien d'urgence; rôles et périmètre patient
# sont contrôlés par le service des tokens
EMERGENCY_ISSUER_DOMAINS: tuple[Domain, ...] = (Domain.STAFF, Domain.NURSE, Domain.PATIENT)

HOME_PATHS: dict[Role, str] = {
    Role.ADMIN: "/dashboard/clinic",
    Role.CLINICA: "/dashboard/clinic",
    Role.MEDICO: "/dashboard/medic",
    Role.FARMACIA: "/dashboard/pharmacy",
    Role.PACIENTE: "/dashboard/patient",
    Role.ENFERMERO: "/dashboard/nurse",
    Role.RECEPCION: "/dashboard/role-user",
    Role.LABORATORIO: "/dashboard/role-user",
    Role.SUPERADMIN: "/dashboard/analytics",
}


def canonical_path(path: str) -> str:
    """
    Forme canonique d'un chemin, telle que le proxy ou le navigateur la résout.

    Décodage percent unique, ``\\`` traité comme ``/``, barres multiples
    fusionnées, segments ``.`` et ``..`` résolus (jamais au-dessus de la racine).
    """
    decoded = unquote(path).replace("\\", "/")
    collapsed = re.sub(r"/{2,}", "/", "/" + decoded)
    normalized = posixpath.normpath(collapsed)
    return "/" if normalized in ("", ".") else normalized


def _matches(prefix: str, path: str) -> bool:
    return path == prefix or path.startswith(prefix.rstrip("/") + "/")


def is_public_path(path: str) -> bool:
    """Le chemin racine et les préfixes publics ne sont jamais gardés."""
    path = canonical_path(path)
    if path == "/":
        return True
    return any(_matches(prefix, path) for prefix in PUBLIC_PATHS)


def scope_for_path(
    path: str, scopes: tuple[ProtectedScope, ...] = PROTECTED_SCOPES
) -> ProtectedScope | None:
    """
    Retourne le périmètre protégé couvrant un chemin.

    Le préfixe le plus long l'emporte. Un chemin public, ou hors de
    ``/dashboard`` et ``/api``, retourne None.
    """
    path = canonical_path(path)
    if is_public_path(path):
        return None
    candidates = [scope for scope in scopes if scope.matches(path)]
    if not candidates:
        return None
    return max(candidates, key=lambda scope: len(scope.path_prefix))


def home_path_for_role(role: Role) -> str:
    return HOME_PATHS.get(role, "/")
