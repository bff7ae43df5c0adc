"""Décisions d'autorisation et périmètres protégés."""

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, Field

from app.schemas.identity import Domain, Identity, Role


class DenyReason(str, Enum):
    NOT_AUTHENTICATED = "not_authenticated"
    ROLE_NOT_PERMITTED = "role_not_permitted"


@dataclass(frozen=True)
class Allow:
    identity: Identity


@dataclass(frozen=True)
class Deny:
    reason: DenyReason


AccessDecision = Allow | Deny


@dataclass(frozen=True)
class ProtectedScope:
    """
    Entrée déclarative de la table d'accès.

    Attributes:
        name: Nom stable du périmètre (labels de métriques, logs)
        path_prefix: Préfixe de chemin couvert
        domains: Domaines de session acceptés, dans l'ordre de résolution
        allowed_roles: Liste blanche des rôles autorisés
        tenant_bound: Si True, le handler reçoit un périmètre organisation
    """

    name: str
    path_prefix: str
    domains: tuple[Domain, ...]
    allowed_roles: frozenset[Role]
    tenant_bound: bool = True

    def matches(self, path: str) -> bool:
        return path == self.path_prefix or path.startswith(self.path_prefix.rstrip("/") + "/")


@dataclass(frozen=True)
class ScopedIdentity:
    """Identité autorisée, avec la clé de périmètre à utiliser en aval."""

    identity: Identity
    organization_id: str | None
    data_key: str
    scope_name: str | None = None


class AccessDecisionResponse(BaseModel):
    """Réponse de l'endpoint de décision (forward-auth)."""

    path: str
    allowed: bool = True
    public: bool = Field(False, description="Chemin non gardé")
    scope: str | None = Field(None, description="Périmètre protégé appliqué")
    domain: Domain | None = None
    role: Role | None = None
    principal_id: str | None = None
    organization_id: str | None = None
    data_key: str | None = None

    @classmethod
    def for_public(cls, path: str) -> "AccessDecisionResponse":
        return cls(path=path, public=True)

    @classmethod
    def for_scoped(cls, path: str, caller: ScopedIdentity) -> "AccessDecisionResponse":
        return cls(
            path=path,
            scope=caller.scope_name,
            domain=caller.identity.domain,
            role=caller.identity.role,
            principal_id=caller.identity.principal_id,
            organization_id=caller.organization_id,
            data_key=caller.data_key,
        )

    def headers(self) -> dict[str, str]:
        """En-têtes transmis en aval par le reverse proxy."""
        if self.public:
            return {"X-Access-Scope": "public"}
        headers = {
            "X-Access-Scope": self.scope or "",
            "X-Access-Domain": self.domain.value if self.domain else "",
            "X-Access-Role": self.role.value if self.role else "",
            "X-Access-Principal": self.principal_id or "",
            "X-Access-Data-Key": self.data_key or "",
        }
        if self.organization_id:
            headers["X-Access-Organization"] = self.organization_id
        return headers
