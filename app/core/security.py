"""Dépendances FastAPI de contrôle d'accès.

Chaîne appliquée à chaque route protégée: résolution de session (domaines du
périmètre) → Role Guard → périmètre tenant. Un refus devient une redirection
pour une requête de type page, une erreur Problem Details pour une requête API.
"""

import logging
from collections.abc import Iterable
from typing import NoReturn
from urllib.parse import quote

from fastapi import Depends, Request
from opentelemetry import trace

from app.core.access_map import home_path_for_role
from app.core.config import settings
from app.core.dependencies import get_session_resolver
from app.core.exceptions import (
    AccessRedirect,
    NotAuthenticatedError,
    RoleNotPermittedError,
    TenantScopeError,
)
from app.infrastructure.redis.credentials import CookieCredentialStore
from app.schemas.access import Deny, DenyReason, ProtectedScope, ScopedIdentity
from app.schemas.identity import Domain, Identity, Unauthenticated
from app.services import role_guard
from app.services.session_resolver import ResolutionResult, SessionResolver
from app.services.tenant_scope import TenantIntegrityError, scoped_identity

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def credentials_for(request: Request) -> CookieCredentialStore:
    return CookieCredentialStore(
        request,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite=settings.SESSION_COOKIE_SAMESITE,
    )


def is_page_request(request: Request, path: str | None = None) -> bool:
    """
    Une requête est de type page si elle préfère du HTML et ne vise pas ``/api``.

    Args:
        request: Requête entrante (en-tête Accept)
        path: Chemin cible; par défaut le chemin de la requête
    """
    target = path if path is not None else request.url.path
    if target == "/api" or target.startswith("/api/"):
        return False
    accept = request.headers.get("accept", "")
    html = _quality(accept, "text/html")
    structured = max(
        _quality(accept, "application/json"), _quality(accept, "application/problem+json")
    )
    return html > 0 and html >= structured


def _quality(accept: str, media_type: str) -> float:
    for part in accept.split(","):
        fields = [field.strip() for field in part.split(";")]
        if fields[0].lower() != media_type:
            continue
        for param in fields[1:]:
            name, _, value = param.partition("=")
            if name.strip() == "q":
                try:
                    return float(value)
                except ValueError:
                    return 0.0
        return 1.0
    return 0.0


def login_redirect(path: str) -> str:
    return f"{settings.LOGIN_PATH}?redirect={quote(path, safe='/')}"


def raise_denied(
    request: Request,
    path: str,
    reason: DenyReason,
    scope_name: str,
    resolution: ResolutionResult | None = None,
) -> NoReturn:
    """
    Traduit un refus du Role Guard en redirection ou en Problem Details.

    - Page sans authentification: redirection vers la page de login
    - Page avec un rôle non autorisé: redirection vers le dashboard du rôle
    - API: 401 not_authenticated ou 403 role_not_permitted
    """
    page = is_page_request(request, path)
    if reason == DenyReason.NOT_AUTHENTICATED:
        why = resolution.reason.value if isinstance(resolution, Unauthenticated) else "unknown"
        if page:
            raise AccessRedirect(login_redirect(path), f"not_authenticated:{why}")
        raise NotAuthenticatedError(
            detail=f"Authentication required for scope {scope_name} ({why})",
            instance=path,
        )

    role = None
    if resolution is not None and not isinstance(resolution, Unauthenticated):
        role = resolution.role
    if page and role is not None:
        raise AccessRedirect(home_path_for_role(role), "role_not_permitted")
    raise RoleNotPermittedError(
        detail=f"Role {role.value if role else 'unknown'} is not permitted for scope {scope_name}",
        instance=path,
    )


async def enforce_scope(
    request: Request,
    protected_scope: ProtectedScope,
    resolver: SessionResolver,
    path: str | None = None,
) -> ScopedIdentity:
    """
    Applique un périmètre protégé à une requête.

    Args:
        request: Requête entrante (cookies, en-têtes)
        protected_scope: Périmètre à appliquer
        resolver: Registre des résolveurs par domaine
        path: Chemin cible (défaut: chemin de la requête)

    Returns:
        L'identité autorisée avec son périmètre tenant

    Raises:
        AccessRedirect: Refus sur une requête de type page
        NotAuthenticatedError: Aucune session valide (API)
        RoleNotPermittedError: Rôle hors liste blanche (API)
        TenantScopeError: Périmètre organisation obligatoire absent
    """
    target = path if path is not None else request.url.path
    with tracer.start_as_current_span("enforce_scope") as span:
        span.set_attribute("access.scope", protected_scope.name)
        span.set_attribute("access.path", target)

        resolution = await resolver.resolve_any(credentials_for(request), protected_scope.domains)
        decision = role_guard.authorize(
            resolution, protected_scope.allowed_roles, protected_scope.name
        )
        if isinstance(decision, Deny):
            raise_denied(request, target, decision.reason, protected_scope.name, resolution)

        try:
            return scoped_identity(decision.identity, protected_scope)
        except TenantIntegrityError as e:
            span.set_attribute("access.tenant_integrity", False)
            logger.error(f"Tenant integrity failure on scope {protected_scope.name}: {e.message}")
            if is_page_request(request, target):
                raise AccessRedirect(login_redirect(target), "tenant_integrity") from e
            raise TenantScopeError(detail=e.message, instance=target) from e


def require_access(protected_scope: ProtectedScope):
    """
    Dependency factory pour protéger une route par un périmètre déclaratif.

    Example:
        ```python
        @router.get("/kpis")
        async def kpis(caller: ScopedIdentity = Depends(require_access(CLINIC_SCOPE))):
            return await load_kpis(organization_id=caller.data_key)
        ```
    """

    async def access_checker(
        request: Request, resolver: SessionResolver = Depends(get_session_resolver)
    ) -> ScopedIdentity:
        return await enforce_scope(request, protected_scope, resolver)

    return access_checker


async def require_identity(
    request: Request,
    resolver: SessionResolver,
    domains: Iterable[Domain],
) -> Identity:
    """Résout une identité sur les domaines donnés, sans contrôle de rôle (API uniquement)."""
    resolution = await resolver.resolve_any(credentials_for(request), domains)
    if isinstance(resolution, Unauthenticated):
        raise NotAuthenticatedError(
            detail=f"Authentication required ({resolution.reason.value})",
            instance=request.url.path,
        )
    return resolution
