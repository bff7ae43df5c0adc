"""Endpoint de résolution d'identité pour un domaine."""

from fastapi import APIRouter, Depends, Request

from app.core.dependencies import get_session_resolver
from app.core.exceptions import TenantScopeError
from app.core.security import require_identity
from app.schemas.identity import Domain, IdentityResponse
from app.schemas.responses import auth_responses
from app.services.session_resolver import SessionResolver
from app.services.tenant_scope import TenantIntegrityError, scoped_identity

router = APIRouter()


@router.get(
    "/{domain}",
    response_model=IdentityResponse,
    summary="Identité courante d'un domaine",
    description="Retourne l'identité résolue pour le domaine et sa clé de périmètre",
    responses=auth_responses,
)
async def get_identity(
    domain: Domain,
    request: Request,
    resolver: SessionResolver = Depends(get_session_resolver),
) -> IdentityResponse:
    identity = await require_identity(request, resolver, [domain])
    try:
        caller = scoped_identity(identity)
    except TenantIntegrityError as e:
        raise TenantScopeError(detail=e.message, instance=request.url.path) from e
    return IdentityResponse.from_scoped(caller)
