"""Endpoint de décision d'accès (forward-auth).

Un reverse proxy ou le front de rendu des pages appelle cet endpoint pour
n'importe quel chemin; la réponse porte l'identité autorisée en en-têtes,
ou le refus sous forme de Problem Details ou de redirection.
"""

from fastapi import APIRouter, Depends, Query, Request, Response

from app.core.access_map import canonical_path, scope_for_path
from app.core.dependencies import get_session_resolver
from app.core.security import enforce_scope
from app.schemas.access import AccessDecisionResponse
from app.schemas.responses import auth_responses
from app.services.session_resolver import SessionResolver

router = APIRouter()


@router.get(
    "/decision",
    response_model=AccessDecisionResponse,
    summary="Décision d'accès pour un chemin",
    description=(
        "Résout les sessions des domaines acceptés par le périmètre du chemin, applique "
        "la liste blanche de rôles puis le périmètre organisation."
    ),
    responses={**auth_responses, 303: {"description": "Redirection (requête de type page)"}},
)
async def access_decision(
    request: Request,
    response: Response,
    path: str = Query(
        ..., min_length=1, max_length=2048, pattern=r"^/", description="Chemin cible"
    ),
    resolver: SessionResolver = Depends(get_session_resolver),
) -> AccessDecisionResponse:
    """
    Décide de l'accès à un chemin.

    Le chemin est d'abord mis sous forme canonique; les segments `..` et les
    barres doublées ne permettent donc pas d'échapper à un périmètre. Seul un
    chemin public ou hors de `/dashboard` et `/api` est autorisé sans session.
    """
    path = canonical_path(path)
    protected_scope = scope_for_path(path)
    if protected_scope is None:
        decision = AccessDecisionResponse.for_public(path)
    else:
        caller = await enforce_scope(request, protected_scope, resolver, path=path)
        decision = AccessDecisionResponse.for_scoped(path, caller)

    response.headers.update(decision.headers())
    return decision
