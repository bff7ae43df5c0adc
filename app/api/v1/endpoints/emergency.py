"""Endpoints des liens d'accès d'urgence.

- ``GET /emergency/{token}``: public, sans session; toute forme d'invalidité
  (inconnu, expiré, révoqué) produit la même réponse 404.
- ``/emergency-tokens``: émission, consultation et révocation par un émetteur
  autorisé pour le patient concerné.
"""

import logging
from typing import NoReturn

from fastapi import APIRouter, Depends, Request, Response, status

from app.core.access_map import EMERGENCY_ISSUER_DOMAINS
from app.core.dependencies import (
    get_emergency_service,
    get_records_client,
    get_session_resolver,
)
from app.core.exceptions import (
    EmergencyTokenNotFoundError,
    InvalidRequestError,
    NotAuthenticatedError,
    PatientOutOfScopeError,
    RoleNotPermittedError,
    StoreUnavailableError,
    TenantScopeError,
)
from app.core.security import credentials_for
from app.infrastructure.records.client import PatientRecordsClient
from app.infrastructure.records.exceptions import (
    PatientNotFoundError,
    PatientRecordsError,
)
from app.infrastructure.redis.exceptions import CredentialStoreError
from app.schemas.emergency import (
    EmergencyAccessGrant,
    EmergencyPayload,
    EmergencyTokenCreate,
    EmergencyTokenResponse,
)
from app.schemas.identity import Identity, Unauthenticated
from app.schemas.responses import build_responses
from app.services.emergency_token_service import (
    EmergencyTokenService,
    InvalidTtlError,
    IssueRefusalReason,
    IssueRefused,
)
from app.services.session_resolver import SessionResolver
from app.services.tenant_scope import TenantIntegrityError

logger = logging.getLogger(__name__)

router = APIRouter()


def _raise_refusal(refusal: IssueRefused, instance: str) -> NoReturn:
    if refusal.reason == IssueRefusalReason.NOT_AUTHENTICATED:
        raise NotAuthenticatedError(instance=instance)
    if refusal.reason == IssueRefusalReason.ROLE_NOT_PERMITTED:
        raise RoleNotPermittedError(
            detail="Role is not permitted to manage emergency access links", instance=instance
        )
    raise PatientOutOfScopeError(
        detail="Patient is outside the caller's organization scope", instance=instance
    )


async def _resolve_issuer(request: Request, resolver: SessionResolver) -> Identity:
    resolution = await resolver.resolve_any(credentials_for(request), EMERGENCY_ISSUER_DOMAINS)
    if isinstance(resolution, Unauthenticated):
        raise NotAuthenticatedError(
            detail=f"Authentication required ({resolution.reason.value})",
            instance=request.url.path,
        )
    return resolution


@router.get(
    "/emergency/{token}",
    response_model=EmergencyPayload,
    response_model_exclude_none=True,
    summary="Données critiques via lien d'urgence",
    description="Endpoint public: données critiques du patient limitées au scope du lien",
    responses=build_responses(404, 503),
)
async def read_emergency_data(
    token: str,
    request: Request,
    response: Response,
    service: EmergencyTokenService = Depends(get_emergency_service),
    records: PatientRecordsClient = Depends(get_records_client),
) -> EmergencyPayload:
    instance = "/api/v1/emergency"
    try:
        result = await service.validate(token)
    except CredentialStoreError as e:
        logger.error(f"Emergency token store unavailable: {e}")
        raise StoreUnavailableError(detail="Emergency access temporarily unavailable") from e

    if not isinstance(result, EmergencyAccessGrant):
        raise EmergencyTokenNotFoundError(instance=instance)

    try:
        data = await records.emergency_data(result.patient_id, [f.value for f in result.scope])
    except PatientNotFoundError as e:
        logger.warning(f"Emergency token points to unknown patient {result.patient_id}")
        raise EmergencyTokenNotFoundError(instance=instance) from e
    except PatientRecordsError as e:
        logger.error(f"Patient records unavailable for emergency access: {e}")
        raise StoreUnavailableError(detail="Emergency access temporarily unavailable") from e

    response.headers["Cache-Control"] = "no-store"
    return EmergencyPayload.from_data(data, result.scope, expires_at=result.expires_at)


@router.post(
    "/emergency-tokens",
    response_model=EmergencyTokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Émettre un lien d'urgence",
    responses=build_responses(401, 403, 422, 503),
)
async def issue_emergency_token(
    payload: EmergencyTokenCreate,
    request: Request,
    resolver: SessionResolver = Depends(get_session_resolver),
    service: EmergencyTokenService = Depends(get_emergency_service),
) -> EmergencyTokenResponse:
    """
    Émet un lien d'urgence pour un patient.

    Permissions requises: rôle émetteur configuré et patient dans le périmètre
    de l'appelant (un patient n'émet que pour lui-même).
    """
    instance = request.url.path
    issuer = await _resolve_issuer(request, resolver)
    try:
        result = await service.issue(
            payload.patient_id, issuer, ttl_seconds=payload.ttl_seconds, fields=payload.fields
        )
    except InvalidTtlError as e:
        raise InvalidRequestError(detail=str(e), instance=instance) from e
    except TenantIntegrityError as e:
        raise TenantScopeError(detail=e.message, instance=instance) from e
    except (CredentialStoreError, PatientRecordsError) as e:
        logger.error(f"Emergency token issue failed: {e}")
        raise StoreUnavailableError(detail="Emergency token store unavailable") from e

    if isinstance(result, IssueRefused):
        _raise_refusal(result, instance)
    return EmergencyTokenResponse.from_record(result, service.now())


async def _authorized_record(
    token: str, request: Request, resolver: SessionResolver, service: EmergencyTokenService
):
    """Retourne l'enregistrement si l'appelant peut le gérer, None s'il est inconnu."""
    instance = request.url.path
    caller = await _resolve_issuer(request, resolver)
    try:
        record = await service.lookup(token)
        if record is None:
            return caller, None
        refusal = await service.check_issuer(caller, record.patient_id)
    except TenantIntegrityError as e:
        raise TenantScopeError(detail=e.message, instance=instance) from e
    except (CredentialStoreError, PatientRecordsError) as e:
        logger.error(f"Emergency token lookup failed: {e}")
        raise StoreUnavailableError(detail="Emergency token store unavailable") from e
    if refusal is not None:
        _raise_refusal(refusal, instance)
    return caller, record


@router.get(
    "/emergency-tokens/{token}",
    response_model=EmergencyTokenResponse,
    summary="État d'un lien d'urgence",
    responses=build_responses(401, 403, 404, 503),
)
async def get_emergency_token(
    token: str,
    request: Request,
    resolver: SessionResolver = Depends(get_session_resolver),
    service: EmergencyTokenService = Depends(get_emergency_service),
) -> EmergencyTokenResponse:
    _, record = await _authorized_record(token, request, resolver, service)
    if record is None:
        raise EmergencyTokenNotFoundError(instance=request.url.path)
    return EmergencyTokenResponse.from_record(record, service.now())


@router.delete(
    "/emergency-tokens/{token}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Révoquer un lien d'urgence",
    description="Idempotent: un lien déjà révoqué, expiré ou inconnu n'est pas une erreur",
    responses=build_responses(401, 403, 503),
)
async def revoke_emergency_token(
    token: str,
    request: Request,
    resolver: SessionResolver = Depends(get_session_resolver),
    service: EmergencyTokenService = Depends(get_emergency_service),
) -> Response:
    caller, record = await _authorized_record(token, request, resolver, service)
    if record is not None:
        try:
            await service.revoke(token, revoked_by=caller.principal_id)
        except CredentialStoreError as e:
            logger.error(f"Emergency token revoke failed: {e}")
            raise StoreUnavailableError(detail="Emergency token store unavailable") from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)
