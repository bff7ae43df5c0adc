"""
RFC 9457 Problem Details pour HTTP APIs.

Toutes les erreurs API du service sont rendues en ``application/problem+json``
avec l'extension ``code``, une raison machine stable que les clients peuvent
tester sans parser ``detail``. Les échecs sur des requêtes de type page ne
passent pas par ici: ils sont convertis en redirections (``AccessRedirect``).
"""

import logging
from http import HTTPStatus
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from opentelemetry import trace
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.schemas.responses import ProblemDetailResponse as ProblemDetail

logger = logging.getLogger(__name__)

PROBLEM_JSON = "application/problem+json"


class AccessProblem(HTTPException):
    """
    Exception de base portant un document Problem Details.

    Les sous-classes fixent ``http_status``, ``title`` et ``code``; seul ``detail``
    varie d'une occurrence à l'autre.

    Example:
        ```python
        raise RoleNotPermittedError(detail="Role MEDICO is not permitted for clinic-dashboard")
        ```
    """

    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    title: str = "Internal Server Error"
    code: str = "internal_error"
    type: str = "about:blank"

    def __init__(
        self,
        detail: str | None = None,
        instance: str | None = None,
        headers: dict[str, str] | None = None,
    ):
        """
        Initialise l'exception avec son document RFC 9457.

        Args:
            detail: Description de cette occurrence
            instance: URI de l'occurrence (chemin de la requête par défaut)
            headers: En-têtes HTTP additionnels
        """
        super().__init__(status_code=self.http_status, detail=detail, headers=headers)
        self.problem_detail = ProblemDetail(
            type=self.type,
            title=self.title,
            status=self.http_status,
            detail=detail,
            instance=instance,
            code=self.code,
        )


class NotAuthenticatedError(AccessProblem):
    http_status = status.HTTP_401_UNAUTHORIZED
    title = "Unauthorized"
    code = "not_authenticated"

    def __init__(self, detail: str = "Authentication required", instance: str | None = None):
        super().__init__(detail=detail, instance=instance, headers={"WWW-Authenticate": "Session"})


class RoleNotPermittedError(AccessProblem):
    http_status = status.HTTP_403_FORBIDDEN
    title = "Forbidden"
    code = "role_not_permitted"


class TenantScopeError(AccessProblem):
    """Périmètre organisation obligatoire absent (incohérence de données)."""

    http_status = status.HTTP_403_FORBIDDEN
    title = "Forbidden"
    code = "tenant_integrity"


class PatientOutOfScopeError(AccessProblem):
    http_status = status.HTTP_403_FORBIDDEN
    title = "Forbidden"
    code = "patient_out_of_scope"


class EmergencyTokenNotFoundError(AccessProblem):
    """
    Réponse unique pour tout token d'urgence invalide.

    Inconnu, expiré ou révoqué: le détail est identique afin que la frontière
    publique ne révèle pas l'état interne du token.
    """

    http_status = status.HTTP_404_NOT_FOUND
    title = "Not Found"
    code = "emergency_token_not_found"

    def __init__(self, instance: str | None = None):
        super().__init__(detail="Emergency access link not found", instance=instance)


class StoreUnavailableError(AccessProblem):
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    title = "Service Unavailable"
    code = "store_unavailable"


class InvalidRequestError(AccessProblem):
    http_status = 422
    title = "Unprocessable Entity"
    code = "validation_error"


class AccessRedirect(Exception):
    """Échec d'accès sur une requête de type page, converti en redirection 303."""

    def __init__(self, location: str, reason: str):
        self.location = location
        self.reason = reason
        super().__init__(f"Redirect to {location} ({reason})")


def _current_trace_id() -> str | None:
    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return None
    return format(span_context.trace_id, "032x")


def problem_response(
    problem: ProblemDetail, request: Request, headers: dict[str, str] | None = None
) -> JSONResponse:
    """Sérialise un document Problem Details en réponse HTTP."""
    body: dict[str, Any] = problem.model_dump(exclude_none=True)
    body.setdefault("instance", request.url.path)
    trace_id = _current_trace_id()
    if trace_id:
        body["trace_id"] = trace_id
    return JSONResponse(
        status_code=problem.status,
        content=jsonable_encoder(body),
        media_type=PROBLEM_JSON,
        headers=headers,
    )


def setup_problem_details_handlers(app: FastAPI, expose_internal_errors: bool = False) -> None:
    """
    Enregistre les exception handlers RFC 9457 sur l'application.

    Args:
        app: Application FastAPI
        expose_internal_errors: Si True, le détail des erreurs 500 inclut le message
            de l'exception (à réserver au développement)
    """

    async def access_problem_handler(request: Request, exc: AccessProblem) -> JSONResponse:
        return problem_response(exc.problem_detail, request, headers=exc.headers)

    async def redirect_handler(request: Request, exc: AccessRedirect) -> RedirectResponse:
        logger.info(f"Page access redirected to {exc.location}: {exc.reason}")
        return RedirectResponse(url=exc.location, status_code=status.HTTP_303_SEE_OTHER)

    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        problem = ProblemDetail(
            title=_reason_phrase(exc.status_code),
            status=exc.status_code,
            detail=str(exc.detail) if exc.detail else None,
            code=f"http_{exc.status_code}",
        )
        return problem_response(problem, request, headers=getattr(exc, "headers", None))

    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        problem = ProblemDetail(
            title="Unprocessable Entity",
            status=422,
            detail="Request validation failed",
            code="validation_error",
            errors=jsonable_encoder(exc.errors()),
        )
        return problem_response(problem, request)

    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        detail = f"{type(exc).__name__}: {exc}" if expose_internal_errors else (
            "An unexpected error occurred"
        )
        problem = ProblemDetail(
            title="Internal Server Error",
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            code="internal_error",
        )
        return problem_response(problem, request)

    app.add_exception_handler(AccessProblem, access_problem_handler)
    app.add_exception_handler(AccessRedirect, redirect_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


def _reason_phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


__all__ = [
    "AccessProblem",
    "AccessRedirect",
    "EmergencyTokenNotFoundError",
    "InvalidRequestError",
    "NotAuthenticatedError",
    "PatientOutOfScopeError",
    "ProblemDetail",
    "RoleNotPermittedError",
    "StoreUnavailableError",
    "TenantScopeError",
    "setup_problem_details_handlers",
]
