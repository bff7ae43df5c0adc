"""
Schémas de réponses OpenAPI pour RFC 9457 Problem Details.

Documente dans OpenAPI le format ``application/problem+json`` produit par
les handlers de ``app.core.exceptions``.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ProblemDetailResponse(BaseModel):
    """Document RFC 9457 avec l'extension ``code`` (raison machine stable)."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "type": "about:blank",
                "title": "Forbidden",
                "status": 403,
                "detail": "Role MEDICO is not permitted for scope clinic-dashboard",
                "instance": "/api/v1/access/decision",
                "code": "role_not_permitted",
            }
        }
    )

    type: str = Field("about:blank", description="URI identifiant le type de problème")
    title: str = Field(..., description="Résumé court du type de problème")
    status: int = Field(..., description="Code de statut HTTP")
    detail: str | None = Field(None, description="Explication spécifique à cette occurrence")
    instance: str | None = Field(None, description="URI de l'occurrence")
    code: str = Field(..., description="Raison machine stable")
    trace_id: str | None = Field(None, description="Trace OpenTelemetry de la requête")
    errors: list[dict[str, Any]] | None = Field(None, description="Erreurs de validation")


def build_responses(*status_codes: int) -> dict[int | str, dict[str, Any]]:
    """Construit le dictionnaire ``responses`` d'un endpoint pour les codes donnés."""
    descriptions = {
        401: "Not Authenticated",
        403: "Forbidden",
        404: "Not Found",
        422: "Validation Error",
        500: "Internal Server Error",
        503: "Service Unavailable",
    }
    return {
        code: {
            "model": ProblemDetailResponse,
            "description": descriptions.get(code, "Problem"),
        }
        for code in status_codes
    }


COMMON_RESPONSES = build_responses(500, 503)
auth_responses = build_responses(401, 403)
