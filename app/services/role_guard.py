"""Contrôle de rôle par liste blanche.

Le guard ne fait que décider; la traduction d'un refus en redirection (page)
ou en erreur structurée (API) appartient à l'appelant.
"""

import logging
from collections.abc import Collection

from opentelemetry import metrics, trace

from app.schemas.access import AccessDecision, Allow, Deny, DenyReason
from app.schemas.identity import Identity, Role, Unauthenticated

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

meter = metrics.get_meter("core-clinic-access.access")

access_granted_counter = meter.create_counter(
    name="access_granted_total",
    description="Total number of allowed access decisions",
    unit="1",
)

access_denied_counter = meter.create_counter(
    name="access_denied_total",
    description="Total number of denied access decisions",
    unit="1",
)


def authorize(
    identity: Identity | Unauthenticated | None,
    allowed_roles: Collection[Role],
    scope_name: str = "unscoped",
) -> AccessDecision:
    """
    Vérifie le rôle d'une identité contre une liste blanche.

    Args:
        identity: Identité résolue, ou résultat de résolution en échec
        allowed_roles: Rôles autorisés pour le périmètre
        scope_name: Nom du périmètre (labels de métriques et logs)

    Returns:
        Allow(identity) si le rôle est dans la liste, sinon Deny(reason)
    """
    with tracer.start_as_current_span("authorize_role") as span:
        span.set_attribute("access.scope", scope_name)

        if identity is None or isinstance(identity, Unauthenticated):
            decision: AccessDecision = Deny(DenyReason.NOT_AUTHENTICATED)
        elif identity.role in allowed_roles:
            decision = Allow(identity)
        else:
            logger.info(
                f"Role {identity.role.value} not permitted for scope {scope_name} "
                f"(principal {identity.principal_id})"
            )
            decision = Deny(DenyReason.ROLE_NOT_PERMITTED)

        if isinstance(decision, Allow):
            span.set_attribute("access.decision", "allow")
            access_granted_counter.add(1, {"scope": scope_name})
        else:
            span.set_attribute("access.decision", decision.reason.value)
            access_denied_counter.add(1, {"scope": scope_name, "reason": decision.reason.value})
        return decision
