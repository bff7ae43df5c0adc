"""Annotations Pydantic réutilisables pour validation.

Ce module centralise les types annotés pour assurer la cohérence
de la validation à travers tous les schémas Pydantic du service.
"""

from typing import Annotated

from pydantic import Field, StringConstraints

# Chaînes avec contraintes
NonEmptyStr = Annotated[str, StringConstraints(min_length=1, strip_whitespace=True)]

# Identifiants (UUID ou identifiants opaques du Data Store), sans caractère de
# structure d'URL
PATIENT_ID_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_.:\-]*$"

PatientId = Annotated[
    str,
    StringConstraints(
        min_length=1, max_length=64, strip_whitespace=True, pattern=PATIENT_ID_PATTERN
    ),
    Field(description="Identifiant unique du patient"),
]

# Tokens opaques URL-safe (sessions et liens d'urgence)
TOKEN_PATTERN = r"^[A-Za-z0-9_\-]{16,128}$"

OpaqueToken = Annotated[
    str,
    StringConstraints(pattern=TOKEN_PATTERN),
    Field(description="Token opaque URL-safe"),
]
