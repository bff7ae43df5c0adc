"""Schéma des enregistrements de session stockés dans le Credential Store."""

from datetime import UTC, datetime

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

from app.schemas.identity import Identity


class SessionRecord(BaseModel):
    """
    Session liée à exactement une variante d'identité.

    Créée au login et détruite au logout ou à l'expiration (flux externes);
    ce service ne fait que la lire.
    """

    model_config = ConfigDict(frozen=True)

    token: str
    identity: Identity = Field(..., description="Identité liée à la session")
    issued_at: AwareDatetime
    expires_at: AwareDatetime

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(UTC)
        return now >= self.expires_at
