import json
from typing import Literal, TypeAlias

from opentelemetry.sdk.resources import Resource
from pydantic import AnyHttpUrl, field_validator
from pydantic_settings import BaseSettings

# Type personnalisé pour les listes configurables depuis l'environnement
ConfigurableList: TypeAlias = str | list[str] | list[AnyHttpUrl]


def parse_list_from_env(value: ConfigurableList, field_name: str = "field") -> list[str]:
    """
    Fonction utilitaire pour parser une liste depuis une variable d'environnement.

    Supporte les formats suivants:
    - Liste Python directe: ['val1', 'val2']
    - Format JSON: '["val1", "val2"]'
    - Format virgules: "val1,val2,val3"
    - Chaîne vide: "" → []

    Args:
        value: La valeur à parser (chaîne ou liste)
        field_name: Nom du champ pour les messages d'erreur

    Returns:
        Liste de chaînes parsée

    Raises:
        ValueError: Si le format n'est pas valide
    """
    if isinstance(value, list):
        return value
    elif isinstance(value, str):
        value = value.strip()
        if value.startswith("["):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                raise ValueError(f"Format JSON invalide pour {field_name}: {value}")
        elif value:
            return [item.strip() for item in value.split(",") if item.strip()]
        else:
            return []
    raise ValueError(f"Valeur invalide pour {field_name}: {value}")


class Settings(BaseSettings):
    try:
        from app import __version__
    except ImportError:
        __version__ = "0.1.0"

    PROJECT_NAME: str = "core-clinic-access"
    PROJECT_SLUG: str = "access"
    VERSION: str = __version__
    DESCRIPTION: str = "Identity resolution and access control across clinic user domains"

    API_VERSIONS: list[str] = ["v1"]
    API_LATEST_VERSION: str = "v1"

    # Environnement
    ENVIRONMENT: Literal["development", "staging", "production", "test"] = "development"
    DEBUG: bool = False

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    LOG_FORMAT: str = "%(asctime)s %(levelname)s [%(name)s] [%(filename)s:%(lineno)d] - %(message)s"

    # OpenTelemetry
    OTEL_SERVICE_NAME: str = "core-clinic-access"

    # CORS
    # Définir dans .env, ex: ALLOWED_ORIGINS='["http://localhost:3000","https://myfrontend.com"]'
    ALLOWED_ORIGINS: ConfigurableList = []
    TRUSTED_HOSTS: ConfigurableList = ["localhost", "127.0.0.1"]

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: ConfigurableList) -> list[str]:
        """
        Permet de définir ALLOWED_ORIGINS de plusieurs façons:
        - Chaîne séparée par des virgules: "http://localhost:3000,https://api.exemple.com"
        - Format JSON: '["http://localhost:3000","https://api.exemple.com"]'
        - Liste Python directe (si déjà parsée)
        """
        return parse_list_from_env(v, "ALLOWED_ORIGINS")

    @field_validator("TRUSTED_HOSTS", mode="before")
    @classmethod
    def assemble_trusted_hosts(cls, v: ConfigurableList) -> list[str]:
        """Parse TRUSTED_HOSTS depuis une variable d'environnement."""
        return parse_list_from_env(v, "TRUSTED_HOSTS")

    # Redis (sessions + tokens d'urgence)
    REDIS_URL: str = "redis://localhost:6379"
    REDIS_DB: int = 0
    REDIS_SOCKET_TIMEOUT: float = 2.0
    REDIS_WRITE_RETRY_ATTEMPTS: int = 3
    SESSION_KEY_PREFIX: str = "access:session"
    EMERGENCY_KEY_PREFIX: str = "access:emergency"

    # Cookies et headers de session, un couple par domaine
    STAFF_SESSION_COOKIE: str = "staff-session"
    STAFF_SESSION_HEADER: str = "X-Staff-Session"
    PATIENT_SESSION_COOKIE: str = "patient-session"
    PATIENT_SESSION_HEADER: str = "X-Patient-Session"
    NURSE_SESSION_COOKIE: str = "nurse-session"
    NURSE_SESSION_HEADER: str = "X-Nurse-Session"
    ADMIN_SESSION_COOKIE: str = "analytics-admin-session"
    ADMIN_SESSION_HEADER: str = "X-Analytics-Admin-Session"

    SESSION_COOKIE_SECURE: bool = True
    SESSION_COOKIE_SAMESITE: Literal["lax", "strict", "none"] = "lax"

    # Redirections pour les requêtes de type page
    LOGIN_PATH: str = "/login"

    # Tokens d'urgence
    EMERGENCY_TOKEN_DEFAULT_TTL_SECONDS: int = 60 * 60 * 24
    EMERGENCY_TOKEN_MIN_TTL_SECONDS: int = 60
    EMERGENCY_TOKEN_MAX_TTL_SECONDS: int = 60 * 60 * 24 * 30
    # Conservation après expiration pour distinguer Expired/Revoked de NotFound
    EMERGENCY_TOKEN_RETENTION_SECONDS: int = 60 * 60 * 24 * 7
    EMERGENCY_ISSUER_ROLES: ConfigurableList = [
        "ADMIN",
        "CLINICA",
        "MEDICO",
        "ENFERMERO",
        "PACIENTE",
    ]

    @field_validator("EMERGENCY_ISSUER_ROLES", mode="before")
    @classmethod
    def assemble_issuer_roles(cls, v: ConfigurableList) -> list[str]:
        """Parse EMERGENCY_ISSUER_ROLES depuis une variable d'environnement."""
        return [role.upper() for role in parse_list_from_env(v, "EMERGENCY_ISSUER_ROLES")]

    # Data Store (service des dossiers patients)
    PATIENT_RECORDS_BASE_URL: AnyHttpUrl = "http://patient-records:8000/internal"
    PATIENT_RECORDS_TIMEOUT: float = 5.0
    PATIENT_RECORDS_RETRY_ATTEMPTS: int = 3

    @property
    def OTEL_RESOURCE_ATTRIBUTES(self) -> Resource:  # noqa: N802
        """Crée l'objet Resource pour OpenTelemetry avec les attributs du service."""
        return Resource(
            attributes={
                "service.name": self.OTEL_SERVICE_NAME,
                "service.version": self.VERSION,
                "service.environment": self.ENVIRONMENT,
                "service.debug": str(self.DEBUG).lower(),
            }
        )

    def get_api_prefix(self, version: str | None = None) -> str:
        """
        Get API prefix for a specific version.

        Args:
            version: API version (e.g., "v1", "v2"). Defaults to latest.

        Returns:
            API prefix string (e.g., "/api/v1")
        """
        version = version or self.API_LATEST_VERSION
        return f"/api/{version}"

    class Config:
        case_sensitive = True
        env_file = ".env"
        extra = "ignore"


# Instance unique des paramètres chargée depuis .env
settings = Settings()
