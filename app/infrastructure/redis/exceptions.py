"""Exceptions du Credential Store et du Token Store."""


class CredentialStoreError(Exception):
    """Store injoignable, mal configuré, ou réponse illisible."""

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message)
        self.message = message
        self.operation = operation


class CredentialStoreUnavailableError(CredentialStoreError):
    """Raised when the store cannot be reached (connexion, timeout)."""

    pass
