"""Adaptateur cookie/header de la requête courante."""

from fastapi import Request, Response


class CookieCredentialStore:
    """
    Credential Store Adapter lié à une requête.

    ``get`` lit un cookie, ``get_header`` un en-tête; ``set`` pose un cookie
    sur la réponse si elle est fournie (flux de login/logout).
    """

    def __init__(
        self,
        request: Request,
        response: Response | None = None,
        secure: bool = True,
        samesite: str = "lax",
    ):
        self._request = request
        self._response = response
        self._secure = secure
        self._samesite = samesite

    def get(self, name: str) -> str | None:
        value = self._request.cookies.get(name)
        return value or None

    def get_header(self, name: str) -> str | None:
        value = self._request.headers.get(name)
        return (value.strip() or None) if value else None

    def set(self, name: str, value: str, max_age: int | None = None) -> None:
        if self._response is None:
            raise RuntimeError("No response bound to this credential store")
        self._response.set_cookie(
            key=name,
            value=value,
            max_age=max_age,
            httponly=True,
            secure=self._secure,
            samesite=self._samesite,
            path="/",
        )

    def delete(self, name: str) -> None:
        if self._response is None:
            raise RuntimeError("No response bound to this credential store")
        self._response.delete_cookie(key=name, path="/")
