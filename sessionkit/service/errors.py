from __future__ import annotations

from enum import Enum
from typing import Optional


class AuthErrorKind(str, Enum):
    """Failure kinds of the token lifecycle.

    ``INVALID_IDENTIFIER`` and ``INVALID_CREDENTIAL`` must look identical to an
    end user; only server-side code and logs may tell them apart.
    """

    INVALID_IDENTIFIER = "INVALID_IDENTIFIER"
    INVALID_CREDENTIAL = "INVALID_CREDENTIAL"
    PERSISTENCE_FAILURE = "PERSISTENCE_FAILURE"
    INVALID_ACCESS_TOKEN = "INVALID_ACCESS_TOKEN"
    INVALID_REFRESH_TOKEN = "INVALID_REFRESH_TOKEN"


class ServiceError(Exception):
    """Base class for service-layer exceptions mapped to HTTP responses.

    Each exception class defines both an HTTP ``status_code`` and a stable
    ``error_code``:
    - unauthorized (401)
    - validation_error (400)
    - server_error (500)
    """

    status_code: int = 400
    error_code: str = "validation_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        detail: Optional[dict] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.detail = detail or {}


class AuthenticationError(ServiceError):
    """Authentication failed or missing (401)."""
    status_code = 401
    error_code = "unauthorized"
    kind: AuthErrorKind


class ServerError(ServiceError):
    """Internal server error (500)."""
    status_code = 500
    error_code = "server_error"


# Shared by identifier and credential failures so responses cannot be told apart
INVALID_CREDENTIALS_MESSAGE = "invalid credentials"


class InvalidIdentifierError(AuthenticationError):
    """No record matches the scope and identifier pair."""

    kind = AuthErrorKind.INVALID_IDENTIFIER

    def __init__(self) -> None:
        super().__init__(INVALID_CREDENTIALS_MESSAGE)


class InvalidCredentialError(AuthenticationError):
    """Credential missing, wrong, or the comparison itself failed."""

    kind = AuthErrorKind.INVALID_CREDENTIAL

    def __init__(self) -> None:
        super().__init__(INVALID_CREDENTIALS_MESSAGE)


class InvalidTokenError(AuthenticationError):
    """A presented access or refresh token failed verification."""

    def __init__(
        self,
        kind: AuthErrorKind = AuthErrorKind.INVALID_ACCESS_TOKEN,
        message: str = "invalid or expired token",
    ) -> None:
        super().__init__(message)
        self.kind = kind


class PersistenceFailureError(ServerError):
    """The adapter could not store the refresh token; no session exists."""

    kind = AuthErrorKind.PERSISTENCE_FAILURE

    def __init__(self, message: str = "unable to establish session") -> None:
        super().__init__(message)


__all__ = [
    "AuthErrorKind",
    "ServiceError",
    "AuthenticationError",
    "ServerError",
    "InvalidIdentifierError",
    "InvalidCredentialError",
    "InvalidTokenError",
    "PersistenceFailureError",
    "INVALID_CREDENTIALS_MESSAGE",
]
