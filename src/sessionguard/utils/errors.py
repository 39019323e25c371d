from typing import Optional


class ServiceError(Exception):
    """Base class for service-layer errors rendered as JSON responses."""

    status_code: int = 400

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class AuthError(ServiceError):
    """Missing, invalid, expired or revoked token (401)."""

    status_code = 401


class NotFoundError(ServiceError):
    """Session, user or key not found (404)."""

    status_code = 404


class ValidationError(ServiceError):
    """Missing or invalid input, checked before storage access (400)."""

    status_code = 400


class ConflictError(ServiceError):
    """Duplicate registration or an already-claimed key (409)."""

    status_code = 409


class DependencyError(ServiceError):
    """Mail, payment or OAuth provider failure (502)."""

    status_code = 502


__all__ = [
    "ServiceError",
    "AuthError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "DependencyError",
]
