from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    """Base class for service-layer exceptions mapped to HTTP responses.

    Each class carries an HTTP ``status_code`` and a stable ``error_code``:
    - validation_error (400)
    - unauthorized (401)
    - forbidden (403)
    - not_found (404)
    - conflict (409)
    - rate_limited (429)
    - server_error (500)
    Domain subclasses refine the code while keeping the status.
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


class ValidationError(ServiceError):
    """Request validation failed (400)."""
    status_code = 400
    error_code = "validation_error"


class AuthenticationError(ServiceError):
    """Authentication failed or missing (401)."""
    status_code = 401
    error_code = "unauthorized"


class ForbiddenError(ServiceError):
    """Access denied (403)."""
    status_code = 403
    error_code = "forbidden"


class NotFoundError(ServiceError):
    """Requested resource not found (404)."""
    status_code = 404
    error_code = "not_found"


class ConflictError(ServiceError):
    """Resource conflict, e.g., duplicate creation (409)."""
    status_code = 409
    error_code = "conflict"


class RateLimitedError(ServiceError):
    """Rate limit exceeded (429)."""
    status_code = 429
    error_code = "rate_limited"


class ServerError(ServiceError):
    """Internal server error (500)."""
    status_code = 500
    error_code = "server_error"


# Token errors


class InvalidTokenError(AuthenticationError):
    error_code = "invalid_token"

    def __init__(self, message: str = "invalid token", **kwargs) -> None:
        super().__init__(message, **kwargs)


class ExpiredTokenError(AuthenticationError):
    error_code = "token_expired"

    def __init__(self, message: str = "token has expired", **kwargs) -> None:
        super().__init__(message, **kwargs)


# Login errors


class InvalidCredentialsError(AuthenticationError):
    # Same message for unknown user and wrong password
    error_code = "invalid_credentials"

    def __init__(self, message: str = "invalid username or password", **kwargs) -> None:
        super().__init__(message, **kwargs)


class UserDisabledError(ForbiddenError):
    error_code = "user_disabled"

    def __init__(self, message: str = "user account is disabled", **kwargs) -> None:
        super().__init__(message, **kwargs)


class TooManyAttemptsError(RateLimitedError):
    error_code = "too_many_attempts"

    def __init__(
        self, message: str = "too many login attempts, please try again later", **kwargs
    ) -> None:
        super().__init__(message, **kwargs)


class UserExistsError(ConflictError):
    def __init__(self, field: str, value: str) -> None:
        super().__init__(f"{field} '{value}' already exists", detail={"field": field})
        self.field = field


# SSO ticket errors


class InvalidServiceError(ValidationError):
    error_code = "invalid_service"

    def __init__(self, message: str = "invalid or missing service URL", **kwargs) -> None:
        super().__init__(message, **kwargs)


class TicketNotFoundError(AuthenticationError):
    error_code = "ticket_not_found"

    def __init__(self, message: str = "ticket not found or expired", **kwargs) -> None:
        super().__init__(message, **kwargs)


class ServiceMismatchError(ValidationError):
    # Relying-service integration bug, not a user error
    error_code = "service_mismatch"

    def __init__(self, message: str = "service URL mismatch", **kwargs) -> None:
        super().__init__(message, **kwargs)


__all__ = [
    "ServiceError",
    "ValidationError",
    "AuthenticationError",
    "ForbiddenError",
    "NotFoundError",
    "ConflictError",
    "RateLimitedError",
    "ServerError",
    "InvalidTokenError",
    "ExpiredTokenError",
    "InvalidCredentialsError",
    "UserDisabledError",
    "TooManyAttemptsError",
    "UserExistsError",
    "InvalidServiceError",
    "TicketNotFoundError",
    "ServiceMismatchError",
]
