"""Custom application exceptions."""

from typing import Any

from fastapi import HTTPException, status


class AppException(HTTPException):
    """Base application exception."""

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "An unexpected error occurred",
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class ValidationError(AppException):
    """Validation error exception."""

    def __init__(self, detail: str = "Validation failed", errors: list[dict[str, Any]] | None = None) -> None:
        self.errors = errors
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)


class NotFoundError(AppException):
    """Resource not found exception."""

    def __init__(self, resource: str = "Resource", identifier: str | None = None) -> None:
        detail = f"{resource} not found"
        if identifier:
            detail = f"{resource} with ID '{identifier}' not found"
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class AuthenticationError(AppException):
    """Authentication failed exception."""

    def __init__(self, detail: str = "Authentication failed") -> None:
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(AppException):
    """Authorization denied exception."""

    def __init__(self, detail: str = "You don't have permission to access this resource") -> None:
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class InvalidBookingStatus(AppException):
    """Invalid booking status for operation."""

    def __init__(self, detail: str = "This operation is not allowed for the current booking status") -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class InvalidSignature(AppException):
    """Payment verification failed.

    Terminal for the submitted payload: retrying with the same values will
    fail the same way.
    """

    def __init__(self, detail: str = "Invalid payment signature") -> None:
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class RateLimitExceeded(AppException):
    """Rate limit exceeded exception."""

    def __init__(self, detail: str = "Too many requests. Please try again later.") -> None:
        super().__init__(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=detail)


class UpstreamFailure(AppException):
    """An external dependency failed; the booking is left retryable."""

    service = "upstream"

    def __init__(
        self,
        detail: str | None = None,
        status_code: int = status.HTTP_502_BAD_GATEWAY,
    ) -> None:
        message = f"External service '{self.service}' is unavailable"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(status_code=status_code, detail=message)


class GatewayFailure(UpstreamFailure):
    """Payment gateway call failed or timed out."""

    service = "payment_gateway"


class StorageFailure(UpstreamFailure):
    """Object storage call failed or timed out."""

    service = "object_storage"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)


class RenderFailure(UpstreamFailure):
    """Receipt rendering failed or timed out."""

    service = "receipt_renderer"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


class NotificationFailure(Exception):
    """Email delivery failed. Never surfaced to API callers."""
