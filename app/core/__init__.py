"""Core utilities and security modules."""

from app.core.exceptions import (
    AppException,
    AuthenticationError,
    AuthorizationError,
    GatewayFailure,
    InvalidBookingStatus,
    InvalidSignature,
    NotFoundError,
    NotificationFailure,
    RenderFailure,
    StorageFailure,
    UpstreamFailure,
    ValidationError,
)
from app.core.security import Visitor, verify_token

__all__ = [
    "AppException",
    "AuthenticationError",
    "AuthorizationError",
    "GatewayFailure",
    "InvalidBookingStatus",
    "InvalidSignature",
    "NotFoundError",
    "NotificationFailure",
    "RenderFailure",
    "StorageFailure",
    "UpstreamFailure",
    "ValidationError",
    "Visitor",
    "verify_token",
]
