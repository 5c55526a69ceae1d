"""Core utilities and security modules."""

from app.core.exceptions import (
    AppException,
    AuthenticationError,
    AuthorizationError,
    CapacityExceeded,
    InvalidTransition,
    NotFoundError,
    PaymentError,
    ValidationError,
)
from app.core.security import (
    create_access_token,
    create_user_token,
    verify_token,
)

__all__ = [
    "AppException",
    "AuthenticationError",
    "AuthorizationError",
    "CapacityExceeded",
    "InvalidTransition",
    "NotFoundError",
    "PaymentError",
    "ValidationError",
    "create_access_token",
    "create_user_token",
    "verify_token",
]
