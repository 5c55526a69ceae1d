"""API dependencies for authentication and common operations."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuthenticationError, AuthorizationError, NotFoundError
from app.core.security import verify_token
from app.database import get_db
from app.models.booking import Booking
from app.models.user import User

# Security scheme
security = HTTPBearer(auto_error=False)


async def authenticate_token(db: AsyncSession, token: str) -> User:
    """Resolve an access token to an active user."""
    try:
        payload = verify_token(token, token_type="access")
        user_id = UUID(payload.get("sub") or "")
    except AuthenticationError:
        raise
    except ValueError:
        raise AuthenticationError("Invalid token payload")

    # Fetch user from database
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthenticationError("User account is deactivated")

    return user


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Get the current authenticated user from JWT token."""
    if not credentials:
        raise AuthenticationError("Not authenticated")
    return await authenticate_token(db, credentials.credentials)


async def get_current_customer(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Get current user and verify they can book spaces."""
    if current_user.role not in ("customer", "admin"):
        raise AuthorizationError("Customer access required")
    return current_user


async def get_current_owner(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Get current user and verify they list parking spaces."""
    if current_user.role not in ("owner", "admin"):
        raise AuthorizationError("Owner access required")
    return current_user


class BookingPermissionChecker:
    """Check if user has permission to access a booking."""

    def __init__(self, allow_customer: bool = True, allow_owner: bool = True):
        self.allow_customer = allow_customer
        self.allow_owner = allow_owner

    async def __call__(
        self,
        booking_id: UUID,
        current_user: Annotated[User, Depends(get_current_user)],
        db: Annotated[AsyncSession, Depends(get_db)],
    ) -> User:
        """Check booking permissions."""
        result = await db.execute(select(Booking).where(Booking.id == booking_id))
        booking = result.scalar_one_or_none()

        if not booking:
            raise NotFoundError("Booking", str(booking_id))

        # Admin always has access
        if current_user.role == "admin":
            return current_user

        if self.allow_customer and booking.customer_id == current_user.id:
            return current_user

        if self.allow_owner and booking.owner_id == current_user.id:
            return current_user

        raise AuthorizationError("You don't have permission to access this booking")


# Convenience instances
require_booking_access = BookingPermissionChecker(allow_customer=True, allow_owner=True)
