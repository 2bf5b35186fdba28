"""API dependencies for authentication and common operations."""

from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuthenticationError, AuthorizationError, NotFoundError
from app.core.security import Visitor, verify_token, visitor_from_claims
from app.database import get_db
from app.services.booking_service import BookingService

# Security scheme
security = HTTPBearer(auto_error=False)


async def get_current_visitor(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> Visitor:
    """Get the current authenticated visitor from the identity provider token."""
    if credentials is None:
        raise AuthenticationError("Missing bearer token")

    payload = verify_token(credentials.credentials)
    return visitor_from_claims(payload)


async def get_current_admin(
    current_visitor: Annotated[Visitor, Depends(get_current_visitor)],
) -> Visitor:
    """Get current visitor and verify they are an admin."""
    if not current_visitor.is_admin:
        raise AuthorizationError("Admin access required")
    return current_visitor


async def get_booking_service(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> BookingService:
    """Build a request-scoped BookingService around the app's shared clients."""
    state = request.app.state
    return BookingService(
        db=db,
        gateway=state.gateway,
        renderer=state.renderer,
        storage=state.storage,
        notifier=state.notifier,
    )


class BookingPermissionChecker:
    """Check if the visitor may access a booking."""

    async def __call__(
        self,
        booking_id: str,
        current_visitor: Annotated[Visitor, Depends(get_current_visitor)],
        db: Annotated[AsyncSession, Depends(get_db)],
    ) -> Visitor:
        """Owners and admins pass; everyone else gets 403."""
        from app.models.booking import Booking

        # Admin always has access
        if current_visitor.is_admin:
            return current_visitor

        result = await db.execute(select(Booking.user_id).where(Booking.booking_id == booking_id))
        owner_id = result.scalar_one_or_none()

        if owner_id is None:
            raise NotFoundError("Booking", booking_id)

        if owner_id != current_visitor.id:
            raise AuthorizationError("You don't have permission to access this booking")

        return current_visitor


require_booking_access = BookingPermissionChecker()
