"""Admin panel endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_booking_service, get_current_admin
from app.config import settings
from app.core.exceptions import ValidationError
from app.core.security import Visitor
from app.domain.booking_state import BOOKING_STATUSES
from app.schemas.booking import (
    BookingListResponse,
    BookingResponse,
    BookingStatsResponse,
    BookingStatusUpdate,
    ReceiptLinkResponse,
)
from app.services.booking_service import BookingService

router = APIRouter()


# ============ BOOKINGS ============


@router.get("/bookings", response_model=BookingListResponse)
async def list_bookings(
    admin: Annotated[Visitor, Depends(get_current_admin)],
    service: Annotated[BookingService, Depends(get_booking_service)],
    status: str | None = None,
    search: str | None = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> BookingListResponse:
    """List all bookings with optional status filter and search."""
    if status and status not in BOOKING_STATUSES:
        raise ValidationError(f"Unknown booking status: {status}")

    bookings, total = await service.list_bookings(
        status=status, search=search, page=page, page_size=page_size
    )
    return BookingListResponse(bookings=bookings, total=total, page=page, page_size=page_size)


@router.get("/stats", response_model=BookingStatsResponse)
async def get_booking_stats(
    admin: Annotated[Visitor, Depends(get_current_admin)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> BookingStatsResponse:
    """Booking counts and amounts per status, plus confirmed revenue."""
    return await service.get_stats()


@router.put("/bookings/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    booking_id: str,
    payload: BookingStatusUpdate,
    admin: Annotated[Visitor, Depends(get_current_admin)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> BookingResponse:
    """Override a booking's status. Only cancellation is accepted."""
    booking = await service.update_status(booking_id, payload.status)
    return BookingResponse.model_validate(booking)


@router.get("/bookings/{booking_id}/receipt", response_model=ReceiptLinkResponse)
async def get_booking_receipt(
    booking_id: str,
    admin: Annotated[Visitor, Depends(get_current_admin)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> ReceiptLinkResponse:
    """Get a time-limited download link for a booking's receipt."""
    url = await service.get_receipt_url(booking_id)
    return ReceiptLinkResponse(
        booking_id=booking_id,
        url=url,
        expires_in=settings.receipt_url_expiry_seconds,
    )
