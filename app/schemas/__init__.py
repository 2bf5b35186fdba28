"""Pydantic schemas for API validation."""

from app.schemas.booking import (
    BookingCreate,
    BookingCreateResponse,
    BookingListResponse,
    BookingResponse,
    BookingStatusUpdate,
    BookingView,
    PaymentOrderResponse,
    PaymentVerifyRequest,
    PaymentVerifyResponse,
    ReceiptLinkResponse,
)

__all__ = [
    # Booking
    "BookingCreate",
    "BookingCreateResponse",
    "BookingListResponse",
    "BookingResponse",
    "BookingStatusUpdate",
    "BookingView",
    # Payment
    "PaymentOrderResponse",
    "PaymentVerifyRequest",
    "PaymentVerifyResponse",
    "ReceiptLinkResponse",
]
