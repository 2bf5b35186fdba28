"""Booking endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from app.api.deps import get_booking_service, get_current_visitor, require_booking_access
from app.config import settings
from app.core.middleware import booking_limiter, payment_limiter
from app.core.security import Visitor
from app.gateways.base import PaymentOrder
from app.schemas.booking import (
    BookingCreate,
    BookingCreateResponse,
    BookingResponse,
    BookingView,
    PaymentOrderResponse,
    PaymentVerifyRequest,
    PaymentVerifyResponse,
)
from app.services.booking_service import BookingService

router = APIRouter()


def _order_response(order: PaymentOrder) -> PaymentOrderResponse:
    return PaymentOrderResponse(
        order_id=order.order_id,
        amount=order.amount,
        currency=order.currency,
        receipt=order.receipt,
        key_id=settings.razorpay_key_id,
    )


@router.post(
    "",
    response_model=BookingCreateResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(booking_limiter)],
)
async def create_booking(
    booking_data: BookingCreate,
    current_visitor: Annotated[Visitor, Depends(get_current_visitor)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> BookingCreateResponse:
    """Create a pending booking and open its payment order."""
    created = await service.create_booking(current_visitor, booking_data)
    return BookingCreateResponse(
        booking=BookingResponse.model_validate(created.booking),
        payment=_order_response(created.payment_order),
    )


@router.get("", response_model=list[BookingView])
async def list_my_bookings(
    current_visitor: Annotated[Visitor, Depends(get_current_visitor)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> list[BookingView]:
    """List the current visitor's bookings, newest first."""
    return await service.list_visitor_bookings(current_visitor.id)


@router.post(
    "/verify-payment",
    response_model=PaymentVerifyResponse,
    dependencies=[Depends(payment_limiter)],
)
async def verify_payment(
    payload: PaymentVerifyRequest,
    current_visitor: Annotated[Visitor, Depends(get_current_visitor)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> PaymentVerifyResponse:
    """Verify the checkout callback and confirm the booking.

    Safe to retry with the same values: a booking that is already confirmed
    is returned with ``already_confirmed`` set and nothing is redone.
    """
    result = await service.verify_payment(
        order_ref=payload.razorpay_order_id,
        payment_ref=payload.razorpay_payment_id,
        signature=payload.razorpay_signature,
        booking_id=payload.booking_id,
    )
    return PaymentVerifyResponse(
        already_confirmed=result.already_confirmed,
        booking=BookingResponse.model_validate(result.booking),
    )


@router.get("/{booking_id}", response_model=BookingView)
async def get_booking(
    booking_id: str,
    current_visitor: Annotated[Visitor, Depends(require_booking_access)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> BookingView:
    """Get booking details with institution and category."""
    return await service.get_booking_details(booking_id)


@router.post(
    "/{booking_id}/payment-order",
    response_model=PaymentOrderResponse,
    dependencies=[Depends(payment_limiter)],
)
async def create_payment_order(
    booking_id: str,
    current_visitor: Annotated[Visitor, Depends(get_current_visitor)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> PaymentOrderResponse:
    """Open a fresh payment order for a pending booking."""
    order = await service.create_payment_order(current_visitor, booking_id)
    return _order_response(order)
