"""Booking-related Pydantic schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from app.utils.validators import normalize_phone, validate_indian_phone, validate_visit_time


class BookingCreate(BaseModel):
    """Schema for creating a booking."""

    institution_id: str = Field(..., min_length=1, max_length=36)
    visit_date: date
    visit_time: str = Field(..., examples=["10:00"])
    amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    notes: str | None = Field(None, max_length=1000)

    # Visitor contact (falls back to the identity's email when omitted)
    visitor_name: str = Field(..., min_length=1, max_length=200)
    visitor_email: EmailStr | None = None
    visitor_phone: str | None = Field(None, max_length=20)

    @field_validator("visit_time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        v = v.strip()
        # Accept HH:MM:SS from time pickers, store HH:MM
        if len(v) == 8 and v[5] == ":":
            v = v[:5]
        if not validate_visit_time(v):
            raise ValueError("visit_time must be HH:MM (24-hour)")
        return v

    @field_validator("visitor_phone")
    @classmethod
    def clean_phone(cls, v: str | None) -> str | None:
        if not v:
            return None
        if validate_indian_phone(v):
            return normalize_phone(v)
        return v.strip()


class BookingResponse(BaseModel):
    """Schema for booking response."""

    model_config = ConfigDict(from_attributes=True)

    booking_id: str
    user_id: str
    institution_id: str

    # Visitor
    visitor_name: str
    visitor_email: str | None
    visitor_phone: str | None

    # Schedule
    visit_date: date
    visit_time: str

    # Payment
    amount: Decimal
    currency: str
    order_id: str | None
    payment_id: str | None
    pdf_url: str | None

    notes: str | None
    status: str

    # Timestamps
    confirmed_at: datetime | None
    cancelled_at: datetime | None
    created_at: datetime | None
    updated_at: datetime | None


class BookingView(BookingResponse):
    """Booking joined with institution and category display fields."""

    institution_name: str | None = None
    institution_address: str | None = None
    institution_city: str | None = None
    institution_state: str | None = None
    institution_contact: dict[str, Any] = Field(default_factory=dict)
    visiting_hours: list[dict[str, Any]] = Field(default_factory=list)
    thumbnail_url: str | None = None
    category_name: str | None = None
    category_slug: str | None = None


class BookingListResponse(BaseModel):
    """Schema for paginated booking list."""

    bookings: list[BookingView]
    total: int
    page: int
    page_size: int


class PaymentOrderResponse(BaseModel):
    """Gateway order the client completes in the checkout widget."""

    order_id: str
    amount: int  # minor units (paise)
    currency: str
    receipt: str
    key_id: str | None = None


class BookingCreateResponse(BaseModel):
    """Pending booking plus the order to pay for it."""

    booking: BookingResponse
    payment: PaymentOrderResponse


class PaymentVerifyRequest(BaseModel):
    """Checkout callback values submitted by the client."""

    razorpay_order_id: str = Field(..., min_length=1, max_length=64)
    razorpay_payment_id: str = Field(..., min_length=1, max_length=64)
    razorpay_signature: str = Field(..., min_length=1, max_length=256)
    booking_id: str = Field(..., min_length=1, max_length=20)


class PaymentVerifyResponse(BaseModel):
    """Result of payment verification."""

    already_confirmed: bool
    booking: BookingResponse


class BookingStatusUpdate(BaseModel):
    """Admin status override."""

    status: str = Field(..., pattern="^(pending|confirmed|cancelled)$")


class ReceiptLinkResponse(BaseModel):
    """Time-limited receipt download link."""

    booking_id: str
    url: str
    expires_in: int


class BookingStatusTotals(BaseModel):
    """Count and summed amount for one status."""

    status: str
    count: int
    amount: Decimal


class BookingStatsResponse(BaseModel):
    """Admin dashboard totals. Revenue counts confirmed bookings only."""

    total_bookings: int
    revenue: Decimal
    by_status: list[BookingStatusTotals]
