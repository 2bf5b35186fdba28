"""Booking database model."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Date, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.database import Base

if TYPE_CHECKING:
    from app.models.institution import Institution


class Booking(Base):
    """A visit booking placed by a visitor at an institution."""

    __tablename__ = "bookings"

    booking_id: Mapped[str] = mapped_column(String(20), primary_key=True)  # CV-XXXXXXXX
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    institution_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("institutions.id"), nullable=False, index=True
    )

    # Visitor contact, snapshotted at creation
    visitor_name: Mapped[str] = mapped_column(String(200), nullable=False)
    visitor_email: Mapped[str | None] = mapped_column(String(255))
    visitor_phone: Mapped[str | None] = mapped_column(String(20))

    # Schedule (advisory, no capacity checks)
    visit_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    visit_time: Mapped[str] = mapped_column(String(10), nullable=False)  # HH:MM

    # Payment
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="INR", nullable=False)
    order_id: Mapped[str | None] = mapped_column(String(64))
    payment_id: Mapped[str | None] = mapped_column(String(64), unique=True)
    pdf_url: Mapped[str | None] = mapped_column(String(500))

    notes: Mapped[str | None] = mapped_column(Text)

    # Status
    status: Mapped[str] = mapped_column(
        String(20), default="pending", nullable=False, index=True
    )  # pending, confirmed, cancelled

    # Timestamps
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    institution: Mapped["Institution"] = relationship("Institution", lazy="raise")
