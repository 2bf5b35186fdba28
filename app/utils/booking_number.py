"""Booking identifier generation."""

import secrets
import string

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings

BOOKING_ID_ALPHABET = string.ascii_uppercase + string.digits
BOOKING_ID_LENGTH = 8


def new_booking_id(prefix: str | None = None) -> str:
    """Random booking id like 'CV-A3B7K9Q2'."""
    random_part = "".join(secrets.choice(BOOKING_ID_ALPHABET) for _ in range(BOOKING_ID_LENGTH))
    return f"{prefix or settings.booking_id_prefix}-{random_part}"


async def generate_booking_id(db: AsyncSession, prefix: str | None = None) -> str:
    """Generate a booking id not yet present in the bookings table.

    Args:
        db: Database session for uniqueness check
        prefix: Optional prefix override

    Returns:
        str: Unique booking id like 'CV-A3B7K9Q2'
    """
    from app.models.booking import Booking

    while True:
        booking_id = new_booking_id(prefix)

        # Check uniqueness
        result = await db.execute(
            select(Booking.booking_id).where(Booking.booking_id == booking_id)
        )
        if result.scalar_one_or_none() is None:
            return booking_id
