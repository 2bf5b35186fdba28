"""Database models."""

from app.models.booking import Booking
from app.models.institution import Category, Institution

__all__ = [
    # Booking
    "Booking",
    # Directory (read-only)
    "Institution",
    "Category",
]
