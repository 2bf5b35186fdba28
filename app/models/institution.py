"""Institution and category models.

These tables are owned by the directory side of the platform. The booking
pipeline only reads them to build booking views and receipts.
"""

from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import JSON, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class Category(Base):
    """Institution category (school, college, coaching centre, ...)."""

    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)


class Institution(Base):
    """Educational institution listed in the directory."""

    __tablename__ = "institutions"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    category_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("categories.id"))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    address: Mapped[str | None] = mapped_column(Text)
    city: Mapped[str | None] = mapped_column(String(100))
    state: Mapped[str | None] = mapped_column(String(100))
    contact: Mapped[dict | None] = mapped_column(JSON)  # {"phone", "email", "website"}
    visiting_hours: Mapped[list | None] = mapped_column(JSON)  # [{"day", "hours"}]
    thumbnail_url: Mapped[str | None] = mapped_column(String(500))
    booking_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)

    # Relationships
    category: Mapped["Category | None"] = relationship("Category", lazy="raise")
