"""Persistence for booking records.

The store flushes but never commits; the calling service owns transaction
boundaries. State changes are conditional single-statement UPDATEs keyed by
booking_id so concurrent writers cannot interleave a read-modify-write.
"""

from datetime import UTC, date, datetime
from decimal import Decimal

from sqlalchemy import Select, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError, ValidationError
from app.domain.booking_state import CANCELLED, CONFIRMED, PENDING
from app.models.booking import Booking
from app.models.institution import Category, Institution
from app.utils.booking_number import generate_booking_id

BookingRow = tuple[Booking, Institution | None, Category | None]


class BookingStore:
    """Booking table access for one session."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    def _joined(self) -> Select:
        return (
            select(Booking, Institution, Category)
            .outerjoin(Institution, Booking.institution_id == Institution.id)
            .outerjoin(Category, Institution.category_id == Category.id)
            .execution_options(populate_existing=True)
        )

    async def insert(
        self,
        *,
        user_id: str,
        institution_id: str,
        visitor_name: str,
        visitor_email: str | None,
        visitor_phone: str | None,
        visit_date: date,
        visit_time: str,
        amount: Decimal,
        currency: str,
        notes: str | None,
    ) -> Booking:
        """Insert a new pending booking."""
        booking = Booking(
            booking_id=await generate_booking_id(self.db),
            user_id=user_id,
            institution_id=institution_id,
            visitor_name=visitor_name,
            visitor_email=visitor_email,
            visitor_phone=visitor_phone,
            visit_date=visit_date,
            visit_time=visit_time,
            amount=amount,
            currency=currency,
            notes=notes,
            status=PENDING,
        )
        self.db.add(booking)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise NotFoundError("Institution", institution_id)

        await self.db.refresh(booking)
        return booking

    async def get(self, booking_id: str) -> Booking | None:
        result = await self.db.execute(
            select(Booking)
            .where(Booking.booking_id == booking_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_with_institution(self, booking_id: str) -> BookingRow | None:
        """Booking plus its institution and category (left joins)."""
        result = await self.db.execute(self._joined().where(Booking.booking_id == booking_id))
        row = result.one_or_none()
        if row is None:
            return None
        return row[0], row[1], row[2]

    async def attach_order(self, booking_id: str, order_id: str) -> bool:
        """Record the gateway order on a pending booking that has none yet.

        Returns False if the booking already carries an order or is no longer pending.
        """
        result = await self.db.execute(
            update(Booking)
            .where(
                Booking.booking_id == booking_id,
                Booking.status == PENDING,
                Booking.order_id.is_(None),
            )
            .values(order_id=order_id, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def confirm(self, booking_id: str, payment_id: str, pdf_url: str) -> bool:
        """Move a pending booking to confirmed with its payment and receipt.

        Returns False if the booking was no longer pending.
        """
        try:
            result = await self.db.execute(
                update(Booking)
                .where(Booking.booking_id == booking_id, Booking.status == PENDING)
                .values(
                    status=CONFIRMED,
                    payment_id=payment_id,
                    pdf_url=pdf_url,
                    confirmed_at=datetime.now(UTC),
                    updated_at=func.now(),
                )
                .execution_options(synchronize_session=False)
            )
        except IntegrityError:
            await self.db.rollback()
            raise ValidationError("This payment has already been applied to another booking")
        return result.rowcount == 1

    async def cancel(self, booking_id: str, current_status: str) -> bool:
        """Cancel a booking still in ``current_status``."""
        result = await self.db.execute(
            update(Booking)
            .where(Booking.booking_id == booking_id, Booking.status == current_status)
            .values(status=CANCELLED, cancelled_at=datetime.now(UTC), updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def list_for_user(self, user_id: str) -> list[BookingRow]:
        result = await self.db.execute(
            self._joined()
            .where(Booking.user_id == user_id)
            .order_by(Booking.created_at.desc(), Booking.booking_id)
        )
        return [(b, i, c) for b, i, c in result.all()]

    async def list_all(
        self,
        status: str | None = None,
        search: str | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[BookingRow], int]:
        """Filtered, paginated listing for administrators."""
        query = self._joined()
        if status:
            query = query.where(Booking.status == status)
        if search:
            pattern = f"%{search.lower()}%"
            query = query.where(
                or_(
                    func.lower(Booking.visitor_name).like(pattern),
                    func.lower(Booking.booking_id).like(pattern),
                    func.lower(Institution.name).like(pattern),
                )
            )

        count_result = await self.db.execute(select(func.count()).select_from(query.subquery()))
        total = count_result.scalar() or 0

        result = await self.db.execute(
            query.order_by(Booking.created_at.desc(), Booking.booking_id).offset(offset).limit(limit)
        )
        return [(b, i, c) for b, i, c in result.all()], total

    async def totals_by_status(self) -> dict[str, tuple[int, Decimal]]:
        """Booking count and summed amount for each status present."""
        result = await self.db.execute(
            select(Booking.status, func.count(), func.sum(Booking.amount)).group_by(Booking.status)
        )
        return {
            status: (count, Decimal(str(total or 0)).quantize(Decimal("0.01")))
            for status, count, total in result.all()
        }
