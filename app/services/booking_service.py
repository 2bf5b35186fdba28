"""Booking lifecycle and payment settlement.

A booking is committed as ``pending`` before any payment order exists, and
becomes ``confirmed`` only after the payment signature checks out, the
receipt has been rendered and stored, and a single conditional UPDATE wins.
Render and upload failures leave the booking pending so the client can
retry verification with the same payment values. The confirmation email is
sent after the commit and its outcome never affects the result.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, settings as default_settings
from app.core.exceptions import (
    AuthorizationError,
    InvalidBookingStatus,
    InvalidSignature,
    NotFoundError,
    ValidationError,
)
from app.core.security import Visitor
from app.domain.booking_state import (
    BOOKING_STATUSES,
    CANCELLED,
    CONFIRMED,
    PENDING,
    assert_booking_transition,
)
from app.gateways.base import PaymentGateway, PaymentOrder, to_minor_units
from app.models.booking import Booking
from app.models.institution import Category, Institution
from app.schemas.booking import (
    BookingCreate,
    BookingStatsResponse,
    BookingStatusTotals,
    BookingView,
)
from app.services.booking_store import BookingStore
from app.services.notification_service import NotificationService
from app.services.receipt_service import RECEIPT_CONTENT_TYPE, ReceiptData, ReceiptRenderer
from app.services.storage_service import StorageService, receipt_key
from app.utils.validators import mask_sensitive_data

logger = logging.getLogger(__name__)

RECONCILABLE_PAYMENT_STATUSES = ("authorized", "captured")


@dataclass(frozen=True)
class BookingCreated:
    """A freshly committed pending booking and the order opened for it."""

    booking: Booking
    payment_order: PaymentOrder


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of a payment verification.

    ``already_confirmed`` is True when the booking was confirmed before this
    call; nothing was rendered, uploaded, written or emailed in that case.
    """

    already_confirmed: bool
    booking: Booking


def build_booking_view(
    booking: Booking,
    institution: Institution | None,
    category: Category | None,
) -> BookingView:
    """Flatten a booking row and its joins into the client-facing view."""
    view = BookingView.model_validate(booking)
    if institution is not None:
        view.institution_name = institution.name
        view.institution_address = institution.address
        view.institution_city = institution.city
        view.institution_state = institution.state
        view.institution_contact = institution.contact or {}
        view.visiting_hours = institution.visiting_hours or []
        view.thumbnail_url = institution.thumbnail_url
    if category is not None:
        view.category_name = category.name
        view.category_slug = category.slug
    return view


class BookingService:
    """Orchestrates booking creation, payment verification and receipts."""

    def __init__(
        self,
        db: AsyncSession,
        gateway: PaymentGateway,
        renderer: ReceiptRenderer,
        storage: StorageService,
        notifier: NotificationService,
        settings: Settings | None = None,
    ) -> None:
        self.db = db
        self.store = BookingStore(db)
        self.gateway = gateway
        self.renderer = renderer
        self.storage = storage
        self.notifier = notifier
        self.settings = settings or default_settings

    # ==================== CREATE ====================

    async def create_booking(self, visitor: Visitor, data: BookingCreate) -> BookingCreated:
        """Commit a pending booking, then open a gateway order for it.

        Raises:
            ValidationError: amount is not a positive two-decimal value
            NotFoundError: institution does not exist
            GatewayFailure: order creation failed; the booking stays pending
        """
        amount = Decimal(data.amount)
        if amount <= 0 or amount != amount.quantize(Decimal("0.01")):
            raise ValidationError("Amount must be a positive value with at most two decimal places")

        booking = await self.store.insert(
            user_id=visitor.id,
            institution_id=data.institution_id,
            visitor_name=data.visitor_name,
            visitor_email=data.visitor_email or visitor.email,
            visitor_phone=data.visitor_phone,
            visit_date=data.visit_date,
            visit_time=data.visit_time,
            amount=amount,
            currency=self.settings.razorpay_currency,
            notes=data.notes,
        )
        await self.db.commit()
        logger.info(
            f"Booking {booking.booking_id} created for institution {booking.institution_id} "
            f"({booking.currency} {amount})"
        )

        order = await self._open_order(booking, amount)
        return BookingCreated(booking=booking, payment_order=order)

    async def create_payment_order(self, visitor: Visitor, booking_id: str) -> PaymentOrder:
        """Return the payment order for a pending booking.

        The order already attached to the booking is handed back unchanged, so a
        checkout started before a retry can still be verified. A new gateway
        order is opened only when the booking has none.
        """
        booking = await self.store.get(booking_id)
        if booking is None:
            raise NotFoundError("Booking", booking_id)
        if booking.user_id != visitor.id and not visitor.is_admin:
            raise AuthorizationError("You can only pay for your own bookings")
        if booking.status != PENDING:
            raise InvalidBookingStatus(f"Booking {booking_id} is {booking.status}, not awaiting payment")

        if booking.order_id:
            logger.info(f"Booking {booking_id}: reusing open payment order {booking.order_id}")
            return self._stored_order(booking)

        return await self._open_order(booking, booking.amount)

    async def _open_order(self, booking: Booking, amount: Decimal) -> PaymentOrder:
        try:
            order = await self.gateway.create_order(
                amount=amount,
                currency=booking.currency,
                receipt=booking.booking_id,
                notes={"booking_id": booking.booking_id},
            )
        except Exception:
            logger.error(f"Booking {booking.booking_id}: payment order creation failed, booking left pending")
            raise

        attached = await self.store.attach_order(booking.booking_id, order.order_id)
        await self.db.commit()
        await self.db.refresh(booking)
        if not attached and booking.order_id:
            logger.warning(
                f"Booking {booking.booking_id}: order {order.order_id} discarded, "
                f"booking already uses {booking.order_id}"
            )
            return self._stored_order(booking)
        logger.info(f"Booking {booking.booking_id}: payment order {order.order_id} opened ({order.amount} minor units)")
        return order

    @staticmethod
    def _stored_order(booking: Booking) -> PaymentOrder:
        return PaymentOrder(
            order_id=booking.order_id,
            amount=to_minor_units(booking.amount),
            currency=booking.currency,
            receipt=booking.booking_id,
        )

    # ==================== VERIFY ====================

    async def verify_payment(
        self,
        order_ref: str,
        payment_ref: str,
        signature: str,
        booking_id: str,
    ) -> VerificationResult:
        """Verify a checkout callback and confirm the booking.

        Raises:
            InvalidSignature: signature, order or reconciliation mismatch
            NotFoundError: unknown booking
            InvalidBookingStatus: booking is cancelled
            GatewayFailure: reconciliation fetch failed
            RenderFailure: receipt could not be rendered; booking stays pending
            StorageFailure: receipt could not be stored; booking stays pending
        """
        if not self.gateway.verify_signature(order_ref, payment_ref, signature):
            logger.warning(
                f"Booking {booking_id}: signature mismatch for order {order_ref} "
                f"(signature {mask_sensitive_data(signature or '')})"
            )
            raise InvalidSignature()

        row = await self.store.get_with_institution(booking_id)
        if row is None:
            raise NotFoundError("Booking", booking_id)
        booking, institution, _ = row

        if booking.status == CONFIRMED:
            logger.info(f"Booking {booking_id}: already confirmed, skipping verification side effects")
            return VerificationResult(already_confirmed=True, booking=booking)

        assert_booking_transition(booking.status, CONFIRMED)

        if booking.order_id is None:
            logger.warning(f"Booking {booking_id}: no payment order opened, rejecting payment for {order_ref}")
            raise InvalidSignature("No payment order has been opened for this booking")
        if booking.order_id != order_ref:
            logger.warning(
                f"Booking {booking_id}: payment is for order {order_ref}, booking expects {booking.order_id}"
            )
            raise InvalidSignature("Payment does not belong to this booking's order")

        if self.settings.razorpay_reconcile_payments:
            await self._reconcile(booking, order_ref, payment_ref)

        if institution is None:
            raise NotFoundError("Institution", booking.institution_id)

        receipt = ReceiptData.from_booking(booking, institution, payment_id=payment_ref, order_id=order_ref)
        pdf = await self.renderer.render_async(receipt)
        pdf_url = await self.storage.put(receipt_key(booking_id), pdf, RECEIPT_CONTENT_TYPE)

        updated = await self.store.confirm(booking_id, payment_ref, pdf_url)
        await self.db.commit()

        confirmed = await self.store.get(booking_id)
        if not updated:
            if confirmed is not None and confirmed.status == CONFIRMED:
                logger.info(f"Booking {booking_id}: confirmed by a concurrent verification")
                return VerificationResult(already_confirmed=True, booking=confirmed)
            raise InvalidBookingStatus(f"Booking {booking_id} can no longer be confirmed")

        logger.info(f"Booking {booking_id}: confirmed with payment {payment_ref}")

        try:
            await self.notifier.send_booking_confirmation(
                confirmed.visitor_email, confirmed, institution, pdf
            )
        except Exception:
            logger.exception(f"Booking {booking_id}: confirmation notification failed")

        return VerificationResult(already_confirmed=False, booking=confirmed)

    async def _reconcile(self, booking: Booking, order_ref: str, payment_ref: str) -> None:
        """Cross-check the payment with the gateway before confirming."""
        payment = await self.gateway.fetch_payment(payment_ref)

        expected_amount = to_minor_units(booking.amount)
        problems = []
        if payment.get("order_id") != order_ref:
            problems.append("order")
        if int(payment.get("amount") or 0) != expected_amount:
            problems.append("amount")
        if payment.get("status") not in RECONCILABLE_PAYMENT_STATUSES:
            problems.append(f"status={payment.get('status')}")

        if problems:
            logger.warning(
                f"Booking {booking.booking_id}: payment {payment_ref} failed reconciliation ({', '.join(problems)})"
            )
            raise InvalidSignature("Payment could not be reconciled with the payment gateway")

    # ==================== READ ====================

    async def get_booking_details(self, booking_id: str) -> BookingView:
        row = await self.store.get_with_institution(booking_id)
        if row is None:
            raise NotFoundError("Booking", booking_id)
        return build_booking_view(*row)

    async def list_visitor_bookings(self, visitor_id: str) -> list[BookingView]:
        rows = await self.store.list_for_user(visitor_id)
        return [build_booking_view(*row) for row in rows]

    async def list_bookings(
        self,
        status: str | None = None,
        search: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[BookingView], int]:
        """Admin listing with optional status filter and free-text search."""
        rows, total = await self.store.list_all(
            status=status,
            search=search,
            offset=(page - 1) * page_size,
            limit=page_size,
        )
        return [build_booking_view(*row) for row in rows], total

    # ==================== ADMIN ====================

    async def update_status(self, booking_id: str, target: str) -> Booking:
        """Administrative status override. Only cancellation is accepted."""
        if target != CANCELLED:
            raise InvalidBookingStatus(
                f"Bookings cannot be set to '{target}' manually; only cancellation is allowed"
            )

        booking = await self.store.get(booking_id)
        if booking is None:
            raise NotFoundError("Booking", booking_id)
        if booking.status == target:
            return booking

        assert_booking_transition(booking.status, target)

        if not await self.store.cancel(booking_id, booking.status):
            raise InvalidBookingStatus(f"Booking {booking_id} changed status concurrently, try again")
        await self.db.commit()

        logger.info(f"Booking {booking_id}: {booking.status} -> {target} by admin")
        return await self.store.get(booking_id)

    async def get_receipt_url(self, booking_id: str) -> str:
        booking = await self.store.get(booking_id)
        if booking is None:
            raise NotFoundError("Booking", booking_id)
        if not booking.pdf_url:
            raise NotFoundError("Receipt", booking_id)
        return self.storage.get_presigned_url(receipt_key(booking_id))

    async def get_stats(self) -> BookingStatsResponse:
        """Per-status booking counts and amounts; revenue is the confirmed total."""
        totals = await self.store.totals_by_status()
        by_status = []
        for status in BOOKING_STATUSES:
            count, amount = totals.get(status, (0, Decimal("0.00")))
            by_status.append(BookingStatusTotals(status=status, count=count, amount=amount))

        return BookingStatsResponse(
            total_bookings=sum(entry.count for entry in by_status),
            revenue=totals.get(CONFIRMED, (0, Decimal("0.00")))[1],
            by_status=by_status,
        )
