"""Booking state machine.

Only a verified payment moves a booking to ``confirmed``. ``cancelled`` is
reached through the admin status override. There is no ``completed`` state.
"""

from app.core.exceptions import InvalidBookingStatus

PENDING = "pending"
CONFIRMED = "confirmed"
CANCELLED = "cancelled"

BOOKING_STATUSES = (PENDING, CONFIRMED, CANCELLED)

BOOKING_TRANSITIONS = {
    PENDING: {CONFIRMED, CANCELLED},
    CONFIRMED: {CANCELLED},
    CANCELLED: set(),
}


def can_transition(current: str, target: str) -> bool:
    return target in BOOKING_TRANSITIONS.get(current, set())


def assert_booking_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise InvalidBookingStatus(
            f"Invalid booking transition: {current} → {target}"
        )
