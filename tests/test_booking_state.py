import pytest

from app.core.exceptions import InvalidBookingStatus
from app.domain.booking_state import (
    BOOKING_STATUSES,
    CANCELLED,
    CONFIRMED,
    PENDING,
    assert_booking_transition,
    can_transition,
)


@pytest.mark.parametrize(
    "current, target",
    [(PENDING, CONFIRMED), (PENDING, CANCELLED), (CONFIRMED, CANCELLED)],
)
def test_allowed_transitions(current, target):
    assert can_transition(current, target)
    assert_booking_transition(current, target)


@pytest.mark.parametrize(
    "current, target",
    [
        (CONFIRMED, PENDING),
        (CONFIRMED, CONFIRMED),
        (CANCELLED, CONFIRMED),
        (CANCELLED, PENDING),
        (PENDING, "completed"),
        ("completed", CANCELLED),
    ],
)
def test_rejected_transitions(current, target):
    assert not can_transition(current, target)
    with pytest.raises(InvalidBookingStatus):
        assert_booking_transition(current, target)


def test_completed_is_not_a_status():
    assert "completed" not in BOOKING_STATUSES
