"""
Booking state machine

    pending_payment -> payment_completed | payment_confirmed_partial | confirmed
    payment_confirmed_partial -> payment_completed | confirmed | trek_completed
    payment_completed -> confirmed | trek_completed
    confirmed -> trek_completed

Every non-terminal status may also move to cancelled. ``pending`` is the
legacy default and only appears on old rows.
"""

PENDING = "pending"
PENDING_PAYMENT = "pending_payment"
PAYMENT_COMPLETED = "payment_completed"
PAYMENT_CONFIRMED_PARTIAL = "payment_confirmed_partial"
CONFIRMED = "confirmed"
CANCELLED = "cancelled"
TREK_COMPLETED = "trek_completed"

ALL_STATUSES = (
    PENDING,
    PENDING_PAYMENT,
    PAYMENT_COMPLETED,
    PAYMENT_CONFIRMED_PARTIAL,
    CONFIRMED,
    CANCELLED,
    TREK_COMPLETED,
)

TERMINAL_STATUSES = frozenset({CANCELLED, TREK_COMPLETED})

TRANSITIONS = {
    PENDING: {PENDING_PAYMENT, PAYMENT_COMPLETED, PAYMENT_CONFIRMED_PARTIAL, CONFIRMED, CANCELLED},
    PENDING_PAYMENT: {PAYMENT_COMPLETED, PAYMENT_CONFIRMED_PARTIAL, CONFIRMED, CANCELLED},
    PAYMENT_CONFIRMED_PARTIAL: {PAYMENT_COMPLETED, CONFIRMED, TREK_COMPLETED, CANCELLED},
    PAYMENT_COMPLETED: {CONFIRMED, TREK_COMPLETED, CANCELLED},
    CONFIRMED: {TREK_COMPLETED, CANCELLED},
    CANCELLED: set(),
    TREK_COMPLETED: set(),
}


def can_transition(current: str, new: str) -> bool:
    return new in TRANSITIONS.get(current, set())


def validate_transition(current: str, new: str) -> None:
    """Raise if ``new`` is not a legal next status for ``current``"""
    from apps.bookings.exceptions import BookingValidationError, StateConflictError

    if new not in ALL_STATUSES:
        raise BookingValidationError(f"Invalid status: {new}", code="InvalidStatus")
    if current == new:
        raise StateConflictError(f"Booking is already {current}")
    if not can_transition(current, new):
        raise StateConflictError(f"Cannot move booking from {current} to {new}")


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES
