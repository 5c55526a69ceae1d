"""Booking state machine."""

from app.core.exceptions import InvalidTransition

PENDING_APPROVAL = "pending_approval"
APPROVED = "approved"
REJECTED = "rejected"
PENDING_PAYMENT = "pending_payment"
PAID = "paid"
PAYMENT_FAILED = "payment_failed"
EXPIRED = "expired"

BOOKING_TRANSITIONS = {
    PENDING_APPROVAL: {APPROVED, REJECTED, EXPIRED},
    APPROVED: {PENDING_PAYMENT},
    PENDING_PAYMENT: {PAID, PAYMENT_FAILED, EXPIRED},
    REJECTED: set(),
    PAID: set(),
    PAYMENT_FAILED: set(),
    EXPIRED: set(),
}

# States in which a booking holds a unit of its space type's capacity
CAPACITY_STATES = frozenset({PENDING_APPROVAL, APPROVED, PENDING_PAYMENT})

# Only the sweep may move these to expired
EXPIRABLE_STATES = frozenset({PENDING_APPROVAL, PENDING_PAYMENT})

TERMINAL_STATES = frozenset(
    state for state, targets in BOOKING_TRANSITIONS.items() if not targets
)

# Terminal states that give the unit back to the ledger
RELEASING_STATES = frozenset({REJECTED, PAYMENT_FAILED, EXPIRED})


def sources_for(target: str) -> frozenset[str]:
    """States from which ``target`` can be reached in one step."""
    return frozenset(
        state for state, targets in BOOKING_TRANSITIONS.items() if target in targets
    )


def assert_booking_transition(current: str, target: str) -> None:
    allowed = BOOKING_TRANSITIONS.get(current, set())
    if target not in allowed:
        raise InvalidTransition(current, target)
