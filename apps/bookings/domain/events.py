"""
Booking Domain Events

Events that represent things that have happened in the booking domain.
These are published after successful transaction commits.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Optional

from shared.domain.base import DomainEvent


# ===== Booking Events =====

@dataclass
class BookingCreated(DomainEvent):
    """
    Event: A booking was created (or a live pending one was renewed)

    Triggers:
    - Send confirmation email to an offline/custom trek booking
    """
    booking_id: int
    batch_id: int
    user_id: int
    status: str
    participants: int
    total_price: Decimal


@dataclass
class BookingPaymentRecorded(DomainEvent):
    """
    Event: A payment was verified against the booking

    Triggers:
    - Send payment receipt
    """
    booking_id: int
    payment_id: str
    amount: Decimal
    status: str


@dataclass
class BookingConfirmed(DomainEvent):
    """
    Event: Booking reached the confirmed status

    Triggers:
    - Generate invoice
    - Send booking confirmation
    """
    booking_id: int
    batch_id: int
    user_id: int


@dataclass
class BookingCancelled(DomainEvent):
    """
    Event: Booking was cancelled as a whole

    Triggers:
    - Send cancellation email with refund summary
    """
    booking_id: int
    batch_id: int
    user_id: int
    reason: str
    refund_amount: Decimal
    refund_status: str
    cancelled_by: Optional[int] = None


@dataclass
class ParticipantCancelled(DomainEvent):
    """Event: One participant's seat was released"""
    booking_id: int
    participant_id: str
    refund_amount: Decimal


@dataclass
class ParticipantRestored(DomainEvent):
    """Event: A cancelled participant was put back on the roster"""
    booking_id: int
    participant_id: str


@dataclass
class BookingRescheduled(DomainEvent):
    """
    Event: Booking moved to another batch of the same trek

    Triggers:
    - Send reschedule confirmation
    """
    booking_id: int
    from_batch_id: int
    to_batch_id: int
    participants: int


@dataclass
class ChangeRequestSubmitted(DomainEvent):
    """
    Event: User asked for a cancellation or reschedule

    Triggers:
    - Notify admins
    """
    booking_id: int
    request_id: int
    request_type: str


@dataclass
class ChangeRequestDecided(DomainEvent):
    """
    Event: Admin approved or rejected a change request

    Triggers:
    - Notify the booking owner
    """
    booking_id: int
    request_id: int
    request_type: str
    status: str
    admin_response: str = ""


@dataclass
class PartialPaymentReminderDue(DomainEvent):
    """
    Event: Remaining balance reminder should be sent

    Triggers:
    - Send the reminder email
    """
    booking_id: int
    remaining_amount: Decimal
    due_date: str


@dataclass
class PartialPaymentCompleted(DomainEvent):
    """Event: Remaining balance was settled"""
    booking_id: int
    status: str


# ===== Capacity Events =====

@dataclass
class SeatsAdmitted(DomainEvent):
    """Event: Seats were admitted into a batch under its lock"""
    batch_id: int
    seats: int
    seats_used: int


@dataclass
class CapacityReconciled(DomainEvent):
    """
    Event: A batch's cached participant counter was rewritten

    Raised only when the stored counter actually changed.
    """
    batch_id: int
    previous: int
    current: int
    max_participants: int


@dataclass
class RefundRequested(DomainEvent):
    """
    Event: Money has to go back through the payment gateway

    Handled after commit so a gateway outage never rolls back a cancellation.
    ``participant_refunds`` maps participant_id to its refund; when empty the
    whole ``amount`` is refunded at booking level.
    """
    booking_id: int
    payment_id: str
    amount: Decimal
    participant_refunds: Dict[str, Decimal] = field(default_factory=dict)
