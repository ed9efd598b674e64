"""
Partial payment rules

Split of a booking total into an initial amount and a remaining balance,
and the date arithmetic around the final payment due date.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from apps.bookings.domain.refund_policy import quantize

FIXED = "fixed"
PERCENTAGE = "percentage"

# Client-computed amounts may differ from ours by rounding only
TAMPER_TOLERANCE = Decimal("0.01")


@dataclass(frozen=True)
class PaymentSplit:
    initial_amount: Decimal
    remaining_amount: Decimal
    due_date: date


def initial_amount(total_price, amount, amount_type: str, participants: int) -> Decimal:
    """Initial payment, clamped so it never exceeds the total"""
    total_price = Decimal(total_price)
    amount = Decimal(amount)
    if amount_type == PERCENTAGE:
        initial = total_price * amount / Decimal("100")
    else:
        initial = amount * participants
    return quantize(min(max(initial, Decimal("0")), total_price))


def final_payment_due_date(start_date: date, due_days: int) -> date:
    return start_date - timedelta(days=due_days)


def within_final_payment_window(start_date: date, due_days: int, today: date) -> bool:
    """Too close to departure to split the payment"""
    return (start_date - today).days <= due_days


def split_payment(total_price, amount, amount_type, participants, start_date, due_days) -> PaymentSplit:
    initial = initial_amount(total_price, amount, amount_type, participants)
    return PaymentSplit(
        initial_amount=initial,
        remaining_amount=quantize(Decimal(total_price) - initial),
        due_date=final_payment_due_date(start_date, due_days),
    )


def amounts_match(expected, supplied) -> bool:
    return abs(Decimal(expected) - Decimal(supplied)) <= TAMPER_TOLERANCE


def reminder_due(due_date: date, today: date, window_days: int) -> bool:
    """Reminders go out from ``window_days`` before the due date up to the due date"""
    if due_date is None:
        return False
    days_left = (due_date - today).days
    return 0 <= days_left <= window_days
