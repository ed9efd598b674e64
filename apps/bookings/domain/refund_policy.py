"""
Refund Policy

Pure calculation of how much of a participant's share is returned when a
seat is cancelled. The tier is keyed on whole days between the evaluation
date and the batch start date; preview and cancellation both call in here
so the estimate a user sees is always the amount that will be refunded.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

TWO_PLACES = Decimal("0.01")

# (minimum days to departure, refund percentage, description), checked in order
AUTO_REFUND_TIERS = (
    (22, Decimal("100"), "Free cancellation"),
    (15, Decimal("75"), "75% refund"),
    (8, Decimal("50"), "50% refund"),
)
NO_REFUND_DESCRIPTION = "No refund"


class RefundMode(str, Enum):
    AUTO = "auto"
    FULL = "full"
    CUSTOM = "custom"


def _as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def days_until_departure(start_date, evaluation_date) -> int:
    """Whole days from evaluation_date until start_date (negative once departed)"""
    return (_as_date(start_date) - _as_date(evaluation_date)).days


def refund_percentage(days: int) -> Decimal:
    for min_days, percentage, _description in AUTO_REFUND_TIERS:
        if days >= min_days:
            return percentage
    return Decimal("0")


def describe_tier(days: int, mode: RefundMode | str = RefundMode.AUTO) -> str:
    """Human readable policy tier shown next to a refund estimate"""
    mode = RefundMode(mode)
    if mode is RefundMode.FULL:
        return "Full refund"
    if mode is RefundMode.CUSTOM:
        return "Custom refund"
    for min_days, _percentage, description in AUTO_REFUND_TIERS:
        if days >= min_days:
            return description
    return NO_REFUND_DESCRIPTION


def refund(
    price_per_participant,
    start_date,
    evaluation_date,
    mode: RefundMode | str = RefundMode.AUTO,
) -> Decimal:
    """
    Refund owed for one participant's share

    Args:
        price_per_participant: The share of the booking total for one seat
        start_date: Batch departure date
        evaluation_date: When the cancellation is evaluated
        mode: auto (tiered), full (everything back)

    Custom refunds are supplied by the caller and never computed here.
    The result is not rounded; callers quantize after aggregation.
    """
    mode = RefundMode(mode)
    price = Decimal(price_per_participant)

    if mode is RefundMode.FULL:
        return price
    if mode is RefundMode.CUSTOM:
        raise ValueError("Custom refunds carry an explicit amount and are not calculated")

    days = days_until_departure(start_date, evaluation_date)
    return price * refund_percentage(days) / Decimal("100")


def quantize(amount) -> Decimal:
    return Decimal(amount).quantize(TWO_PLACES)
