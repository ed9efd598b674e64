"""Promo code discounts resolved through a configurable callable."""

from __future__ import annotations

import logging
from decimal import Decimal

from django.conf import settings  # type: ignore
from django.utils.module_loading import import_string  # type: ignore

logger = logging.getLogger(__name__)


def resolve_discount(code: str, trek, subtotal: Decimal) -> Decimal:
    """
    Discount granted by a promo code, never more than the subtotal.

    PROMO_CODE_RESOLVER names a callable ``(code, trek, subtotal) -> Decimal``.
    Without one the code is only recorded on the booking.
    """
    if not code:
        return Decimal("0.00")

    resolver_path = getattr(settings, "PROMO_CODE_RESOLVER", None)
    if not resolver_path:
        logger.debug(f"Promo code {code} recorded without a resolver")
        return Decimal("0.00")

    resolver = import_string(resolver_path)
    discount = Decimal(resolver(code, trek, subtotal) or 0)
    return min(max(discount, Decimal("0.00")), subtotal)
