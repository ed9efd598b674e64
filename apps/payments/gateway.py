"""
Razorpay refund gateway

Only the refund leg of the payment gateway is used by the booking engine.
Calls are synchronous and bounded by RAZORPAY_TIMEOUT. Without a key (or
in DEBUG) the gateway is emulated and every refund succeeds.
"""

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

import requests
import structlog
from django.conf import settings

from apps.bookings.exceptions import PaymentGatewayError

logger = logging.getLogger(__name__)
audit_logger = structlog.get_logger("payments.audit")

DEFAULT_API_BASE_URL = "https://api.razorpay.com/v1/"


@dataclass(frozen=True)
class RefundResult:
    refund_id: str
    payment_id: str
    amount: Decimal
    status: str
    emulated: bool = False


def _config() -> dict:
    return {
        "key_id": getattr(settings, "RAZORPAY_KEY_ID", ""),
        "key_secret": getattr(settings, "RAZORPAY_KEY_SECRET", ""),
        "base_url": getattr(settings, "RAZORPAY_API_BASE_URL", DEFAULT_API_BASE_URL).rstrip("/") + "/",
        "timeout": getattr(settings, "RAZORPAY_TIMEOUT", 30),
    }


def to_subunits(amount) -> int:
    """Rupees to paise"""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def is_emulated() -> bool:
    return settings.DEBUG or not _config()["key_id"]


def refund_payment(payment_id: str, amount, *, notes: dict | None = None) -> RefundResult:
    """
    Refund part or all of a captured payment

    Args:
        payment_id: Gateway payment identifier stored on the booking
        amount: Refund amount in rupees
        notes: Free-form metadata attached to the refund

    Returns:
        RefundResult with the gateway's refund id and status

    Raises:
        PaymentGatewayError: payment not refundable, network or API failure
    """
    amount = Decimal(amount)
    if not payment_id:
        raise PaymentGatewayError("No payment to refund")
    if amount <= 0:
        raise PaymentGatewayError("Refund amount must be positive")

    logger.info(f"Requesting refund of {amount} for payment {payment_id}")

    if is_emulated():
        logger.warning("Using emulated Razorpay API (DEBUG mode or no API key)")
        result = RefundResult(
            refund_id=f"rfnd_{uuid.uuid4().hex[:14]}",
            payment_id=payment_id,
            amount=amount,
            status="processed",
            emulated=True,
        )
        audit_logger.info("refund_processed", payment_id=payment_id, amount=str(amount), emulated=True)
        return result

    config = _config()
    auth = (config["key_id"], config["key_secret"])
    base_url = config["base_url"]

    try:
        response = requests.get(
            f"{base_url}payments/{payment_id}",
            auth=auth,
            timeout=config["timeout"],
        )
        response.raise_for_status()
        payment = response.json()

        if payment.get("status") != "captured":
            raise PaymentGatewayError(
                f"Payment {payment_id} is {payment.get('status')}, only captured payments can be refunded"
            )
        if to_subunits(amount) > int(payment.get("amount", 0)):
            raise PaymentGatewayError(
                f"Refund amount {amount} exceeds captured amount for payment {payment_id}"
            )

        response = requests.post(
            f"{base_url}payments/{payment_id}/refund",
            json={"amount": to_subunits(amount), "notes": notes or {}},
            auth=auth,
            timeout=config["timeout"],
        )
        response.raise_for_status()
        refund = response.json()

    except requests.exceptions.RequestException as e:
        logger.error(f"Network error while refunding payment {payment_id}: {e}")
        audit_logger.warning("refund_failed", payment_id=payment_id, amount=str(amount), error=str(e))
        raise PaymentGatewayError(f"Razorpay connection error: {e}") from e
    except PaymentGatewayError as e:
        audit_logger.warning("refund_failed", payment_id=payment_id, amount=str(amount), error=str(e))
        raise

    result = RefundResult(
        refund_id=refund.get("id", ""),
        payment_id=payment_id,
        amount=Decimal(refund.get("amount", 0)) / 100,
        status=refund.get("status", "pending"),
    )
    audit_logger.info(
        "refund_processed",
        payment_id=payment_id,
        refund_id=result.refund_id,
        amount=str(result.amount),
        status=result.status,
    )
    return result
