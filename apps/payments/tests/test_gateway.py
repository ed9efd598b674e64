from decimal import Decimal
from unittest import mock

import pytest
import requests
from django.test import override_settings

from apps.bookings.exceptions import PaymentGatewayError
from apps.payments import gateway

LIVE = override_settings(
    DEBUG=False,
    RAZORPAY_KEY_ID="rzp_test_key",
    RAZORPAY_KEY_SECRET="rzp_test_secret",
    RAZORPAY_API_BASE_URL="https://gateway.test/v1",
    RAZORPAY_TIMEOUT=5,
)


def _response(payload):
    response = mock.Mock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


def test_to_subunits():
    assert gateway.to_subunits(Decimal("499.995")) == 50000
    assert gateway.to_subunits("1000") == 100000


@override_settings(RAZORPAY_KEY_ID="")
def test_emulated_without_key():
    result = gateway.refund_payment("pay_1", Decimal("250"))

    assert result.emulated
    assert result.status == "processed"
    assert result.amount == Decimal("250")


@LIVE
@mock.patch("apps.payments.gateway.requests.post")
@mock.patch("apps.payments.gateway.requests.get")
def test_refund_captured_payment(mock_get, mock_post):
    mock_get.return_value = _response({"id": "pay_1", "status": "captured", "amount": 100000})
    mock_post.return_value = _response({"id": "rfnd_1", "amount": 50000, "status": "processed"})

    result = gateway.refund_payment("pay_1", Decimal("500"), notes={"booking_id": "7"})

    mock_get.assert_called_once_with(
        "https://gateway.test/v1/payments/pay_1",
        auth=("rzp_test_key", "rzp_test_secret"),
        timeout=5,
    )
    assert mock_post.call_args.kwargs["json"] == {"amount": 50000, "notes": {"booking_id": "7"}}
    assert result.refund_id == "rfnd_1"
    assert result.amount == Decimal("500")
    assert not result.emulated


@LIVE
@mock.patch("apps.payments.gateway.requests.post")
@mock.patch("apps.payments.gateway.requests.get")
def test_uncaptured_payment_is_not_refunded(mock_get, mock_post):
    mock_get.return_value = _response({"id": "pay_1", "status": "authorized", "amount": 100000})

    with pytest.raises(PaymentGatewayError):
        gateway.refund_payment("pay_1", Decimal("500"))
    mock_post.assert_not_called()


@LIVE
@mock.patch("apps.payments.gateway.requests.get")
def test_refund_over_captured_amount(mock_get):
    mock_get.return_value = _response({"id": "pay_1", "status": "captured", "amount": 10000})

    with pytest.raises(PaymentGatewayError):
        gateway.refund_payment("pay_1", Decimal("500"))


@LIVE
@mock.patch("apps.payments.gateway.requests.get", side_effect=requests.exceptions.ConnectionError("down"))
def test_network_errors_become_gateway_errors(mock_get):
    with pytest.raises(PaymentGatewayError):
        gateway.refund_payment("pay_1", Decimal("500"))


def test_missing_payment_id():
    with pytest.raises(PaymentGatewayError):
        gateway.refund_payment("", Decimal("10"))
