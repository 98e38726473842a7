"""
Unit tests for the payment gateway clients.
"""

from decimal import Decimal
from unittest.mock import Mock

import pytest
import requests

from isp_admin.core.exceptions import ExternalServiceError, UnsupportedProviderError
from isp_admin.db.base import PaymentGateway
from isp_admin.integrations.payment_gateways import (
    ManualPaymentGateway,
    StripePaymentGateway,
    create_payment_gateway,
    to_minor_units,
)


def _stripe_response(payload, status_code=200):
    response = Mock(status_code=status_code)
    response.json.return_value = payload
    return response


@pytest.fixture
def stripe():
    gateway = StripePaymentGateway("sk_test_123")
    gateway.session = Mock()
    return gateway


@pytest.mark.parametrize(
    "amount,expected",
    [(Decimal("62.50"), 6250), (Decimal("0.01"), 1), (Decimal("10"), 1000), (Decimal("19.999"), 2000)],
)
def test_to_minor_units(amount, expected):
    assert to_minor_units(amount) == expected


class TestStripeGateway:
    def test_requires_secret_key(self):
        with pytest.raises(ValueError, match="secret key is required"):
            StripePaymentGateway("")

    def test_charge_success(self, stripe):
        stripe.session.post.return_value = _stripe_response({"id": "pi_1", "status": "succeeded"})

        result = stripe.charge(Decimal("62.50"), "NOK", "pm_card_visa", "Invoice INV-2025-00001")

        assert result.success is True
        assert result.gateway_reference == "pi_1"
        url = stripe.session.post.call_args.args[0]
        data = stripe.session.post.call_args.kwargs["data"]
        assert url == "https://api.stripe.com/v1/payment_intents"
        assert data["amount"] == 6250
        assert data["currency"] == "nok"
        assert data["confirm"] == "true"

    def test_charge_declined_is_a_result(self, stripe):
        stripe.session.post.return_value = _stripe_response(
            {"error": {"code": "card_declined", "message": "Your card was declined."}}, 402
        )

        result = stripe.charge(Decimal("10"), "USD", "pm_card_chargeDeclined")

        assert result.success is False
        assert result.message == "Your card was declined."
        assert "card_declined" in result.raw_response

    def test_charge_requiring_action_not_successful(self, stripe):
        stripe.session.post.return_value = _stripe_response({"id": "pi_2", "status": "requires_action"})

        result = stripe.charge(Decimal("10"), "USD", "pm_3ds")

        assert result.success is False
        assert result.message == "Payment not completed: requires_action"

    def test_server_error_raises(self, stripe):
        stripe.session.post.return_value = _stripe_response({}, 503)

        with pytest.raises(ExternalServiceError, match="HTTP 503"):
            stripe.refund("pi_1", Decimal("5"), "USD")

    def test_connection_error_raises(self, stripe):
        stripe.session.post.side_effect = requests.ConnectionError("reset by peer")

        with pytest.raises(ExternalServiceError):
            stripe.charge(Decimal("5"), "USD", "pm_1")

    def test_pending_refund_counts_as_success(self, stripe):
        stripe.session.post.return_value = _stripe_response({"id": "re_1", "status": "pending"})

        result = stripe.refund("pi_1", Decimal("5.25"), "USD")

        assert result.success is True
        assert stripe.session.post.call_args.kwargs["data"] == {"payment_intent": "pi_1", "amount": 525}

    def test_intent_status_mapped(self, stripe):
        stripe.session.post.return_value = _stripe_response(
            {"id": "pi_3", "status": "requires_payment_method", "client_secret": "pi_3_secret"}
        )

        result = stripe.create_intent(Decimal("20"), "EUR")

        assert result.status == "Created"
        assert result.client_secret == "pi_3_secret"

    def test_cancel_intent(self, stripe):
        stripe.session.post.return_value = _stripe_response({"id": "pi_3", "status": "canceled"})

        assert stripe.cancel_intent("pi_3").status == "Cancelled"
        assert stripe.session.post.call_args.args[0].endswith("/v1/payment_intents/pi_3/cancel")


class TestManualGateway:
    def test_charge_records_reference(self):
        result = ManualPaymentGateway().charge(Decimal("10"), "USD", "bank-transfer")

        assert result.success is True
        assert result.gateway_reference.startswith("MAN-")

    def test_intent_secret(self):
        result = ManualPaymentGateway().create_intent(Decimal("10"), "USD")

        assert result.client_secret == f"{result.gateway_reference}_secret"


class TestFactory:
    def test_manual(self):
        assert isinstance(create_payment_gateway(PaymentGateway(provider_code="Manual")), ManualPaymentGateway)

    def test_stripe_uses_secret(self):
        gateway = create_payment_gateway(PaymentGateway(provider_code="stripe", api_secret="sk_live_x"))

        assert isinstance(gateway, StripePaymentGateway)
        assert gateway.session.headers["Authorization"] == "Bearer sk_live_x"

    def test_unsupported(self):
        with pytest.raises(UnsupportedProviderError, match="Unsupported payment gateway: paypal"):
            create_payment_gateway(PaymentGateway(provider_code="paypal"))
