"""
Unit tests for payment processing, webhooks and refunds.

Gateways are replaced through the ``gateway_factory`` hook so no HTTP is
involved; failures are expected to come back as results, not exceptions.
"""

from decimal import Decimal
from unittest.mock import Mock

import pytest

from isp_admin.core.exceptions import ExternalServiceError, InvalidOperationError
from isp_admin.db.base import (
    CustomerPaymentMethod,
    Invoice,
    PaymentAttempt,
    PaymentGateway,
    PaymentTransaction,
    Refund,
)
from isp_admin.domain.entities import (
    GatewayResult,
    InvoiceStatus,
    PaymentAttemptStatus,
    RefundStatus,
    TransactionStatus,
)
from isp_admin.schemas.dtos import RefundCreateRequest
from isp_admin.services.payment_service import PaymentProcessingService
from isp_admin.services.refund_service import RefundService
from tests.factories.repository_factories import BillingRepositoryFactory


def _invoice(**overrides) -> Invoice:
    values = dict(
        id=1,
        invoice_number="INV-2025-00001",
        customer_id=5,
        status=InvoiceStatus.ISSUED,
        total_amount=Decimal("100.00"),
        amount_paid=Decimal("0.00"),
        currency_code="EUR",
    )
    values.update(overrides)
    return Invoice(**values)


@pytest.fixture
def repos():
    return {
        "invoice": BillingRepositoryFactory.invoice_repo(),
        "method": BillingRepositoryFactory.payment_method_repo(),
        "gateway": BillingRepositoryFactory.gateway_repo(),
        "attempt": BillingRepositoryFactory.attempt_repo(),
        "transaction": BillingRepositoryFactory.transaction_repo(),
        "refund": BillingRepositoryFactory.refund_repo(),
    }


@pytest.fixture
def gateway_client() -> Mock:
    client = Mock()
    client.charge.return_value = GatewayResult(
        success=True, gateway_reference="pi_123", status="succeeded", raw_response="{}"
    )
    client.refund.return_value = GatewayResult(
        success=True, gateway_reference="re_123", status="succeeded"
    )
    return client


@pytest.fixture
def credit_service() -> Mock:
    return Mock()


@pytest.fixture
def processing(repos, gateway_client, credit_service):
    return PaymentProcessingService(
        repos["invoice"],
        repos["method"],
        repos["gateway"],
        repos["attempt"],
        repos["transaction"],
        credit_service=credit_service,
        gateway_factory=lambda gateway: gateway_client,
    )


@pytest.fixture
def ready_invoice(repos):
    invoice = _invoice()
    repos["invoice"].get_by_id.return_value = invoice
    repos["method"].get_by_id.return_value = CustomerPaymentMethod(
        id=3,
        customer_id=5,
        payment_gateway_id=9,
        gateway_token="pm_card",
        method_type="Card",
        is_active=True,
    )
    repos["gateway"].get_by_id.return_value = PaymentGateway(
        id=9, name="Stripe", provider_code="stripe", is_active=True
    )
    return invoice


class TestProcessInvoicePayment:
    def test_successful_charge_pays_invoice(self, processing, repos, ready_invoice, gateway_client):
        result = processing.process_invoice_payment(1, 3, "10.0.0.1", "pytest")

        assert result.success is True
        assert result.transaction_id.startswith("TXN-")
        assert ready_invoice.status == InvoiceStatus.PAID
        assert ready_invoice.amount_paid == Decimal("100.00")
        gateway_client.charge.assert_called_once_with(
            Decimal("100.00"), "EUR", "pm_card", "Invoice INV-2025-00001"
        )
        payment = repos["invoice"].add_payment.call_args.args[0]
        assert payment.is_full_payment is True
        assert payment.source == "Gateway"

    def test_charges_only_outstanding_amount(self, processing, ready_invoice, gateway_client):
        ready_invoice.status = InvoiceStatus.PARTIALLY_PAID
        ready_invoice.amount_paid = Decimal("60.00")

        processing.process_invoice_payment(1, 3)

        assert gateway_client.charge.call_args.args[0] == Decimal("40.00")

    def test_draft_invoice_cannot_be_paid(self, processing, ready_invoice, repos):
        ready_invoice.status = InvoiceStatus.DRAFT

        result = processing.process_invoice_payment(1, 3)

        assert result.success is False
        repos["attempt"].add.assert_not_called()

    def test_other_customers_method_rejected(self, processing, ready_invoice, repos):
        repos["method"].get_by_id.return_value.customer_id = 999

        result = processing.process_invoice_payment(1, 3)

        assert result.message == "Payment method not found"

    def test_declined_charge_records_failed_attempt(self, processing, ready_invoice, repos, gateway_client):
        gateway_client.charge.return_value = GatewayResult(
            success=False, status="failed", message="Your card was declined."
        )

        result = processing.process_invoice_payment(1, 3)

        assert result.success is False
        assert result.error_code == "declined"
        attempt = repos["attempt"].add.call_args.args[0]
        assert attempt.status == PaymentAttemptStatus.FAILED
        assert attempt.error_message == "Your card was declined."
        assert ready_invoice.status == InvoiceStatus.ISSUED

    def test_gateway_error_is_reported(self, processing, ready_invoice, gateway_client):
        gateway_client.charge.side_effect = ExternalServiceError("Stripe", "timeout")

        result = processing.process_invoice_payment(1, 3)

        assert result.success is False
        assert result.error_code == "gateway_error"

    def test_missing_token_fails_attempt(self, processing, ready_invoice, repos):
        repos["method"].get_by_id.return_value.gateway_token = None

        result = processing.process_invoice_payment(1, 3)

        assert result.error_code == "token_missing"

    def test_transaction_id_gets_suffix_on_collision(self, processing, repos):
        taken = {"first": True}

        def _lookup(candidate):
            if taken["first"]:
                taken["first"] = False
                return PaymentTransaction(transaction_id=candidate)
            return None

        repos["transaction"].get_by_transaction_id.side_effect = _lookup

        assert processing._new_transaction_id().endswith("-2")


class TestRetryAndCredit:
    def test_retry_only_failed_attempts(self, processing, repos):
        repos["attempt"].get_by_id.return_value = PaymentAttempt(
            id=1, status=PaymentAttemptStatus.SUCCEEDED
        )

        result = processing.retry_failed_payment(1)

        assert result.message == "Only failed payments can be retried"

    def test_apply_credit_deducts_and_pays(self, processing, repos, credit_service):
        invoice = _invoice()
        repos["invoice"].get_by_id.return_value = invoice
        credit_service.has_sufficient_credit.return_value = True

        result = processing.apply_customer_credit(1, Decimal("30"))

        assert result.success is True
        credit_service.deduct_credit.assert_called_once()
        assert invoice.status == InvoiceStatus.PARTIALLY_PAID

    def test_apply_credit_above_outstanding_rejected(self, processing, repos, credit_service):
        repos["invoice"].get_by_id.return_value = _invoice(amount_paid=Decimal("90.00"))

        result = processing.apply_customer_credit(1, Decimal("20"))

        assert result.success is False
        credit_service.deduct_credit.assert_not_called()

    def test_apply_credit_insufficient_balance(self, processing, repos, credit_service):
        repos["invoice"].get_by_id.return_value = _invoice()
        credit_service.has_sufficient_credit.return_value = False

        assert processing.apply_customer_credit(1, Decimal("20")).message == "Insufficient customer credit"


class TestPaymentWebhook:
    def test_webhook_updates_matching_transaction(self, processing, repos):
        repos["gateway"].get_by_code.return_value = PaymentGateway(id=9, provider_code="stripe")
        transaction = PaymentTransaction(
            id=1, transaction_id="TXN-1", status=TransactionStatus.PENDING
        )
        repos["transaction"].get_by_gateway_transaction_id.return_value = transaction
        payload = {
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": "pi_123", "status": "succeeded"}},
        }

        assert processing.handle_payment_webhook("stripe", payload) is True
        assert transaction.status == TransactionStatus.COMPLETED

    def test_refund_event_marks_transaction_refunded(self, processing, repos):
        repos["gateway"].get_by_code.return_value = PaymentGateway(id=9, provider_code="stripe")
        transaction = PaymentTransaction(id=1, status=TransactionStatus.COMPLETED)
        repos["transaction"].get_by_gateway_transaction_id.return_value = transaction
        payload = {
            "type": "charge.refunded",
            "data": {"object": {"id": "ch_1", "payment_intent": "pi_123", "refunded": True}},
        }

        processing.handle_payment_webhook("stripe", payload)

        assert transaction.status == TransactionStatus.REFUNDED

    def test_unmatched_webhook_returns_false(self, processing, repos):
        repos["gateway"].get_by_code.return_value = PaymentGateway(id=9, provider_code="stripe")

        assert processing.handle_payment_webhook("stripe", {"data": {"object": {"id": "x"}}}) is False


class TestRefundService:
    @pytest.fixture
    def service(self, repos, gateway_client, credit_service):
        return RefundService(
            repos["refund"],
            repos["invoice"],
            repos["transaction"],
            repos["gateway"],
            credit_service=credit_service,
            gateway_factory=lambda gateway: gateway_client,
        )

    def test_create_caps_at_refundable_amount(self, service, repos):
        repos["invoice"].get_by_id.return_value = _invoice(
            status=InvoiceStatus.PAID, amount_paid=Decimal("100.00")
        )
        repos["refund"].get_pending_amount.return_value = Decimal("80.00")

        with pytest.raises(InvalidOperationError, match="exceeds the refundable amount 20.00"):
            service.create(RefundCreateRequest(invoice_id=1, amount=Decimal("25"), reason="Downgrade"))

    def test_create_requires_paid_invoice(self, service, repos):
        repos["invoice"].get_by_id.return_value = _invoice()

        with pytest.raises(InvalidOperationError, match="Only paid or partially paid"):
            service.create(RefundCreateRequest(invoice_id=1, amount=Decimal("5"), reason="x"))

    def test_create_links_latest_completed_transaction(self, service, repos):
        repos["invoice"].get_by_id.return_value = _invoice(
            status=InvoiceStatus.PAID, amount_paid=Decimal("100.00")
        )
        repos["refund"].get_pending_amount.return_value = Decimal("0")
        repos["transaction"].get_by_invoice.return_value = [
            PaymentTransaction(id=8, status=TransactionStatus.COMPLETED)
        ]

        refund = service.create(RefundCreateRequest(invoice_id=1, amount=Decimal("10"), reason="x"), user_id=2)

        assert refund.payment_transaction_id == 8
        assert refund.status == RefundStatus.PENDING
        assert refund.requested_by_user_id == 2

    def test_process_through_gateway(self, service, repos, gateway_client):
        invoice = _invoice(status=InvoiceStatus.PAID, amount_paid=Decimal("100.00"))
        transaction = PaymentTransaction(
            id=8,
            invoice_id=1,
            payment_gateway_id=9,
            gateway_transaction_id="pi_123",
            amount=Decimal("100.00"),
            refunded_amount=Decimal("0.00"),
            status=TransactionStatus.COMPLETED,
        )
        repos["refund"].get_by_id.return_value = Refund(
            id=1, invoice_id=1, payment_transaction_id=8, amount=Decimal("40.00"), status=RefundStatus.PENDING
        )
        repos["invoice"].get_by_id.return_value = invoice
        repos["transaction"].get_by_id.return_value = transaction
        repos["gateway"].get_by_id.return_value = PaymentGateway(id=9, provider_code="stripe")

        refund = service.process(1)

        assert refund.status == RefundStatus.COMPLETED
        assert refund.gateway_refund_id == "re_123"
        assert invoice.amount_paid == Decimal("60.00")
        assert invoice.status == InvoiceStatus.PARTIALLY_PAID
        assert transaction.status == TransactionStatus.PARTIALLY_REFUNDED
        gateway_client.refund.assert_called_once_with("pi_123", Decimal("40.00"), "EUR")

    def test_process_declined_refund_fails(self, service, repos, gateway_client):
        gateway_client.refund.return_value = GatewayResult(success=False, message="charge_already_refunded")
        invoice = _invoice(status=InvoiceStatus.PAID, amount_paid=Decimal("100.00"))
        repos["refund"].get_by_id.return_value = Refund(
            id=1, invoice_id=1, payment_transaction_id=8, amount=Decimal("10.00"), status=RefundStatus.PENDING
        )
        repos["invoice"].get_by_id.return_value = invoice
        repos["transaction"].get_by_id.return_value = PaymentTransaction(
            id=8, payment_gateway_id=9, gateway_transaction_id="pi_1", amount=Decimal("100.00")
        )
        repos["gateway"].get_by_id.return_value = PaymentGateway(id=9, provider_code="stripe")

        refund = service.process(1)

        assert refund.status == RefundStatus.FAILED
        assert refund.failure_reason == "charge_already_refunded"
        assert invoice.amount_paid == Decimal("100.00")

    def test_process_without_transaction_refunds_to_credit(self, service, repos, credit_service):
        invoice = _invoice(status=InvoiceStatus.PAID, amount_paid=Decimal("25.00"))
        repos["refund"].get_by_id.return_value = Refund(
            id=1, invoice_id=1, payment_transaction_id=None, amount=Decimal("25.00"), status=RefundStatus.PENDING
        )
        repos["invoice"].get_by_id.return_value = invoice

        refund = service.process(1)

        assert refund.status == RefundStatus.COMPLETED
        assert invoice.status == InvoiceStatus.REFUNDED
        credit_service.create_credit_transaction.assert_called_once()

    def test_process_twice_rejected(self, service, repos):
        repos["refund"].get_by_id.return_value = Refund(id=1, status=RefundStatus.COMPLETED)

        with pytest.raises(InvalidOperationError):
            service.process(1)
