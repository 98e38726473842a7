"""
Unit tests for payment intents and stored customer payment methods.
"""

from decimal import Decimal
from unittest.mock import Mock

import pytest

from isp_admin.core.exceptions import EntityNotFoundError, InvalidOperationError
from isp_admin.db.base import (
    Customer,
    CustomerPaymentMethod,
    Invoice,
    PaymentGateway,
    PaymentIntent,
)
from isp_admin.domain.entities import GatewayResult, PaymentIntentStatus
from isp_admin.schemas.dtos import (
    CustomerPaymentMethodCreateRequest,
    PaymentIntentCreateRequest,
)
from isp_admin.services.customer_payment_method_service import CustomerPaymentMethodService
from isp_admin.services.payment_intent_service import PaymentIntentService
from tests.factories.repository_factories import (
    BillingRepositoryFactory,
    CustomerRepositoryFactory,
)


def _gateway(**overrides) -> PaymentGateway:
    values = dict(id=9, name="Stripe", provider_code="stripe", is_active=True, is_default=True)
    values.update(overrides)
    return PaymentGateway(**values)


def _intent(**overrides) -> PaymentIntent:
    values = dict(
        id=21,
        customer_id=5,
        payment_gateway_id=9,
        amount=Decimal("250.00"),
        currency_code="NOK",
        status=PaymentIntentStatus.CREATED,
        gateway_intent_id="pi_abc",
    )
    values.update(overrides)
    return PaymentIntent(**values)


@pytest.fixture
def customer_repo() -> Mock:
    repo = CustomerRepositoryFactory.create_mock_full()
    repo.get_by_id.return_value = Customer(
        id=5, name="Nordlys AS", email="post@nordlys.example", preferred_currency="NOK"
    )
    return repo


@pytest.fixture
def gateway_repo() -> Mock:
    repo = BillingRepositoryFactory.gateway_repo()
    repo.get_default.return_value = _gateway()
    repo.get_by_id.return_value = _gateway()
    return repo


class TestPaymentIntentService:
    @pytest.fixture
    def intent_repo(self) -> Mock:
        return BillingRepositoryFactory.payment_intent_repo()

    @pytest.fixture
    def invoice_repo(self) -> Mock:
        return BillingRepositoryFactory.invoice_repo()

    @pytest.fixture
    def gateway_client(self) -> Mock:
        client = Mock()
        client.create_intent.return_value = GatewayResult(
            success=True, gateway_reference="pi_new", status="Created", client_secret="pi_new_secret"
        )
        client.confirm_intent.return_value = GatewayResult(
            success=True, gateway_reference="pi_abc", status="Succeeded"
        )
        client.cancel_intent.return_value = GatewayResult(
            success=True, gateway_reference="pi_abc", status="Cancelled"
        )
        return client

    @pytest.fixture
    def service(self, intent_repo, gateway_repo, customer_repo, invoice_repo, gateway_client):
        return PaymentIntentService(
            intent_repo,
            gateway_repo,
            customer_repo,
            gateway_factory=lambda gateway: gateway_client,
            invoice_repo=invoice_repo,
        )

    def test_create_uses_default_gateway_and_customer_currency(self, service, gateway_client):
        intent = service.create(
            PaymentIntentCreateRequest(amount=Decimal("99.5"), description="Hosting"), 5
        )

        assert intent.status == PaymentIntentStatus.CREATED
        assert intent.currency_code == "NOK"
        assert intent.amount == Decimal("99.50")
        assert intent.payment_gateway_id == 9
        assert intent.gateway_intent_id == "pi_new"
        assert intent.client_secret == "pi_new_secret"
        gateway_client.create_intent.assert_called_once_with(Decimal("99.50"), "NOK", "Hosting")

    def test_create_without_active_gateway(self, service, gateway_repo):
        gateway_repo.get_default.return_value = None

        with pytest.raises(InvalidOperationError, match="No active payment gateway configured"):
            service.create(PaymentIntentCreateRequest(amount=Decimal("10")), 5)

    def test_create_declined_by_gateway_is_failed(self, service, gateway_client):
        gateway_client.create_intent.return_value = GatewayResult(
            success=False, message="Invalid API key"
        )

        intent = service.create(PaymentIntentCreateRequest(amount=Decimal("10")), 5)

        assert intent.status == PaymentIntentStatus.FAILED
        assert intent.failure_reason == "Invalid API key"

    def test_create_for_another_customers_invoice(self, service, invoice_repo, gateway_client):
        invoice_repo.get_by_id.return_value = Invoice(id=40, customer_id=6)

        with pytest.raises(EntityNotFoundError, match="Invoice with ID 40"):
            service.create(PaymentIntentCreateRequest(amount=Decimal("10"), invoice_id=40), 5)
        gateway_client.create_intent.assert_not_called()

    def test_confirm_success_sets_confirmed_at(self, service, intent_repo, gateway_client):
        intent_repo.get_by_id.return_value = _intent()

        intent = service.confirm(21, "pm_card_visa")

        assert intent.status == PaymentIntentStatus.SUCCEEDED
        assert intent.confirmed_at is not None
        gateway_client.confirm_intent.assert_called_once_with("pi_abc", "pm_card_visa")

    def test_confirm_requires_token(self, service, intent_repo):
        intent_repo.get_by_id.return_value = _intent()

        with pytest.raises(ValueError, match="Payment method token is required"):
            service.confirm(21, "")

    def test_confirm_declined_records_reason(self, service, intent_repo, gateway_client):
        intent_repo.get_by_id.return_value = _intent()
        gateway_client.confirm_intent.return_value = GatewayResult(
            success=False, message="Card declined"
        )

        intent = service.confirm(21, "pm_card_declined")

        assert intent.status == PaymentIntentStatus.FAILED
        assert intent.failure_reason == "Card declined"

    def test_confirm_final_intent_rejected(self, service, intent_repo):
        intent_repo.get_by_id.return_value = _intent(status=PaymentIntentStatus.CANCELLED)

        with pytest.raises(InvalidOperationError, match="already Cancelled"):
            service.confirm(21, "pm_card_visa")

    def test_cancel_after_succeeded_rejected(self, service, intent_repo, gateway_client):
        intent_repo.get_by_id.return_value = _intent(status=PaymentIntentStatus.SUCCEEDED)

        with pytest.raises(InvalidOperationError, match="cannot be cancelled"):
            service.cancel(21)
        gateway_client.cancel_intent.assert_not_called()

    def test_cancel_sets_cancelled_at(self, service, intent_repo):
        intent_repo.get_by_id.return_value = _intent()

        intent = service.cancel(21)

        assert intent.status == PaymentIntentStatus.CANCELLED
        assert intent.cancelled_at is not None

    def test_owner_scope_hides_other_customers_intent(self, service, intent_repo, gateway_client):
        intent_repo.get_by_id.return_value = _intent(customer_id=6)

        with pytest.raises(EntityNotFoundError, match="Payment intent with ID 21"):
            service.cancel(21, customer_id=5)
        with pytest.raises(EntityNotFoundError):
            service.confirm(21, "pm_card_visa", customer_id=5)
        gateway_client.cancel_intent.assert_not_called()
        gateway_client.confirm_intent.assert_not_called()

    def test_webhook_without_reference(self, service, intent_repo):
        assert service.process_webhook(9, {"type": "payment_intent.succeeded", "data": {}}) is False
        intent_repo.get_by_gateway_intent_id.assert_not_called()

    def test_webhook_for_unknown_intent(self, service):
        payload = {"data": {"object": {"id": "pi_missing", "status": "succeeded"}}}

        assert service.process_webhook(9, payload) is False

    def test_webhook_with_unknown_status(self, service, intent_repo):
        intent = _intent()
        intent_repo.get_by_gateway_intent_id.return_value = intent

        assert service.process_webhook(9, {"id": "pi_abc", "status": "mystery"}) is False
        assert intent.status == PaymentIntentStatus.CREATED

    def test_webhook_maps_stripe_status(self, service, intent_repo):
        intent = _intent()
        intent_repo.get_by_gateway_intent_id.return_value = intent

        payload = {
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": "pi_abc", "status": "succeeded"}},
        }

        assert service.process_webhook(9, payload) is True
        assert intent.status == PaymentIntentStatus.SUCCEEDED
        assert intent.confirmed_at is not None
        intent_repo.get_by_gateway_intent_id.assert_called_once_with(9, "pi_abc")

    def test_webhook_payment_failed_keeps_gateway_message(self, service, intent_repo):
        intent = _intent()
        intent_repo.get_by_gateway_intent_id.return_value = intent

        payload = {
            "type": "payment_intent.payment_failed",
            "data": {
                "object": {
                    "id": "pi_abc",
                    "status": "requires_payment_method",
                    "last_payment_error": {"message": "Insufficient funds"},
                }
            },
        }

        assert service.process_webhook(9, payload) is True
        assert intent.status == PaymentIntentStatus.FAILED
        assert intent.failure_reason == "Insufficient funds"


class TestCustomerPaymentMethodService:
    @pytest.fixture
    def method_repo(self) -> Mock:
        return BillingRepositoryFactory.payment_method_repo()

    @pytest.fixture
    def service(self, method_repo, customer_repo, gateway_repo):
        return CustomerPaymentMethodService(method_repo, customer_repo, gateway_repo)

    def _dto(self, **overrides):
        values = dict(customer_id=5, payment_gateway_id=9, gateway_token="pm_card", last4="4242")
        values.update(overrides)
        return CustomerPaymentMethodCreateRequest(**values)

    def test_first_method_becomes_default(self, service, method_repo):
        method = service.create(self._dto())

        assert method.is_default is True
        assert method.is_active is True
        method_repo.clear_default.assert_called_once_with(5)

    def test_later_method_not_default_unless_asked(self, service, method_repo):
        method_repo.get_by_customer.return_value = [CustomerPaymentMethod(id=1, customer_id=5)]

        method = service.create(self._dto())

        assert method.is_default is False
        method_repo.clear_default.assert_not_called()

    def test_inactive_gateway_rejected(self, service, gateway_repo):
        gateway_repo.get_by_id.return_value = _gateway(is_active=False)

        with pytest.raises(InvalidOperationError, match="not active"):
            service.create(self._dto())

    def test_set_as_default_clears_others(self, service, method_repo):
        method = CustomerPaymentMethod(id=3, customer_id=5, is_active=True, is_default=False)
        method_repo.get_by_id.return_value = method

        service.set_as_default(3, 5)

        assert method.is_default is True
        method_repo.clear_default.assert_called_once_with(5, except_id=3)

    def test_set_as_default_rejects_inactive_method(self, service, method_repo):
        method_repo.get_by_id.return_value = CustomerPaymentMethod(
            id=3, customer_id=5, is_active=False
        )

        with pytest.raises(InvalidOperationError, match="Inactive payment methods"):
            service.set_as_default(3, 5)

    def test_delete_checks_ownership(self, service, method_repo):
        method_repo.get_by_id.return_value = CustomerPaymentMethod(id=3, customer_id=6)

        with pytest.raises(EntityNotFoundError, match="Payment method with ID 3"):
            service.delete(3, 5)
        method_repo.delete.assert_not_called()

    def test_deleting_default_promotes_newest(self, service, method_repo):
        default = CustomerPaymentMethod(id=3, customer_id=5, is_default=True)
        newest = CustomerPaymentMethod(id=8, customer_id=5, is_default=False)
        method_repo.get_by_id.return_value = default
        method_repo.get_newest.return_value = newest

        service.delete(3, 5)

        method_repo.delete.assert_called_once_with(default)
        method_repo.get_newest.assert_called_once_with(5, exclude_id=3)
        assert newest.is_default is True

    def test_deleting_non_default_keeps_default(self, service, method_repo):
        method_repo.get_by_id.return_value = CustomerPaymentMethod(
            id=4, customer_id=5, is_default=False
        )

        service.delete(4, 5)

        method_repo.get_newest.assert_not_called()
