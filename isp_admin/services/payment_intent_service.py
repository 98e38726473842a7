import logging
from typing import Any, Callable, Dict, List, Optional

from isp_admin.core.config import DEFAULT_CURRENCY, utc_now
from isp_admin.core.exceptions import EntityNotFoundError, InvalidOperationError
from isp_admin.db.base import PaymentIntent
from isp_admin.domain.entities import PaymentIntentStatus
from isp_admin.domain.interfaces import (
    ICustomerRepository,
    IInvoiceRepository,
    IPaymentGatewayRepository,
    IPaymentIntentRepository,
)
from isp_admin.integrations.payment_gateways import (
    STRIPE_INTENT_STATUS,
    create_payment_gateway,
)
from isp_admin.schemas.dtos import PaymentIntentCreateRequest
from isp_admin.utils.billing_utils import to_money

logger = logging.getLogger(__name__)

FINAL_STATUSES = (PaymentIntentStatus.SUCCEEDED, PaymentIntentStatus.CANCELLED)


def webhook_object(payload: Dict[str, Any]) -> Dict[str, Any]:
    """The object a webhook refers to; Stripe nests it under ``data.object``."""
    data = payload.get("data")
    if isinstance(data, dict) and isinstance(data.get("object"), dict):
        return data["object"]
    return payload


def intent_status_from_webhook(payload: Dict[str, Any]) -> Optional[str]:
    event_type = payload.get("type") or ""
    if event_type.endswith(".payment_failed"):
        return PaymentIntentStatus.FAILED
    status = webhook_object(payload).get("status")
    if status in PaymentIntentStatus.ALL:
        return status
    return STRIPE_INTENT_STATUS.get(status)


class PaymentIntentService:
    def __init__(
        self,
        repo: IPaymentIntentRepository,
        gateway_repo: IPaymentGatewayRepository,
        customer_repo: ICustomerRepository,
        gateway_factory: Callable = create_payment_gateway,
        invoice_repo: Optional[IInvoiceRepository] = None,
    ) -> None:
        self.repo = repo
        self.gateway_repo = gateway_repo
        self.customer_repo = customer_repo
        self.gateway_factory = gateway_factory
        self.invoice_repo = invoice_repo

    def get_all(self) -> List[PaymentIntent]:
        return self.repo.get_all()

    def get_by_id(self, intent_id: int) -> Optional[PaymentIntent]:
        return self.repo.get_by_id(intent_id)

    def get_by_customer(self, customer_id: int) -> List[PaymentIntent]:
        return self.repo.get_by_customer(customer_id)

    def create(self, dto: PaymentIntentCreateRequest, customer_id: int) -> PaymentIntent:
        """Open an intent on the default gateway."""
        dto.validate()
        customer = self.customer_repo.get_by_id(customer_id)
        if customer is None:
            raise EntityNotFoundError("Customer", customer_id)
        if dto.invoice_id is not None:
            self._check_invoice_owner(dto.invoice_id, customer_id)
        gateway = self.gateway_repo.get_default()
        if gateway is None:
            raise InvalidOperationError("No active payment gateway configured")

        currency = dto.currency_code or customer.preferred_currency or DEFAULT_CURRENCY
        amount = to_money(dto.amount)
        result = self.gateway_factory(gateway).create_intent(amount, currency, dto.description)

        intent = PaymentIntent(
            customer_id=customer_id,
            invoice_id=dto.invoice_id,
            payment_gateway_id=gateway.id,
            amount=amount,
            currency_code=currency,
            description=dto.description,
            status=result.status if result.success else PaymentIntentStatus.FAILED,
            gateway_intent_id=result.gateway_reference,
            client_secret=result.client_secret,
            failure_reason=None if result.success else result.message,
        )
        intent = self.repo.add(intent)
        logger.info(
            "Payment intent created",
            extra={
                "context": {
                    "intent_id": intent.id,
                    "gateway_id": gateway.id,
                    "status": intent.status,
                }
            },
        )
        return intent

    def confirm(
        self, intent_id: int, payment_method_token: str, customer_id: Optional[int] = None
    ) -> PaymentIntent:
        intent = self._get_or_raise(intent_id, customer_id)
        if intent.status in FINAL_STATUSES:
            raise InvalidOperationError(f"Payment intent is already {intent.status}")
        if not payment_method_token:
            raise ValueError("Payment method token is required")

        result = self._client_for(intent).confirm_intent(
            intent.gateway_intent_id, payment_method_token
        )
        if result.success:
            intent.status = result.status or PaymentIntentStatus.SUCCEEDED
            intent.failure_reason = None
            if intent.status == PaymentIntentStatus.SUCCEEDED:
                intent.confirmed_at = utc_now()
        else:
            intent.status = PaymentIntentStatus.FAILED
            intent.failure_reason = result.message
        return self.repo.save(intent)

    def cancel(self, intent_id: int, customer_id: Optional[int] = None) -> PaymentIntent:
        intent = self._get_or_raise(intent_id, customer_id)
        if intent.status == PaymentIntentStatus.SUCCEEDED:
            raise InvalidOperationError("Succeeded payment intents cannot be cancelled")
        if intent.status == PaymentIntentStatus.CANCELLED:
            return intent

        result = self._client_for(intent).cancel_intent(intent.gateway_intent_id)
        if not result.success:
            raise InvalidOperationError(result.message or "Gateway refused to cancel the intent")
        intent.status = PaymentIntentStatus.CANCELLED
        intent.cancelled_at = utc_now()
        return self.repo.save(intent)

    def process_webhook(self, gateway_id: int, payload: Dict[str, Any]) -> bool:
        """Apply a gateway-reported status; False when no intent matches."""
        reference = webhook_object(payload).get("id")
        if not reference:
            return False
        intent = self.repo.get_by_gateway_intent_id(gateway_id, reference)
        if intent is None:
            logger.warning(
                "Webhook for unknown payment intent",
                extra={"context": {"gateway_id": gateway_id, "reference": reference}},
            )
            return False

        status = intent_status_from_webhook(payload)
        if status is None:
            return False
        intent.status = status
        if status == PaymentIntentStatus.SUCCEEDED and intent.confirmed_at is None:
            intent.confirmed_at = utc_now()
        elif status == PaymentIntentStatus.CANCELLED and intent.cancelled_at is None:
            intent.cancelled_at = utc_now()
        elif status == PaymentIntentStatus.FAILED:
            error = webhook_object(payload).get("last_payment_error") or {}
            intent.failure_reason = error.get("message") or "Reported failed by gateway"
        self.repo.save(intent)
        logger.info(
            "Payment intent updated from webhook",
            extra={"context": {"intent_id": intent.id, "status": status}},
        )
        return True

    def _client_for(self, intent: PaymentIntent):
        gateway = self.gateway_repo.get_by_id(intent.payment_gateway_id)
        if gateway is None:
            raise EntityNotFoundError("Payment gateway", intent.payment_gateway_id)
        return self.gateway_factory(gateway)

    def _check_invoice_owner(self, invoice_id: int, customer_id: int) -> None:
        if self.invoice_repo is None:
            return
        invoice = self.invoice_repo.get_by_id(invoice_id)
        if invoice is None or invoice.customer_id != customer_id:
            raise EntityNotFoundError("Invoice", invoice_id)

    def _get_or_raise(self, intent_id: int, customer_id: Optional[int] = None) -> PaymentIntent:
        """Load an intent; another customer's intent reads as missing."""
        intent = self.repo.get_by_id(intent_id)
        if intent is None or (customer_id is not None and intent.customer_id != customer_id):
            raise EntityNotFoundError("Payment intent", intent_id)
        return intent
