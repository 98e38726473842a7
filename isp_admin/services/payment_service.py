"""
Payment gateways and invoice payment processing.

Every charge goes through a ``PaymentAttempt`` so failures stay auditable;
successful charges produce a ``PaymentTransaction`` and an ``InvoicePayment``.
Processing methods report failures through ``PaymentResult`` instead of
raising, because a declined card is an expected outcome.
"""

import logging
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from isp_admin.core.config import utc_now
from isp_admin.core.exceptions import (
    EntityNotFoundError,
    ExternalServiceError,
    UnsupportedProviderError,
)
from isp_admin.db.base import (
    InvoicePayment,
    PaymentAttempt,
    PaymentGateway,
    PaymentTransaction,
)
from isp_admin.domain.entities import (
    InvoiceStatus,
    PaymentAttemptStatus,
    PaymentResult,
    TransactionStatus,
)
from isp_admin.domain.interfaces import (
    ICustomerPaymentMethodRepository,
    IInvoiceRepository,
    IPaymentAttemptRepository,
    IPaymentGatewayRepository,
    IPaymentTransactionRepository,
)
from isp_admin.integrations.payment_gateways import create_payment_gateway
from isp_admin.schemas.dtos import PaymentGatewayCreateRequest, PaymentGatewayUpdateRequest
from isp_admin.services.invoice_service import apply_payment_to_invoice, outstanding_amount
from isp_admin.services.payment_intent_service import webhook_object
from isp_admin.utils.billing_utils import to_money

logger = logging.getLogger(__name__)

# Gateway-reported transaction status -> local transaction status
WEBHOOK_TRANSACTION_STATUS = {
    "succeeded": TransactionStatus.COMPLETED,
    "completed": TransactionStatus.COMPLETED,
    "failed": TransactionStatus.FAILED,
    "requires_payment_method": TransactionStatus.FAILED,
    "canceled": TransactionStatus.FAILED,
    "refunded": TransactionStatus.REFUNDED,
}


class PaymentGatewayService:
    def __init__(self, repo: IPaymentGatewayRepository) -> None:
        self.repo = repo

    def get_all(self) -> List[PaymentGateway]:
        return self.repo.get_all()

    def get_active(self) -> List[PaymentGateway]:
        return self.repo.get_active()

    def get_by_id(self, gateway_id: int) -> Optional[PaymentGateway]:
        return self.repo.get_by_id(gateway_id)

    def get_default(self) -> Optional[PaymentGateway]:
        return self.repo.get_default()

    def create(self, dto: PaymentGatewayCreateRequest) -> PaymentGateway:
        dto.validate()
        if dto.is_default:
            self.repo.clear_default()
        gateway = self.repo.add(PaymentGateway(**dto.changes()))
        logger.info(
            "Payment gateway created",
            extra={"context": {"gateway_id": gateway.id, "provider": gateway.provider_code}},
        )
        return gateway

    def update(self, gateway_id: int, dto: PaymentGatewayUpdateRequest) -> PaymentGateway:
        dto.validate()
        gateway = self._get_or_raise(gateway_id)
        changes = dto.changes()
        if changes.get("is_default"):
            self.repo.clear_default(except_id=gateway.id)
        for name, value in changes.items():
            setattr(gateway, name, value)
        return self.repo.save(gateway)

    def delete(self, gateway_id: int) -> None:
        self.repo.delete(self._get_or_raise(gateway_id))

    def _get_or_raise(self, gateway_id: int) -> PaymentGateway:
        gateway = self.repo.get_by_id(gateway_id)
        if gateway is None:
            raise EntityNotFoundError("Payment gateway", gateway_id)
        return gateway


class PaymentProcessingService:
    def __init__(
        self,
        invoice_repo: IInvoiceRepository,
        method_repo: ICustomerPaymentMethodRepository,
        gateway_repo: IPaymentGatewayRepository,
        attempt_repo: IPaymentAttemptRepository,
        transaction_repo: IPaymentTransactionRepository,
        credit_service=None,
        intent_service=None,
        gateway_factory: Callable = create_payment_gateway,
    ) -> None:
        self.invoice_repo = invoice_repo
        self.method_repo = method_repo
        self.gateway_repo = gateway_repo
        self.attempt_repo = attempt_repo
        self.transaction_repo = transaction_repo
        self.credit_service = credit_service
        self.intent_service = intent_service
        self.gateway_factory = gateway_factory

    def process_invoice_payment(
        self,
        invoice_id: int,
        payment_method_id: int,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> PaymentResult:
        """Charge the outstanding amount of an invoice to a stored method."""
        invoice = self.invoice_repo.get_by_id(invoice_id)
        if invoice is None:
            return PaymentResult.failed("Invoice not found")
        if invoice.status not in InvoiceStatus.PAYABLE:
            return PaymentResult.failed(f"Invoice cannot be paid in status {invoice.status}")

        method = self.method_repo.get_by_id(payment_method_id)
        if method is None or method.customer_id != invoice.customer_id or not method.is_active:
            return PaymentResult.failed("Payment method not found")

        amount = outstanding_amount(invoice)
        if amount <= 0:
            return PaymentResult.failed("Invoice has no outstanding balance")

        attempt = self.attempt_repo.add(
            PaymentAttempt(
                invoice_id=invoice.id,
                customer_payment_method_id=method.id,
                amount=amount,
                currency_code=invoice.currency_code,
                status=PaymentAttemptStatus.PROCESSING,
                ip_address=ip_address,
                user_agent=(user_agent or "")[:500] or None,
            )
        )

        gateway = self.gateway_repo.get_by_id(method.payment_gateway_id)
        if gateway is None or not gateway.is_active:
            self._fail_attempt(attempt, "Payment gateway not found", "gateway_missing")
            return PaymentResult.failed(
                "Payment gateway not configured", attempt.id, "gateway_missing"
            )
        if not method.gateway_token:
            self._fail_attempt(attempt, "Payment method token not found", "token_missing")
            return PaymentResult.failed(
                "Payment method not properly configured", attempt.id, "token_missing"
            )

        try:
            client = self.gateway_factory(gateway)
            result = client.charge(
                amount,
                invoice.currency_code,
                method.gateway_token,
                f"Invoice {invoice.invoice_number}",
            )
        except (ExternalServiceError, UnsupportedProviderError, ValueError) as e:
            logger.error(
                "Payment gateway call failed",
                extra={"context": {"attempt_id": attempt.id, "error": str(e)}},
            )
            self._fail_attempt(attempt, str(e), "gateway_error")
            return PaymentResult.failed(
                "Payment gateway error, please try again later", attempt.id, "gateway_error"
            )

        if not result.success:
            message = result.message or "Payment declined"
            self._fail_attempt(attempt, message, "declined", result.raw_response)
            logger.info(
                "Payment declined",
                extra={"context": {"attempt_id": attempt.id, "invoice_id": invoice.id}},
            )
            return PaymentResult.failed(message, attempt.id, "declined")

        transaction = self.transaction_repo.add(
            PaymentTransaction(
                invoice_id=invoice.id,
                payment_gateway_id=gateway.id,
                transaction_id=self._new_transaction_id(),
                gateway_transaction_id=result.gateway_reference,
                payment_method=method.method_type,
                amount=amount,
                currency_code=invoice.currency_code,
                status=TransactionStatus.COMPLETED,
                gateway_response=result.raw_response,
                processed_at=utc_now(),
            )
        )

        attempt.status = PaymentAttemptStatus.SUCCEEDED
        attempt.payment_transaction_id = transaction.id
        attempt.gateway_response = result.raw_response
        attempt.completed_at = utc_now()
        self.attempt_repo.save(attempt)

        self._apply_to_invoice(invoice, amount, transaction.id, "Gateway")
        logger.info(
            "Payment processed",
            extra={
                "context": {
                    "invoice_id": invoice.id,
                    "transaction_id": transaction.transaction_id,
                    "amount": str(amount),
                    "invoice_status": invoice.status,
                }
            },
        )
        return PaymentResult(
            success=True,
            message="Payment processed successfully",
            transaction_id=transaction.transaction_id,
            payment_attempt_id=attempt.id,
        )

    def retry_failed_payment(self, attempt_id: int) -> PaymentResult:
        attempt = self.attempt_repo.get_by_id(attempt_id)
        if attempt is None:
            return PaymentResult.failed("Payment attempt not found")
        if attempt.status != PaymentAttemptStatus.FAILED:
            return PaymentResult.failed("Only failed payments can be retried", attempt.id)

        result = self.process_invoice_payment(
            attempt.invoice_id,
            attempt.customer_payment_method_id,
            attempt.ip_address,
            attempt.user_agent,
        )
        if result.payment_attempt_id is not None:
            retry = self.attempt_repo.get_by_id(result.payment_attempt_id)
            if retry is not None:
                retry.retry_count = (attempt.retry_count or 0) + 1
                self.attempt_repo.save(retry)
        return result

    def apply_customer_credit(
        self, invoice_id: int, amount: Decimal, user_id: Optional[int] = None
    ) -> PaymentResult:
        invoice = self.invoice_repo.get_by_id(invoice_id)
        if invoice is None:
            return PaymentResult.failed("Invoice not found")
        if invoice.status not in InvoiceStatus.PAYABLE:
            return PaymentResult.failed(f"Invoice cannot be paid in status {invoice.status}")

        amount = to_money(amount)
        if amount <= 0:
            return PaymentResult.failed("Amount must be greater than zero")
        if amount > outstanding_amount(invoice):
            return PaymentResult.failed("Amount exceeds the outstanding balance")
        if not self.credit_service.has_sufficient_credit(invoice.customer_id, amount):
            return PaymentResult.failed("Insufficient customer credit")

        self.credit_service.deduct_credit(
            invoice.customer_id,
            amount,
            f"Applied to invoice {invoice.invoice_number}",
            user_id,
            invoice.id,
        )
        self._apply_to_invoice(invoice, amount, None, "Credit")
        logger.info(
            "Customer credit applied",
            extra={
                "context": {
                    "invoice_id": invoice.id,
                    "amount": str(amount),
                    "invoice_status": invoice.status,
                }
            },
        )
        return PaymentResult(success=True, message="Credit applied to invoice")

    def handle_payment_webhook(self, gateway_code: str, payload: Dict[str, Any]) -> bool:
        """Update the transaction or intent the webhook names.

        Returns:
            False when the payload matches nothing known
        """
        gateway = self.gateway_repo.get_by_code(gateway_code)
        if gateway is None:
            raise EntityNotFoundError("Payment gateway", gateway_code)

        obj = webhook_object(payload)
        reference = obj.get("payment_intent") or obj.get("id")
        if reference:
            transaction = self.transaction_repo.get_by_gateway_transaction_id(reference)
            if transaction is not None:
                return self._update_transaction(transaction, payload, obj)

        if self.intent_service is not None:
            return self.intent_service.process_webhook(gateway.id, payload)
        return False

    def _update_transaction(
        self, transaction: PaymentTransaction, payload: Dict[str, Any], obj: Dict[str, Any]
    ) -> bool:
        event_type = payload.get("type") or ""
        if event_type.startswith("charge.refunded") or obj.get("refunded"):
            status = TransactionStatus.REFUNDED
        else:
            status = WEBHOOK_TRANSACTION_STATUS.get(str(obj.get("status", "")).lower())
        if status is None:
            return False

        transaction.status = status
        transaction.processed_at = transaction.processed_at or utc_now()
        self.transaction_repo.save(transaction)
        logger.info(
            "Payment transaction updated from webhook",
            extra={"context": {"transaction_id": transaction.transaction_id, "status": status}},
        )
        return True

    def get_attempts_by_invoice(self, invoice_id: int) -> List[PaymentAttempt]:
        return self.attempt_repo.get_by_invoice(invoice_id)

    def get_transactions_by_invoice(self, invoice_id: int) -> List[PaymentTransaction]:
        return self.transaction_repo.get_by_invoice(invoice_id)

    def _apply_to_invoice(
        self, invoice, amount: Decimal, transaction_id: Optional[int], source: str
    ) -> None:
        is_full = apply_payment_to_invoice(invoice, amount)
        self.invoice_repo.save(invoice)
        self.invoice_repo.add_payment(
            InvoicePayment(
                invoice_id=invoice.id,
                payment_transaction_id=transaction_id,
                amount_applied=amount,
                currency_code=invoice.currency_code,
                is_full_payment=is_full,
                source=source,
            )
        )

    def _fail_attempt(
        self,
        attempt: PaymentAttempt,
        message: str,
        error_code: str,
        gateway_response: Optional[str] = None,
    ) -> None:
        attempt.status = PaymentAttemptStatus.FAILED
        attempt.error_code = error_code
        attempt.error_message = message[:1000]
        attempt.gateway_response = gateway_response
        attempt.completed_at = utc_now()
        self.attempt_repo.save(attempt)

    def _new_transaction_id(self) -> str:
        """TXN-yyyymmddHHMMSS, suffixed when that second is already taken."""
        base = f"TXN-{utc_now():%Y%m%d%H%M%S}"
        candidate = base
        suffix = 1
        while self.transaction_repo.get_by_transaction_id(candidate) is not None:
            suffix += 1
            candidate = f"{base}-{suffix}"
        return candidate
