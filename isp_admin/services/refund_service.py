import logging
from decimal import Decimal
from typing import Callable, List, Optional

from isp_admin.core.config import utc_now
from isp_admin.core.exceptions import (
    EntityNotFoundError,
    ExternalServiceError,
    InvalidOperationError,
)
from isp_admin.db.base import Refund
from isp_admin.domain.entities import (
    CreditTransactionType,
    InvoiceStatus,
    RefundStatus,
    TransactionStatus,
)
from isp_admin.domain.interfaces import (
    IInvoiceRepository,
    IPaymentGatewayRepository,
    IPaymentTransactionRepository,
    IRefundRepository,
)
from isp_admin.integrations.payment_gateways import create_payment_gateway
from isp_admin.schemas.dtos import CreditTransactionCreateRequest, RefundCreateRequest
from isp_admin.utils.billing_utils import to_money

logger = logging.getLogger(__name__)

REFUNDABLE_STATUSES = (InvoiceStatus.PAID, InvoiceStatus.PARTIALLY_PAID)


class RefundService:
    """Refunds against paid invoices.

    Gateway payments are refunded through the gateway that captured them.
    Invoices settled from customer credit are refunded back to the credit
    balance.
    """

    def __init__(
        self,
        repo: IRefundRepository,
        invoice_repo: IInvoiceRepository,
        transaction_repo: IPaymentTransactionRepository,
        gateway_repo: IPaymentGatewayRepository,
        credit_service=None,
        gateway_factory: Callable = create_payment_gateway,
    ) -> None:
        self.repo = repo
        self.invoice_repo = invoice_repo
        self.transaction_repo = transaction_repo
        self.gateway_repo = gateway_repo
        self.credit_service = credit_service
        self.gateway_factory = gateway_factory

    def get_all(self) -> List[Refund]:
        return self.repo.get_all()

    def get_by_id(self, refund_id: int) -> Optional[Refund]:
        return self.repo.get_by_id(refund_id)

    def get_by_invoice(self, invoice_id: int) -> List[Refund]:
        return self.repo.get_by_invoice(invoice_id)

    def refundable_amount(self, invoice) -> Decimal:
        """Paid amount not yet claimed by a pending refund.

        Completed refunds have already been taken off ``amount_paid``.
        """
        pending = self.repo.get_pending_amount(invoice.id)
        return max(to_money(invoice.amount_paid) - to_money(pending), Decimal("0.00"))

    def create(self, dto: RefundCreateRequest, user_id: Optional[int] = None) -> Refund:
        dto.validate()
        invoice = self.invoice_repo.get_by_id(dto.invoice_id)
        if invoice is None:
            raise EntityNotFoundError("Invoice", dto.invoice_id)
        if invoice.status not in REFUNDABLE_STATUSES:
            raise InvalidOperationError(
                f"Only paid or partially paid invoices can be refunded (current status: {invoice.status})"
            )

        amount = to_money(dto.amount)
        available = self.refundable_amount(invoice)
        if amount > available:
            raise InvalidOperationError(
                f"Refund amount {amount} exceeds the refundable amount {available}"
            )

        transaction_id = dto.payment_transaction_id
        if transaction_id is not None:
            transaction = self.transaction_repo.get_by_id(transaction_id)
            if transaction is None or transaction.invoice_id != invoice.id:
                raise EntityNotFoundError("Payment transaction", transaction_id)
        else:
            transaction = self._latest_completed_transaction(invoice.id)
            transaction_id = transaction.id if transaction is not None else None

        refund = self.repo.add(
            Refund(
                invoice_id=invoice.id,
                payment_transaction_id=transaction_id,
                amount=amount,
                reason=dto.reason,
                status=RefundStatus.PENDING,
                requested_by_user_id=user_id,
            )
        )
        logger.info(
            "Refund requested",
            extra={
                "context": {
                    "refund_id": refund.id,
                    "invoice_id": invoice.id,
                    "amount": str(amount),
                }
            },
        )
        return refund

    def process(self, refund_id: int) -> Refund:
        refund = self.repo.get_by_id(refund_id)
        if refund is None:
            raise EntityNotFoundError("Refund", refund_id)
        if refund.status != RefundStatus.PENDING:
            raise InvalidOperationError(
                f"Only pending refunds can be processed (current status: {refund.status})"
            )
        invoice = self.invoice_repo.get_by_id(refund.invoice_id)
        if invoice is None:
            raise EntityNotFoundError("Invoice", refund.invoice_id)

        transaction = None
        if refund.payment_transaction_id is not None:
            transaction = self.transaction_repo.get_by_id(refund.payment_transaction_id)

        if transaction is None:
            self._refund_to_credit(refund, invoice)
        else:
            self._refund_through_gateway(refund, invoice, transaction)

        if refund.status == RefundStatus.COMPLETED:
            self._apply_to_invoice(invoice, refund.amount)
            if transaction is not None:
                transaction.refunded_amount = to_money(
                    Decimal(transaction.refunded_amount or 0) + Decimal(refund.amount)
                )
                transaction.status = (
                    TransactionStatus.REFUNDED
                    if transaction.refunded_amount >= to_money(transaction.amount)
                    else TransactionStatus.PARTIALLY_REFUNDED
                )
                self.transaction_repo.save(transaction)

        refund.processed_at = utc_now()
        refund = self.repo.save(refund)
        logger.info(
            "Refund processed",
            extra={
                "context": {
                    "refund_id": refund.id,
                    "status": refund.status,
                    "invoice_status": invoice.status,
                }
            },
        )
        return refund

    def _refund_through_gateway(self, refund: Refund, invoice, transaction) -> None:
        gateway = self.gateway_repo.get_by_id(transaction.payment_gateway_id)
        if gateway is None:
            refund.status = RefundStatus.FAILED
            refund.failure_reason = "Payment gateway not found"
            return
        try:
            result = self.gateway_factory(gateway).refund(
                transaction.gateway_transaction_id, refund.amount, invoice.currency_code
            )
        except ExternalServiceError as e:
            logger.error(
                "Gateway refund failed",
                extra={"context": {"refund_id": refund.id, "error": str(e)}},
            )
            refund.status = RefundStatus.FAILED
            refund.failure_reason = str(e)[:1000]
            return

        if result.success:
            refund.status = RefundStatus.COMPLETED
            refund.gateway_refund_id = result.gateway_reference
            refund.failure_reason = None
        else:
            refund.status = RefundStatus.FAILED
            refund.failure_reason = (result.message or "Refund declined")[:1000]

    def _refund_to_credit(self, refund: Refund, invoice) -> None:
        if self.credit_service is None:
            refund.status = RefundStatus.FAILED
            refund.failure_reason = "No payment transaction to refund"
            return
        self.credit_service.create_credit_transaction(
            CreditTransactionCreateRequest(
                customer_id=invoice.customer_id,
                transaction_type=CreditTransactionType.REFUND,
                amount=refund.amount,
                description=f"Refund for invoice {invoice.invoice_number}",
                invoice_id=invoice.id,
            ),
            refund.requested_by_user_id,
        )
        refund.status = RefundStatus.COMPLETED

    def _apply_to_invoice(self, invoice, amount: Decimal) -> None:
        invoice.amount_paid = max(
            to_money(Decimal(invoice.amount_paid or 0) - Decimal(amount)), Decimal("0.00")
        )
        if invoice.amount_paid == 0:
            invoice.status = InvoiceStatus.REFUNDED
        elif invoice.status == InvoiceStatus.PAID:
            invoice.status = InvoiceStatus.PARTIALLY_PAID
        self.invoice_repo.save(invoice)

    def _latest_completed_transaction(self, invoice_id: int):
        for transaction in self.transaction_repo.get_by_invoice(invoice_id):
            if transaction.status in (
                TransactionStatus.COMPLETED,
                TransactionStatus.PARTIALLY_REFUNDED,
            ):
                return transaction
        return None
