import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

from isp_admin.core.config import (
    DEFAULT_CURRENCY,
    DEFAULT_TAX_NAME,
    INVOICE_DUE_DAYS,
    utc_now,
)
from isp_admin.core.exceptions import EntityNotFoundError, InvalidOperationError
from isp_admin.db.base import Invoice, InvoiceLine
from isp_admin.domain.entities import InvoiceStatus
from isp_admin.domain.interfaces import ICustomerRepository, IInvoiceRepository
from isp_admin.schemas.dtos import InvoiceCreateRequest, InvoiceUpdateRequest
from isp_admin.utils.billing_utils import format_document_number, to_money

logger = logging.getLogger(__name__)

INVOICE_PREFIX = "INV"
MAX_PAGE_SIZE = 100


def apply_payment_to_invoice(invoice: Invoice, amount: Decimal) -> bool:
    """Add ``amount`` to the paid total and move the status.

    Returns:
        True when the invoice is now fully paid
    """
    invoice.amount_paid = to_money(Decimal(invoice.amount_paid or 0) + Decimal(amount))
    if invoice.amount_paid >= to_money(invoice.total_amount):
        invoice.status = InvoiceStatus.PAID
        invoice.paid_at = utc_now()
        return True
    invoice.status = InvoiceStatus.PARTIALLY_PAID
    return False


def outstanding_amount(invoice: Invoice) -> Decimal:
    return max(to_money(invoice.total_amount) - to_money(invoice.amount_paid), Decimal("0.00"))


class InvoiceService:
    """Invoice lifecycle: Draft -> Issued -> (Overdue) -> Paid / Cancelled."""

    def __init__(
        self,
        repo: IInvoiceRepository,
        customer_repo: ICustomerRepository,
        tax_service,
        customer_service=None,
    ) -> None:
        self.repo = repo
        self.customer_repo = customer_repo
        self.tax_service = tax_service
        self.customer_service = customer_service

    def get_all(self) -> List[Invoice]:
        return self.repo.get_all()

    def get_paged(self, page: int, page_size: int) -> Tuple[List[Invoice], int]:
        if page < 1:
            raise ValueError("page must be >= 1")
        if page_size < 1 or page_size > MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")
        return self.repo.get_paged(page, page_size)

    def get_by_id(self, invoice_id: int) -> Optional[Invoice]:
        return self.repo.get_by_id(invoice_id)

    def get_by_customer(self, customer_id: int) -> List[Invoice]:
        return self.repo.get_by_customer(customer_id)

    def get_by_status(self, status: str) -> List[Invoice]:
        return self.repo.get_by_status(status)

    def _next_number(self, year: int) -> str:
        return format_document_number(INVOICE_PREFIX, year, self.repo.get_last_id() + 1)

    def _apply_lines(self, invoice: Invoice, line_requests) -> None:
        invoice.lines = [
            InvoiceLine(
                line_number=index,
                description=line.description.strip(),
                quantity=line.quantity,
                unit_price=to_money(line.unit_price),
                is_setup_fee=line.is_setup_fee,
                line_total=to_money(line.quantity * line.unit_price),
            )
            for index, line in enumerate(line_requests, start=1)
        ]
        self._recalculate(invoice)

    @staticmethod
    def _discount_lines(quote) -> List[InvoiceLine]:
        """Quote discount taken off recurring charges first, the rest off setup fees."""
        discount = to_money(quote.discount_amount or 0)
        if discount <= 0:
            return []
        recurring = sum((to_money(line.line_total) for line in quote.lines), Decimal("0"))
        on_recurring = min(discount, max(recurring, Decimal("0")))
        on_setup = discount - on_recurring

        lines = []
        for amount, description, is_setup in (
            (on_recurring, "Discount", False),
            (on_setup, "Discount on setup fees", True),
        ):
            if amount > 0:
                lines.append(
                    InvoiceLine(
                        description=description,
                        quantity=Decimal("1"),
                        unit_price=-amount,
                        is_setup_fee=is_setup,
                        line_total=-amount,
                    )
                )
        return lines

    def _recalculate(self, invoice: Invoice) -> None:
        """Totals from lines; setup fees and recurring charges are taxed separately."""
        recurring = Decimal("0")
        setup = Decimal("0")
        for line in invoice.lines:
            if line.is_setup_fee:
                setup += line.line_total
            else:
                recurring += line.line_total

        tax_amount = Decimal("0")
        tax_rate = Decimal("0")
        tax_name = DEFAULT_TAX_NAME or "VAT"
        for amount, is_setup in ((recurring, False), (setup, True)):
            if amount <= 0:
                continue
            calc = self.tax_service.calculate_tax(invoice.customer_id, amount, is_setup)
            tax_amount += calc.tax_amount
            if calc.tax_rate > tax_rate:
                tax_rate = calc.tax_rate
            if calc.tax_name:
                tax_name = calc.tax_name

        invoice.subtotal = to_money(recurring + setup)
        invoice.tax_amount = to_money(tax_amount)
        invoice.tax_rate = tax_rate
        invoice.tax_name = tax_name
        invoice.total_amount = to_money(invoice.subtotal + invoice.tax_amount)

    def create(self, dto: InvoiceCreateRequest) -> Invoice:
        dto.validate()
        if self.customer_repo.get_by_id(dto.customer_id) is None:
            raise EntityNotFoundError("Customer", dto.customer_id)

        issue_date = dto.issue_date or utc_now().date()
        invoice = Invoice(
            invoice_number=self._next_number(issue_date.year),
            customer_id=dto.customer_id,
            status=InvoiceStatus.DRAFT,
            issue_date=issue_date,
            due_date=dto.due_date or issue_date + timedelta(days=INVOICE_DUE_DAYS),
            currency_code=dto.currency_code or DEFAULT_CURRENCY,
            amount_paid=Decimal("0.00"),
            notes=dto.notes,
        )
        self._apply_lines(invoice, dto.lines)
        invoice = self.repo.add(invoice)

        if self.customer_service is not None:
            self.customer_service.ensure_customer_number(dto.customer_id)

        logger.info(
            "Invoice created",
            extra={
                "context": {
                    "invoice_id": invoice.id,
                    "invoice_number": invoice.invoice_number,
                    "total": str(invoice.total_amount),
                }
            },
        )
        return invoice

    def create_from_quote(self, quote) -> Invoice:
        """Draft invoice carrying a quote's lines, setup fees and discount."""
        issue_date = utc_now().date()
        lines = []
        for quote_line in quote.lines:
            lines.append(
                InvoiceLine(
                    description=quote_line.description,
                    quantity=quote_line.quantity,
                    unit_price=to_money(quote_line.unit_price),
                    is_setup_fee=False,
                    line_total=to_money(quote_line.line_total),
                )
            )
            if quote_line.setup_fee and quote_line.setup_fee > 0:
                lines.append(
                    InvoiceLine(
                        description=f"Setup fee: {quote_line.description}"[:500],
                        quantity=Decimal("1"),
                        unit_price=to_money(quote_line.setup_fee),
                        is_setup_fee=True,
                        line_total=to_money(quote_line.setup_fee),
                    )
                )
        lines.extend(self._discount_lines(quote))
        for index, line in enumerate(lines, start=1):
            line.line_number = index

        invoice = Invoice(
            invoice_number=self._next_number(issue_date.year),
            customer_id=quote.customer_id,
            status=InvoiceStatus.DRAFT,
            issue_date=issue_date,
            due_date=issue_date + timedelta(days=INVOICE_DUE_DAYS),
            currency_code=quote.currency_code or DEFAULT_CURRENCY,
            amount_paid=Decimal("0.00"),
            notes=f"Created from quote {quote.quote_number}",
        )
        invoice.lines = lines
        self._recalculate(invoice)
        invoice = self.repo.add(invoice)
        logger.info(
            "Invoice created from quote",
            extra={"context": {"invoice_id": invoice.id, "quote_number": quote.quote_number}},
        )
        return invoice

    def update(self, invoice_id: int, dto: InvoiceUpdateRequest) -> Invoice:
        dto.validate()
        invoice = self._get_or_raise(invoice_id)
        if invoice.status != InvoiceStatus.DRAFT:
            raise InvalidOperationError("Only draft invoices can be updated")

        if dto.issue_date is not None:
            invoice.issue_date = dto.issue_date
        if dto.due_date is not None:
            invoice.due_date = dto.due_date
        if invoice.due_date < invoice.issue_date:
            raise ValueError("Due date cannot be before issue date")
        if dto.currency_code is not None:
            invoice.currency_code = dto.currency_code
        if dto.notes is not None:
            invoice.notes = dto.notes
        if dto.lines is not None:
            self._apply_lines(invoice, dto.lines)
        return self.repo.save(invoice)

    def issue(self, invoice_id: int) -> Invoice:
        invoice = self._get_or_raise(invoice_id)
        if invoice.status != InvoiceStatus.DRAFT:
            raise InvalidOperationError(
                f"Only draft invoices can be issued (current status: {invoice.status})"
            )
        invoice.status = InvoiceStatus.ISSUED
        invoice = self.repo.save(invoice)
        logger.info(
            "Invoice issued",
            extra={"context": {"invoice_id": invoice.id, "number": invoice.invoice_number}},
        )
        return invoice

    def cancel(self, invoice_id: int) -> Invoice:
        invoice = self._get_or_raise(invoice_id)
        if invoice.status == InvoiceStatus.PAID:
            raise InvalidOperationError("Paid invoices cannot be cancelled")
        if invoice.status == InvoiceStatus.CANCELLED:
            return invoice
        invoice.status = InvoiceStatus.CANCELLED
        return self.repo.save(invoice)

    def mark_overdue(self, today: Optional[date] = None) -> int:
        """Move issued invoices past their due date to Overdue."""
        candidates = self.repo.get_overdue_candidates(
            today or utc_now().date(), (InvoiceStatus.ISSUED,)
        )
        for invoice in candidates:
            invoice.status = InvoiceStatus.OVERDUE
            self.repo.save(invoice)
        if candidates:
            logger.info("Invoices marked overdue", extra={"context": {"count": len(candidates)}})
        return len(candidates)

    def delete(self, invoice_id: int) -> None:
        """Soft delete; only drafts and cancelled invoices may be removed."""
        invoice = self._get_or_raise(invoice_id)
        if invoice.status not in (InvoiceStatus.DRAFT, InvoiceStatus.CANCELLED):
            raise InvalidOperationError("Only draft or cancelled invoices can be deleted")
        invoice.deleted_at = utc_now()
        self.repo.save(invoice)
        logger.info("Invoice deleted", extra={"context": {"invoice_id": invoice_id}})

    def get_payments(self, invoice_id: int):
        self._get_or_raise(invoice_id)
        return self.repo.get_payments(invoice_id)

    def _get_or_raise(self, invoice_id: int) -> Invoice:
        invoice = self.repo.get_by_id(invoice_id)
        if invoice is None:
            raise EntityNotFoundError("Invoice", invoice_id)
        return invoice
