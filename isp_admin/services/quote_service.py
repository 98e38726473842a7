"""
Quotes (offers) sent to customers before an invoice exists.

Lifecycle: Draft -> Sent -> Accepted / Rejected / Expired, and Accepted ->
Converted once an invoice has been created from the quote. Customers answer
through the acceptance token mailed with the quote.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional

from isp_admin.core.config import (
    DEFAULT_CURRENCY,
    DEFAULT_TAX_NAME,
    PUBLIC_BASE_URL,
    QUOTE_VALID_DAYS,
    utc_now,
)
from isp_admin.core.exceptions import EntityNotFoundError, InvalidOperationError
from isp_admin.core.security import generate_secure_token
from isp_admin.db.base import Quote, QuoteLine
from isp_admin.domain.entities import QuoteStatus
from isp_admin.domain.interfaces import ICustomerRepository, IQuoteRepository
from isp_admin.schemas.dtos import QueueEmailRequest, QuoteCreateRequest, QuoteUpdateRequest
from isp_admin.utils.billing_utils import format_document_number, to_money

logger = logging.getLogger(__name__)

QUOTE_PREFIX = "Q"
ZERO = Decimal("0")


class QuoteService:
    def __init__(
        self,
        repo: IQuoteRepository,
        customer_repo: ICustomerRepository,
        tax_service,
        email_queue_service=None,
        invoice_service=None,
    ) -> None:
        self.repo = repo
        self.customer_repo = customer_repo
        self.tax_service = tax_service
        self.email_queue_service = email_queue_service
        self.invoice_service = invoice_service

    def get_all(self) -> List[Quote]:
        return self.repo.get_all()

    def get_by_id(self, quote_id: int) -> Optional[Quote]:
        return self.repo.get_by_id(quote_id)

    def get_by_customer(self, customer_id: int) -> List[Quote]:
        return self.repo.get_by_customer(customer_id)

    def get_by_status(self, status: str) -> List[Quote]:
        return self.repo.get_by_status(status)

    def create(self, dto: QuoteCreateRequest, user_id: Optional[int] = None) -> Quote:
        dto.validate()
        customer = self.customer_repo.get_by_id(dto.customer_id)
        if customer is None:
            raise EntityNotFoundError("Customer", dto.customer_id)

        today = utc_now().date()
        valid_until = dto.valid_until or today + timedelta(days=QUOTE_VALID_DAYS)
        if valid_until < today:
            raise ValueError("Valid until date cannot be in the past")

        quote = Quote(
            quote_number=format_document_number(QUOTE_PREFIX, today.year, self.repo.get_last_id() + 1),
            customer_id=customer.id,
            status=QuoteStatus.DRAFT,
            valid_until=valid_until,
            currency_code=dto.currency_code or customer.preferred_currency or DEFAULT_CURRENCY,
            discount_amount=to_money(dto.discount_amount),
            customer_name=customer.customer_name or customer.name,
            customer_address=customer.address or "",
            customer_tax_id=customer.vat_number or customer.tax_id or "",
            notes=dto.notes,
            terms=dto.terms,
            internal_comment=dto.internal_comment,
            prepared_by_user_id=user_id,
        )
        self._apply_lines(quote, dto.lines)
        quote = self.repo.add(quote)
        logger.info(
            "Quote created",
            extra={
                "context": {
                    "quote_id": quote.id,
                    "quote_number": quote.quote_number,
                    "total": str(quote.total_amount),
                }
            },
        )
        return quote

    def update(self, quote_id: int, dto: QuoteUpdateRequest) -> Quote:
        dto.validate()
        quote = self._get_or_raise(quote_id)
        if quote.status != QuoteStatus.DRAFT:
            raise InvalidOperationError("Only draft quotes can be updated")

        changes = dto.changes()
        lines = changes.pop("lines", None)
        for name, value in changes.items():
            setattr(quote, name, value)
        quote.discount_amount = to_money(quote.discount_amount)
        if lines is not None:
            self._apply_lines(quote, dto.lines)
        else:
            self._recalculate(quote)
        return self.repo.save(quote)

    def delete(self, quote_id: int) -> None:
        quote = self._get_or_raise(quote_id)
        if quote.status == QuoteStatus.CONVERTED:
            raise InvalidOperationError("Converted quotes cannot be deleted")
        quote.deleted_at = utc_now()
        self.repo.save(quote)
        logger.info("Quote deleted", extra={"context": {"quote_id": quote_id}})

    def send(self, quote_id: int) -> Quote:
        """Mark a draft as sent and mail the acceptance link to the customer."""
        quote = self._get_or_raise(quote_id)
        if quote.status != QuoteStatus.DRAFT:
            raise InvalidOperationError(
                f"Only draft quotes can be sent (current status: {quote.status})"
            )
        customer = self.customer_repo.get_by_id(quote.customer_id)
        if customer is None:
            raise EntityNotFoundError("Customer", quote.customer_id)

        quote.acceptance_token = generate_secure_token()
        quote.status = QuoteStatus.SENT
        quote.sent_at = utc_now()
        quote = self.repo.save(quote)

        if self.email_queue_service is not None:
            self.email_queue_service.queue_email(self._quote_email(quote, customer))
        logger.info(
            "Quote sent",
            extra={"context": {"quote_id": quote.id, "quote_number": quote.quote_number}},
        )
        return quote

    def accept(self, token: str) -> Quote:
        quote = self._get_answerable(token)
        quote.status = QuoteStatus.ACCEPTED
        quote.accepted_at = utc_now()
        quote = self.repo.save(quote)
        logger.info("Quote accepted", extra={"context": {"quote_id": quote.id}})
        return quote

    def reject(self, token: str, reason: Optional[str] = None) -> Quote:
        quote = self._get_answerable(token)
        quote.status = QuoteStatus.REJECTED
        quote.rejected_at = utc_now()
        quote.rejection_reason = (reason or "")[:1000] or None
        quote = self.repo.save(quote)
        logger.info("Quote rejected", extra={"context": {"quote_id": quote.id}})
        return quote

    def convert_to_invoice(self, quote_id: int):
        """Create a draft invoice from an accepted quote; returns the invoice."""
        quote = self._get_or_raise(quote_id)
        if quote.status != QuoteStatus.ACCEPTED:
            raise InvalidOperationError(
                f"Only accepted quotes can be converted (current status: {quote.status})"
            )
        invoice = self.invoice_service.create_from_quote(quote)
        quote.status = QuoteStatus.CONVERTED
        quote.converted_invoice_id = invoice.id
        self.repo.save(quote)
        logger.info(
            "Quote converted to invoice",
            extra={"context": {"quote_id": quote.id, "invoice_id": invoice.id}},
        )
        return invoice

    def expire_outdated(self, today: Optional[date] = None) -> int:
        expirable = self.repo.get_expirable(
            today or utc_now().date(), (QuoteStatus.DRAFT, QuoteStatus.SENT)
        )
        for quote in expirable:
            quote.status = QuoteStatus.EXPIRED
            self.repo.save(quote)
        if expirable:
            logger.info("Quotes expired", extra={"context": {"count": len(expirable)}})
        return len(expirable)

    def _get_answerable(self, token: str) -> Quote:
        if not token:
            raise ValueError("Acceptance token is required")
        quote = self.repo.get_by_token(token)
        if quote is None:
            raise EntityNotFoundError("Quote", message="Quote not found")
        if quote.status != QuoteStatus.SENT:
            raise InvalidOperationError(
                f"Quote can no longer be answered (current status: {quote.status})"
            )
        if quote.valid_until < utc_now().date():
            raise InvalidOperationError("Quote has expired")
        return quote

    def _apply_lines(self, quote: Quote, line_requests) -> None:
        quote.lines = [
            QuoteLine(
                line_number=index,
                description=line.description.strip(),
                quantity=line.quantity,
                unit_price=to_money(line.unit_price),
                setup_fee=to_money(line.setup_fee),
                line_total=to_money(line.quantity * line.unit_price),
            )
            for index, line in enumerate(line_requests, start=1)
        ]
        self._recalculate(quote)

    def _recalculate(self, quote: Quote) -> None:
        """Discount comes off recurring charges first, then setup fees."""
        recurring = ZERO
        setup = ZERO
        for line in quote.lines:
            recurring += line.line_total
            setup += line.setup_fee or ZERO

        discount = min(to_money(quote.discount_amount or ZERO), recurring + setup)
        taxable_recurring = max(recurring - discount, ZERO)
        taxable_setup = setup - max(discount - recurring, ZERO)

        tax_amount = ZERO
        tax_rate = ZERO
        tax_name = DEFAULT_TAX_NAME or "VAT"
        for amount, is_setup in ((taxable_recurring, False), (taxable_setup, True)):
            if amount <= 0:
                continue
            calc = self.tax_service.calculate_tax(quote.customer_id, amount, is_setup)
            tax_amount += calc.tax_amount
            if calc.tax_rate > tax_rate:
                tax_rate = calc.tax_rate
            if calc.tax_name:
                tax_name = calc.tax_name

        quote.total_recurring = to_money(recurring)
        quote.total_setup_fee = to_money(setup)
        quote.discount_amount = to_money(discount)
        quote.subtotal = to_money(recurring + setup - discount)
        quote.tax_amount = to_money(tax_amount)
        quote.tax_rate = tax_rate
        quote.tax_name = tax_name
        quote.total_amount = to_money(quote.subtotal + quote.tax_amount)

    @staticmethod
    def _quote_email(quote: Quote, customer) -> QueueEmailRequest:
        link = f"{PUBLIC_BASE_URL}/api/v1/quotes/respond/{quote.acceptance_token}"
        body = (
            f"Dear {quote.customer_name},\n\n"
            f"Please find our quote {quote.quote_number} for "
            f"{quote.total_amount} {quote.currency_code}, valid until "
            f"{quote.valid_until.isoformat()}.\n\n"
            f"Accept the quote: {link}/accept\n"
            f"Decline the quote: {link}/reject\n"
        )
        return QueueEmailRequest(
            to=[customer.billing_email or customer.email],
            subject=f"Quote {quote.quote_number}",
            body_text=body,
            customer_id=customer.id,
            related_entity_type="Quote",
            related_entity_id=quote.id,
        )

    def _get_or_raise(self, quote_id: int) -> Quote:
        quote = self.repo.get_by_id(quote_id)
        if quote is None:
            raise EntityNotFoundError("Quote", quote_id)
        return quote
