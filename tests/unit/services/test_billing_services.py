"""
Unit tests for tax calculation, invoices, quotes and customer credit.

Repositories are mocks; the SQLAlchemy models are used as plain transient
objects so totals can be asserted on the real attributes.
"""

from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import Mock

import pytest

from isp_admin.core.config import utc_now
from isp_admin.core.exceptions import (
    EntityNotFoundError,
    InsufficientCreditError,
    InvalidOperationError,
)
from isp_admin.db.base import Customer, CustomerCredit, Invoice, Quote, TaxRule
from isp_admin.domain.entities import (
    CreditTransactionType,
    InvoiceStatus,
    QuoteStatus,
    TaxCalculation,
)
from isp_admin.schemas.dtos import (
    CreditTransactionCreateRequest,
    InvoiceCreateRequest,
    InvoiceLineRequest,
    QuoteCreateRequest,
    QuoteLineRequest,
)
from isp_admin.services.credit_service import CreditService
from isp_admin.services.invoice_service import InvoiceService, apply_payment_to_invoice
from isp_admin.services.quote_service import QuoteService
from isp_admin.services.tax_service import TaxService
from tests.factories.repository_factories import (
    BillingRepositoryFactory,
    CustomerRepositoryFactory,
)


def _customer(**overrides) -> Customer:
    values = dict(id=1, name="Acme", email="billing@acme.example", country_code="NO")
    values.update(overrides)
    return Customer(**values)


def _rule(**overrides) -> TaxRule:
    values = dict(
        id=10,
        country_code="NO",
        tax_name="MVA",
        tax_rate=Decimal("0.25"),
        applies_to_setup_fees=True,
        applies_to_recurring=True,
        reverse_charge_for_b2b=False,
    )
    values.update(overrides)
    return TaxRule(**values)


@pytest.fixture
def customer_repo() -> Mock:
    repo = CustomerRepositoryFactory.create_mock_full()
    repo.get_by_id.return_value = _customer()
    return repo


@pytest.fixture
def tax_repo() -> Mock:
    return BillingRepositoryFactory.tax_rule_repo()


@pytest.fixture
def tax_service(tax_repo, customer_repo):
    return TaxService(tax_repo, customer_repo)


class TestTaxService:
    def test_no_rule_means_zero_tax(self, tax_service):
        calc = tax_service.calculate_tax(1, Decimal("100"))

        assert calc.tax_amount == Decimal("0.00")
        assert calc.tax_rate == Decimal("0")

    def test_first_matching_rule_applies(self, tax_service, tax_repo):
        tax_repo.get_by_location.return_value = [_rule()]

        calc = tax_service.calculate_tax(1, Decimal("80.00"))

        assert calc == TaxCalculation(Decimal("20.00"), Decimal("0.25"), "MVA")

    def test_setup_fee_exempt_rule(self, tax_service, tax_repo):
        tax_repo.get_by_location.return_value = [_rule(applies_to_setup_fees=False)]

        calc = tax_service.calculate_tax(1, Decimal("50"), is_setup_fee=True)

        assert calc.tax_amount == Decimal("0.00")
        assert calc.tax_name == "MVA"

    def test_reverse_charge_for_company_with_vat_number(self, tax_service, tax_repo, customer_repo):
        tax_repo.get_by_location.return_value = [_rule(reverse_charge_for_b2b=True)]
        customer_repo.get_by_id.return_value = _customer(is_company=True, vat_number="NO123")

        assert tax_service.calculate_tax(1, Decimal("100")).tax_amount == Decimal("0.00")

    def test_unknown_customer_raises(self, tax_service, customer_repo):
        customer_repo.get_by_id.return_value = None

        with pytest.raises(EntityNotFoundError):
            tax_service.calculate_tax(42, Decimal("10"))

    @pytest.mark.parametrize(
        "vat_number,country,expected",
        [
            ("DE123456789", "DE", True),
            ("DE 123 456 789", "de", True),
            ("NL123456789B01", "NL", True),
            ("EL123456789", "GR", True),
            ("DE12345", "DE", False),
            ("FR123456789", "DE", False),
            ("NO123456789", "NO", False),
            ("", "DE", False),
        ],
    )
    def test_validate_vat_number(self, tax_service, vat_number, country, expected):
        assert tax_service.validate_vat_number(vat_number, country) is expected


class TestInvoiceService:
    @pytest.fixture
    def invoice_repo(self) -> Mock:
        return BillingRepositoryFactory.invoice_repo()

    @pytest.fixture
    def service(self, invoice_repo, customer_repo, tax_service):
        return InvoiceService(invoice_repo, customer_repo, tax_service)

    def test_create_computes_totals_and_number(self, service, invoice_repo, tax_repo):
        tax_repo.get_by_location.return_value = [_rule()]
        invoice_repo.get_last_id.return_value = 41
        dto = InvoiceCreateRequest(
            customer_id=1,
            issue_date=date(2025, 3, 1),
            lines=[
                InvoiceLineRequest(description="Hosting", unit_price=Decimal("10.00"), quantity=Decimal("3")),
                InvoiceLineRequest(description="Setup", unit_price=Decimal("20.00"), is_setup_fee=True),
            ],
        )

        invoice = service.create(dto)

        assert invoice.invoice_number == "INV-2025-00042"
        assert invoice.status == InvoiceStatus.DRAFT
        assert invoice.subtotal == Decimal("50.00")
        assert invoice.tax_amount == Decimal("12.50")
        assert invoice.total_amount == Decimal("62.50")
        assert [line.line_number for line in invoice.lines] == [1, 2]
        assert invoice.due_date > invoice.issue_date

    def test_create_requires_lines(self, service):
        with pytest.raises(ValueError, match="at least one line"):
            service.create(InvoiceCreateRequest(customer_id=1))

    def test_issue_only_from_draft(self, service, invoice_repo):
        invoice_repo.get_by_id.return_value = Invoice(id=1, status=InvoiceStatus.ISSUED)

        with pytest.raises(InvalidOperationError, match="Only draft invoices can be issued"):
            service.issue(1)

    def test_cancel_paid_invoice_rejected(self, service, invoice_repo):
        invoice_repo.get_by_id.return_value = Invoice(id=1, status=InvoiceStatus.PAID)

        with pytest.raises(InvalidOperationError):
            service.cancel(1)

    def test_delete_is_soft_and_limited_to_drafts(self, service, invoice_repo):
        draft = Invoice(id=1, status=InvoiceStatus.DRAFT)
        invoice_repo.get_by_id.return_value = draft

        service.delete(1)

        assert draft.deleted_at is not None

    def test_mark_overdue_moves_candidates(self, service, invoice_repo):
        late = Invoice(id=3, status=InvoiceStatus.ISSUED)
        invoice_repo.get_overdue_candidates.return_value = [late]

        assert service.mark_overdue(date(2025, 1, 31)) == 1
        assert late.status == InvoiceStatus.OVERDUE

    def test_apply_payment_partial_then_full(self):
        invoice = Invoice(total_amount=Decimal("100.00"), amount_paid=Decimal("0.00"))

        assert apply_payment_to_invoice(invoice, Decimal("40")) is False
        assert invoice.status == InvoiceStatus.PARTIALLY_PAID
        assert apply_payment_to_invoice(invoice, Decimal("60")) is True
        assert invoice.status == InvoiceStatus.PAID
        assert invoice.paid_at is not None

    def test_quote_conversion_keeps_quoted_tax(self, service, customer_repo, tax_service, tax_repo):
        tax_repo.get_by_location.return_value = [_rule()]
        quote = QuoteService(
            BillingRepositoryFactory.quote_repo(), customer_repo, tax_service, Mock(), Mock()
        ).create(
            QuoteCreateRequest(
                customer_id=1,
                discount_amount=Decimal("20.00"),
                lines=[
                    QuoteLineRequest(
                        description="Domain", unit_price=Decimal("10.00"), setup_fee=Decimal("50.00")
                    )
                ],
            )
        )
        assert quote.tax_amount == Decimal("10.00")

        invoice = service.create_from_quote(quote)

        assert invoice.subtotal == quote.subtotal == Decimal("40.00")
        assert invoice.tax_amount == Decimal("10.00")
        assert invoice.total_amount == quote.total_amount == Decimal("50.00")
        discounts = [line for line in invoice.lines if line.line_total < 0]
        assert [(line.is_setup_fee, line.line_total) for line in discounts] == [
            (False, Decimal("-10.00")),
            (True, Decimal("-10.00")),
        ]
        assert invoice.notes == f"Created from quote {quote.quote_number}"


class TestQuoteService:
    @pytest.fixture
    def quote_repo(self) -> Mock:
        return BillingRepositoryFactory.quote_repo()

    @pytest.fixture
    def email_queue(self) -> Mock:
        return Mock()

    @pytest.fixture
    def invoice_service(self) -> Mock:
        return Mock()

    @pytest.fixture
    def service(self, quote_repo, customer_repo, tax_service, email_queue, invoice_service):
        return QuoteService(
            quote_repo, customer_repo, tax_service, email_queue, invoice_service
        )

    def test_discount_comes_off_recurring_before_setup(self, service, tax_repo):
        tax_repo.get_by_location.return_value = [_rule(applies_to_setup_fees=False)]
        dto = QuoteCreateRequest(
            customer_id=1,
            discount_amount=Decimal("30.00"),
            lines=[
                QuoteLineRequest(
                    description="VPS", unit_price=Decimal("20.00"), setup_fee=Decimal("50.00")
                )
            ],
        )

        quote = service.create(dto)

        assert quote.total_recurring == Decimal("20.00")
        assert quote.total_setup_fee == Decimal("50.00")
        assert quote.subtotal == Decimal("40.00")
        # Recurring is fully discounted and setup fees are untaxed
        assert quote.tax_amount == Decimal("0.00")
        assert quote.total_amount == Decimal("40.00")

    def test_discount_capped_at_gross(self, service):
        dto = QuoteCreateRequest(
            customer_id=1,
            discount_amount=Decimal("500.00"),
            lines=[QuoteLineRequest(description="Domain", unit_price=Decimal("12.00"))],
        )

        quote = service.create(dto)

        assert quote.discount_amount == Decimal("12.00")
        assert quote.total_amount == Decimal("0.00")

    def test_send_sets_token_and_queues_email(self, service, quote_repo, email_queue):
        quote = Quote(
            id=4,
            quote_number="Q-2025-00004",
            customer_id=1,
            customer_name="Acme",
            status=QuoteStatus.DRAFT,
            valid_until=date.today() + timedelta(days=30),
            total_amount=Decimal("99.00"),
            currency_code="EUR",
        )
        quote_repo.get_by_id.return_value = quote

        service.send(4)

        assert quote.status == QuoteStatus.SENT
        assert quote.acceptance_token
        email = email_queue.queue_email.call_args.args[0]
        assert email.to == ["billing@acme.example"]
        assert quote.acceptance_token in email.body_text

    def test_accept_requires_sent_status(self, service, quote_repo):
        quote_repo.get_by_token.return_value = Quote(
            id=1, status=QuoteStatus.DRAFT, valid_until=date.today()
        )

        with pytest.raises(InvalidOperationError, match="can no longer be answered"):
            service.accept("token")

    def test_accept_expired_quote_rejected(self, service, quote_repo):
        quote_repo.get_by_token.return_value = Quote(
            id=1, status=QuoteStatus.SENT, valid_until=utc_now().date() - timedelta(days=1)
        )

        with pytest.raises(InvalidOperationError, match="expired"):
            service.accept("token")

    def test_reject_records_reason(self, service, quote_repo):
        quote = Quote(id=1, status=QuoteStatus.SENT, valid_until=utc_now().date())
        quote_repo.get_by_token.return_value = quote

        service.reject("token", "Too expensive")

        assert quote.status == QuoteStatus.REJECTED
        assert quote.rejection_reason == "Too expensive"

    def test_convert_accepted_quote(self, service, quote_repo, invoice_service):
        quote = Quote(id=2, status=QuoteStatus.ACCEPTED)
        quote_repo.get_by_id.return_value = quote
        invoice_service.create_from_quote.return_value = Invoice(id=77)

        invoice = service.convert_to_invoice(2)

        assert invoice.id == 77
        assert quote.status == QuoteStatus.CONVERTED
        assert quote.converted_invoice_id == 77

    def test_convert_requires_acceptance(self, service, quote_repo):
        quote_repo.get_by_id.return_value = Quote(id=2, status=QuoteStatus.SENT)

        with pytest.raises(InvalidOperationError):
            service.convert_to_invoice(2)


class TestCreditService:
    @pytest.fixture
    def credit_repo(self) -> Mock:
        return BillingRepositoryFactory.credit_repo()

    @pytest.fixture
    def service(self, credit_repo, customer_repo):
        return CreditService(credit_repo, customer_repo)

    def test_credit_account_created_lazily(self, service, credit_repo):
        credit = service.get_customer_credit(1)

        assert credit.balance == Decimal("0.00")
        credit_repo.add.assert_called_once()

    def test_add_then_deduct(self, service, credit_repo):
        account = CustomerCredit(id=1, customer_id=1, balance=Decimal("0.00"), currency_code="EUR")
        credit_repo.get_by_customer.return_value = account

        assert service.add_credit(1, Decimal("50")) == Decimal("50.00")
        assert service.deduct_credit(1, Decimal("20.50")) == Decimal("29.50")

        transaction = credit_repo.save_with_transaction.call_args.args[1]
        assert transaction.transaction_type == CreditTransactionType.DEDUCTION
        assert transaction.amount == Decimal("20.50")
        assert transaction.balance_after == Decimal("29.50")

    def test_balance_never_goes_negative(self, service, credit_repo):
        credit_repo.get_by_customer.return_value = CustomerCredit(
            id=1, customer_id=1, balance=Decimal("10.00")
        )

        with pytest.raises(InsufficientCreditError):
            service.deduct_credit(1, Decimal("10.01"))

    def test_negative_adjustment_reduces_balance(self, service, credit_repo):
        account = CustomerCredit(id=1, customer_id=1, balance=Decimal("30.00"))
        credit_repo.get_by_customer.return_value = account

        service.create_credit_transaction(
            CreditTransactionCreateRequest(
                customer_id=1,
                transaction_type=CreditTransactionType.ADJUSTMENT,
                amount=Decimal("-5.00"),
            )
        )

        assert account.balance == Decimal("25.00")

    def test_zero_amount_rejected(self, service):
        with pytest.raises(ValueError):
            service.add_credit(1, Decimal("0"))

    def test_has_sufficient_credit_without_account(self, service):
        assert service.has_sufficient_credit(1, Decimal("0.01")) is False
