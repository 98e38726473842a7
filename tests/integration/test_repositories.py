"""
Repository tests against the in-memory SQLite database.
"""

import uuid
from datetime import date
from decimal import Decimal

import pytest

from isp_admin.core.exceptions import InvalidOperationError
from isp_admin.db.base import ContactPerson, Customer, Invoice
from isp_admin.domain.entities import InvoiceStatus, RefundStatus
from isp_admin.repositories.credit_repository import CreditRepository
from isp_admin.repositories.customer_repository import (
    ContactPersonRepository,
    CustomerRepository,
)
from isp_admin.repositories.dns_repository import DnsRecordTypeRepository
from isp_admin.repositories.invoice_repository import InvoiceRepository
from isp_admin.repositories.payment_repository import (
    PaymentGatewayRepository,
    PaymentTransactionRepository,
)
from isp_admin.repositories.refund_repository import RefundRepository
from isp_admin.repositories.system_setting_repository import SystemSettingRepository
from isp_admin.schemas.dtos import RefundCreateRequest
from isp_admin.services.credit_service import CreditService
from isp_admin.services.refund_service import RefundService
from isp_admin.services.system_setting_service import SystemSettingService


def _customer(db_session, **overrides):
    values = dict(name="Nordlys AS", email=f"post-{uuid.uuid4().hex[:8]}@nordlys.example")
    values.update(overrides)
    return CustomerRepository(db_session).add(Customer(**values))


class TestCustomerRepository:
    def test_email_lookup_is_case_insensitive(self, db_session):
        customer = _customer(db_session)
        repo = CustomerRepository(db_session)

        assert repo.get_by_email(customer.email.upper()).id == customer.id
        assert repo.email_exists(customer.email.upper()) is True
        assert repo.email_exists(customer.email, exclude_id=customer.id) is False

    def test_billing_email_also_matches(self, db_session):
        billing = f"faktura-{uuid.uuid4().hex[:8]}@nordlys.example"
        customer = _customer(db_session, billing_email=billing)

        assert CustomerRepository(db_session).get_by_email(billing).id == customer.id

    def test_search_reaches_contact_persons(self, db_session):
        customer = _customer(db_session)
        surname = f"Haugland{uuid.uuid4().hex[:6]}"
        ContactPersonRepository(db_session).add(
            ContactPerson(customer_id=customer.id, first_name="Kari", last_name=surname)
        )

        results = CustomerRepository(db_session).search(surname.lower())

        assert [c.id for c in results] == [customer.id]


class TestSystemSettingSequences:
    def test_missing_sequence_starts_at_default(self, db_session):
        key = f"SEQ{uuid.uuid4().hex[:6]}"
        service = SystemSettingService(SystemSettingRepository(db_session))

        assert service.next_number(key) == 1001
        assert service.next_number(key) == 1002
        assert service.get_value(key) == "1003"

    def test_non_numeric_value_resets(self, db_session):
        key = f"SEQ{uuid.uuid4().hex[:6]}"
        service = SystemSettingService(SystemSettingRepository(db_session))
        service.upsert(key, "abc")

        assert service.next_number(key, default=500) == 500
        assert service.get_value(key) == "501"


@pytest.mark.billing
class TestRefundsAgainstPaidInvoice:
    @pytest.fixture
    def invoice(self, db_session):
        customer = _customer(db_session)
        return InvoiceRepository(db_session).add(
            Invoice(
                invoice_number=f"INV-T-{uuid.uuid4().hex[:8]}",
                customer_id=customer.id,
                status=InvoiceStatus.PAID,
                issue_date=date(2025, 5, 1),
                due_date=date(2025, 5, 15),
                currency_code="NOK",
                subtotal=Decimal("100.00"),
                total_amount=Decimal("100.00"),
                amount_paid=Decimal("100.00"),
            )
        )

    @pytest.fixture
    def service(self, db_session):
        return RefundService(
            RefundRepository(db_session),
            InvoiceRepository(db_session),
            PaymentTransactionRepository(db_session),
            PaymentGatewayRepository(db_session),
            credit_service=CreditService(CreditRepository(db_session), CustomerRepository(db_session)),
        )

    def _refund(self, service, invoice, amount):
        return service.create(
            RefundCreateRequest(invoice_id=invoice.id, amount=Decimal(amount), reason="Cancelled plan")
        )

    def test_partial_then_full_refund(self, service, invoice):
        first = service.process(self._refund(service, invoice, "30").id)

        assert first.status == RefundStatus.COMPLETED
        assert invoice.amount_paid == Decimal("70.00")
        assert invoice.status == InvoiceStatus.PARTIALLY_PAID
        assert service.refundable_amount(invoice) == Decimal("70.00")

        second = service.process(self._refund(service, invoice, "70").id)

        assert second.status == RefundStatus.COMPLETED
        assert invoice.amount_paid == Decimal("0.00")
        assert invoice.status == InvoiceStatus.REFUNDED

    def test_pending_refund_holds_back_its_amount(self, service, invoice):
        self._refund(service, invoice, "60")

        assert service.refundable_amount(invoice) == Decimal("40.00")
        with pytest.raises(InvalidOperationError, match="exceeds the refundable amount 40.00"):
            self._refund(service, invoice, "40.01")

@pytest.mark.domains
def test_seeded_record_types_lookup(app, db_session):
    repo = DnsRecordTypeRepository(db_session)

    assert repo.get_by_type("mx").has_priority is True
    assert {t.type for t in repo.get_active()} >= {"A", "CNAME", "TXT"}
