"""
Unit tests for request DTO parsing, validation helpers and response DTOs.
"""

from datetime import date
from decimal import Decimal

import pytest

from isp_admin.core.validation import parse_bool, parse_date, parse_decimal, parse_int
from isp_admin.db.base import Invoice, InvoiceLine, PaymentIntent, User
from isp_admin.schemas.dtos import (
    CustomerUpdateRequest,
    InvoiceCreateRequest,
    InvoiceLineRequest,
    InvoiceResponse,
    LoginRequest,
)
from isp_admin.schemas.serializers import (
    serialize_invoice,
    serialize_payment_intent,
    serialize_user,
)


class TestFromDict:
    def test_nested_lines_are_parsed(self):
        dto = InvoiceCreateRequest.from_dict(
            {
                "customer_id": "7",
                "due_date": "2025-03-01",
                "lines": [
                    {"description": "Hosting", "unit_price": "50.00", "quantity": 1},
                    {"description": "Setup", "unit_price": 25, "is_setup_fee": "true"},
                ],
            }
        )

        assert dto.customer_id == 7
        assert dto.due_date == date(2025, 3, 1)
        assert all(isinstance(line, InvoiceLineRequest) for line in dto.lines)
        assert dto.lines[0].unit_price == Decimal("50.00")
        assert dto.lines[1].is_setup_fee is True
        assert dto.lines[1].quantity == Decimal("1")

    def test_missing_required_field(self):
        with pytest.raises(ValueError, match="customer_id is required"):
            InvoiceCreateRequest.from_dict({"lines": []})

    def test_required_field_in_nested_item(self):
        with pytest.raises(ValueError, match="unit_price is required"):
            InvoiceCreateRequest.from_dict({"customer_id": 1, "lines": [{"description": "x"}]})

    def test_nested_field_must_be_list(self):
        with pytest.raises(ValueError, match="lines: must be a list"):
            InvoiceCreateRequest.from_dict({"customer_id": 1, "lines": {"description": "x"}})

    def test_unknown_keys_ignored(self):
        dto = LoginRequest.from_dict({"email": "a@acme.example", "password": "pw", "remember": True})

        assert dto.email == "a@acme.example"

    def test_body_must_be_object(self):
        with pytest.raises(ValueError, match="JSON object"):
            LoginRequest.from_dict(["a@acme.example"])

    def test_bad_type_names_the_field(self):
        with pytest.raises(ValueError, match="customer_id: must be an integer"):
            InvoiceCreateRequest.from_dict({"customer_id": "seven"})


class TestValidation:
    def test_invoice_requires_lines(self):
        with pytest.raises(ValueError, match="at least one line"):
            InvoiceCreateRequest(customer_id=1).validate()

    def test_invoice_currency_uppercased(self):
        dto = InvoiceCreateRequest(
            customer_id=1,
            lines=[InvoiceLineRequest(description="Hosting", unit_price=Decimal("10"))],
            currency_code="nok",
        )

        dto.validate()

        assert dto.currency_code == "NOK"

    def test_due_date_before_issue_date(self):
        dto = InvoiceCreateRequest(
            customer_id=1,
            lines=[InvoiceLineRequest(description="Hosting", unit_price=Decimal("10"))],
            issue_date=date(2025, 2, 1),
            due_date=date(2025, 1, 1),
        )

        with pytest.raises(ValueError, match="Due date cannot be before issue date"):
            dto.validate()

    def test_changes_only_supplied_fields(self):
        dto = CustomerUpdateRequest.from_dict({"name": "Acme AS", "phone": None})

        assert dto.changes() == {"name": "Acme AS"}


class TestParsers:
    @pytest.mark.parametrize("raw,expected", [("1 250.50", Decimal("1250.50")), (3, Decimal("3")), ("", None)])
    def test_parse_decimal(self, raw, expected):
        assert parse_decimal(raw, "amount") == expected

    def test_parse_decimal_rejects_bool(self):
        with pytest.raises(ValueError, match="amount: invalid number"):
            parse_decimal(True, "amount")

    @pytest.mark.parametrize("raw,expected", [("yes", True), ("off", False), (1, True)])
    def test_parse_bool(self, raw, expected):
        assert parse_bool(raw, "flag") is expected

    def test_parse_bool_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_bool("maybe", "flag")

    def test_parse_int_rejects_bool(self):
        with pytest.raises(ValueError):
            parse_int(False, "count")

    def test_parse_date_accepts_timestamp_prefix(self):
        assert parse_date("2025-02-28T10:00:00Z", "due_date") == date(2025, 2, 28)


class TestResponseDtos:
    def test_invoice_response_carries_lines_and_amount_due(self):
        invoice = Invoice(
            id=3,
            invoice_number="INV-2025-00003",
            customer_id=7,
            status="PartiallyPaid",
            issue_date=date(2025, 4, 1),
            due_date=date(2025, 4, 15),
            currency_code="NOK",
            subtotal=Decimal("100.00"),
            tax_amount=Decimal("25.00"),
            total_amount=Decimal("125.00"),
            amount_paid=Decimal("50.00"),
            tax_rate=Decimal("0.25"),
            tax_name="MVA",
        )
        invoice.lines = [
            InvoiceLine(
                id=1,
                line_number=1,
                description="Web hosting",
                quantity=Decimal("1"),
                unit_price=Decimal("100.00"),
                is_setup_fee=False,
                line_total=Decimal("100.00"),
            )
        ]

        response = InvoiceResponse.from_model(invoice)

        assert response.amount_due == Decimal("75.00")
        assert response.lines[0].description == "Web hosting"

        data = serialize_invoice(invoice)
        assert data["amount_due"] == "75.00"
        assert data["issue_date"] == "2025-04-01"
        assert data["lines"][0]["line_total"] == "100.00"

    def test_user_response_hides_password_hash(self):
        user = User(
            id=4,
            email="kari@isp.example",
            name="Kari",
            role="Finance",
            password_hash="$2b$12$secret",
            active_flag=False,
        )

        data = serialize_user(user)

        assert "password_hash" not in data
        assert "active_flag" not in data
        assert data["is_active"] is False
        assert data["role"] == "Finance"

    def test_payment_intent_secret_only_on_request(self):
        intent = PaymentIntent(
            id=9,
            customer_id=7,
            payment_gateway_id=1,
            amount=Decimal("10.00"),
            currency_code="EUR",
            status="Created",
            client_secret="pi_9_secret",
        )

        assert "client_secret" not in serialize_payment_intent(intent)
        assert serialize_payment_intent(intent, include_secret=True)["client_secret"] == "pi_9_secret"
