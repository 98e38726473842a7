"""
Unit tests for tokens, password hashing, role policies and billing helpers.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from isp_admin.core.auth_decorators import (
    POLICIES,
    ROLE_ADMIN,
    ROLE_CUSTOMER,
    ROLE_FINANCE,
    ROLE_SALES,
    ROLE_SUPPORT,
    is_role_allowed,
)
from isp_admin.core.security import (
    create_access_token,
    create_user_token,
    get_jwt_secret_key,
    get_user_from_token,
    hash_password,
    verify_password,
)
from isp_admin.utils.billing_utils import add_years, format_document_number, to_money


class TestTokens:
    def test_user_token_round_trip(self):
        token = create_user_token(42, "ops@isp.example", ROLE_SUPPORT)

        assert get_user_from_token(token) == {
            "user_id": 42,
            "email": "ops@isp.example",
            "role": ROLE_SUPPORT,
        }

    def test_portal_user_token_carries_customer(self):
        token = create_user_token(7, "owner@acme.example", ROLE_CUSTOMER, customer_id=31)

        assert get_user_from_token(token)["customer_id"] == 31

    def test_non_access_token_rejected(self):
        token = create_access_token({"sub": "1", "email": "a@isp.example", "type": "refresh"})

        assert get_user_from_token(token) is None

    def test_expired_token_rejected(self):
        token = create_access_token(
            {"sub": "1", "email": "a@isp.example"}, expires_delta=timedelta(seconds=-1)
        )

        assert get_user_from_token(token) is None

    def test_tampered_token_rejected(self):
        token = create_user_token(1, "a@isp.example", ROLE_ADMIN)

        assert get_user_from_token(token[:-2] + "xx") is None

    def test_production_requires_strong_secret(self, monkeypatch):
        monkeypatch.setenv("FLASK_ENV", "production")
        monkeypatch.setenv("JWT_SECRET_KEY", "short")

        with pytest.raises(ValueError, match="strong JWT_SECRET_KEY"):
            get_jwt_secret_key()


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = hash_password("correct-horse-battery")

        assert hashed != "correct-horse-battery"
        assert verify_password("correct-horse-battery", hashed) is True
        assert verify_password("wrong", hashed) is False

    @pytest.mark.parametrize("stored", ["", "not-a-bcrypt-hash"])
    def test_unusable_hash(self, stored):
        assert verify_password("anything", stored) is False


class TestPolicies:
    def test_admin_passes_every_policy(self):
        assert all(is_role_allowed(policy, ROLE_ADMIN) for policy in POLICIES)

    @pytest.mark.parametrize(
        "policy,role,allowed",
        [
            ("Invoice.Read", ROLE_FINANCE, True),
            ("Invoice.Write", ROLE_SUPPORT, False),
            ("Refund.Write", ROLE_SUPPORT, False),
            ("Tld.Read", ROLE_CUSTOMER, True),
            ("PaymentIntent.Write", ROLE_CUSTOMER, True),
            ("Customer.Delete", ROLE_SALES, False),
            ("SystemSetting.Read", ROLE_SUPPORT, False),
            ("Admin.Only", ROLE_FINANCE, False),
        ],
    )
    def test_role_matrix(self, policy, role, allowed):
        assert is_role_allowed(policy, role) is allowed

    def test_unknown_policy_is_an_error(self):
        with pytest.raises(KeyError):
            is_role_allowed("Spaceship.Read", ROLE_ADMIN)


class TestBillingUtils:
    @pytest.mark.parametrize(
        "value,expected",
        [("10.005", Decimal("10.01")), (None, Decimal("0.00")), (2.675, Decimal("2.68")), (7, Decimal("7.00"))],
    )
    def test_to_money_rounds_half_up(self, value, expected):
        assert to_money(value) == expected

    def test_add_years_clamps_leap_day(self):
        assert add_years(date(2024, 2, 29), 1) == date(2025, 2, 28)
        assert add_years(date(2024, 2, 29), 4) == date(2028, 2, 29)

    def test_add_years_keeps_time(self):
        assert add_years(datetime(2025, 6, 1, 12, 30), 2) == datetime(2027, 6, 1, 12, 30)

    def test_format_document_number(self):
        assert format_document_number("INV", 2025, 7) == "INV-2025-00007"
        assert format_document_number("QUO", 2026, 123456) == "QUO-2026-123456"
