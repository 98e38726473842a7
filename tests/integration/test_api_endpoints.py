"""
Integration tests running the Flask app against the in-memory database.
"""

import uuid
from decimal import Decimal

import pytest


def _unique_email(prefix="billing"):
    return f"{prefix}-{uuid.uuid4().hex[:8]}@acme.example"


@pytest.fixture
def customer_id(client, auth_headers, response_helper):
    response = client.post(
        "/api/v1/customers/",
        json={"name": "Acme AS", "email": _unique_email(), "country_code": "no"},
        headers=auth_headers,
    )
    return response_helper.assert_success(response, 201)["id"]


class TestHealthAndAuth:
    def test_health_reports_database(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.get_json() == {"status": "ok", "database": "connected"}

    @pytest.mark.auth
    def test_missing_token_is_401(self, client):
        response = client.get("/api/v1/customers/")

        assert response.status_code == 401
        assert "Authorization" in response.get_json()["error"]

    @pytest.mark.auth
    def test_invalid_token_is_401(self, client):
        response = client.get("/api/v1/customers/", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401
        assert response.get_json()["error"] == "Invalid or expired token"

    @pytest.mark.auth
    def test_role_outside_policy_is_403(self, client, user_factory, headers_for):
        response = client.get("/api/v1/settings/", headers=headers_for(user_factory("Support")))

        assert response.status_code == 403
        assert response.get_json()["policy"] == "SystemSetting.Read"

    @pytest.mark.auth
    def test_login_and_me(self, client, user_factory, response_helper):
        user = user_factory("Finance")

        response = client.post(
            "/api/v1/auth/login",
            json={"email": user.email, "password": "correct-horse-battery"},
        )
        data = response_helper.assert_success(response)
        assert data["user"]["role"] == "Finance"
        assert "password_hash" not in data["user"]

        me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {data['token']}"})
        assert me.get_json()["data"]["email"] == user.email

    @pytest.mark.auth
    def test_login_wrong_password(self, client, user_factory, response_helper):
        user = user_factory("Sales")

        response = client.post(
            "/api/v1/auth/login", json={"email": user.email, "password": "wrong-password"}
        )

        assert response_helper.assert_failure(response, 401) == "Invalid credentials"


class TestCustomers:
    def test_create_assigns_reference_number(self, client, auth_headers, response_helper):
        response = client.post(
            "/api/v1/customers/",
            json={"name": "Fjord Hosting", "email": _unique_email("Office")},
            headers=auth_headers,
        )

        data = response_helper.assert_success(response, 201)
        assert data["reference_number"] >= 1001
        assert data["email"].startswith("office-")

    def test_duplicate_email_is_400(self, client, auth_headers, response_helper):
        email = _unique_email()
        client.post("/api/v1/customers/", json={"name": "One", "email": email}, headers=auth_headers)

        response = client.post(
            "/api/v1/customers/", json={"name": "Two", "email": email}, headers=auth_headers
        )

        assert "already exists" in response_helper.assert_failure(response, 400)

    def test_missing_field_is_400(self, client, auth_headers, response_helper):
        response = client.post("/api/v1/customers/", json={"name": "No Email"}, headers=auth_headers)

        assert response_helper.assert_failure(response, 400) == "email is required"

    def test_unknown_customer_is_404(self, client, auth_headers, response_helper):
        response = client.put(
            "/api/v1/customers/999999", json={"name": "Ghost"}, headers=auth_headers
        )

        response_helper.assert_failure(response, 404)

    def test_list_is_paged(self, client, auth_headers, customer_id, response_helper):
        data = response_helper.assert_success(
            client.get("/api/v1/customers/?page=1&page_size=5", headers=auth_headers)
        )

        assert data["page_size"] == 5
        assert data["total"] >= 1
        assert len(data["items"]) <= 5


class TestSettingsAndReferenceData:
    def test_seeded_sequences_present(self, client, auth_headers, response_helper):
        data = response_helper.assert_success(client.get("/api/v1/settings/PNR", headers=auth_headers))

        assert data["key"] == "PNR"
        assert int(data["value"]) >= 1001

    def test_upsert_and_delete_setting(self, client, auth_headers, response_helper):
        key = f"T{uuid.uuid4().hex[:6].upper()}"

        saved = client.put(
            "/api/v1/settings/", json={"key": key, "value": "X-"}, headers=auth_headers
        )
        assert response_helper.assert_success(saved)["value"] == "X-"

        response_helper.assert_success(client.delete(f"/api/v1/settings/{key}", headers=auth_headers))
        response_helper.assert_failure(client.get(f"/api/v1/settings/{key}", headers=auth_headers), 404)

    def test_dns_record_types_seeded(self, client, auth_headers, response_helper):
        data = response_helper.assert_success(client.get("/api/v1/dns/record-types", headers=auth_headers))

        types = {t["type"]: t for t in data}
        assert {"A", "AAAA", "CNAME", "MX", "TXT", "SRV"} <= set(types)
        assert types["MX"]["has_priority"] is True


@pytest.mark.billing
class TestInvoiceFlow:
    def test_create_issue_and_cancel(self, client, auth_headers, customer_id, response_helper):
        created = response_helper.assert_success(
            client.post(
                "/api/v1/invoices/",
                json={
                    "customer_id": customer_id,
                    "currency_code": "nok",
                    "lines": [
                        {"description": "Web hosting", "unit_price": "25.00", "quantity": 2},
                        {"description": "Setup", "unit_price": "10", "is_setup_fee": True},
                    ],
                },
                headers=auth_headers,
            ),
            201,
        )
        assert created["status"] == "Draft"
        assert created["currency_code"] == "NOK"
        assert Decimal(created["subtotal"]) == Decimal("60.00")
        assert len(created["lines"]) == 2

        issued = response_helper.assert_success(
            client.post(f"/api/v1/invoices/{created['id']}/issue", headers=auth_headers)
        )
        assert issued["status"] == "Issued"

        cancelled = response_helper.assert_success(
            client.post(f"/api/v1/invoices/{created['id']}/cancel", headers=auth_headers)
        )
        assert cancelled["status"] == "Cancelled"

    def test_invoice_for_unknown_customer(self, client, auth_headers, response_helper):
        response = client.post(
            "/api/v1/invoices/",
            json={"customer_id": 999999, "lines": [{"description": "x", "unit_price": 1}]},
            headers=auth_headers,
        )

        response_helper.assert_failure(response, 404)


@pytest.mark.billing
class TestCredit:
    def test_add_then_overdraw(self, client, auth_headers, customer_id, response_helper):
        added = response_helper.assert_success(
            client.post(
                "/api/v1/credits/add",
                json={"customer_id": customer_id, "amount": "100.00", "description": "Prepayment"},
                headers=auth_headers,
            )
        )
        assert Decimal(added["balance"]) == Decimal("100.00")

        deducted = response_helper.assert_success(
            client.post(
                "/api/v1/credits/deduct",
                json={"customer_id": customer_id, "amount": "40"},
                headers=auth_headers,
            )
        )
        assert Decimal(deducted["balance"]) == Decimal("60.00")

        overdraw = client.post(
            "/api/v1/credits/deduct",
            json={"customer_id": customer_id, "amount": "60.01"},
            headers=auth_headers,
        )
        assert "Insufficient credit" in response_helper.assert_failure(overdraw, 400)

        history = response_helper.assert_success(
            client.get(f"/api/v1/credits/customers/{customer_id}/transactions", headers=auth_headers)
        )
        assert len(history) == 2

    def test_non_positive_amount(self, client, auth_headers, customer_id, response_helper):
        response = client.post(
            "/api/v1/credits/add",
            json={"customer_id": customer_id, "amount": "0"},
            headers=auth_headers,
        )

        assert response_helper.assert_failure(response, 400) == "Amount must be greater than zero"


@pytest.mark.billing
class TestPaymentIntentOwnership:
    @pytest.fixture
    def other_customer_id(self, client, auth_headers, response_helper):
        response = client.post(
            "/api/v1/customers/",
            json={"name": "Fjordnett AS", "email": _unique_email("fjord"), "country_code": "no"},
            headers=auth_headers,
        )
        return response_helper.assert_success(response, 201)["id"]

    @pytest.fixture
    def foreign_intent_id(self, db_session, other_customer_id):
        from isp_admin.db.base import PaymentGateway, PaymentIntent

        gateway = PaymentGateway(name="Bank transfer", provider_code="manual", is_active=True)
        db_session.add(gateway)
        db_session.flush()
        intent = PaymentIntent(
            customer_id=other_customer_id,
            payment_gateway_id=gateway.id,
            amount=Decimal("125.00"),
            currency_code="NOK",
            status="Created",
            gateway_intent_id=f"MANPI-{uuid.uuid4().hex[:12].upper()}",
        )
        db_session.add(intent)
        db_session.commit()
        return intent.id

    def test_customer_cannot_cancel_another_customers_intent(
        self, client, customer_id, foreign_intent_id, user_factory, headers_for, response_helper
    ):
        caller = user_factory("Customer", customer_id=customer_id)

        response = client.post(
            f"/api/v1/payment-intents/{foreign_intent_id}/cancel", headers=headers_for(caller)
        )

        assert "Payment intent" in response_helper.assert_failure(response, 404)

    def test_customer_cannot_confirm_another_customers_intent(
        self, client, customer_id, foreign_intent_id, user_factory, headers_for, response_helper
    ):
        caller = user_factory("Customer", customer_id=customer_id)

        response = client.post(
            f"/api/v1/payment-intents/{foreign_intent_id}/confirm",
            json={"payment_method_token": "tok_visa"},
            headers=headers_for(caller),
        )

        response_helper.assert_failure(response, 404)

    def test_owner_and_staff_can_act_on_intent(
        self,
        client,
        auth_headers,
        other_customer_id,
        foreign_intent_id,
        user_factory,
        headers_for,
        response_helper,
    ):
        owner = user_factory("Customer", customer_id=other_customer_id)

        confirmed = response_helper.assert_success(
            client.post(
                f"/api/v1/payment-intents/{foreign_intent_id}/confirm",
                json={"payment_method_token": "tok_visa"},
                headers=headers_for(owner),
            )
        )
        assert confirmed["status"] == "Succeeded"
        assert "client_secret" not in confirmed

        refused = client.post(
            f"/api/v1/payment-intents/{foreign_intent_id}/cancel", headers=auth_headers
        )
        assert response_helper.assert_failure(refused, 400) == (
            "Succeeded payment intents cannot be cancelled"
        )

    def test_customer_cannot_open_intent_for_foreign_invoice(
        self,
        client,
        auth_headers,
        customer_id,
        other_customer_id,
        user_factory,
        headers_for,
        response_helper,
    ):
        invoice = response_helper.assert_success(
            client.post(
                "/api/v1/invoices/",
                json={
                    "customer_id": other_customer_id,
                    "lines": [{"description": "Domain renewal", "unit_price": "150"}],
                },
                headers=auth_headers,
            ),
            201,
        )
        caller = user_factory("Customer", customer_id=customer_id)

        response = client.post(
            "/api/v1/payment-intents/",
            json={"amount": "150.00", "invoice_id": invoice["id"]},
            headers=headers_for(caller),
        )

        assert "Invoice" in response_helper.assert_failure(response, 404)
