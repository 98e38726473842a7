"""
Payment gateway clients.

``ManualPaymentGateway`` records offline payments (bank transfer, cash) and
accepts any token. ``StripePaymentGateway`` talks to the Stripe REST API with
form-encoded requests and the secret key as bearer token.
"""

import json
import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, Optional

import requests

from isp_admin.core.exceptions import ExternalServiceError, UnsupportedProviderError
from isp_admin.domain.interfaces import IPaymentGateway
from isp_admin.domain.entities import GatewayResult

logger = logging.getLogger(__name__)

STRIPE_API_URL = "https://api.stripe.com"
DEFAULT_TIMEOUT = 30

# Stripe intent status -> local intent status
STRIPE_INTENT_STATUS = {
    "requires_payment_method": "Created",
    "requires_confirmation": "Created",
    "requires_action": "RequiresAction",
    "processing": "RequiresAction",
    "requires_capture": "RequiresAction",
    "succeeded": "Succeeded",
    "canceled": "Cancelled",
}


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1")))


class ManualPaymentGateway(IPaymentGateway):
    def _reference(self, prefix: str) -> str:
        return f"{prefix}-{uuid.uuid4().hex[:12].upper()}"

    def charge(self, amount, currency, token, description="") -> GatewayResult:
        return GatewayResult(
            success=True,
            gateway_reference=self._reference("MAN"),
            status="succeeded",
            message="Manual payment recorded",
        )

    def refund(self, gateway_reference, amount, currency) -> GatewayResult:
        return GatewayResult(
            success=True,
            gateway_reference=self._reference("MANREF"),
            status="succeeded",
            message="Manual refund recorded",
        )

    def create_intent(self, amount, currency, description="") -> GatewayResult:
        reference = self._reference("MANPI")
        return GatewayResult(
            success=True,
            gateway_reference=reference,
            status="Created",
            client_secret=f"{reference}_secret",
        )

    def confirm_intent(self, gateway_intent_id, token) -> GatewayResult:
        return GatewayResult(success=True, gateway_reference=gateway_intent_id, status="Succeeded")

    def cancel_intent(self, gateway_intent_id) -> GatewayResult:
        return GatewayResult(success=True, gateway_reference=gateway_intent_id, status="Cancelled")


class StripePaymentGateway(IPaymentGateway):
    def __init__(self, secret_key: str, api_url: str = STRIPE_API_URL, timeout: int = DEFAULT_TIMEOUT):
        if not secret_key:
            raise ValueError("Stripe secret key is required")
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {secret_key}"})

    def _post(self, path: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """POST form data; card declines come back as a payload with ``error``."""
        try:
            response = self.session.post(f"{self.api_url}{path}", data=data, timeout=self.timeout)
        except requests.RequestException as e:
            raise ExternalServiceError("Stripe", str(e)) from e
        try:
            payload = response.json()
        except ValueError as e:
            raise ExternalServiceError("Stripe", "Invalid JSON response", response.status_code) from e
        if response.status_code >= 500:
            raise ExternalServiceError("Stripe", f"HTTP {response.status_code}", response.status_code)
        return payload

    @staticmethod
    def _declined(payload: Dict[str, Any]) -> Optional[GatewayResult]:
        error = payload.get("error")
        if not error:
            return None
        return GatewayResult(
            success=False,
            status="failed",
            message=error.get("message") or error.get("code") or "Payment declined",
            raw_response=json.dumps(payload),
        )

    def _intent_result(self, payload: Dict[str, Any]) -> GatewayResult:
        declined = self._declined(payload)
        if declined:
            return declined
        status = STRIPE_INTENT_STATUS.get(payload.get("status"), "Failed")
        return GatewayResult(
            success=status != "Failed",
            gateway_reference=payload.get("id"),
            status=status,
            client_secret=payload.get("client_secret"),
            raw_response=json.dumps(payload),
        )

    def charge(self, amount, currency, token, description="") -> GatewayResult:
        payload = self._post(
            "/v1/payment_intents",
            {
                "amount": to_minor_units(amount),
                "currency": currency.lower(),
                "payment_method": token,
                "description": description,
                "confirm": "true",
                "off_session": "true",
            },
        )
        declined = self._declined(payload)
        if declined:
            return declined
        succeeded = payload.get("status") == "succeeded"
        return GatewayResult(
            success=succeeded,
            gateway_reference=payload.get("id"),
            status=payload.get("status"),
            message="" if succeeded else f"Payment not completed: {payload.get('status')}",
            raw_response=json.dumps(payload),
        )

    def refund(self, gateway_reference, amount, currency) -> GatewayResult:
        payload = self._post(
            "/v1/refunds",
            {"payment_intent": gateway_reference, "amount": to_minor_units(amount)},
        )
        declined = self._declined(payload)
        if declined:
            return declined
        succeeded = payload.get("status") in ("succeeded", "pending")
        return GatewayResult(
            success=succeeded,
            gateway_reference=payload.get("id"),
            status=payload.get("status"),
            message="" if succeeded else f"Refund {payload.get('status')}",
            raw_response=json.dumps(payload),
        )

    def create_intent(self, amount, currency, description="") -> GatewayResult:
        return self._intent_result(
            self._post(
                "/v1/payment_intents",
                {
                    "amount": to_minor_units(amount),
                    "currency": currency.lower(),
                    "description": description,
                },
            )
        )

    def confirm_intent(self, gateway_intent_id, token) -> GatewayResult:
        return self._intent_result(
            self._post(
                f"/v1/payment_intents/{gateway_intent_id}/confirm",
                {"payment_method": token},
            )
        )

    def cancel_intent(self, gateway_intent_id) -> GatewayResult:
        return self._intent_result(
            self._post(f"/v1/payment_intents/{gateway_intent_id}/cancel", {})
        )


def create_payment_gateway(gateway) -> IPaymentGateway:
    """Build a client from a ``PaymentGateway`` row, keyed on provider_code."""
    code = (gateway.provider_code or "").strip().lower()
    if code == "manual":
        return ManualPaymentGateway()
    if code == "stripe":
        return StripePaymentGateway(gateway.api_secret or gateway.api_key)
    raise UnsupportedProviderError("payment gateway", gateway.provider_code)
