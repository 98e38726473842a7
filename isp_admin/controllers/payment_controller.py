"""
Payment controller: gateways, invoice payments, retries, credit application
and gateway webhooks.
"""

import logging

from flask import Blueprint, request

from isp_admin.core.api_utils import api_response, get_json_body, handle_service_errors
from isp_admin.core.auth_decorators import get_current_user_id, require_policy
from isp_admin.core.csrf_config import csrf
from isp_admin.core.limiter_config import READ_LIMIT, WRITE_LIMIT, limiter
from isp_admin.db.session import SessionLocal
from isp_admin.repositories.credit_repository import CreditRepository
from isp_admin.repositories.customer_repository import CustomerRepository
from isp_admin.repositories.invoice_repository import InvoiceRepository
from isp_admin.repositories.payment_intent_repository import PaymentIntentRepository
from isp_admin.repositories.payment_repository import (
    CustomerPaymentMethodRepository,
    PaymentAttemptRepository,
    PaymentGatewayRepository,
    PaymentTransactionRepository,
)
from isp_admin.schemas.dtos import (
    ApplyCreditRequest,
    PaymentGatewayCreateRequest,
    PaymentGatewayUpdateRequest,
    ProcessPaymentRequest,
)
from isp_admin.schemas.serializers import serialize_dataclass, serialize_payment_gateway, to_list
from isp_admin.services.credit_service import CreditService
from isp_admin.services.payment_intent_service import PaymentIntentService
from isp_admin.services.payment_service import PaymentGatewayService, PaymentProcessingService

logger = logging.getLogger(__name__)

payments_bp = Blueprint("payments", __name__, url_prefix="/api/v1/payments")


def _processing_service(db) -> PaymentProcessingService:
    customer_repo = CustomerRepository(db)
    gateway_repo = PaymentGatewayRepository(db)
    return PaymentProcessingService(
        InvoiceRepository(db),
        CustomerPaymentMethodRepository(db),
        gateway_repo,
        PaymentAttemptRepository(db),
        PaymentTransactionRepository(db),
        credit_service=CreditService(CreditRepository(db), customer_repo),
        intent_service=PaymentIntentService(
            PaymentIntentRepository(db), gateway_repo, customer_repo
        ),
    )


def _result_response(result, success_status: int = 200):
    status = success_status if result.success else 400
    return api_response(result.success, result.message, serialize_dataclass(result), status)


# Gateways


@payments_bp.route("/gateways", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("PaymentGateway.Read")
@handle_service_errors
def list_gateways():
    db = SessionLocal()
    try:
        gateways = PaymentGatewayService(PaymentGatewayRepository(db)).get_all()
        return api_response(
            True, "Payment gateways retrieved", [serialize_payment_gateway(g) for g in gateways]
        )
    finally:
        db.close()


@payments_bp.route("/gateways/<int:gateway_id>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("PaymentGateway.Read")
@handle_service_errors
def get_gateway(gateway_id: int):
    db = SessionLocal()
    try:
        gateway = PaymentGatewayService(PaymentGatewayRepository(db)).get_by_id(gateway_id)
        if gateway is None:
            return api_response(False, "Payment gateway not found", None, 404)
        return api_response(True, "Payment gateway retrieved", serialize_payment_gateway(gateway))
    finally:
        db.close()


@payments_bp.route("/gateways", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt  # JSON API - uses JWT authentication
@require_policy("PaymentGateway.Write")
@handle_service_errors
def create_gateway():
    dto = PaymentGatewayCreateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        gateway = PaymentGatewayService(PaymentGatewayRepository(db)).create(dto)
        return api_response(True, "Payment gateway created", serialize_payment_gateway(gateway), 201)
    finally:
        db.close()


@payments_bp.route("/gateways/<int:gateway_id>", methods=["PUT"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("PaymentGateway.Write")
@handle_service_errors
def update_gateway(gateway_id: int):
    dto = PaymentGatewayUpdateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        gateway = PaymentGatewayService(PaymentGatewayRepository(db)).update(gateway_id, dto)
        return api_response(True, "Payment gateway updated", serialize_payment_gateway(gateway))
    finally:
        db.close()


@payments_bp.route("/gateways/<int:gateway_id>", methods=["DELETE"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("PaymentGateway.Delete")
@handle_service_errors
def delete_gateway(gateway_id: int):
    db = SessionLocal()
    try:
        PaymentGatewayService(PaymentGatewayRepository(db)).delete(gateway_id)
        return api_response(True, "Payment gateway deleted")
    finally:
        db.close()


# Invoice payments


@payments_bp.route("/process", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Payment.Write")
@handle_service_errors
def process_payment():
    dto = ProcessPaymentRequest.from_dict(get_json_body())
    dto.validate()
    db = SessionLocal()
    try:
        result = _processing_service(db).process_invoice_payment(
            dto.invoice_id,
            dto.payment_method_id,
            request.remote_addr,
            request.headers.get("User-Agent"),
        )
        return _result_response(result)
    finally:
        db.close()


@payments_bp.route("/attempts/<int:attempt_id>/retry", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Payment.Write")
@handle_service_errors
def retry_payment(attempt_id: int):
    db = SessionLocal()
    try:
        return _result_response(_processing_service(db).retry_failed_payment(attempt_id))
    finally:
        db.close()


@payments_bp.route("/apply-credit", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Payment.Write")
@handle_service_errors
def apply_credit():
    dto = ApplyCreditRequest.from_dict(get_json_body())
    dto.validate()
    db = SessionLocal()
    try:
        result = _processing_service(db).apply_customer_credit(
            dto.invoice_id, dto.amount, get_current_user_id()
        )
        return _result_response(result)
    finally:
        db.close()


@payments_bp.route("/invoices/<int:invoice_id>/attempts", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Payment.Read")
@handle_service_errors
def list_attempts(invoice_id: int):
    db = SessionLocal()
    try:
        attempts = _processing_service(db).get_attempts_by_invoice(invoice_id)
        return api_response(True, "Payment attempts retrieved", to_list(attempts))
    finally:
        db.close()


@payments_bp.route("/invoices/<int:invoice_id>/transactions", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Payment.Read")
@handle_service_errors
def list_transactions(invoice_id: int):
    db = SessionLocal()
    try:
        transactions = _processing_service(db).get_transactions_by_invoice(invoice_id)
        return api_response(True, "Payment transactions retrieved", to_list(transactions))
    finally:
        db.close()


@payments_bp.route("/webhook/<string:gateway_code>", methods=["POST"])
@limiter.limit(READ_LIMIT)
@csrf.exempt  # Called by the payment gateway, no user session
@handle_service_errors
def payment_webhook(gateway_code: str):
    payload = get_json_body()
    db = SessionLocal()
    try:
        handled = _processing_service(db).handle_payment_webhook(gateway_code, payload)
        if not handled:
            logger.warning(
                "Unmatched payment webhook",
                extra={"context": {"gateway": gateway_code, "type": payload.get("type")}},
            )
        return api_response(True, "Webhook received", {"handled": handled})
    finally:
        db.close()
