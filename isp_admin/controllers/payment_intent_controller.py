from flask import Blueprint

from isp_admin.core.api_utils import api_response, get_json_body, handle_service_errors
from isp_admin.core.auth_decorators import get_current_user, require_policy
from isp_admin.core.csrf_config import csrf
from isp_admin.core.limiter_config import READ_LIMIT, WRITE_LIMIT, limiter
from isp_admin.db.session import SessionLocal
from isp_admin.repositories.customer_repository import CustomerRepository
from isp_admin.repositories.invoice_repository import InvoiceRepository
from isp_admin.repositories.payment_intent_repository import PaymentIntentRepository
from isp_admin.repositories.payment_repository import PaymentGatewayRepository
from isp_admin.repositories.user_repository import UserRepository
from isp_admin.schemas.dtos import PaymentIntentCreateRequest
from isp_admin.schemas.serializers import serialize_payment_intent
from isp_admin.services.payment_intent_service import PaymentIntentService
from isp_admin.services.user_service import UserService

payment_intents_bp = Blueprint("payment_intents", __name__, url_prefix="/api/v1/payment-intents")


def _service(db) -> PaymentIntentService:
    return PaymentIntentService(
        PaymentIntentRepository(db),
        PaymentGatewayRepository(db),
        CustomerRepository(db),
        invoice_repo=InvoiceRepository(db),
    )


def _resolve_customer_id(db, requested_id):
    user = get_current_user()
    return UserService(UserRepository(db)).resolve_customer_id(
        getattr(user, "id", None), getattr(user, "role", None), requested_id
    )


def _customer_scope(db):
    user = get_current_user()
    return UserService(UserRepository(db)).customer_scope(
        getattr(user, "id", None), getattr(user, "role", None)
    )


@payment_intents_bp.route("/", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("PaymentIntent.Read")
@handle_service_errors
def list_intents():
    db = SessionLocal()
    try:
        intents = _service(db).get_all()
        return api_response(
            True, "Payment intents retrieved", [serialize_payment_intent(i) for i in intents]
        )
    finally:
        db.close()


@payment_intents_bp.route("/<int:intent_id>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("PaymentIntent.Read")
@handle_service_errors
def get_intent(intent_id: int):
    db = SessionLocal()
    try:
        intent = _service(db).get_by_id(intent_id)
        if intent is None:
            return api_response(False, "Payment intent not found", None, 404)
        return api_response(True, "Payment intent retrieved", serialize_payment_intent(intent))
    finally:
        db.close()


@payment_intents_bp.route("/customer/<int:customer_id>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("PaymentIntent.Read")
@handle_service_errors
def list_customer_intents(customer_id: int):
    db = SessionLocal()
    try:
        intents = _service(db).get_by_customer(customer_id)
        return api_response(
            True, "Payment intents retrieved", [serialize_payment_intent(i) for i in intents]
        )
    finally:
        db.close()


@payment_intents_bp.route("/", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt  # JSON API - uses JWT authentication
@require_policy("PaymentIntent.Write")
@handle_service_errors
def create_intent():
    dto = PaymentIntentCreateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        customer_id = _resolve_customer_id(db, dto.customer_id)
        intent = _service(db).create(dto, customer_id)
        return api_response(
            True, "Payment intent created", serialize_payment_intent(intent, include_secret=True), 201
        )
    finally:
        db.close()


@payment_intents_bp.route("/<int:intent_id>/confirm", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("PaymentIntent.Write")
@handle_service_errors
def confirm_intent(intent_id: int):
    token = get_json_body().get("payment_method_token", "")
    db = SessionLocal()
    try:
        intent = _service(db).confirm(intent_id, token, _customer_scope(db))
        return api_response(True, "Payment intent confirmed", serialize_payment_intent(intent))
    finally:
        db.close()


@payment_intents_bp.route("/<int:intent_id>/cancel", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("PaymentIntent.Write")
@handle_service_errors
def cancel_intent(intent_id: int):
    db = SessionLocal()
    try:
        intent = _service(db).cancel(intent_id, _customer_scope(db))
        return api_response(True, "Payment intent cancelled", serialize_payment_intent(intent))
    finally:
        db.close()
