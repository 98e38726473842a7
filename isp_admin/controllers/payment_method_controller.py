from flask import Blueprint

from isp_admin.core.api_utils import api_response, get_json_body, handle_service_errors
from isp_admin.core.auth_decorators import require_policy
from isp_admin.core.csrf_config import csrf
from isp_admin.core.limiter_config import READ_LIMIT, WRITE_LIMIT, limiter
from isp_admin.db.session import SessionLocal
from isp_admin.repositories.customer_repository import CustomerRepository
from isp_admin.repositories.payment_repository import (
    CustomerPaymentMethodRepository,
    PaymentGatewayRepository,
)
from isp_admin.schemas.dtos import CustomerPaymentMethodCreateRequest
from isp_admin.schemas.serializers import serialize_payment_method
from isp_admin.services.customer_payment_method_service import CustomerPaymentMethodService

payment_methods_bp = Blueprint(
    "payment_methods", __name__, url_prefix="/api/v1/customers/<int:customer_id>/payment-methods"
)


def _service(db) -> CustomerPaymentMethodService:
    return CustomerPaymentMethodService(
        CustomerPaymentMethodRepository(db), CustomerRepository(db), PaymentGatewayRepository(db)
    )


@payment_methods_bp.route("/", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("CustomerPaymentMethod.Read")
@handle_service_errors
def list_payment_methods(customer_id: int):
    db = SessionLocal()
    try:
        methods = _service(db).get_by_customer(customer_id)
        return api_response(
            True, "Payment methods retrieved", [serialize_payment_method(m) for m in methods]
        )
    finally:
        db.close()


@payment_methods_bp.route("/", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt  # JSON API - uses JWT authentication
@require_policy("CustomerPaymentMethod.Write")
@handle_service_errors
def create_payment_method(customer_id: int):
    body = get_json_body()
    body["customer_id"] = customer_id
    dto = CustomerPaymentMethodCreateRequest.from_dict(body)
    db = SessionLocal()
    try:
        method = _service(db).create(dto)
        return api_response(True, "Payment method created", serialize_payment_method(method), 201)
    finally:
        db.close()


@payment_methods_bp.route("/<int:method_id>/default", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("CustomerPaymentMethod.Write")
@handle_service_errors
def set_default_payment_method(customer_id: int, method_id: int):
    db = SessionLocal()
    try:
        method = _service(db).set_as_default(method_id, customer_id)
        return api_response(True, "Default payment method set", serialize_payment_method(method))
    finally:
        db.close()


@payment_methods_bp.route("/<int:method_id>", methods=["DELETE"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("CustomerPaymentMethod.Delete")
@handle_service_errors
def delete_payment_method(customer_id: int, method_id: int):
    db = SessionLocal()
    try:
        _service(db).delete(method_id, customer_id)
        return api_response(True, "Payment method deleted")
    finally:
        db.close()
