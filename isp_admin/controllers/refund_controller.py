from flask import Blueprint

from isp_admin.core.api_utils import api_response, get_json_body, handle_service_errors
from isp_admin.core.auth_decorators import get_current_user_id, require_policy
from isp_admin.core.csrf_config import csrf
from isp_admin.core.limiter_config import READ_LIMIT, WRITE_LIMIT, limiter
from isp_admin.db.session import SessionLocal
from isp_admin.domain.entities import RefundStatus
from isp_admin.repositories.credit_repository import CreditRepository
from isp_admin.repositories.customer_repository import CustomerRepository
from isp_admin.repositories.invoice_repository import InvoiceRepository
from isp_admin.repositories.payment_repository import (
    PaymentGatewayRepository,
    PaymentTransactionRepository,
)
from isp_admin.repositories.refund_repository import RefundRepository
from isp_admin.schemas.dtos import RefundCreateRequest
from isp_admin.schemas.serializers import to_dict, to_list
from isp_admin.services.credit_service import CreditService
from isp_admin.services.refund_service import RefundService

refunds_bp = Blueprint("refunds", __name__, url_prefix="/api/v1/refunds")


def _service(db) -> RefundService:
    return RefundService(
        RefundRepository(db),
        InvoiceRepository(db),
        PaymentTransactionRepository(db),
        PaymentGatewayRepository(db),
        credit_service=CreditService(CreditRepository(db), CustomerRepository(db)),
    )


@refunds_bp.route("/", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Refund.Read")
@handle_service_errors
def list_refunds():
    db = SessionLocal()
    try:
        return api_response(True, "Refunds retrieved", to_list(_service(db).get_all()))
    finally:
        db.close()


@refunds_bp.route("/<int:refund_id>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Refund.Read")
@handle_service_errors
def get_refund(refund_id: int):
    db = SessionLocal()
    try:
        refund = _service(db).get_by_id(refund_id)
        if refund is None:
            return api_response(False, "Refund not found", None, 404)
        return api_response(True, "Refund retrieved", to_dict(refund))
    finally:
        db.close()


@refunds_bp.route("/invoice/<int:invoice_id>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Refund.Read")
@handle_service_errors
def list_invoice_refunds(invoice_id: int):
    db = SessionLocal()
    try:
        return api_response(True, "Refunds retrieved", to_list(_service(db).get_by_invoice(invoice_id)))
    finally:
        db.close()


@refunds_bp.route("/", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt  # JSON API - uses JWT authentication
@require_policy("Refund.Write")
@handle_service_errors
def create_refund():
    dto = RefundCreateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        refund = _service(db).create(dto, get_current_user_id())
        return api_response(True, "Refund created", to_dict(refund), 201)
    finally:
        db.close()


@refunds_bp.route("/<int:refund_id>/process", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Refund.Write")
@handle_service_errors
def process_refund(refund_id: int):
    db = SessionLocal()
    try:
        refund = _service(db).process(refund_id)
        completed = refund.status == RefundStatus.COMPLETED
        message = "Refund processed" if completed else f"Refund failed: {refund.failure_reason}"
        return api_response(completed, message, to_dict(refund), 200 if completed else 400)
    finally:
        db.close()
