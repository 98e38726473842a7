from flask import Blueprint

from isp_admin.core.api_utils import api_response, get_json_body, handle_service_errors
from isp_admin.core.auth_decorators import get_current_user_id, require_policy
from isp_admin.core.csrf_config import csrf
from isp_admin.core.limiter_config import READ_LIMIT, WRITE_LIMIT, limiter
from isp_admin.db.session import SessionLocal
from isp_admin.repositories.credit_repository import CreditRepository
from isp_admin.repositories.customer_repository import CustomerRepository
from isp_admin.schemas.dtos import CreditAmountRequest, CreditTransactionCreateRequest
from isp_admin.schemas.serializers import to_dict, to_list
from isp_admin.services.credit_service import CreditService

credits_bp = Blueprint("credits", __name__, url_prefix="/api/v1/credits")


def _service(db) -> CreditService:
    return CreditService(CreditRepository(db), CustomerRepository(db))


@credits_bp.route("/customers/<int:customer_id>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("CustomerCredit.Read")
@handle_service_errors
def get_balance(customer_id: int):
    db = SessionLocal()
    try:
        credit = _service(db).get_customer_credit(customer_id)
        return api_response(True, "Customer credit retrieved", to_dict(credit))
    finally:
        db.close()


@credits_bp.route("/customers/<int:customer_id>/transactions", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("CustomerCredit.Read")
@handle_service_errors
def list_transactions(customer_id: int):
    db = SessionLocal()
    try:
        transactions = _service(db).get_credit_transactions(customer_id)
        return api_response(True, "Credit transactions retrieved", to_list(transactions))
    finally:
        db.close()


@credits_bp.route("/transactions", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt  # JSON API - uses JWT authentication
@require_policy("CustomerCredit.Write")
@handle_service_errors
def create_transaction():
    dto = CreditTransactionCreateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        transaction = _service(db).create_credit_transaction(dto, get_current_user_id())
        return api_response(True, "Credit transaction created", to_dict(transaction), 201)
    finally:
        db.close()


@credits_bp.route("/add", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("CustomerCredit.Write")
@handle_service_errors
def add_credit():
    dto = CreditAmountRequest.from_dict(get_json_body())
    dto.validate()
    db = SessionLocal()
    try:
        balance = _service(db).add_credit(
            dto.customer_id, dto.amount, dto.description, get_current_user_id()
        )
        return api_response(
            True, "Credit added", {"customer_id": dto.customer_id, "balance": str(balance)}
        )
    finally:
        db.close()


@credits_bp.route("/deduct", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("CustomerCredit.Write")
@handle_service_errors
def deduct_credit():
    dto = CreditAmountRequest.from_dict(get_json_body())
    dto.validate()
    db = SessionLocal()
    try:
        balance = _service(db).deduct_credit(
            dto.customer_id,
            dto.amount,
            dto.description,
            get_current_user_id(),
            dto.invoice_id,
        )
        return api_response(
            True, "Credit deducted", {"customer_id": dto.customer_id, "balance": str(balance)}
        )
    finally:
        db.close()
