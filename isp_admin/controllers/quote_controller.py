"""
Quote controller.

Staff routes are JWT protected. The ``/respond/<token>/...`` routes are
public: customers reach them from the link in the quote email, and the
acceptance token is their only credential.
"""

from flask import Blueprint, request

from isp_admin.core.api_utils import api_response, get_json_body, handle_service_errors
from isp_admin.core.auth_decorators import get_current_user_id, require_policy
from isp_admin.core.csrf_config import csrf
from isp_admin.core.limiter_config import READ_LIMIT, WRITE_LIMIT, limiter
from isp_admin.db.session import SessionLocal
from isp_admin.repositories.customer_repository import CustomerRepository
from isp_admin.repositories.email_queue_repository import EmailQueueRepository
from isp_admin.repositories.quote_repository import QuoteRepository
from isp_admin.repositories.tax_rule_repository import TaxRuleRepository
from isp_admin.schemas.dtos import QuoteCreateRequest, QuoteUpdateRequest
from isp_admin.schemas.serializers import serialize_invoice, serialize_quote
from isp_admin.services.email_queue_service import EmailQueueService
from isp_admin.services.quote_service import QuoteService
from isp_admin.services.tax_service import TaxService

from .invoice_controller import build_invoice_service

quotes_bp = Blueprint("quotes", __name__, url_prefix="/api/v1/quotes")


def _service(db) -> QuoteService:
    customer_repo = CustomerRepository(db)
    return QuoteService(
        QuoteRepository(db),
        customer_repo,
        TaxService(TaxRuleRepository(db), customer_repo),
        email_queue_service=EmailQueueService(EmailQueueRepository(db)),
        invoice_service=build_invoice_service(db),
    )


@quotes_bp.route("/", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Quote.Read")
@handle_service_errors
def list_quotes():
    db = SessionLocal()
    try:
        service = _service(db)
        customer_id = request.args.get("customer_id", type=int)
        status = request.args.get("status")
        if customer_id is not None:
            quotes = service.get_by_customer(customer_id)
        elif status:
            quotes = service.get_by_status(status)
        else:
            quotes = service.get_all()
        return api_response(True, "Quotes retrieved", [serialize_quote(q) for q in quotes])
    finally:
        db.close()


@quotes_bp.route("/<int:quote_id>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Quote.Read")
@handle_service_errors
def get_quote(quote_id: int):
    db = SessionLocal()
    try:
        quote = _service(db).get_by_id(quote_id)
        if quote is None:
            return api_response(False, "Quote not found", None, 404)
        return api_response(True, "Quote retrieved", serialize_quote(quote))
    finally:
        db.close()


@quotes_bp.route("/", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt  # JSON API - uses JWT authentication
@require_policy("Quote.Write")
@handle_service_errors
def create_quote():
    dto = QuoteCreateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        quote = _service(db).create(dto, get_current_user_id())
        return api_response(True, "Quote created", serialize_quote(quote), 201)
    finally:
        db.close()


@quotes_bp.route("/<int:quote_id>", methods=["PUT"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Quote.Write")
@handle_service_errors
def update_quote(quote_id: int):
    dto = QuoteUpdateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        quote = _service(db).update(quote_id, dto)
        return api_response(True, "Quote updated", serialize_quote(quote))
    finally:
        db.close()


@quotes_bp.route("/<int:quote_id>", methods=["DELETE"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Quote.Delete")
@handle_service_errors
def delete_quote(quote_id: int):
    db = SessionLocal()
    try:
        _service(db).delete(quote_id)
        return api_response(True, "Quote deleted")
    finally:
        db.close()


@quotes_bp.route("/<int:quote_id>/send", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Quote.Write")
@handle_service_errors
def send_quote(quote_id: int):
    db = SessionLocal()
    try:
        quote = _service(db).send(quote_id)
        return api_response(True, "Quote sent", serialize_quote(quote))
    finally:
        db.close()


@quotes_bp.route("/<int:quote_id>/convert", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Quote.Write")
@handle_service_errors
def convert_quote(quote_id: int):
    db = SessionLocal()
    try:
        invoice = _service(db).convert_to_invoice(quote_id)
        return api_response(True, "Quote converted to invoice", serialize_invoice(invoice), 201)
    finally:
        db.close()


@quotes_bp.route("/respond/<string:token>/accept", methods=["GET", "POST"])
@limiter.limit("10 per minute")
@csrf.exempt
@handle_service_errors
def accept_quote(token: str):
    db = SessionLocal()
    try:
        quote = _service(db).accept(token)
        return api_response(
            True, "Quote accepted", {"quote_number": quote.quote_number, "status": quote.status}
        )
    finally:
        db.close()


@quotes_bp.route("/respond/<string:token>/reject", methods=["GET", "POST"])
@limiter.limit("10 per minute")
@csrf.exempt
@handle_service_errors
def reject_quote(token: str):
    body = request.get_json(silent=True) or {}
    reason = body.get("reason") if isinstance(body, dict) else None
    db = SessionLocal()
    try:
        quote = _service(db).reject(token, reason or request.args.get("reason"))
        return api_response(
            True, "Quote rejected", {"quote_number": quote.quote_number, "status": quote.status}
        )
    finally:
        db.close()
