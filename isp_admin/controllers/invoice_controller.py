"""
Invoice controller: invoice CRUD, lifecycle transitions and payment history.
"""

from flask import Blueprint, request

from isp_admin.core.api_utils import (
    api_response,
    get_json_body,
    get_pagination_args,
    handle_service_errors,
)
from isp_admin.core.auth_decorators import require_policy
from isp_admin.core.csrf_config import csrf
from isp_admin.core.limiter_config import READ_LIMIT, WRITE_LIMIT, limiter
from isp_admin.db.session import SessionLocal
from isp_admin.repositories.customer_repository import (
    ContactPersonRepository,
    CustomerRepository,
)
from isp_admin.repositories.invoice_repository import InvoiceRepository
from isp_admin.repositories.system_setting_repository import SystemSettingRepository
from isp_admin.repositories.tax_rule_repository import TaxRuleRepository
from isp_admin.schemas.dtos import InvoiceCreateRequest, InvoiceUpdateRequest
from isp_admin.schemas.serializers import serialize_invoice, to_list
from isp_admin.services.customer_service import CustomerService
from isp_admin.services.invoice_service import InvoiceService
from isp_admin.services.system_setting_service import SystemSettingService
from isp_admin.services.tax_service import TaxService

invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/v1/invoices")


def build_invoice_service(db) -> InvoiceService:
    customer_repo = CustomerRepository(db)
    return InvoiceService(
        InvoiceRepository(db),
        customer_repo,
        TaxService(TaxRuleRepository(db), customer_repo),
        CustomerService(
            customer_repo,
            SystemSettingService(SystemSettingRepository(db)),
            ContactPersonRepository(db),
        ),
    )


@invoices_bp.route("/", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Invoice.Read")
@handle_service_errors
def list_invoices():
    """Paged list; ``?customer_id=`` or ``?status=`` return unpaged subsets."""
    db = SessionLocal()
    try:
        service = build_invoice_service(db)
        customer_id = request.args.get("customer_id", type=int)
        status = request.args.get("status")
        if customer_id is not None:
            invoices = service.get_by_customer(customer_id)
            return api_response(True, "Invoices retrieved", [serialize_invoice(i) for i in invoices])
        if status:
            invoices = service.get_by_status(status)
            return api_response(True, "Invoices retrieved", [serialize_invoice(i) for i in invoices])

        page, page_size = get_pagination_args()
        invoices, total = service.get_paged(page, page_size)
        return api_response(
            True,
            "Invoices retrieved",
            {
                "items": [serialize_invoice(i) for i in invoices],
                "total": total,
                "page": page,
                "page_size": page_size,
            },
        )
    finally:
        db.close()


@invoices_bp.route("/<int:invoice_id>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Invoice.Read")
@handle_service_errors
def get_invoice(invoice_id: int):
    db = SessionLocal()
    try:
        invoice = build_invoice_service(db).get_by_id(invoice_id)
        if invoice is None:
            return api_response(False, "Invoice not found", None, 404)
        return api_response(True, "Invoice retrieved", serialize_invoice(invoice))
    finally:
        db.close()


@invoices_bp.route("/", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt  # JSON API - uses JWT authentication
@require_policy("Invoice.Write")
@handle_service_errors
def create_invoice():
    dto = InvoiceCreateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        invoice = build_invoice_service(db).create(dto)
        return api_response(True, "Invoice created", serialize_invoice(invoice), 201)
    finally:
        db.close()


@invoices_bp.route("/<int:invoice_id>", methods=["PUT"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Invoice.Write")
@handle_service_errors
def update_invoice(invoice_id: int):
    dto = InvoiceUpdateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        invoice = build_invoice_service(db).update(invoice_id, dto)
        return api_response(True, "Invoice updated", serialize_invoice(invoice))
    finally:
        db.close()


@invoices_bp.route("/<int:invoice_id>/issue", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Invoice.Write")
@handle_service_errors
def issue_invoice(invoice_id: int):
    db = SessionLocal()
    try:
        invoice = build_invoice_service(db).issue(invoice_id)
        return api_response(True, "Invoice issued", serialize_invoice(invoice))
    finally:
        db.close()


@invoices_bp.route("/<int:invoice_id>/cancel", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Invoice.Write")
@handle_service_errors
def cancel_invoice(invoice_id: int):
    db = SessionLocal()
    try:
        invoice = build_invoice_service(db).cancel(invoice_id)
        return api_response(True, "Invoice cancelled", serialize_invoice(invoice))
    finally:
        db.close()


@invoices_bp.route("/<int:invoice_id>", methods=["DELETE"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Invoice.Delete")
@handle_service_errors
def delete_invoice(invoice_id: int):
    db = SessionLocal()
    try:
        build_invoice_service(db).delete(invoice_id)
        return api_response(True, "Invoice deleted")
    finally:
        db.close()


@invoices_bp.route("/<int:invoice_id>/payments", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Invoice.Read")
@handle_service_errors
def list_invoice_payments(invoice_id: int):
    db = SessionLocal()
    try:
        payments = build_invoice_service(db).get_payments(invoice_id)
        return api_response(True, "Invoice payments retrieved", to_list(payments))
    finally:
        db.close()
