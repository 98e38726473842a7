"""
Customer controller: customers and their contact persons.
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
from isp_admin.repositories.system_setting_repository import SystemSettingRepository
from isp_admin.schemas.dtos import (
    ContactPersonCreateRequest,
    ContactPersonUpdateRequest,
    CustomerCreateRequest,
    CustomerUpdateRequest,
)
from isp_admin.schemas.serializers import to_dict, to_list
from isp_admin.services.customer_service import ContactPersonService, CustomerService
from isp_admin.services.system_setting_service import SystemSettingService

customers_bp = Blueprint("customers", __name__, url_prefix="/api/v1/customers")


def _customer_service(db) -> CustomerService:
    return CustomerService(
        CustomerRepository(db),
        SystemSettingService(SystemSettingRepository(db)),
        ContactPersonRepository(db),
    )


def _contact_service(db) -> ContactPersonService:
    return ContactPersonService(ContactPersonRepository(db), CustomerRepository(db))


@customers_bp.route("/", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Customer.Read")
@handle_service_errors
def list_customers():
    """Paged customer list; ``?q=`` switches to a name/email search."""
    db = SessionLocal()
    try:
        service = _customer_service(db)
        term = request.args.get("q")
        if term:
            return api_response(True, "Customers retrieved", to_list(service.search(term)))
        page, page_size = get_pagination_args()
        customers, total = service.get_paged(page, page_size)
        return api_response(
            True,
            "Customers retrieved",
            {
                "items": to_list(customers),
                "total": total,
                "page": page,
                "page_size": page_size,
            },
        )
    finally:
        db.close()


@customers_bp.route("/<int:customer_id>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Customer.Read")
@handle_service_errors
def get_customer(customer_id: int):
    db = SessionLocal()
    try:
        customer = _customer_service(db).get_by_id(customer_id)
        if customer is None:
            return api_response(False, "Customer not found", None, 404)
        return api_response(True, "Customer retrieved", to_dict(customer))
    finally:
        db.close()


@customers_bp.route("/", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt  # JSON API - uses JWT authentication
@require_policy("Customer.Write")
@handle_service_errors
def create_customer():
    dto = CustomerCreateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        customer = _customer_service(db).create(dto)
        return api_response(True, "Customer created", to_dict(customer), 201)
    finally:
        db.close()


@customers_bp.route("/<int:customer_id>", methods=["PUT"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Customer.Write")
@handle_service_errors
def update_customer(customer_id: int):
    dto = CustomerUpdateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        customer = _customer_service(db).update(customer_id, dto)
        return api_response(True, "Customer updated", to_dict(customer))
    finally:
        db.close()


@customers_bp.route("/<int:customer_id>", methods=["DELETE"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Customer.Delete")
@handle_service_errors
def delete_customer(customer_id: int):
    db = SessionLocal()
    try:
        _customer_service(db).delete(customer_id)
        return api_response(True, "Customer deleted")
    finally:
        db.close()


# Contact persons


@customers_bp.route("/<int:customer_id>/contacts", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("ContactPerson.Read")
@handle_service_errors
def list_contacts(customer_id: int):
    db = SessionLocal()
    try:
        contacts = _contact_service(db).get_by_customer(customer_id)
        return api_response(True, "Contacts retrieved", to_list(contacts))
    finally:
        db.close()


@customers_bp.route("/<int:customer_id>/contacts", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("ContactPerson.Write")
@handle_service_errors
def create_contact(customer_id: int):
    body = get_json_body()
    body["customer_id"] = customer_id
    dto = ContactPersonCreateRequest.from_dict(body)
    db = SessionLocal()
    try:
        contact = _contact_service(db).create(dto)
        return api_response(True, "Contact created", to_dict(contact), 201)
    finally:
        db.close()


@customers_bp.route("/contacts/<int:contact_id>", methods=["PUT"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("ContactPerson.Write")
@handle_service_errors
def update_contact(contact_id: int):
    dto = ContactPersonUpdateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        contact = _contact_service(db).update(contact_id, dto)
        return api_response(True, "Contact updated", to_dict(contact))
    finally:
        db.close()


@customers_bp.route("/contacts/<int:contact_id>", methods=["DELETE"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("ContactPerson.Delete")
@handle_service_errors
def delete_contact(contact_id: int):
    db = SessionLocal()
    try:
        _contact_service(db).delete(contact_id)
        return api_response(True, "Contact deleted")
    finally:
        db.close()
