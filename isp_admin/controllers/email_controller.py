from flask import Blueprint

from isp_admin.core.api_utils import api_response, get_json_body, handle_service_errors
from isp_admin.core.auth_decorators import get_current_user_id, require_policy
from isp_admin.core.csrf_config import csrf
from isp_admin.core.limiter_config import READ_LIMIT, WRITE_LIMIT, limiter
from isp_admin.db.session import SessionLocal
from isp_admin.integrations.email_sender import SmtpEmailSender
from isp_admin.repositories.email_queue_repository import EmailQueueRepository
from isp_admin.schemas.dtos import QueueEmailRequest
from isp_admin.schemas.serializers import serialize_email
from isp_admin.services.email_queue_service import EmailQueueProcessor, EmailQueueService

emails_bp = Blueprint("emails", __name__, url_prefix="/api/v1/emails")


@emails_bp.route("/", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("EmailQueue.Read")
@handle_service_errors
def list_emails():
    db = SessionLocal()
    try:
        emails = EmailQueueService(EmailQueueRepository(db)).get_all()
        return api_response(True, "Emails retrieved", [serialize_email(e) for e in emails])
    finally:
        db.close()


@emails_bp.route("/<int:email_id>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("EmailQueue.Read")
@handle_service_errors
def get_email(email_id: int):
    db = SessionLocal()
    try:
        email = EmailQueueService(EmailQueueRepository(db)).get_by_id(email_id)
        if email is None:
            return api_response(False, "Email not found", None, 404)
        return api_response(True, "Email retrieved", serialize_email(email))
    finally:
        db.close()


@emails_bp.route("/customer/<int:customer_id>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("EmailQueue.Read")
@handle_service_errors
def list_customer_emails(customer_id: int):
    db = SessionLocal()
    try:
        emails = EmailQueueService(EmailQueueRepository(db)).get_by_customer(customer_id)
        return api_response(True, "Emails retrieved", [serialize_email(e) for e in emails])
    finally:
        db.close()


@emails_bp.route("/queue", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt  # JSON API - uses JWT authentication
@require_policy("EmailQueue.Write")
@handle_service_errors
def queue_email():
    dto = QueueEmailRequest.from_dict(get_json_body())
    if dto.user_id is None:
        dto.user_id = get_current_user_id()
    db = SessionLocal()
    try:
        email_id = EmailQueueService(EmailQueueRepository(db)).queue_email(dto)
        return api_response(True, "Email queued", {"id": email_id}, 201)
    finally:
        db.close()


@emails_bp.route("/process", methods=["POST"])
@limiter.limit("5 per minute")
@csrf.exempt
@require_policy("EmailQueue.Write")
@handle_service_errors
def process_queue():
    """Deliver due emails now instead of waiting for the scheduler."""
    db = SessionLocal()
    try:
        processor = EmailQueueProcessor(EmailQueueService(EmailQueueRepository(db)), SmtpEmailSender())
        stats = processor.process_pending()
        return api_response(True, "Email queue processed", stats)
    finally:
        db.close()
