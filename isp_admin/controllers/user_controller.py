from flask import Blueprint

from isp_admin.core.api_utils import api_response, get_json_body, handle_service_errors
from isp_admin.core.auth_decorators import require_policy
from isp_admin.core.csrf_config import csrf
from isp_admin.core.limiter_config import READ_LIMIT, WRITE_LIMIT, limiter
from isp_admin.db.session import SessionLocal
from isp_admin.repositories.user_repository import UserRepository
from isp_admin.schemas.dtos import UserCreateRequest, UserUpdateRequest
from isp_admin.schemas.serializers import serialize_user
from isp_admin.services.user_service import UserService

users_bp = Blueprint("users", __name__, url_prefix="/api/v1/users")


@users_bp.route("/", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("User.Read")
@handle_service_errors
def list_users():
    db = SessionLocal()
    try:
        users = UserService(UserRepository(db)).get_all()
        return api_response(True, "Users retrieved", [serialize_user(u) for u in users])
    finally:
        db.close()


@users_bp.route("/<int:user_id>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("User.Read")
@handle_service_errors
def get_user(user_id: int):
    db = SessionLocal()
    try:
        user = UserService(UserRepository(db)).get_by_id(user_id)
        if user is None:
            return api_response(False, "User not found", None, 404)
        return api_response(True, "User retrieved", serialize_user(user))
    finally:
        db.close()


@users_bp.route("/", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt  # JSON API - uses JWT authentication
@require_policy("User.Write")
@handle_service_errors
def create_user():
    dto = UserCreateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        user = UserService(UserRepository(db)).create(dto)
        return api_response(True, "User created", serialize_user(user), 201)
    finally:
        db.close()


@users_bp.route("/<int:user_id>", methods=["PUT"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("User.Write")
@handle_service_errors
def update_user(user_id: int):
    dto = UserUpdateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        user = UserService(UserRepository(db)).update(user_id, dto)
        return api_response(True, "User updated", serialize_user(user))
    finally:
        db.close()


@users_bp.route("/<int:user_id>", methods=["DELETE"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("User.Delete")
@handle_service_errors
def delete_user(user_id: int):
    db = SessionLocal()
    try:
        UserService(UserRepository(db)).delete(user_id)
        return api_response(True, "User deleted")
    finally:
        db.close()
