"""
Servers, control panel connections and hosting accounts.

Account writes accept ``?sync=true`` to push the change to the control
panel right away; panel outcomes are returned as sync results rather than
errors so the local change is never lost.
"""

from flask import Blueprint, request

from isp_admin.core.api_utils import (
    api_response,
    get_bool_arg,
    get_json_body,
    handle_service_errors,
)
from isp_admin.core.auth_decorators import require_policy
from isp_admin.core.csrf_config import csrf
from isp_admin.core.limiter_config import READ_LIMIT, WRITE_LIMIT, limiter
from isp_admin.db.session import SessionLocal
from isp_admin.repositories.customer_repository import CustomerRepository
from isp_admin.repositories.hosting_repository import (
    HostingAccountRepository,
    ServerControlPanelRepository,
    ServerRepository,
)
from isp_admin.schemas.dtos import (
    HostingAccountCreateRequest,
    HostingAccountUpdateRequest,
    HostingDatabaseCreateRequest,
    HostingDatabaseUpdateRequest,
    HostingDomainCreateRequest,
    HostingDomainUpdateRequest,
    HostingEmailAccountCreateRequest,
    HostingEmailAccountUpdateRequest,
    ServerControlPanelCreateRequest,
    ServerControlPanelUpdateRequest,
    ServerCreateRequest,
    ServerUpdateRequest,
)
from isp_admin.schemas.serializers import (
    serialize_control_panel,
    serialize_dataclass,
    serialize_hosting_account,
    to_dict,
    to_list,
)
from isp_admin.services.hosting_service import (
    HostingManagerService,
    ServerControlPanelService,
    ServerService,
)
from isp_admin.services.hosting_sync_service import HostingSyncService

hosting_bp = Blueprint("hosting", __name__, url_prefix="/api/v1")


def _panel_service(db) -> ServerControlPanelService:
    return ServerControlPanelService(ServerControlPanelRepository(db), ServerRepository(db))


def _sync_service(db) -> HostingSyncService:
    return HostingSyncService(HostingAccountRepository(db), ServerControlPanelRepository(db))


def _manager(db) -> HostingManagerService:
    repo = HostingAccountRepository(db)
    panel_repo = ServerControlPanelRepository(db)
    return HostingManagerService(
        repo,
        panel_repo,
        CustomerRepository(db),
        sync_service=HostingSyncService(repo, panel_repo),
    )


def _sync_response(result):
    return api_response(
        result.success, result.message, serialize_dataclass(result), 200 if result.success else 400
    )


# Servers


@hosting_bp.route("/servers", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Server.Read")
@handle_service_errors
def list_servers():
    db = SessionLocal()
    try:
        return api_response(True, "Servers retrieved", to_list(ServerService(ServerRepository(db)).get_all()))
    finally:
        db.close()


@hosting_bp.route("/servers/<int:server_id>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Server.Read")
@handle_service_errors
def get_server(server_id: int):
    db = SessionLocal()
    try:
        server = ServerService(ServerRepository(db)).get_by_id(server_id)
        if server is None:
            return api_response(False, "Server not found", None, 404)
        return api_response(True, "Server retrieved", to_dict(server))
    finally:
        db.close()


@hosting_bp.route("/servers", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt  # JSON API - uses JWT authentication
@require_policy("Server.Write")
@handle_service_errors
def create_server():
    dto = ServerCreateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        server = ServerService(ServerRepository(db)).create(dto)
        return api_response(True, "Server created", to_dict(server), 201)
    finally:
        db.close()


@hosting_bp.route("/servers/<int:server_id>", methods=["PUT"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Server.Write")
@handle_service_errors
def update_server(server_id: int):
    dto = ServerUpdateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        server = ServerService(ServerRepository(db)).update(server_id, dto)
        return api_response(True, "Server updated", to_dict(server))
    finally:
        db.close()


@hosting_bp.route("/servers/<int:server_id>", methods=["DELETE"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Server.Delete")
@handle_service_errors
def delete_server(server_id: int):
    db = SessionLocal()
    try:
        ServerService(ServerRepository(db)).delete(server_id)
        return api_response(True, "Server deleted")
    finally:
        db.close()


# Control panels


@hosting_bp.route("/control-panel-types", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("ServerControlPanel.Read")
@handle_service_errors
def list_panel_types():
    db = SessionLocal()
    try:
        return api_response(True, "Control panel types retrieved", to_list(_panel_service(db).get_panel_types()))
    finally:
        db.close()


@hosting_bp.route("/server-control-panels", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("ServerControlPanel.Read")
@handle_service_errors
def list_control_panels():
    server_id = request.args.get("server_id", type=int)
    db = SessionLocal()
    try:
        service = _panel_service(db)
        panels = service.get_by_server(server_id) if server_id else service.get_all()
        return api_response(
            True, "Server control panels retrieved", [serialize_control_panel(p) for p in panels]
        )
    finally:
        db.close()


@hosting_bp.route("/server-control-panels/<int:panel_id>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("ServerControlPanel.Read")
@handle_service_errors
def get_control_panel(panel_id: int):
    db = SessionLocal()
    try:
        panel = _panel_service(db).get_by_id(panel_id)
        if panel is None:
            return api_response(False, "Server control panel not found", None, 404)
        return api_response(True, "Server control panel retrieved", serialize_control_panel(panel))
    finally:
        db.close()


@hosting_bp.route("/server-control-panels", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("ServerControlPanel.Write")
@handle_service_errors
def create_control_panel():
    dto = ServerControlPanelCreateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        panel = _panel_service(db).create(dto)
        return api_response(True, "Server control panel created", serialize_control_panel(panel), 201)
    finally:
        db.close()


@hosting_bp.route("/server-control-panels/<int:panel_id>", methods=["PUT"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("ServerControlPanel.Write")
@handle_service_errors
def update_control_panel(panel_id: int):
    dto = ServerControlPanelUpdateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        panel = _panel_service(db).update(panel_id, dto)
        return api_response(True, "Server control panel updated", serialize_control_panel(panel))
    finally:
        db.close()


@hosting_bp.route("/server-control-panels/<int:panel_id>", methods=["DELETE"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("ServerControlPanel.Delete")
@handle_service_errors
def delete_control_panel(panel_id: int):
    db = SessionLocal()
    try:
        _panel_service(db).delete(panel_id)
        return api_response(True, "Server control panel deleted")
    finally:
        db.close()


@hosting_bp.route("/server-control-panels/<int:panel_id>/test-connection", methods=["POST"])
@limiter.limit("10 per minute")
@csrf.exempt
@require_policy("ServerControlPanel.Write")
@handle_service_errors
def test_panel_connection(panel_id: int):
    db = SessionLocal()
    try:
        healthy = _panel_service(db).test_connection(panel_id)
        message = "Connection successful" if healthy else "Connection failed"
        return api_response(healthy, message, {"is_connection_healthy": healthy})
    finally:
        db.close()


@hosting_bp.route("/server-control-panels/<int:panel_id>/sync-accounts", methods=["POST"])
@limiter.limit("5 per minute")
@csrf.exempt
@require_policy("Hosting.Write")
@handle_service_errors
def sync_all_accounts(panel_id: int):
    db = SessionLocal()
    try:
        return _sync_response(_sync_service(db).sync_all_accounts_from_server(panel_id))
    finally:
        db.close()


@hosting_bp.route(
    "/server-control-panels/<int:panel_id>/accounts/<string:external_id>/sync", methods=["POST"]
)
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Hosting.Write")
@handle_service_errors
def sync_account_from_server(panel_id: int, external_id: str):
    db = SessionLocal()
    try:
        return _sync_response(_sync_service(db).sync_account_from_server(panel_id, external_id))
    finally:
        db.close()


@hosting_bp.route(
    "/server-control-panels/<int:panel_id>/accounts/<string:external_id>/import", methods=["POST"]
)
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Hosting.Write")
@handle_service_errors
def import_account(panel_id: int, external_id: str):
    body = get_json_body()
    if body.get("customer_id") is None:
        raise ValueError("customer_id is required")
    customer_id = int(body["customer_id"])
    db = SessionLocal()
    try:
        result = _sync_service(db).import_account_from_server(panel_id, external_id, customer_id)
        return api_response(
            result.success, result.message, serialize_dataclass(result), 201 if result.success else 400
        )
    finally:
        db.close()


# Hosting accounts


@hosting_bp.route("/hosting-accounts", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Hosting.Read")
@handle_service_errors
def list_accounts():
    customer_id = request.args.get("customer_id", type=int)
    server_id = request.args.get("server_id", type=int)
    db = SessionLocal()
    try:
        manager = _manager(db)
        if customer_id:
            accounts = manager.get_by_customer(customer_id)
        elif server_id:
            accounts = manager.get_by_server(server_id)
        else:
            accounts = manager.get_all()
        return api_response(
            True, "Hosting accounts retrieved", [serialize_hosting_account(a) for a in accounts]
        )
    finally:
        db.close()


@hosting_bp.route("/hosting-accounts/<int:account_id>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Hosting.Read")
@handle_service_errors
def get_account(account_id: int):
    details = get_bool_arg("details")
    db = SessionLocal()
    try:
        manager = _manager(db)
        account = manager.get_with_details(account_id) if details else manager.get(account_id)
        if account is None:
            return api_response(False, "Hosting account not found", None, 404)
        return api_response(True, "Hosting account retrieved", serialize_hosting_account(account, details))
    finally:
        db.close()


@hosting_bp.route("/hosting-accounts", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Hosting.Write")
@handle_service_errors
def create_account():
    dto = HostingAccountCreateRequest.from_dict(get_json_body())
    sync = get_bool_arg("sync")
    db = SessionLocal()
    try:
        account = _manager(db).create(dto, sync_to_server=sync)
        return api_response(True, "Hosting account created", serialize_hosting_account(account), 201)
    finally:
        db.close()


@hosting_bp.route("/hosting-accounts/<int:account_id>", methods=["PUT"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Hosting.Write")
@handle_service_errors
def update_account(account_id: int):
    dto = HostingAccountUpdateRequest.from_dict(get_json_body())
    sync = get_bool_arg("sync")
    db = SessionLocal()
    try:
        account = _manager(db).update(account_id, dto, sync_to_server=sync)
        return api_response(True, "Hosting account updated", serialize_hosting_account(account))
    finally:
        db.close()


@hosting_bp.route("/hosting-accounts/<int:account_id>", methods=["DELETE"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Hosting.Delete")
@handle_service_errors
def delete_account(account_id: int):
    from_server = get_bool_arg("from_server")
    db = SessionLocal()
    try:
        _manager(db).delete(account_id, delete_from_server=from_server)
        return api_response(True, "Hosting account deleted")
    finally:
        db.close()


@hosting_bp.route("/hosting-accounts/<int:account_id>/provision", methods=["POST"])
@limiter.limit("10 per minute")
@csrf.exempt
@require_policy("Hosting.Write")
@handle_service_errors
def provision_account(account_id: int):
    domain_id = request.args.get("domain_id", type=int)
    db = SessionLocal()
    try:
        return _sync_response(_manager(db).provision_account_on_panel(account_id, domain_id))
    finally:
        db.close()


@hosting_bp.route("/hosting-accounts/<int:account_id>/sync-status", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Hosting.Read")
@handle_service_errors
def get_sync_status(account_id: int):
    db = SessionLocal()
    try:
        return api_response(True, "Sync status retrieved", _manager(db).get_sync_status(account_id))
    finally:
        db.close()


@hosting_bp.route("/hosting-accounts/<int:account_id>/resource-usage", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Hosting.Read")
@handle_service_errors
def get_resource_usage(account_id: int):
    db = SessionLocal()
    try:
        usage = _manager(db).get_resource_usage(account_id)
        return api_response(True, "Resource usage retrieved", serialize_dataclass(usage))
    finally:
        db.close()


@hosting_bp.route("/hosting-accounts/<int:account_id>/resource-usage", methods=["POST"])
@limiter.limit("10 per minute")
@csrf.exempt
@require_policy("Hosting.Write")
@handle_service_errors
def refresh_resource_usage(account_id: int):
    """Pull current disk and bandwidth usage from the control panel."""
    db = SessionLocal()
    try:
        usage = _manager(db).update_resource_usage(account_id)
        return api_response(True, "Resource usage updated", serialize_dataclass(usage))
    finally:
        db.close()


@hosting_bp.route("/hosting-accounts/<int:account_id>/sync-to-server", methods=["POST"])
@limiter.limit("10 per minute")
@csrf.exempt
@require_policy("Hosting.Write")
@handle_service_errors
def sync_account_to_server(account_id: int):
    db = SessionLocal()
    try:
        return _sync_response(_sync_service(db).sync_account_to_server(account_id))
    finally:
        db.close()


@hosting_bp.route("/hosting-accounts/<int:account_id>/sync-email-accounts", methods=["POST"])
@limiter.limit("10 per minute")
@csrf.exempt
@require_policy("Hosting.Write")
@handle_service_errors
def sync_email_accounts(account_id: int):
    db = SessionLocal()
    try:
        return _sync_response(_sync_service(db).sync_email_accounts_from_server(account_id))
    finally:
        db.close()


@hosting_bp.route("/hosting-accounts/<int:account_id>/sync-databases", methods=["POST"])
@limiter.limit("10 per minute")
@csrf.exempt
@require_policy("Hosting.Write")
@handle_service_errors
def sync_databases(account_id: int):
    db = SessionLocal()
    try:
        return _sync_response(_sync_service(db).sync_databases_from_server(account_id))
    finally:
        db.close()


@hosting_bp.route("/hosting-accounts/<int:account_id>/delete-from-server", methods=["POST"])
@limiter.limit("10 per minute")
@csrf.exempt
@require_policy("Hosting.Delete")
@handle_service_errors
def delete_account_from_server(account_id: int):
    db = SessionLocal()
    try:
        return _sync_response(_sync_service(db).delete_account_from_server(account_id))
    finally:
        db.close()


@hosting_bp.route("/hosting-accounts/<int:account_id>/compare", methods=["GET"])
@limiter.limit("10 per minute")
@require_policy("Hosting.Read")
@handle_service_errors
def compare_with_server(account_id: int):
    db = SessionLocal()
    try:
        comparison = _sync_service(db).compare_database_with_server(account_id)
        return api_response(True, comparison.message, serialize_dataclass(comparison))
    finally:
        db.close()


# Account domains


@hosting_bp.route("/hosting-accounts/<int:account_id>/domains", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Hosting.Read")
@handle_service_errors
def list_account_domains(account_id: int):
    db = SessionLocal()
    try:
        return api_response(True, "Hosting domains retrieved", to_list(_manager(db).get_domains(account_id)))
    finally:
        db.close()


@hosting_bp.route("/hosting-accounts/<int:account_id>/domains/<int:domain_id>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Hosting.Read")
@handle_service_errors
def get_account_domain(account_id: int, domain_id: int):
    db = SessionLocal()
    try:
        domain = _manager(db).get_domain(account_id, domain_id)
        return api_response(True, "Hosting domain retrieved", to_dict(domain))
    finally:
        db.close()


@hosting_bp.route("/hosting-accounts/<int:account_id>/domains", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Hosting.Write")
@handle_service_errors
def create_account_domain(account_id: int):
    dto = HostingDomainCreateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        domain = _manager(db).create_domain(account_id, dto)
        return api_response(True, "Hosting domain created", to_dict(domain), 201)
    finally:
        db.close()


@hosting_bp.route("/hosting-accounts/<int:account_id>/domains/<int:domain_id>", methods=["PUT"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Hosting.Write")
@handle_service_errors
def update_account_domain(account_id: int, domain_id: int):
    dto = HostingDomainUpdateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        domain = _manager(db).update_domain(account_id, domain_id, dto)
        return api_response(True, "Hosting domain updated", to_dict(domain))
    finally:
        db.close()


@hosting_bp.route("/hosting-accounts/<int:account_id>/domains/<int:domain_id>", methods=["DELETE"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Hosting.Delete")
@handle_service_errors
def delete_account_domain(account_id: int, domain_id: int):
    db = SessionLocal()
    try:
        _manager(db).delete_domain(account_id, domain_id)
        return api_response(True, "Hosting domain deleted")
    finally:
        db.close()


# Mailboxes


@hosting_bp.route("/hosting-accounts/<int:account_id>/email-accounts", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Hosting.Read")
@handle_service_errors
def list_email_accounts(account_id: int):
    db = SessionLocal()
    try:
        mailboxes = _manager(db).get_email_accounts(account_id)
        return api_response(True, "Email accounts retrieved", to_list(mailboxes))
    finally:
        db.close()


@hosting_bp.route("/hosting-accounts/<int:account_id>/email-accounts/<int:email_id>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Hosting.Read")
@handle_service_errors
def get_email_account(account_id: int, email_id: int):
    db = SessionLocal()
    try:
        mailbox = _manager(db).get_email_account(account_id, email_id)
        return api_response(True, "Email account retrieved", to_dict(mailbox))
    finally:
        db.close()


@hosting_bp.route("/hosting-accounts/<int:account_id>/email-accounts", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Hosting.Write")
@handle_service_errors
def create_email_account(account_id: int):
    dto = HostingEmailAccountCreateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        mailbox = _manager(db).create_email_account(account_id, dto)
        return api_response(True, "Email account created", to_dict(mailbox), 201)
    finally:
        db.close()


@hosting_bp.route("/hosting-accounts/<int:account_id>/email-accounts/<int:email_id>", methods=["PUT"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Hosting.Write")
@handle_service_errors
def update_email_account(account_id: int, email_id: int):
    dto = HostingEmailAccountUpdateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        mailbox = _manager(db).update_email_account(account_id, email_id, dto)
        return api_response(True, "Email account updated", to_dict(mailbox))
    finally:
        db.close()


@hosting_bp.route(
    "/hosting-accounts/<int:account_id>/email-accounts/<int:email_id>", methods=["DELETE"]
)
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Hosting.Delete")
@handle_service_errors
def delete_email_account(account_id: int, email_id: int):
    db = SessionLocal()
    try:
        _manager(db).delete_email_account(account_id, email_id)
        return api_response(True, "Email account deleted")
    finally:
        db.close()


# Databases


@hosting_bp.route("/hosting-accounts/<int:account_id>/databases", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Hosting.Read")
@handle_service_errors
def list_databases(account_id: int):
    db = SessionLocal()
    try:
        return api_response(True, "Databases retrieved", to_list(_manager(db).get_databases(account_id)))
    finally:
        db.close()


@hosting_bp.route("/hosting-accounts/<int:account_id>/databases/<int:database_id>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Hosting.Read")
@handle_service_errors
def get_database(account_id: int, database_id: int):
    db = SessionLocal()
    try:
        database = _manager(db).get_database(account_id, database_id)
        return api_response(True, "Database retrieved", to_dict(database))
    finally:
        db.close()


@hosting_bp.route("/hosting-accounts/<int:account_id>/databases", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Hosting.Write")
@handle_service_errors
def create_database(account_id: int):
    dto = HostingDatabaseCreateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        database = _manager(db).create_database(account_id, dto)
        return api_response(True, "Database created", to_dict(database), 201)
    finally:
        db.close()


@hosting_bp.route("/hosting-accounts/<int:account_id>/databases/<int:database_id>", methods=["PUT"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Hosting.Write")
@handle_service_errors
def update_database(account_id: int, database_id: int):
    dto = HostingDatabaseUpdateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        database = _manager(db).update_database(account_id, database_id, dto)
        return api_response(True, "Database updated", to_dict(database))
    finally:
        db.close()


@hosting_bp.route(
    "/hosting-accounts/<int:account_id>/databases/<int:database_id>", methods=["DELETE"]
)
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Hosting.Delete")
@handle_service_errors
def delete_database(account_id: int, database_id: int):
    db = SessionLocal()
    try:
        _manager(db).delete_database(account_id, database_id)
        return api_response(True, "Database deleted")
    finally:
        db.close()
