"""
cPanel/WHM client.

Account operations use the WHM JSON API v1 (``/json-api/<function>``).
Mailbox and database operations run cPanel UAPI functions on behalf of the
account owner through WHM's ``cpanel`` proxy call.
"""

import logging
from typing import Any, Dict, List, Optional

from isp_admin.core.exceptions import ExternalServiceError

from .base import BaseHostingPanel, panel_operation
from .results import (
    AccountInfoResult,
    AccountUpdateResult,
    DatabaseResult,
    HostingAccountResult,
    MailAccountResult,
    WebAccountRequest,
    to_int,
)

logger = logging.getLogger(__name__)


def _bytes_to_mb(value) -> Optional[int]:
    size = to_int(value)
    return size // (1024 * 1024) if size else size


class CpanelPanel(BaseHostingPanel):
    panel_name = "CPanel"
    default_port = 2087

    def __init__(self, api_url: str, username: str, api_token: str, **kwargs):
        super().__init__(api_url, **kwargs)
        if not username or not api_token:
            raise ValueError("cPanel requires a username and an API token")
        self.username = username
        self.session.headers.update({"Authorization": f"cpanel {username}:{api_token}"})

    # WHM / UAPI plumbing

    def _whm(self, function: str, **params) -> Dict[str, Any]:
        params["api.version"] = 1
        payload = self._request("GET", f"/json-api/{function}", params=params)
        metadata = payload.get("metadata", {})
        if int(metadata.get("result", 0)) != 1:
            raise ExternalServiceError(
                self.panel_name, metadata.get("reason") or f"{function} failed"
            )
        return payload.get("data") or {}

    def _uapi(self, user: str, module: str, function: str, **params) -> Any:
        params.update(
            {
                "cpanel_jsonapi_user": user,
                "cpanel_jsonapi_apiversion": 3,
                "cpanel_jsonapi_module": module,
                "cpanel_jsonapi_func": function,
            }
        )
        payload = self._request("GET", "/json-api/cpanel", params=params)
        result = payload.get("result", {})
        if int(result.get("status", 0)) != 1:
            errors = result.get("errors") or [f"{module}::{function} failed"]
            raise ExternalServiceError(self.panel_name, "; ".join(errors))
        return result.get("data")

    @staticmethod
    def _account_info(acct: Dict[str, Any]) -> AccountInfoResult:
        suspended = str(acct.get("suspended", "0")) in ("1", "true")
        return AccountInfoResult(
            success=True,
            account_id=acct.get("user"),
            username=acct.get("user"),
            domain=acct.get("domain"),
            email=acct.get("email"),
            plan=acct.get("plan"),
            status="Suspended" if suspended else "Active",
            disk_usage_mb=to_int(acct.get("diskused")),
            disk_quota_mb=to_int(acct.get("disklimit")),
        )

    # Web accounts

    def test_connection(self) -> bool:
        try:
            self._whm("version")
            return True
        except ExternalServiceError as e:
            logger.warning(
                "cPanel connection test failed",
                extra={"context": {"base_url": self.base_url, "error": str(e)}},
            )
            return False

    @panel_operation(HostingAccountResult)
    def create_web_account(self, request: WebAccountRequest) -> HostingAccountResult:
        params = {"username": request.username, "domain": request.domain}
        if request.password:
            params["password"] = request.password
        if request.plan:
            params["plan"] = request.plan
        if request.email:
            params["contactemail"] = request.email
        if request.disk_quota_mb is not None:
            params["quota"] = request.disk_quota_mb
        if request.bandwidth_limit_mb is not None:
            params["bwlimit"] = request.bandwidth_limit_mb
        self._whm("createacct", **params)
        return HostingAccountResult(
            success=True,
            message="Account created",
            account_id=request.username,
            username=request.username,
            domain=request.domain,
        )

    @panel_operation(AccountUpdateResult)
    def update_web_account(self, account_id: str, request: WebAccountRequest) -> AccountUpdateResult:
        params = {"user": account_id}
        if request.domain:
            params["DNS"] = request.domain
        if request.email:
            params["contactemail"] = request.email
        if len(params) > 1:
            self._whm("modifyacct", **params)
        if request.plan:
            self._whm("changepackage", user=account_id, pkg=request.plan)
        if request.disk_quota_mb is not None:
            self._whm("editquota", user=account_id, quota=request.disk_quota_mb)
        if request.bandwidth_limit_mb is not None:
            self._whm("limitbw", user=account_id, bwlimit=request.bandwidth_limit_mb)
        return AccountUpdateResult(success=True, message="Account updated", account_id=account_id)

    @panel_operation(AccountUpdateResult)
    def suspend_web_account(self, account_id: str, reason: str = "") -> AccountUpdateResult:
        self._whm("suspendacct", user=account_id, reason=reason)
        return AccountUpdateResult(
            success=True,
            message="Account suspended",
            account_id=account_id,
            updated_field="Status",
            new_value="Suspended",
        )

    @panel_operation(AccountUpdateResult)
    def unsuspend_web_account(self, account_id: str) -> AccountUpdateResult:
        self._whm("unsuspendacct", user=account_id)
        return AccountUpdateResult(
            success=True,
            message="Account unsuspended",
            account_id=account_id,
            updated_field="Status",
            new_value="Active",
        )

    @panel_operation(AccountUpdateResult)
    def delete_web_account(self, account_id: str) -> AccountUpdateResult:
        self._whm("removeacct", username=account_id)
        return AccountUpdateResult(success=True, message="Account deleted", account_id=account_id)

    @panel_operation(AccountInfoResult)
    def get_web_account_info(self, account_id: str) -> AccountInfoResult:
        data = self._whm("accountsummary", user=account_id)
        accounts = data.get("acct") or []
        if not accounts:
            return AccountInfoResult.error(f"Account {account_id} not found on server")
        info = self._account_info(accounts[0])
        bandwidth = self._bandwidth(account_id)
        if bandwidth:
            info.bandwidth_usage_mb, info.bandwidth_limit_mb = bandwidth
        return info

    def _bandwidth(self, account_id: str) -> Optional[tuple]:
        try:
            data = self._whm("showbw", searchtype="user", search=account_id)
        except ExternalServiceError:
            return None
        for entry in (data.get("acct") or []):
            if entry.get("user") == account_id:
                return (
                    _bytes_to_mb(entry.get("totalbytes")),
                    _bytes_to_mb(entry.get("limit")),
                )
        return None

    def list_web_accounts(self) -> List[AccountInfoResult]:
        data = self._whm("listaccts")
        return [self._account_info(acct) for acct in data.get("acct") or []]

    # Mail accounts

    @panel_operation(MailAccountResult)
    def create_mail_account(
        self, account_id: str, email_address: str, password: str, quota_mb: Optional[int] = None
    ) -> MailAccountResult:
        local, _, domain = email_address.partition("@")
        self._uapi(
            account_id,
            "Email",
            "add_pop",
            email=local,
            domain=domain,
            password=password,
            quota=quota_mb or 0,
        )
        return MailAccountResult(
            success=True, message="Mailbox created", email_address=email_address, quota_mb=quota_mb
        )

    def list_mail_accounts(self, account_id: str) -> List[MailAccountResult]:
        data = self._uapi(account_id, "Email", "list_pops_with_disk") or []
        return [
            MailAccountResult(
                success=True,
                email_address=item.get("email"),
                quota_mb=to_int(item.get("diskquota")),
                usage_mb=to_int(item.get("diskused")),
            )
            for item in data
        ]

    @panel_operation(MailAccountResult)
    def delete_mail_account(self, account_id: str, email_address: str) -> MailAccountResult:
        local, _, domain = email_address.partition("@")
        self._uapi(account_id, "Email", "delete_pop", email=local, domain=domain)
        return MailAccountResult(success=True, message="Mailbox deleted", email_address=email_address)

    # Databases

    @panel_operation(DatabaseResult)
    def create_database(self, account_id: str, database_name: str) -> DatabaseResult:
        self._uapi(account_id, "Mysql", "create_database", name=database_name)
        return DatabaseResult(success=True, message="Database created", database_name=database_name)

    def list_databases(self, account_id: str) -> List[DatabaseResult]:
        data = self._uapi(account_id, "Mysql", "list_databases") or []
        results = []
        for item in data:
            results.append(
                DatabaseResult(
                    success=True,
                    database_name=item.get("database"),
                    size_mb=_bytes_to_mb(item.get("disk_usage")),
                )
            )
        return results

    @panel_operation(DatabaseResult)
    def delete_database(self, account_id: str, database_name: str) -> DatabaseResult:
        self._uapi(account_id, "Mysql", "delete_database", name=database_name)
        return DatabaseResult(success=True, message="Database deleted", database_name=database_name)

    @panel_operation(DatabaseResult)
    def create_database_user(
        self, account_id: str, username: str, password: str, database_name: Optional[str] = None
    ) -> DatabaseResult:
        self._uapi(account_id, "Mysql", "create_user", name=username, password=password)
        if database_name:
            self._uapi(
                account_id,
                "Mysql",
                "set_privileges_on_database",
                user=username,
                database=database_name,
                privileges="ALL PRIVILEGES",
            )
        return DatabaseResult(
            success=True,
            message="Database user created",
            database_name=database_name,
            username=username,
        )

    @panel_operation(AccountUpdateResult)
    def change_disk_quota(self, account_id: str, quota_mb: int) -> AccountUpdateResult:
        self._whm("editquota", user=account_id, quota=quota_mb)
        return AccountUpdateResult(
            success=True,
            message="Disk quota changed",
            account_id=account_id,
            updated_field="DiskQuota",
            new_value=str(quota_mb),
        )
