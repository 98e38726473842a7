"""
Virtualmin client using ``/virtual-server/remote.cgi`` with JSON output.

Each call names a Virtualmin command in ``program``; command flags without a
value are sent as empty query parameters. Virtual servers are identified by
their domain name, so the domain doubles as the external account id.
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

KB_PER_MB = 1024


def _first(values: Dict[str, Any], key: str) -> Optional[str]:
    value = values.get(key)
    if isinstance(value, list):
        return value[0] if value else None
    return value


class VirtualminPanel(BaseHostingPanel):
    panel_name = "Virtualmin"
    default_port = 10000

    def __init__(self, api_url: str, username: str, password: str, **kwargs):
        super().__init__(api_url, **kwargs)
        if not username or not password:
            raise ValueError("Virtualmin requires a username and password")
        self.session.auth = (username, password)

    def _call(self, program: str, **params) -> Any:
        query = {"program": program, "json": 1}
        query.update({key.replace("_", "-"): value for key, value in params.items()})
        payload = self._request("GET", "/virtual-server/remote.cgi", params=query)
        if payload.get("status") != "success":
            raise ExternalServiceError(
                self.panel_name, payload.get("error") or f"{program} failed"
            )
        return payload.get("data") or []

    @staticmethod
    def _account_info(entry: Dict[str, Any]) -> AccountInfoResult:
        values = entry.get("values", {})
        disabled = _first(values, "disabled")
        quota_kb = to_int(_first(values, "server_block_quota"))
        used_kb = to_int(_first(values, "server_block_quota_used"))
        return AccountInfoResult(
            success=True,
            account_id=entry.get("name"),
            username=_first(values, "username"),
            domain=entry.get("name"),
            email=_first(values, "contact_email"),
            plan=_first(values, "plan"),
            status="Suspended" if disabled else "Active",
            disk_quota_mb=quota_kb // KB_PER_MB if quota_kb else None,
            disk_usage_mb=used_kb // KB_PER_MB if used_kb else None,
            bandwidth_limit_mb=to_int(_first(values, "bandwidth_limit")),
            bandwidth_usage_mb=to_int(_first(values, "bandwidth_usage")),
        )

    def test_connection(self) -> bool:
        try:
            self._call("list-domains", name_only="")
            return True
        except ExternalServiceError as e:
            logger.warning(
                "Virtualmin connection test failed",
                extra={"context": {"base_url": self.base_url, "error": str(e)}},
            )
            return False

    @panel_operation(HostingAccountResult)
    def create_web_account(self, request: WebAccountRequest) -> HostingAccountResult:
        params = {
            "domain": request.domain,
            "user": request.username,
            "pass": request.password or "",
            "unix": "",
            "dir": "",
            "web": "",
            "mail": "",
            "mysql": "",
        }
        if request.plan:
            params["plan"] = request.plan
        if request.email:
            params["email"] = request.email
        if request.disk_quota_mb is not None:
            params["quota"] = request.disk_quota_mb * KB_PER_MB
        if request.bandwidth_limit_mb is not None:
            params["bw_limit"] = request.bandwidth_limit_mb
        self._call("create-domain", **params)
        return HostingAccountResult(
            success=True,
            message="Virtual server created",
            account_id=request.domain,
            username=request.username,
            domain=request.domain,
        )

    @panel_operation(AccountUpdateResult)
    def update_web_account(self, account_id: str, request: WebAccountRequest) -> AccountUpdateResult:
        params: Dict[str, Any] = {"domain": account_id}
        if request.password:
            params["pass"] = request.password
        if request.disk_quota_mb is not None:
            params["quota"] = request.disk_quota_mb * KB_PER_MB
        if request.bandwidth_limit_mb is not None:
            params["bw_limit"] = request.bandwidth_limit_mb
        self._call("modify-domain", **params)
        if request.plan:
            self._call("modify-domain", domain=account_id, apply_plan=request.plan)
        return AccountUpdateResult(success=True, message="Virtual server updated", account_id=account_id)

    @panel_operation(AccountUpdateResult)
    def suspend_web_account(self, account_id: str, reason: str = "") -> AccountUpdateResult:
        params = {"domain": account_id}
        if reason:
            params["why"] = reason
        self._call("disable-domain", **params)
        return AccountUpdateResult(
            success=True,
            message="Virtual server disabled",
            account_id=account_id,
            updated_field="Status",
            new_value="Suspended",
        )

    @panel_operation(AccountUpdateResult)
    def unsuspend_web_account(self, account_id: str) -> AccountUpdateResult:
        self._call("enable-domain", domain=account_id)
        return AccountUpdateResult(
            success=True,
            message="Virtual server enabled",
            account_id=account_id,
            updated_field="Status",
            new_value="Active",
        )

    @panel_operation(AccountUpdateResult)
    def delete_web_account(self, account_id: str) -> AccountUpdateResult:
        self._call("delete-domain", domain=account_id)
        return AccountUpdateResult(success=True, message="Virtual server deleted", account_id=account_id)

    @panel_operation(AccountInfoResult)
    def get_web_account_info(self, account_id: str) -> AccountInfoResult:
        data = self._call("list-domains", domain=account_id, multiline="")
        if not data:
            return AccountInfoResult.error(f"Virtual server {account_id} not found on server")
        return self._account_info(data[0])

    def list_web_accounts(self) -> List[AccountInfoResult]:
        data = self._call("list-domains", toplevel="", multiline="")
        return [self._account_info(entry) for entry in data]

    @panel_operation(MailAccountResult)
    def create_mail_account(
        self, account_id: str, email_address: str, password: str, quota_mb: Optional[int] = None
    ) -> MailAccountResult:
        local = email_address.partition("@")[0]
        params = {"domain": account_id, "user": local, "pass": password}
        if quota_mb:
            params["quota"] = quota_mb * KB_PER_MB
        self._call("create-user", **params)
        return MailAccountResult(
            success=True, message="Mailbox created", email_address=email_address, quota_mb=quota_mb
        )

    def list_mail_accounts(self, account_id: str) -> List[MailAccountResult]:
        results = []
        for entry in self._call("list-users", domain=account_id, multiline=""):
            values = entry.get("values", {})
            address = _first(values, "email_address")
            if not address:
                continue
            quota_kb = to_int(_first(values, "home_quota"))
            used_kb = to_int(_first(values, "home_quota_used"))
            results.append(
                MailAccountResult(
                    success=True,
                    email_address=address,
                    quota_mb=quota_kb // KB_PER_MB if quota_kb else None,
                    usage_mb=used_kb // KB_PER_MB if used_kb else None,
                )
            )
        return results

    @panel_operation(MailAccountResult)
    def delete_mail_account(self, account_id: str, email_address: str) -> MailAccountResult:
        self._call("delete-user", domain=account_id, user=email_address.partition("@")[0])
        return MailAccountResult(success=True, message="Mailbox deleted", email_address=email_address)

    @panel_operation(DatabaseResult)
    def create_database(self, account_id: str, database_name: str) -> DatabaseResult:
        self._call("create-database", domain=account_id, name=database_name, type="mysql")
        return DatabaseResult(success=True, message="Database created", database_name=database_name)

    def list_databases(self, account_id: str) -> List[DatabaseResult]:
        return [
            DatabaseResult(success=True, database_name=entry.get("name"))
            for entry in self._call("list-databases", domain=account_id, multiline="")
        ]

    @panel_operation(DatabaseResult)
    def delete_database(self, account_id: str, database_name: str) -> DatabaseResult:
        self._call("delete-database", domain=account_id, name=database_name, type="mysql")
        return DatabaseResult(success=True, message="Database deleted", database_name=database_name)

    @panel_operation(DatabaseResult)
    def create_database_user(
        self, account_id: str, username: str, password: str, database_name: Optional[str] = None
    ) -> DatabaseResult:
        params = {"domain": account_id, "user": username, "pass": password, "noemail": ""}
        if database_name:
            params["mysql"] = database_name
        self._call("create-user", **params)
        return DatabaseResult(
            success=True,
            message="Database user created",
            database_name=database_name,
            username=username,
        )

    @panel_operation(AccountUpdateResult)
    def change_disk_quota(self, account_id: str, quota_mb: int) -> AccountUpdateResult:
        self._call("modify-domain", domain=account_id, quota=quota_mb * KB_PER_MB)
        return AccountUpdateResult(
            success=True,
            message="Disk quota changed",
            account_id=account_id,
            updated_field="DiskQuota",
            new_value=str(quota_mb),
        )
