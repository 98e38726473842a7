"""
Plesk client using the REST API v2 (``/api/v2``).

Authenticates with an ``X-API-Key`` header when an API key is configured,
otherwise with HTTP basic auth. Mail and quota changes go through the
``/cli/<command>/call`` gateway because REST v2 has no resources for them.
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


class PleskPanel(BaseHostingPanel):
    panel_name = "Plesk"
    default_port = 8443

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(api_url, **kwargs)
        if api_key:
            self.session.headers.update({"X-API-Key": api_key})
        elif username and password:
            self.session.auth = (username, password)
        else:
            raise ValueError("Plesk requires an API key or a username and password")
        self.session.headers.update({"Accept": "application/json"})

    def _api(self, method: str, path: str, **kwargs) -> Any:
        return self._request(method, f"/api/v2{path}", **kwargs)

    def _cli(self, command: str, *params: str) -> str:
        result = self._api("POST", f"/cli/{command}/call", json={"params": list(params)})
        if int(result.get("code", 1)) != 0:
            raise ExternalServiceError(
                self.panel_name, (result.get("stderr") or f"{command} failed").strip()
            )
        return result.get("stdout", "")

    def _domain_name(self, account_id: str) -> str:
        return self._api("GET", f"/domains/{account_id}")["name"]

    @staticmethod
    def _account_info(domain: Dict[str, Any]) -> AccountInfoResult:
        hosting = domain.get("hosting_settings") or {}
        status = str(domain.get("status", "active")).lower()
        return AccountInfoResult(
            success=True,
            account_id=str(domain.get("id")),
            username=hosting.get("ftp_login") or domain.get("name"),
            domain=domain.get("name"),
            plan=(domain.get("plan") or {}).get("name"),
            status="Active" if status in ("0", "active") else "Suspended",
        )

    def test_connection(self) -> bool:
        try:
            self._api("GET", "/server")
            return True
        except ExternalServiceError as e:
            logger.warning(
                "Plesk connection test failed",
                extra={"context": {"base_url": self.base_url, "error": str(e)}},
            )
            return False

    @panel_operation(HostingAccountResult)
    def create_web_account(self, request: WebAccountRequest) -> HostingAccountResult:
        body: Dict[str, Any] = {
            "name": request.domain,
            "hosting_type": "virtual",
            "hosting_settings": {
                "ftp_login": request.username,
                "ftp_password": request.password or "",
            },
        }
        if request.plan:
            body["plan"] = {"name": request.plan}
        created = self._api("POST", "/domains", json=body)
        if request.disk_quota_mb is not None:
            self._cli(
                "subscription_settings",
                "--update",
                request.domain,
                "-disk_space",
                f"{request.disk_quota_mb}M",
            )
        return HostingAccountResult(
            success=True,
            message="Subscription created",
            account_id=str(created["id"]),
            username=request.username,
            domain=request.domain,
        )

    @panel_operation(AccountUpdateResult)
    def update_web_account(self, account_id: str, request: WebAccountRequest) -> AccountUpdateResult:
        body: Dict[str, Any] = {}
        if request.password:
            body["hosting_settings"] = {"ftp_password": request.password}
        if request.plan:
            body["plan"] = {"name": request.plan}
        if body:
            self._api("PUT", f"/domains/{account_id}", json=body)
        if request.disk_quota_mb is not None:
            self._cli(
                "subscription_settings",
                "--update",
                self._domain_name(account_id),
                "-disk_space",
                f"{request.disk_quota_mb}M",
            )
        return AccountUpdateResult(success=True, message="Subscription updated", account_id=account_id)

    def _set_status(self, account_id: str, status: str) -> None:
        self._api("PUT", f"/domains/{account_id}/status", json={"status": status})

    @panel_operation(AccountUpdateResult)
    def suspend_web_account(self, account_id: str, reason: str = "") -> AccountUpdateResult:
        self._set_status(account_id, "suspended")
        return AccountUpdateResult(
            success=True,
            message="Subscription suspended",
            account_id=account_id,
            updated_field="Status",
            new_value="Suspended",
        )

    @panel_operation(AccountUpdateResult)
    def unsuspend_web_account(self, account_id: str) -> AccountUpdateResult:
        self._set_status(account_id, "active")
        return AccountUpdateResult(
            success=True,
            message="Subscription activated",
            account_id=account_id,
            updated_field="Status",
            new_value="Active",
        )

    @panel_operation(AccountUpdateResult)
    def delete_web_account(self, account_id: str) -> AccountUpdateResult:
        self._api("DELETE", f"/domains/{account_id}")
        return AccountUpdateResult(success=True, message="Subscription deleted", account_id=account_id)

    @panel_operation(AccountInfoResult)
    def get_web_account_info(self, account_id: str) -> AccountInfoResult:
        return self._account_info(self._api("GET", f"/domains/{account_id}"))

    def list_web_accounts(self) -> List[AccountInfoResult]:
        return [self._account_info(domain) for domain in self._api("GET", "/domains") or []]

    @panel_operation(MailAccountResult)
    def create_mail_account(
        self, account_id: str, email_address: str, password: str, quota_mb: Optional[int] = None
    ) -> MailAccountResult:
        params = ["--create", email_address, "-passwd", password, "-mailbox", "true"]
        if quota_mb:
            params += ["-mbox_quota", f"{quota_mb}M"]
        self._cli("mail", *params)
        return MailAccountResult(
            success=True, message="Mailbox created", email_address=email_address, quota_mb=quota_mb
        )

    def list_mail_accounts(self, account_id: str) -> List[MailAccountResult]:
        domain = self._domain_name(account_id)
        output = self._cli("mail", "--list", domain)
        results = []
        for line in output.splitlines():
            for token in line.split():
                if "@" in token:
                    results.append(MailAccountResult(success=True, email_address=token.strip()))
                    break
        return results

    @panel_operation(MailAccountResult)
    def delete_mail_account(self, account_id: str, email_address: str) -> MailAccountResult:
        self._cli("mail", "--remove", email_address)
        return MailAccountResult(success=True, message="Mailbox deleted", email_address=email_address)

    def _find_database(self, account_id: str, database_name: str) -> Optional[Dict[str, Any]]:
        domain = self._domain_name(account_id)
        for database in self._api("GET", "/databases", params={"domain": domain}) or []:
            if database.get("name") == database_name:
                return database
        return None

    @panel_operation(DatabaseResult)
    def create_database(self, account_id: str, database_name: str) -> DatabaseResult:
        self._api(
            "POST",
            "/databases",
            json={
                "name": database_name,
                "type": "mysql",
                "parent_domain": {"id": to_int(account_id)},
            },
        )
        return DatabaseResult(success=True, message="Database created", database_name=database_name)

    def list_databases(self, account_id: str) -> List[DatabaseResult]:
        domain = self._domain_name(account_id)
        return [
            DatabaseResult(
                success=True,
                database_name=database.get("name"),
                database_type="MySQL" if database.get("type") == "mysql" else str(database.get("type")),
            )
            for database in self._api("GET", "/databases", params={"domain": domain}) or []
        ]

    @panel_operation(DatabaseResult)
    def delete_database(self, account_id: str, database_name: str) -> DatabaseResult:
        database = self._find_database(account_id, database_name)
        if database is None:
            return DatabaseResult.error(f"Database {database_name} not found on server")
        self._api("DELETE", f"/databases/{database['id']}")
        return DatabaseResult(success=True, message="Database deleted", database_name=database_name)

    @panel_operation(DatabaseResult)
    def create_database_user(
        self, account_id: str, username: str, password: str, database_name: Optional[str] = None
    ) -> DatabaseResult:
        body: Dict[str, Any] = {"login": username, "password": password}
        if database_name:
            database = self._find_database(account_id, database_name)
            if database is None:
                return DatabaseResult.error(f"Database {database_name} not found on server")
            body["database_id"] = database["id"]
        self._api("POST", "/dbusers", json=body)
        return DatabaseResult(
            success=True,
            message="Database user created",
            database_name=database_name,
            username=username,
        )

    @panel_operation(AccountUpdateResult)
    def change_disk_quota(self, account_id: str, quota_mb: int) -> AccountUpdateResult:
        self._cli(
            "subscription_settings",
            "--update",
            self._domain_name(account_id),
            "-disk_space",
            f"{quota_mb}M",
        )
        return AccountUpdateResult(
            success=True,
            message="Disk quota changed",
            account_id=account_id,
            updated_field="DiskQuota",
            new_value=str(quota_mb),
        )
