"""
Two-way synchronization between local hosting accounts and control panels.

Every operation returns a ``SyncResult``; panel failures never propagate
to the caller, they end up in the result message and in ``sync_status``.
"""

import logging
from typing import Callable, List, Optional

from isp_admin.core.config import utc_now
from isp_admin.core.security import generate_secure_token, hash_password
from isp_admin.db.base import HostingAccount, HostingDatabase, HostingEmailAccount
from isp_admin.domain.entities import (
    HostingAccountStatus,
    SyncComparison,
    SyncDifference,
    SyncResult,
    SyncStatus,
)
from isp_admin.domain.interfaces import (
    IHostingAccountRepository,
    IServerControlPanelRepository,
)
from isp_admin.integrations.hosting_panels.factory import create_hosting_panel
from isp_admin.integrations.hosting_panels.results import AccountInfoResult, WebAccountRequest

from .hosting_service import PANEL_ERRORS, panel_for

logger = logging.getLogger(__name__)

MAX_REPORTED_ERRORS = 5


def _apply_info(account: HostingAccount, info: AccountInfoResult) -> None:
    if info.plan:
        account.plan = info.plan
    if info.status in HostingAccountStatus.ALL:
        account.status = info.status
    for name in ("disk_usage_mb", "disk_quota_mb", "bandwidth_usage_mb", "bandwidth_limit_mb"):
        value = getattr(info, name)
        if value is not None:
            setattr(account, name, value)


class HostingSyncService:
    def __init__(
        self,
        repo: IHostingAccountRepository,
        panel_repo: IServerControlPanelRepository,
        panel_factory: Callable = create_hosting_panel,
    ) -> None:
        self.repo = repo
        self.panel_repo = panel_repo
        self.panel_factory = panel_factory

    def sync_account_from_server(
        self, server_control_panel_id: int, external_account_id: str
    ) -> SyncResult:
        """Refresh an existing local account from its panel."""
        scp = self.panel_repo.get_by_id(server_control_panel_id)
        if scp is None:
            return SyncResult(success=False, message="Server control panel not found")
        account = self.repo.get_by_external_id(server_control_panel_id, external_account_id)
        if account is None:
            return SyncResult(
                success=False,
                message="Account not found in database. Use import endpoint to create new account.",
            )

        info = self._account_info(scp, external_account_id)
        if not info.success:
            self._mark_error(account, info.message)
            return SyncResult(success=False, message=info.message, errors=list(info.errors))

        _apply_info(account, info)
        account.sync_status = SyncStatus.SYNCED
        account.last_synced_at = utc_now()
        self.repo.save(account)
        logger.info(
            "Hosting account synced from server",
            extra={"context": {"hosting_account_id": account.id, "external_account_id": external_account_id}},
        )
        return SyncResult(success=True, message="Account synced from server", records_synced=1)

    def import_account_from_server(
        self, server_control_panel_id: int, external_account_id: str, customer_id: int
    ) -> SyncResult:
        """Create a local account for one that so far only exists on the panel."""
        scp = self.panel_repo.get_by_id(server_control_panel_id)
        if scp is None:
            return SyncResult(success=False, message="Server control panel not found")
        if self.repo.get_by_external_id(server_control_panel_id, external_account_id) is not None:
            return SyncResult(
                success=False,
                message="Account already exists in database. Use sync endpoint to update it.",
            )

        info = self._account_info(scp, external_account_id)
        if not info.success:
            return SyncResult(success=False, message=info.message, errors=list(info.errors))

        account = HostingAccount(
            customer_id=customer_id,
            server_id=scp.server_id,
            server_control_panel_id=scp.id,
            username=info.username or external_account_id,
            password_hash=hash_password(generate_secure_token(16)),
            status=HostingAccountStatus.ACTIVE,
            external_account_id=external_account_id,
        )
        _apply_info(account, info)
        account.sync_status = SyncStatus.SYNCED
        account.last_synced_at = utc_now()
        account = self.repo.add(account)
        logger.info(
            "Hosting account imported",
            extra={
                "context": {
                    "hosting_account_id": account.id,
                    "external_account_id": external_account_id,
                    "customer_id": customer_id,
                }
            },
        )
        return SyncResult(success=True, message=f"Account imported with ID: {account.id}", records_synced=1)

    def sync_account_to_server(self, account_id: int) -> SyncResult:
        """Push the local account to its panel, creating it when missing."""
        account = self.repo.get_with_details(account_id)
        if account is None:
            return SyncResult(success=False, message="Hosting account not found")
        if account.server_control_panel is None:
            return SyncResult(
                success=False, message="Server control panel not configured for this account"
            )

        main = next((d for d in account.domains if d.domain_type == "Main"), None)
        if main is None and account.domains:
            main = account.domains[0]
        request = WebAccountRequest(
            username=account.username,
            domain=main.domain_name if main else "",
            email=account.customer.email if account.customer else None,
            plan=account.plan,
            disk_quota_mb=account.disk_quota_mb,
            bandwidth_limit_mb=account.bandwidth_limit_mb,
        )

        try:
            panel = panel_for(account.server_control_panel, self.panel_factory)
            if account.external_account_id:
                result = panel.update_web_account(account.external_account_id, request)
            else:
                if main is None:
                    return SyncResult(
                        success=False,
                        message="No domains found for this hosting account. Please create a domain first.",
                    )
                request.password = generate_secure_token(12)
                result = panel.create_web_account(request)
        except PANEL_ERRORS as e:
            self._mark_error(account, str(e))
            return SyncResult(success=False, message=str(e), errors=[str(e)])

        if not result.success:
            self._mark_error(account, result.message)
            return SyncResult(success=False, message=result.message, errors=list(result.errors))

        if not account.external_account_id:
            account.external_account_id = result.account_id or account.username
        account.sync_status = SyncStatus.SYNCED
        account.last_synced_at = utc_now()
        self.repo.save(account)
        return SyncResult(success=True, message="Account synced to server", records_synced=1)

    def sync_all_accounts_from_server(self, server_control_panel_id: int) -> SyncResult:
        scp = self.panel_repo.get_by_id(server_control_panel_id)
        if scp is None:
            return SyncResult(success=False, message="Server control panel not found")
        try:
            remote_accounts = panel_for(scp, self.panel_factory).list_web_accounts()
        except PANEL_ERRORS as e:
            return SyncResult(success=False, message=f"Failed to list accounts: {e}", errors=[str(e)])

        total = len(remote_accounts)
        synced = 0
        errors: List[str] = []
        for info in remote_accounts:
            external_id = info.account_id or info.username
            result = self.sync_account_from_server(server_control_panel_id, external_id)
            if result.success:
                synced += 1
            else:
                errors.append(f"{external_id}: {result.message}")

        message = f"Synced {synced} of {total} accounts"
        if errors:
            message += ". Errors: " + "; ".join(errors[:MAX_REPORTED_ERRORS])
        logger.info(
            "Hosting accounts synced from server",
            extra={
                "context": {
                    "server_control_panel_id": server_control_panel_id,
                    "total": total,
                    "synced": synced,
                    "errors": len(errors),
                }
            },
        )
        return SyncResult(
            success=len(errors) < total,
            message=message,
            records_synced=synced,
            errors=errors,
        )

    def sync_email_accounts_from_server(self, account_id: int) -> SyncResult:
        account, error = self._provisioned(account_id)
        if error is not None:
            return error
        try:
            mailboxes = panel_for(account.server_control_panel, self.panel_factory).list_mail_accounts(
                account.external_account_id
            )
        except PANEL_ERRORS as e:
            return SyncResult(success=False, message=str(e), errors=[str(e)])

        now = utc_now()
        existing = {m.email_address: m for m in account.email_accounts}
        for remote in mailboxes:
            mailbox = existing.get(remote.email_address)
            if mailbox is None:
                mailbox = HostingEmailAccount(email_address=remote.email_address)
                account.email_accounts.append(mailbox)
            mailbox.quota_mb = remote.quota_mb
            mailbox.usage_mb = remote.usage_mb
            mailbox.sync_status = SyncStatus.SYNCED
            mailbox.last_synced_at = now
        self.repo.save(account)
        return SyncResult(
            success=True, message=f"Synced {len(mailboxes)} email accounts", records_synced=len(mailboxes)
        )

    def sync_databases_from_server(self, account_id: int) -> SyncResult:
        account, error = self._provisioned(account_id)
        if error is not None:
            return error
        try:
            databases = panel_for(account.server_control_panel, self.panel_factory).list_databases(
                account.external_account_id
            )
        except PANEL_ERRORS as e:
            return SyncResult(success=False, message=str(e), errors=[str(e)])

        now = utc_now()
        existing = {d.database_name: d for d in account.databases}
        for remote in databases:
            database = existing.get(remote.database_name)
            if database is None:
                database = HostingDatabase(database_name=remote.database_name)
                account.databases.append(database)
            if remote.database_type:
                database.database_type = remote.database_type
            database.size_mb = remote.size_mb
            database.sync_status = SyncStatus.SYNCED
            database.last_synced_at = now
        self.repo.save(account)
        return SyncResult(
            success=True, message=f"Synced {len(databases)} databases", records_synced=len(databases)
        )

    def delete_account_from_server(self, account_id: int) -> SyncResult:
        account, error = self._provisioned(account_id)
        if error is not None:
            return error
        try:
            result = panel_for(account.server_control_panel, self.panel_factory).delete_web_account(
                account.external_account_id
            )
        except PANEL_ERRORS as e:
            return SyncResult(success=False, message=str(e), errors=[str(e)])
        if not result.success:
            return SyncResult(success=False, message=result.message, errors=list(result.errors))

        logger.info(
            "Hosting account deleted from server",
            extra={"context": {"hosting_account_id": account.id, "external_account_id": account.external_account_id}},
        )
        account.external_account_id = None
        account.sync_status = SyncStatus.NOT_SYNCED
        self.repo.save(account)
        return SyncResult(success=True, message="Account deleted from server", records_synced=1)

    def compare_database_with_server(self, account_id: int) -> SyncComparison:
        account = self.repo.get_by_id(account_id)
        if account is None:
            return SyncComparison(account_id, in_sync=False, message="Hosting account not found")
        if account.server_control_panel is None or not account.external_account_id:
            return SyncComparison(
                account_id, in_sync=False, message="Account is not provisioned on a control panel"
            )

        info = self._account_info(account.server_control_panel, account.external_account_id)
        if not info.success:
            return SyncComparison(account_id, in_sync=False, message=info.message)

        differences = []
        for label, local, remote in (
            ("DiskQuota", account.disk_quota_mb, info.disk_quota_mb),
            ("BandwidthLimit", account.bandwidth_limit_mb, info.bandwidth_limit_mb),
            ("Status", account.status, info.status),
        ):
            if remote is not None and local != remote:
                differences.append(SyncDifference(label, local, remote))

        return SyncComparison(
            hosting_account_id=account_id,
            in_sync=not differences,
            differences=differences,
            server_data={
                "username": info.username,
                "domain": info.domain,
                "plan": info.plan,
                "status": info.status,
                "disk_quota_mb": info.disk_quota_mb,
                "disk_usage_mb": info.disk_usage_mb,
                "bandwidth_limit_mb": info.bandwidth_limit_mb,
                "bandwidth_usage_mb": info.bandwidth_usage_mb,
            },
            message="In sync" if not differences else f"{len(differences)} differences found",
        )

    def _account_info(self, scp, external_account_id: str) -> AccountInfoResult:
        try:
            return panel_for(scp, self.panel_factory).get_web_account_info(external_account_id)
        except PANEL_ERRORS as e:
            return AccountInfoResult.error(str(e))

    def _provisioned(self, account_id: int):
        account = self.repo.get_with_details(account_id)
        if account is None:
            return None, SyncResult(success=False, message="Hosting account not found")
        if account.server_control_panel is None or not account.external_account_id:
            return None, SyncResult(
                success=False, message="Account is not provisioned on a control panel"
            )
        return account, None

    def _mark_error(self, account: HostingAccount, message: Optional[str]) -> None:
        account.sync_status = SyncStatus.ERROR
        self.repo.save(account)
        logger.error(
            "Hosting account sync failed",
            extra={"context": {"hosting_account_id": account.id, "error": message}},
        )
