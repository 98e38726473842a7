"""
Servers, control panel connections and hosting accounts.

Local rows are the source of truth for billing; the control panel is the
source of truth for what actually runs. ``sync_status`` tracks which side
is ahead.
"""

import logging
from typing import Callable, List, Optional

from isp_admin.core.config import utc_now
from isp_admin.core.exceptions import (
    EntityNotFoundError,
    ExternalServiceError,
    InvalidOperationError,
    UnsupportedProviderError,
)
from isp_admin.core.security import generate_secure_token, hash_password
from isp_admin.db.base import (
    ControlPanelType,
    HostingAccount,
    HostingDatabase,
    HostingDomain,
    HostingEmailAccount,
    Server,
    ServerControlPanel,
)
from isp_admin.domain.entities import (
    HostingAccountStatus,
    ResourceUsage,
    SyncResult,
    SyncStatus,
)
from isp_admin.domain.interfaces import (
    IHostingAccountRepository,
    IServerControlPanelRepository,
    IServerRepository,
)
from isp_admin.integrations.hosting_panels.factory import create_hosting_panel
from isp_admin.integrations.hosting_panels.results import WebAccountRequest
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

logger = logging.getLogger(__name__)

# Panel failures reported as a failed SyncResult instead of an exception
PANEL_ERRORS = (ExternalServiceError, UnsupportedProviderError)


def panel_for(server_control_panel: ServerControlPanel, panel_factory: Callable):
    panel_type = server_control_panel.control_panel_type
    return panel_factory(panel_type.name if panel_type else "", server_control_panel)


class ServerService:
    def __init__(self, repo: IServerRepository) -> None:
        self.repo = repo

    def get_all(self) -> List[Server]:
        return self.repo.get_all()

    def get_by_id(self, server_id: int) -> Optional[Server]:
        return self.repo.get_by_id(server_id)

    def create(self, dto: ServerCreateRequest) -> Server:
        dto.validate()
        server = self.repo.add(Server(**dto.changes()))
        logger.info(
            "Server created",
            extra={"context": {"server_id": server.id, "hostname": server.hostname}},
        )
        return server

    def update(self, server_id: int, dto: ServerUpdateRequest) -> Server:
        dto.validate()
        server = self.repo.get_by_id(server_id)
        if server is None:
            raise EntityNotFoundError("Server", server_id)
        for name, value in dto.changes().items():
            setattr(server, name, value)
        return self.repo.save(server)

    def delete(self, server_id: int) -> None:
        server = self.repo.get_by_id(server_id)
        if server is None:
            raise EntityNotFoundError("Server", server_id)
        self.repo.delete(server)
        logger.info("Server deleted", extra={"context": {"server_id": server_id}})


class ServerControlPanelService:
    def __init__(
        self,
        repo: IServerControlPanelRepository,
        server_repo: IServerRepository,
        panel_factory: Callable = create_hosting_panel,
    ) -> None:
        self.repo = repo
        self.server_repo = server_repo
        self.panel_factory = panel_factory

    def get_all(self) -> List[ServerControlPanel]:
        return self.repo.get_all()

    def get_by_id(self, panel_id: int) -> Optional[ServerControlPanel]:
        return self.repo.get_by_id(panel_id)

    def get_by_server(self, server_id: int) -> List[ServerControlPanel]:
        return self.repo.get_by_server(server_id)

    def get_panel_types(self) -> List[ControlPanelType]:
        return self.repo.get_panel_types()

    def create(self, dto: ServerControlPanelCreateRequest) -> ServerControlPanel:
        dto.validate()
        if self.server_repo.get_by_id(dto.server_id) is None:
            raise EntityNotFoundError("Server", dto.server_id)
        if self.repo.get_panel_type(dto.control_panel_type_id) is None:
            raise InvalidOperationError(
                f"Control panel type with ID {dto.control_panel_type_id} does not exist"
            )
        panel = self.repo.add(ServerControlPanel(**dto.changes()))
        logger.info(
            "Server control panel created",
            extra={"context": {"server_control_panel_id": panel.id, "server_id": panel.server_id}},
        )
        return panel

    def update(self, panel_id: int, dto: ServerControlPanelUpdateRequest) -> ServerControlPanel:
        dto.validate()
        panel = self._get_or_raise(panel_id)
        for name, value in dto.changes().items():
            setattr(panel, name, value)
        return self.repo.save(panel)

    def delete(self, panel_id: int) -> None:
        self.repo.delete(self._get_or_raise(panel_id))

    def test_connection(self, panel_id: int) -> bool:
        """Ping the panel API and remember the outcome on the row."""
        panel = self._get_or_raise(panel_id)
        try:
            healthy = panel_for(panel, self.panel_factory).test_connection()
        except PANEL_ERRORS as e:
            logger.warning(
                "Control panel connection test failed",
                extra={"context": {"server_control_panel_id": panel_id, "error": str(e)}},
            )
            healthy = False
        panel.last_connection_test = utc_now()
        panel.is_connection_healthy = healthy
        self.repo.save(panel)
        return healthy

    def _get_or_raise(self, panel_id: int) -> ServerControlPanel:
        panel = self.repo.get_by_id(panel_id)
        if panel is None:
            raise EntityNotFoundError("Server control panel", panel_id)
        return panel


class HostingManagerService:
    """Hosting accounts and their domains, mailboxes and databases."""

    def __init__(
        self,
        repo: IHostingAccountRepository,
        panel_repo: IServerControlPanelRepository,
        customer_repo,
        sync_service=None,
        panel_factory: Callable = create_hosting_panel,
    ) -> None:
        self.repo = repo
        self.panel_repo = panel_repo
        self.customer_repo = customer_repo
        self.sync_service = sync_service
        self.panel_factory = panel_factory

    def get(self, account_id: int) -> Optional[HostingAccount]:
        return self.repo.get_by_id(account_id)

    def get_with_details(self, account_id: int) -> Optional[HostingAccount]:
        return self.repo.get_with_details(account_id)

    def get_all(self) -> List[HostingAccount]:
        return self.repo.get_all()

    def get_by_customer(self, customer_id: int) -> List[HostingAccount]:
        return self.repo.get_by_customer(customer_id)

    def get_by_server(self, server_id: int) -> List[HostingAccount]:
        return self.repo.get_by_server(server_id)

    def create(self, dto: HostingAccountCreateRequest, sync_to_server: bool = False) -> HostingAccount:
        dto.validate()
        if self.customer_repo.get_by_id(dto.customer_id) is None:
            raise EntityNotFoundError("Customer", dto.customer_id)
        if dto.server_control_panel_id is not None:
            self._get_panel(dto.server_control_panel_id)

        values = dto.changes()
        values.pop("password")
        values.setdefault("status", HostingAccountStatus.ACTIVE)
        account = HostingAccount(
            password_hash=hash_password(dto.password),
            sync_status=SyncStatus.PENDING if sync_to_server else SyncStatus.NOT_SYNCED,
            **values,
        )
        account = self.repo.add(account)
        logger.info(
            "Hosting account created",
            extra={
                "context": {
                    "hosting_account_id": account.id,
                    "username": account.username,
                    "customer_id": account.customer_id,
                }
            },
        )
        if sync_to_server and self.sync_service is not None:
            self.sync_service.sync_account_to_server(account.id)
        return account

    def update(
        self, account_id: int, dto: HostingAccountUpdateRequest, sync_to_server: bool = False
    ) -> HostingAccount:
        dto.validate()
        account = self._get_or_raise(account_id)
        changes = dto.changes()
        password = changes.pop("password", None)
        if password:
            account.password_hash = hash_password(password)
        if changes.get("server_control_panel_id") is not None:
            self._get_panel(changes["server_control_panel_id"])
        for name, value in changes.items():
            setattr(account, name, value)
        if sync_to_server:
            account.sync_status = SyncStatus.OUT_OF_SYNC
        account = self.repo.save(account)
        if sync_to_server and self.sync_service is not None:
            self.sync_service.sync_account_to_server(account.id)
        return account

    def delete(self, account_id: int, delete_from_server: bool = False) -> None:
        account = self._get_or_raise(account_id)
        if delete_from_server and account.external_account_id and self.sync_service is not None:
            result = self.sync_service.delete_account_from_server(account_id)
            if not result.success:
                raise InvalidOperationError(result.message)
        self.repo.delete(account)
        logger.info(
            "Hosting account deleted",
            extra={"context": {"hosting_account_id": account_id, "from_server": delete_from_server}},
        )

    def provision_account_on_panel(self, account_id: int, domain_id: Optional[int] = None) -> SyncResult:
        """Create the account on its control panel using one of its domains."""
        account = self.repo.get_with_details(account_id)
        if account is None:
            return SyncResult(success=False, message="Hosting account not found")
        if account.server_control_panel is None:
            return SyncResult(
                success=False, message="Server control panel not configured for this account"
            )
        if account.external_account_id:
            panel_type = account.server_control_panel.control_panel_type
            panel_name = panel_type.display_name if panel_type else "control panel"
            return SyncResult(
                success=False,
                message=f"Account already provisioned on {panel_name} with ID: {account.external_account_id}",
            )

        if domain_id is not None:
            domain = next((d for d in account.domains if d.id == domain_id), None)
            if domain is None:
                return SyncResult(
                    success=False, message=f"Domain with ID {domain_id} not found for this account"
                )
        else:
            domain = next((d for d in account.domains if d.domain_type == "Main"), None)
            if domain is None and account.domains:
                domain = account.domains[0]
            if domain is None:
                return SyncResult(
                    success=False,
                    message="No domains found for this hosting account. Please create a domain first.",
                )

        customer = account.customer
        request = WebAccountRequest(
            username=account.username,
            domain=domain.domain_name,
            password=generate_secure_token(12),
            email=customer.email if customer else None,
            plan=account.plan,
            disk_quota_mb=account.disk_quota_mb,
            bandwidth_limit_mb=account.bandwidth_limit_mb,
        )
        try:
            result = panel_for(account.server_control_panel, self.panel_factory).create_web_account(request)
        except PANEL_ERRORS as e:
            result = None
            error = str(e)
        else:
            error = result.message

        if result is None or not result.success:
            account.sync_status = SyncStatus.ERROR
            self.repo.save(account)
            logger.error(
                "Hosting account provisioning failed",
                extra={"context": {"hosting_account_id": account.id, "error": error}},
            )
            return SyncResult(success=False, message=f"Failed to provision account: {error}")

        now = utc_now()
        account.external_account_id = result.account_id or account.username
        account.sync_status = SyncStatus.SYNCED
        account.last_synced_at = now
        domain.sync_status = SyncStatus.SYNCED
        domain.last_synced_at = now
        self.repo.save(account)
        logger.info(
            "Hosting account provisioned",
            extra={
                "context": {
                    "hosting_account_id": account.id,
                    "external_account_id": account.external_account_id,
                    "domain": domain.domain_name,
                }
            },
        )
        return SyncResult(
            success=True,
            message=f"Account provisioned with ID: {account.external_account_id}",
            records_synced=1,
        )

    def get_sync_status(self, account_id: int) -> dict:
        account = self._get_or_raise(account_id)
        return {
            "hosting_account_id": account.id,
            "sync_status": account.sync_status,
            "last_synced_at": account.last_synced_at.isoformat() if account.last_synced_at else None,
            "external_account_id": account.external_account_id,
        }

    def get_resource_usage(self, account_id: int) -> ResourceUsage:
        account = self._get_or_raise(account_id)
        counts = self.repo.count_children(account_id)
        return ResourceUsage(
            hosting_account_id=account.id,
            disk_usage_mb=account.disk_usage_mb,
            disk_quota_mb=account.disk_quota_mb,
            bandwidth_usage_mb=account.bandwidth_usage_mb,
            bandwidth_limit_mb=account.bandwidth_limit_mb,
            email_accounts=counts["email_accounts"],
            max_email_accounts=account.max_email_accounts,
            databases=counts["databases"],
            max_databases=account.max_databases,
            domains=counts["domains"],
            max_domains=account.max_domains,
        )

    def update_resource_usage(self, account_id: int) -> ResourceUsage:
        """Refresh disk and bandwidth usage from the control panel."""
        account = self._get_or_raise(account_id)
        if account.server_control_panel is None or not account.external_account_id:
            raise InvalidOperationError("Account is not provisioned on a control panel")

        info = panel_for(account.server_control_panel, self.panel_factory).get_web_account_info(
            account.external_account_id
        )
        if not info.success:
            raise ExternalServiceError("control panel", info.message)
        if info.disk_usage_mb is not None:
            account.disk_usage_mb = info.disk_usage_mb
        if info.bandwidth_usage_mb is not None:
            account.bandwidth_usage_mb = info.bandwidth_usage_mb
        self.repo.save(account)
        return self.get_resource_usage(account_id)

    # Domains

    def get_domains(self, account_id: int) -> List[HostingDomain]:
        self._get_or_raise(account_id)
        return self.repo.get_domains(account_id)

    def get_domain(self, account_id: int, domain_id: int) -> HostingDomain:
        domain = self.repo.get_domain(domain_id)
        if domain is None or domain.hosting_account_id != account_id:
            raise EntityNotFoundError("Hosting domain", domain_id)
        return domain

    def create_domain(self, account_id: int, dto: HostingDomainCreateRequest) -> HostingDomain:
        dto.validate()
        account = self._get_or_raise(account_id)
        if account.max_domains is not None and len(account.domains) >= account.max_domains:
            raise InvalidOperationError(f"Domain limit of {account.max_domains} reached")
        if any(d.domain_name == dto.domain_name for d in account.domains):
            raise InvalidOperationError(f"Domain {dto.domain_name} already exists on this account")
        domain = HostingDomain(sync_status=SyncStatus.NOT_SYNCED, **dto.changes())
        account.domains.append(domain)
        self.repo.save(account)
        return domain

    def update_domain(
        self, account_id: int, domain_id: int, dto: HostingDomainUpdateRequest
    ) -> HostingDomain:
        dto.validate()
        domain = self.get_domain(account_id, domain_id)
        for name, value in dto.changes().items():
            setattr(domain, name, value)
        if domain.sync_status == SyncStatus.SYNCED:
            domain.sync_status = SyncStatus.OUT_OF_SYNC
        self.repo.save(domain.hosting_account)
        return domain

    def delete_domain(self, account_id: int, domain_id: int) -> None:
        domain = self.get_domain(account_id, domain_id)
        account = domain.hosting_account
        account.domains.remove(domain)
        self.repo.save(account)

    # Email accounts

    def get_email_accounts(self, account_id: int) -> List[HostingEmailAccount]:
        self._get_or_raise(account_id)
        return self.repo.get_email_accounts(account_id)

    def get_email_account(self, account_id: int, email_id: int) -> HostingEmailAccount:
        mailbox = self.repo.get_email_account(email_id)
        if mailbox is None or mailbox.hosting_account_id != account_id:
            raise EntityNotFoundError("Hosting email account", email_id)
        return mailbox

    def create_email_account(
        self, account_id: int, dto: HostingEmailAccountCreateRequest
    ) -> HostingEmailAccount:
        dto.validate()
        account = self._get_or_raise(account_id)
        if (
            account.max_email_accounts is not None
            and len(account.email_accounts) >= account.max_email_accounts
        ):
            raise InvalidOperationError(
                f"Email account limit of {account.max_email_accounts} reached"
            )
        if any(m.email_address == dto.email_address for m in account.email_accounts):
            raise InvalidOperationError(f"Mailbox {dto.email_address} already exists")
        mailbox = HostingEmailAccount(
            email_address=dto.email_address,
            quota_mb=dto.quota_mb,
            sync_status=SyncStatus.NOT_SYNCED,
        )
        account.email_accounts.append(mailbox)
        self.repo.save(account)
        return mailbox

    def update_email_account(
        self, account_id: int, email_id: int, dto: HostingEmailAccountUpdateRequest
    ) -> HostingEmailAccount:
        dto.validate()
        mailbox = self.get_email_account(account_id, email_id)
        for name, value in dto.changes().items():
            setattr(mailbox, name, value)
        self.repo.save(mailbox.hosting_account)
        return mailbox

    def delete_email_account(self, account_id: int, email_id: int) -> None:
        mailbox = self.get_email_account(account_id, email_id)
        account = mailbox.hosting_account
        account.email_accounts.remove(mailbox)
        self.repo.save(account)

    # Databases

    def get_databases(self, account_id: int) -> List[HostingDatabase]:
        self._get_or_raise(account_id)
        return self.repo.get_databases(account_id)

    def get_database(self, account_id: int, database_id: int) -> HostingDatabase:
        database = self.repo.get_database(database_id)
        if database is None or database.hosting_account_id != account_id:
            raise EntityNotFoundError("Hosting database", database_id)
        return database

    def create_database(self, account_id: int, dto: HostingDatabaseCreateRequest) -> HostingDatabase:
        dto.validate()
        account = self._get_or_raise(account_id)
        if account.max_databases is not None and len(account.databases) >= account.max_databases:
            raise InvalidOperationError(f"Database limit of {account.max_databases} reached")
        database = HostingDatabase(sync_status=SyncStatus.NOT_SYNCED, **dto.changes())
        account.databases.append(database)
        self.repo.save(account)
        return database

    def update_database(
        self, account_id: int, database_id: int, dto: HostingDatabaseUpdateRequest
    ) -> HostingDatabase:
        dto.validate()
        database = self.get_database(account_id, database_id)
        for name, value in dto.changes().items():
            setattr(database, name, value)
        self.repo.save(database.hosting_account)
        return database

    def delete_database(self, account_id: int, database_id: int) -> None:
        database = self.get_database(account_id, database_id)
        account = database.hosting_account
        account.databases.remove(database)
        self.repo.save(account)

    def _get_panel(self, panel_id: int) -> ServerControlPanel:
        panel = self.panel_repo.get_by_id(panel_id)
        if panel is None:
            raise EntityNotFoundError("Server control panel", panel_id)
        return panel

    def _get_or_raise(self, account_id: int) -> HostingAccount:
        account = self.repo.get_by_id(account_id)
        if account is None:
            raise EntityNotFoundError("Hosting account", account_id)
        return account
