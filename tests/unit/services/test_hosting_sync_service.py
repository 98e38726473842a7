"""
Unit tests for HostingSyncService with a mocked control panel client.
"""

from unittest.mock import Mock

import pytest

from isp_admin.core.exceptions import ExternalServiceError
from isp_admin.db.base import (
    ControlPanelType,
    Customer,
    HostingAccount,
    HostingDomain,
    HostingEmailAccount,
    ServerControlPanel,
)
from isp_admin.domain.entities import HostingAccountStatus, SyncStatus
from isp_admin.integrations.hosting_panels.results import (
    AccountInfoResult,
    HostingAccountResult,
    MailAccountResult,
)
from isp_admin.services.hosting_sync_service import HostingSyncService
from tests.factories.repository_factories import HostingRepositoryFactory


def _panel_row():
    return ServerControlPanel(
        id=3,
        server_id=2,
        api_url="whm.example.net",
        control_panel_type=ControlPanelType(name="cpanel", display_name="CPanel"),
    )


def _account(**overrides):
    values = dict(
        id=11,
        customer_id=7,
        username="acme",
        status=HostingAccountStatus.ACTIVE,
        disk_quota_mb=1024,
        bandwidth_limit_mb=10240,
        external_account_id="acme",
        sync_status=SyncStatus.NOT_SYNCED,
        server_control_panel=_panel_row(),
        customer=Customer(id=7, name="Acme", email="a@acme.example"),
    )
    values.update(overrides)
    return HostingAccount(**values)


@pytest.fixture
def repo() -> Mock:
    return HostingRepositoryFactory.account_repo()


@pytest.fixture
def panel_repo() -> Mock:
    repo = HostingRepositoryFactory.panel_repo()
    repo.get_by_id.return_value = _panel_row()
    return repo


@pytest.fixture
def panel() -> Mock:
    panel = Mock()
    panel.get_web_account_info.return_value = AccountInfoResult(
        success=True,
        username="acme",
        plan="gold",
        status=HostingAccountStatus.SUSPENDED,
        disk_quota_mb=2048,
        disk_usage_mb=512,
    )
    return panel


@pytest.fixture
def panel_factory(panel) -> Mock:
    return Mock(return_value=panel)


@pytest.fixture
def service(repo, panel_repo, panel_factory):
    return HostingSyncService(repo, panel_repo, panel_factory=panel_factory)


class TestSyncFromServer:
    def test_updates_local_account(self, service, repo, panel_factory):
        account = _account()
        repo.get_by_external_id.return_value = account

        result = service.sync_account_from_server(3, "acme")

        assert result.success is True
        assert result.records_synced == 1
        assert account.plan == "gold"
        assert account.status == HostingAccountStatus.SUSPENDED
        assert account.disk_quota_mb == 2048
        # values the panel did not report are kept
        assert account.bandwidth_limit_mb == 10240
        assert account.sync_status == SyncStatus.SYNCED
        assert panel_factory.call_args.args[0] == "cpanel"

    def test_missing_local_account_points_to_import(self, service):
        result = service.sync_account_from_server(3, "ghost")

        assert result.success is False
        assert "Use import endpoint" in result.message

    def test_panel_error_marks_account(self, service, repo, panel):
        account = _account()
        repo.get_by_external_id.return_value = account
        panel.get_web_account_info.side_effect = ExternalServiceError("cPanel", "connection refused")

        result = service.sync_account_from_server(3, "acme")

        assert result.success is False
        assert account.sync_status == SyncStatus.ERROR

    def test_unknown_panel(self, service, panel_repo):
        panel_repo.get_by_id.return_value = None

        assert service.sync_account_from_server(9, "acme").message == "Server control panel not found"


class TestImport:
    def test_import_creates_synced_account(self, service, repo):
        result = service.import_account_from_server(3, "acme", customer_id=7)

        assert result.success is True
        account = repo.add.call_args.args[0]
        assert result.message == f"Account imported with ID: {account.id}"
        assert account.server_control_panel_id == 3
        assert account.server_id == 2
        assert account.external_account_id == "acme"
        assert account.sync_status == SyncStatus.SYNCED
        assert account.password_hash

    def test_import_existing_account_rejected(self, service, repo):
        repo.get_by_external_id.return_value = _account()

        result = service.import_account_from_server(3, "acme", customer_id=7)

        assert result.success is False
        assert "already exists" in result.message
        repo.add.assert_not_called()


class TestSyncToServer:
    def test_creates_remote_account_for_main_domain(self, service, repo, panel):
        account = _account(
            external_account_id=None,
            domains=[
                HostingDomain(domain_name="alias.example", domain_type="Alias"),
                HostingDomain(domain_name="acme.example", domain_type="Main"),
            ],
        )
        repo.get_with_details.return_value = account
        panel.create_web_account.return_value = HostingAccountResult(success=True, account_id="acme01")

        result = service.sync_account_to_server(11)

        assert result.success is True
        request = panel.create_web_account.call_args.args[0]
        assert request.domain == "acme.example"
        assert request.email == "a@acme.example"
        assert request.password
        assert account.external_account_id == "acme01"

    def test_new_account_without_domain(self, service, repo, panel):
        repo.get_with_details.return_value = _account(external_account_id=None)

        result = service.sync_account_to_server(11)

        assert result.success is False
        assert "No domains found" in result.message
        panel.create_web_account.assert_not_called()

    def test_provisioned_account_is_updated(self, service, repo, panel):
        repo.get_with_details.return_value = _account()
        panel.update_web_account.return_value = HostingAccountResult(success=True)

        assert service.sync_account_to_server(11).success is True
        assert panel.update_web_account.call_args.args[0] == "acme"


class TestBulkSync:
    def test_sync_all_reports_errors(self, service, repo, panel):
        panel.list_web_accounts.return_value = [
            AccountInfoResult(success=True, account_id="acme"),
            AccountInfoResult(success=True, username="other"),
        ]
        repo.get_by_external_id.side_effect = lambda panel_id, external_id: (
            _account() if external_id == "acme" else None
        )

        result = service.sync_all_accounts_from_server(3)

        assert result.success is True
        assert result.records_synced == 1
        assert result.message.startswith("Synced 1 of 2 accounts. Errors: other:")

    def test_email_accounts_merged_by_address(self, service, repo, panel):
        existing = HostingEmailAccount(email_address="info@acme.example", quota_mb=100)
        account = _account(email_accounts=[existing])
        repo.get_with_details.return_value = account
        panel.list_mail_accounts.return_value = [
            MailAccountResult(success=True, email_address="info@acme.example", quota_mb=500),
            MailAccountResult(success=True, email_address="sales@acme.example", quota_mb=250),
        ]

        result = service.sync_email_accounts_from_server(11)

        assert result.records_synced == 2
        assert existing.quota_mb == 500
        assert len(account.email_accounts) == 2

    def test_unprovisioned_account(self, service, repo):
        repo.get_with_details.return_value = _account(external_account_id=None)

        result = service.sync_databases_from_server(11)

        assert result.success is False
        assert result.message == "Account is not provisioned on a control panel"


class TestCompare:
    def test_reports_differences(self, service, repo):
        repo.get_by_id.return_value = _account()

        comparison = service.compare_database_with_server(11)

        assert comparison.in_sync is False
        fields = {d.field for d in comparison.differences}
        assert fields == {"DiskQuota", "Status"}
        assert comparison.server_data["plan"] == "gold"
