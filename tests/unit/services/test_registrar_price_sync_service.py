"""
Unit tests for RegistrarTldPriceSyncService.
"""

from decimal import Decimal
from unittest.mock import Mock

import pytest

from isp_admin.core.exceptions import EntityNotFoundError, ExternalServiceError
from isp_admin.db.base import (
    Registrar,
    RegistrarTld,
    RegistrarTldCostPricing,
    RegistrarTldPriceChangeLog,
    Tld,
)
from isp_admin.domain.entities import TldPrice
from isp_admin.services.registrar_price_sync_service import (
    AUTO_CREATED_NOTE,
    SYNC_USER,
    RegistrarTldPriceSyncService,
)
from tests.factories.repository_factories import DomainRepositoryFactory

SANDBOX = Registrar(id=1, name="Sandbox", code="sandbox", is_active=True)


def _price(tld="com", registration="9.99", renewal="12.99", transfer="9.99", currency="USD"):
    return TldPrice(
        tld=tld,
        registration_price=Decimal(registration),
        renewal_price=Decimal(renewal),
        transfer_price=Decimal(transfer),
        currency=currency,
    )


def _offering(offering_id=5, extension="com"):
    return RegistrarTld(
        id=offering_id,
        registrar_id=1,
        tld_id=offering_id,
        is_active=True,
        tld=Tld(id=offering_id, extension=extension, is_active=True),
    )


def _staged(repo, kind):
    return [entity for call in repo.stage.call_args_list for entity in call.args if isinstance(entity, kind)]


@pytest.fixture
def repo() -> Mock:
    return DomainRepositoryFactory.registrar_tld_repo()


@pytest.fixture
def registrar_repo() -> Mock:
    repo = DomainRepositoryFactory.registrar_repo()
    repo.get_by_id.return_value = SANDBOX
    repo.get_active.return_value = [SANDBOX]
    return repo


@pytest.fixture
def client() -> Mock:
    client = Mock()
    client.get_supported_tlds.return_value = [_price()]
    return client


@pytest.fixture
def service(repo, registrar_repo, client):
    return RegistrarTldPriceSyncService(
        repo,
        registrar_repo,
        DomainRepositoryFactory.tld_repo(),
        client_factory=lambda registrar: client,
    )


class TestSyncRegistrar:
    def test_first_price_creates_pricing_and_change_log(self, service, repo):
        repo.get_by_registrar.return_value = [_offering()]

        session = service.sync_registrar(1)

        assert session.success is True
        assert session.tlds_processed == 1
        assert session.price_changes_detected == 1
        pricing = _staged(repo, RegistrarTldCostPricing)
        assert pricing[0].registration_cost == Decimal("9.99")
        assert pricing[0].created_by == SYNC_USER
        change_log = _staged(repo, RegistrarTldPriceChangeLog)[0]
        assert change_log.old_renewal_cost is None
        assert change_log.new_renewal_cost == Decimal("12.99")

    def test_changed_price_closes_current_row(self, service, repo, client):
        repo.get_by_registrar.return_value = [_offering()]
        current = RegistrarTldCostPricing(
            registrar_tld_id=5,
            registration_cost=Decimal("8.99"),
            renewal_cost=Decimal("12.99"),
            transfer_cost=Decimal("9.99"),
            currency="USD",
            effective_to=None,
        )
        repo.get_current_pricing.return_value = current

        session = service.sync_registrar(1)

        assert session.price_changes_detected == 1
        assert current.effective_to is not None
        new_row = [p for p in _staged(repo, RegistrarTldCostPricing) if p is not current][0]
        assert current.effective_to < new_row.effective_from

    def test_unchanged_price_stages_nothing_new(self, service, repo):
        repo.get_by_registrar.return_value = [_offering()]
        repo.get_current_pricing.return_value = RegistrarTldCostPricing(
            registration_cost=Decimal("9.99"),
            renewal_cost=Decimal("12.99"),
            transfer_cost=Decimal("9.99"),
            currency="usd",
        )

        session = service.sync_registrar(1)

        assert session.success is True
        assert session.price_changes_detected == 0
        assert _staged(repo, RegistrarTldPriceChangeLog) == []

    def test_no_offerings_completes_without_calling_registrar(self, service, repo, client):
        session = service.sync_registrar(1)

        assert session.success is True
        assert session.message == "No active registrar/TLD combinations found"
        client.get_supported_tlds.assert_not_called()

    def test_registrar_failure_records_failed_session(self, service, repo, client):
        repo.get_by_registrar.return_value = [_offering()]
        client.get_supported_tlds.side_effect = ExternalServiceError("Sandbox", "registrar down")

        session = service.sync_registrar(1)

        assert session.success is False
        assert "registrar down" in session.error_message
        assert session.completed_at is not None
        repo.rollback.assert_called_once_with()

    def test_unknown_registrar(self, service, registrar_repo):
        registrar_repo.get_by_id.return_value = None

        with pytest.raises(EntityNotFoundError):
            service.sync_registrar(42)


class TestScheduledSync:
    def test_registrars_synced_today_are_skipped(self, service, repo, client):
        repo.has_successful_session_since.return_value = True

        summary = service.sync_registrars_missing_today()

        assert summary.registrars_skipped == 1
        assert summary.registrars_processed == 0
        client.get_supported_tlds.assert_not_called()

    def test_summary_counts_processed_and_changes(self, service, repo):
        repo.get_by_registrar.return_value = [_offering(5, "com"), _offering(6, "net")]

        summary = service.sync_registrars_missing_today()

        assert summary.registrars_processed == 1
        assert summary.tlds_processed == 2
        # only .com has a price from the registrar
        assert summary.price_changes_detected == 1


class TestSyncRegistrarsForTld:
    @pytest.fixture
    def tld_repo(self) -> Mock:
        repo = DomainRepositoryFactory.tld_repo()
        repo.get_by_id.return_value = Tld(id=4, extension=".COM", is_active=True)
        return repo

    def _service(self, repo, registrar_repo, tld_repo, clients):
        return RegistrarTldPriceSyncService(
            repo, registrar_repo, tld_repo, client_factory=lambda registrar: clients[registrar.id]
        )

    def test_missing_offering_is_auto_created(self, repo, registrar_repo, tld_repo, client):
        def flush(*entities):
            for entity in entities:
                if isinstance(entity, RegistrarTld) and entity.id is None:
                    entity.id = 50

        repo.stage.side_effect = flush
        service = self._service(repo, registrar_repo, tld_repo, {1: client})

        assert service.sync_registrars_for_tld(4) == 1

        client.get_supported_tlds.assert_called_once_with("com")
        (offering,) = _staged(repo, RegistrarTld)
        assert (offering.registrar_id, offering.tld_id) == (1, 4)
        assert offering.min_registration_years == 1
        assert offering.max_registration_years == 10
        assert offering.notes == AUTO_CREATED_NOTE
        assert offering.is_active is True
        (pricing,) = _staged(repo, RegistrarTldCostPricing)
        assert pricing.registrar_tld_id == 50
        assert pricing.registration_cost == Decimal("9.99")
        (change_log,) = _staged(repo, RegistrarTldPriceChangeLog)
        assert change_log.download_session_id is None
        repo.commit.assert_called_once()

    def test_failing_registrar_does_not_stop_others(self, repo, tld_repo):
        broken = Registrar(id=2, name="Broken", code="sandbox", is_active=True)
        healthy = Registrar(id=3, name="Healthy", code="sandbox", is_active=True)
        registrar_repo = DomainRepositoryFactory.registrar_repo()
        registrar_repo.get_active.return_value = [broken, healthy]
        clients = {
            2: Mock(get_supported_tlds=Mock(side_effect=ExternalServiceError("Broken", "HTTP 500"))),
            3: Mock(get_supported_tlds=Mock(return_value=[_price()])),
        }
        repo.get_by_pair.return_value = _offering(7, "com")

        synced = self._service(repo, registrar_repo, tld_repo, clients).sync_registrars_for_tld(4)

        assert synced == 1
        repo.rollback.assert_called_once()
        repo.commit.assert_called_once()
        assert [p.registrar_tld_id for p in _staged(repo, RegistrarTldCostPricing)] == [7]
        assert not _staged(repo, RegistrarTld)

    def test_registrar_without_price_is_skipped(self, repo, registrar_repo, tld_repo, client):
        client.get_supported_tlds.return_value = [_price(tld="net")]

        synced = self._service(repo, registrar_repo, tld_repo, {1: client}).sync_registrars_for_tld(4)

        assert synced == 0
        repo.stage.assert_not_called()

    def test_inactive_tld(self, repo, registrar_repo, tld_repo, client):
        tld_repo.get_by_id.return_value = Tld(id=4, extension="com", is_active=False)

        assert self._service(repo, registrar_repo, tld_repo, {1: client}).sync_registrars_for_tld(4) == 0
        client.get_supported_tlds.assert_not_called()

class TestPreview:
    def test_preview_sorted_by_registrar_name(self, repo):
        zeta = Registrar(id=2, name="Zeta", code="sandbox")
        alpha = Registrar(id=3, name="Alpha", code="sandbox")
        registrar_repo = DomainRepositoryFactory.registrar_repo()
        registrar_repo.get_active.return_value = [zeta, alpha]
        clients = {
            2: Mock(get_supported_tlds=Mock(return_value=[_price(registration="11.00")])),
            3: Mock(get_supported_tlds=Mock(return_value=[_price(registration="10.00")])),
        }
        service = RegistrarTldPriceSyncService(
            repo,
            registrar_repo,
            DomainRepositoryFactory.tld_repo(),
            client_factory=lambda registrar: clients[registrar.id],
        )

        rows = service.preview_registrar_costs_by_extension(".COM")

        assert [row["registrar_name"] for row in rows] == ["Alpha", "Zeta"]
        assert rows[0]["registration_cost"] == "10.00"
        repo.stage.assert_not_called()

    def test_preview_skips_failing_registrar(self, service, client):
        client.get_supported_tlds.side_effect = ExternalServiceError("Sandbox", "timeout")

        assert service.preview_registrar_costs_by_extension("com") == []

    def test_blank_extension(self, service):
        assert service.preview_registrar_costs_by_extension("  ") == []
