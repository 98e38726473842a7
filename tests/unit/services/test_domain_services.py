"""
Unit tests for DNS records, zone packages, registered domains and the
expiration monitor.
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import Mock

import pytest

from isp_admin.core.config import utc_now
from isp_admin.core.exceptions import EntityNotFoundError, InvalidOperationError
from isp_admin.db.base import (
    Customer,
    DnsRecord,
    DnsRecordType,
    DnsZonePackage,
    DnsZonePackageRecord,
    RegisteredDomain,
    Registrar,
    RegistrarTld,
    RegistrarTldCostPricing,
    Tld,
)
from isp_admin.domain.entities import DomainRegistrationResult, DomainStatus
from isp_admin.schemas.dtos import (
    DnsRecordCreateRequest,
    DnsRecordUpdateRequest,
    DnsZonePackageCreateRequest,
    DomainRegistrationRequest,
)
from isp_admin.services.dns_service import DnsRecordService, DnsZonePackageService
from isp_admin.services.registered_domain_service import (
    DomainExpirationMonitor,
    RegisteredDomainService,
)
from tests.factories.repository_factories import (
    CustomerRepositoryFactory,
    DomainRepositoryFactory,
)

MX = DnsRecordType(id=4, type="MX", has_priority=True, is_active=True, default_ttl=3600)
A = DnsRecordType(id=1, type="A", is_active=True, default_ttl=3600)


@pytest.fixture
def record_repo() -> Mock:
    return DomainRepositoryFactory.dns_record_repo()


@pytest.fixture
def type_repo() -> Mock:
    repo = DomainRepositoryFactory.dns_type_repo()
    repo.get_by_id.side_effect = {1: A, 4: MX}.get
    return repo


@pytest.fixture
def domain_repo() -> Mock:
    repo = DomainRepositoryFactory.domain_repo()
    repo.get_by_id.return_value = RegisteredDomain(id=10, name="example.com")
    return repo


class TestDnsRecordService:
    @pytest.fixture
    def service(self, record_repo, type_repo, domain_repo):
        return DnsRecordService(record_repo, type_repo, domain_repo)

    def test_create_marks_pending_and_defaults_ttl(self, service):
        record = service.create(
            DnsRecordCreateRequest(domain_id=10, dns_record_type_id=1, name="@", value="192.0.2.1")
        )

        assert record.is_pending_sync is True
        assert record.is_deleted is False
        assert record.ttl == 3600

    def test_mx_requires_priority(self, service):
        dto = DnsRecordCreateRequest(
            domain_id=10, dns_record_type_id=4, name="@", value="mail.example.com"
        )

        with pytest.raises(ValueError, match="MX records require a priority"):
            service.create(dto)

    def test_inactive_type_rejected(self, service, type_repo):
        type_repo.get_by_id.side_effect = None
        type_repo.get_by_id.return_value = DnsRecordType(id=9, type="PTR", is_active=False)

        with pytest.raises(InvalidOperationError, match="does not exist or is inactive"):
            service.create(
                DnsRecordCreateRequest(domain_id=10, dns_record_type_id=9, name="@", value="x")
            )

    def test_unknown_domain_rejected(self, service, domain_repo):
        domain_repo.get_by_id.return_value = None

        with pytest.raises(EntityNotFoundError):
            service.create(
                DnsRecordCreateRequest(domain_id=99, dns_record_type_id=1, name="@", value="x")
            )

    def test_soft_delete_restore_cycle(self, service, record_repo):
        record = DnsRecord(id=1, is_deleted=False, is_pending_sync=False)
        record_repo.get_by_id.return_value = record

        service.soft_delete(1)
        assert record.is_deleted is True
        assert record.is_pending_sync is True
        assert record.deleted_at is not None

        service.restore(1)
        assert record.is_deleted is False
        assert record.deleted_at is None

    def test_restore_requires_deleted_record(self, service, record_repo):
        record_repo.get_by_id.return_value = DnsRecord(id=1, is_deleted=False)

        with pytest.raises(InvalidOperationError, match="not deleted"):
            service.restore(1)

    def test_update_of_deleted_record_rejected(self, service, record_repo):
        record_repo.get_by_id.return_value = DnsRecord(id=1, is_deleted=True)

        with pytest.raises(InvalidOperationError, match="restored before editing"):
            service.update(1, DnsRecordUpdateRequest(value="192.0.2.2"))

    def test_mark_synced_purges_deleted_record(self, service, record_repo):
        record = DnsRecord(id=1, is_deleted=True, is_pending_sync=True)
        record_repo.get_by_id.return_value = record

        service.mark_as_synced(1)

        record_repo.delete.assert_called_once_with(record)

    def test_mark_synced_clears_flag(self, service, record_repo):
        record = DnsRecord(id=1, is_deleted=False, is_pending_sync=True)
        record_repo.get_by_id.return_value = record

        service.mark_as_synced(1)

        assert record.is_pending_sync is False
        record_repo.delete.assert_not_called()


class TestDnsZonePackageService:
    @pytest.fixture
    def package_repo(self) -> Mock:
        return DomainRepositoryFactory.zone_package_repo()

    @pytest.fixture
    def service(self, package_repo, record_repo, type_repo, domain_repo):
        return DnsZonePackageService(package_repo, record_repo, type_repo, domain_repo)

    def test_new_default_clears_previous(self, service, package_repo):
        service.create(DnsZonePackageCreateRequest(name="Standard", is_default=True))

        package_repo.clear_default.assert_called_once_with()

    def test_apply_copies_templates_as_pending_records(self, service, package_repo, record_repo):
        package = DnsZonePackage(id=2, name="Standard")
        package.records = [
            DnsZonePackageRecord(dns_record_type_id=1, name="@", value="192.0.2.1", ttl=3600),
            DnsZonePackageRecord(
                dns_record_type_id=4, name="@", value="mail.example.com", ttl=3600, priority=10
            ),
        ]
        package_repo.get_by_id.return_value = package

        assert service.apply_package_to_domain(2, 10) is True

        records = record_repo.add_all.call_args.args[0]
        assert len(records) == 2
        assert all(r.domain_id == 10 and r.is_pending_sync for r in records)
        assert records[1].priority == 10

    def test_apply_unknown_package_returns_false(self, service, record_repo):
        assert service.apply_package_to_domain(99, 10) is False
        record_repo.add_all.assert_not_called()


class TestRegisteredDomainService:
    @pytest.fixture
    def registrar_repo(self) -> Mock:
        repo = DomainRepositoryFactory.registrar_repo()
        repo.get_default.return_value = Registrar(id=1, name="Sandbox", code="sandbox", is_active=True)
        return repo

    @pytest.fixture
    def registrar_tld_repo(self) -> Mock:
        repo = DomainRepositoryFactory.registrar_tld_repo()
        repo.get_by_pair.return_value = RegistrarTld(
            id=5, registrar_id=1, tld_id=3, is_active=True,
            min_registration_years=1, max_registration_years=10,
        )
        return repo

    @pytest.fixture
    def tld_repo(self) -> Mock:
        repo = DomainRepositoryFactory.tld_repo()
        repo.get_by_extension.return_value = Tld(id=3, extension="com", is_active=True)
        return repo

    @pytest.fixture
    def customer_repo(self) -> Mock:
        repo = CustomerRepositoryFactory.create_mock_full()
        repo.get_by_id.return_value = Customer(id=7, name="Acme", email="a@acme.example")
        return repo

    @pytest.fixture
    def registrar_client(self) -> Mock:
        client = Mock()
        client.register_domain.return_value = DomainRegistrationResult(
            success=True, domain_name="example.com", registrar_order_id="ORD-1"
        )
        return client

    @pytest.fixture
    def service(self, domain_repo, customer_repo, registrar_repo, registrar_tld_repo, tld_repo, registrar_client):
        domain_repo.get_by_id.return_value = None
        return RegisteredDomainService(
            domain_repo,
            customer_repo,
            registrar_repo,
            registrar_tld_repo,
            tld_repo,
            client_factory=lambda registrar: registrar_client,
        )

    def test_register_creates_active_domain(self, service, registrar_client):
        domain = service.register_domain(
            DomainRegistrationRequest(domain_name="Example.COM", years=2), customer_id=7
        )

        assert domain.name == "example.com"
        assert domain.status == DomainStatus.ACTIVE
        assert domain.registrar_id == 1
        assert domain.notes == "Registrar order ORD-1"
        assert (domain.expiration_date - domain.registration_date).days >= 730
        registrar_client.register_domain.assert_called_once_with("example.com", 2, {})

    def test_register_existing_name_rejected(self, service, domain_repo):
        domain_repo.get_by_name.return_value = RegisteredDomain(id=1, name="example.com")

        with pytest.raises(InvalidOperationError, match="already registered"):
            service.register_domain(DomainRegistrationRequest(domain_name="example.com"), 7)

    def test_register_outside_year_range(self, service, registrar_tld_repo):
        registrar_tld_repo.get_by_pair.return_value.max_registration_years = 5

        with pytest.raises(InvalidOperationError, match="between 1 and 5 years"):
            service.register_domain(DomainRegistrationRequest(domain_name="example.com", years=6), 7)

    def test_register_failure_surfaces_registrar_message(self, service, registrar_client):
        registrar_client.register_domain.return_value = DomainRegistrationResult(
            success=False, domain_name="example.com", message="Domain not available"
        )

        with pytest.raises(InvalidOperationError, match="Domain not available"):
            service.register_domain(DomainRegistrationRequest(domain_name="example.com"), 7)

    def test_default_registrar_falls_back_to_first_active(self, service, registrar_repo):
        registrar_repo.get_default.return_value = None
        registrar_repo.get_active.return_value = [Registrar(id=2, name="Backup", code="sandbox")]

        assert service._default_registrar().id == 2

    def test_no_registrar_configured(self, service, registrar_repo):
        registrar_repo.get_default.return_value = None

        with pytest.raises(InvalidOperationError, match="No active registrar"):
            service.get_available_tlds()

    def test_domain_pricing_from_current_cost_row(self, service, registrar_tld_repo):
        registrar_tld_repo.get_current_pricing.return_value = RegistrarTldCostPricing(
            registration_cost=Decimal("9.99"),
            renewal_cost=Decimal("12.99"),
            transfer_cost=Decimal("9.99"),
            currency="USD",
        )

        pricing = service.get_domain_pricing(".COM")

        assert pricing["tld"] == "com"
        assert pricing["renewal_cost"] == "12.99"

    def test_negative_expiring_window_rejected(self, service):
        with pytest.raises(ValueError):
            service.get_expiring_in_days(-1)


class TestDomainExpirationMonitor:
    def test_reminder_sent_once_per_window(self, domain_repo):
        now = utc_now()
        fresh = RegisteredDomain(
            id=1, name="a.com", customer_id=7, expiration_date=now + timedelta(days=10)
        )
        reminded = RegisteredDomain(
            id=2,
            name="b.com",
            customer_id=7,
            expiration_date=now + timedelta(days=10),
            last_reminder_sent_at=now - timedelta(days=1),
        )
        domain_repo.get_expiring_between.return_value = [fresh, reminded]
        customer_repo = CustomerRepositoryFactory.create_mock_full()
        customer_repo.get_by_id.return_value = Customer(id=7, name="Acme", email="a@acme.example")
        email_queue = Mock()
        monitor = DomainExpirationMonitor(
            domain_repo,
            customer_repo,
            email_queue_service=email_queue,
            settings={"warning_days": 30, "interval_hours": 24},
        )

        stats = monitor.run()

        assert stats["reminders_queued"] == 1
        assert fresh.last_reminder_sent_at is not None
        email = email_queue.queue_email.call_args.args[0]
        assert email.related_entity_id == 1
        assert "a.com" in email.subject

    def test_lapsed_domains_expire_and_housekeeping_runs(self, domain_repo):
        lapsed = RegisteredDomain(id=3, name="c.com", status=DomainStatus.ACTIVE)
        domain_repo.get_active_expired.return_value = [lapsed]
        invoice_service = Mock()
        invoice_service.mark_overdue.return_value = 2
        quote_service = Mock()
        quote_service.expire_outdated.return_value = 1
        monitor = DomainExpirationMonitor(
            domain_repo,
            CustomerRepositoryFactory.create_mock_full(),
            invoice_service=invoice_service,
            quote_service=quote_service,
            settings={"warning_days": 30, "interval_hours": 24},
        )

        stats = monitor.run()

        assert lapsed.status == DomainStatus.EXPIRED
        assert stats == {
            "reminders_queued": 0,
            "domains_expired": 1,
            "invoices_overdue": 2,
            "quotes_expired": 1,
        }
