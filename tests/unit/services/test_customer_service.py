"""
Unit tests for SystemSettingService sequences and CustomerService numbering.
"""

from unittest.mock import Mock

import pytest

from isp_admin.core.exceptions import EntityNotFoundError, InvalidOperationError
from isp_admin.db.base import ContactPerson, Customer, SystemSetting
from isp_admin.domain.interfaces import IContactPersonRepository
from isp_admin.schemas.dtos import (
    ContactPersonCreateRequest,
    CustomerCreateRequest,
    CustomerUpdateRequest,
)
from isp_admin.services.customer_service import ContactPersonService, CustomerService
from isp_admin.services.system_setting_service import SystemSettingService
from tests.factories.repository_factories import (
    CustomerRepositoryFactory,
    SystemSettingRepositoryFactory,
    create_mock_repository,
)


@pytest.fixture
def settings_repo() -> Mock:
    return SystemSettingRepositoryFactory.create_mock_full()


@pytest.fixture
def customer_repo() -> Mock:
    return CustomerRepositoryFactory.create_mock_full()


@pytest.fixture
def settings(settings_repo):
    return SystemSettingService(settings_repo)


@pytest.fixture
def service(customer_repo, settings):
    return CustomerService(customer_repo, settings)


def _settings_store(settings_repo, values):
    """Back the mock repository with a dict of key -> value."""
    store = {key: SystemSetting(key=key, value=value) for key, value in values.items()}
    settings_repo.get_by_key.side_effect = store.get

    def _add(setting):
        store[setting.key] = setting
        return setting

    settings_repo.add.side_effect = _add
    return store


class TestSystemSettingSequences:
    def test_next_number_returns_current_and_advances(self, settings, settings_repo):
        store = _settings_store(settings_repo, {"PNR": "1005"})

        assert settings.next_number("PNR") == 1005
        assert store["PNR"].value == "1006"
        settings_repo.save.assert_called_once_with(store["PNR"])

    def test_next_number_starts_missing_sequence_at_default(self, settings, settings_repo):
        store = _settings_store(settings_repo, {})

        assert settings.next_number("CNR") == 1001
        assert store["CNR"].value == "1002"

    def test_next_number_resets_non_numeric_value(self, settings, settings_repo):
        store = _settings_store(settings_repo, {"PNR": "abc"})

        assert settings.next_number("PNR", default=500) == 500
        assert store["PNR"].value == "501"

    def test_get_prefix_defaults_when_missing(self, settings, settings_repo):
        _settings_store(settings_repo, {"RSX": "R-"})

        assert settings.get_prefix("RSX") == "R-"
        assert settings.get_prefix("CSX", "C") == "C"

    def test_upsert_updates_existing_value(self, settings, settings_repo):
        store = _settings_store(settings_repo, {"RSX": ""})

        settings.upsert("RSX", "CUST-")

        assert store["RSX"].value == "CUST-"
        settings_repo.add.assert_not_called()

    def test_delete_missing_key_raises(self, settings):
        with pytest.raises(EntityNotFoundError, match="System setting 'XYZ' not found"):
            settings.delete("XYZ")


class TestCustomerCreation:
    def test_create_assigns_formatted_reference_number(self, service, settings_repo, customer_repo):
        _settings_store(settings_repo, {"PNR": "1001", "RSX": "REF"})
        dto = CustomerCreateRequest(name="Acme AS", email="Billing@Acme.Example")

        customer = service.create(dto)

        assert customer.reference_number == 1001
        assert customer.formatted_reference_number == "REF1001"
        assert customer.email == "billing@acme.example"
        assert customer.customer_number is None
        customer_repo.add.assert_called_once()

    def test_create_rejects_duplicate_email(self, service, customer_repo):
        customer_repo.email_exists.return_value = True

        with pytest.raises(InvalidOperationError, match="already exists"):
            service.create(CustomerCreateRequest(name="Acme", email="a@acme.example"))

        customer_repo.add.assert_not_called()

    def test_create_validates_country_code(self, service):
        dto = CustomerCreateRequest(name="Acme", email="a@acme.example", country_code="NOR")

        with pytest.raises(ValueError, match="Country code must be 2 letters"):
            service.create(dto)


class TestCustomerNumbers:
    def test_ensure_customer_number_assigns_once(self, service, settings_repo, customer_repo):
        _settings_store(settings_repo, {"CNR": "2000", "CSX": "C-"})
        customer = Customer(id=7, name="Acme", email="a@acme.example")
        customer_repo.get_by_id.return_value = customer

        first = service.ensure_customer_number(7)
        second = service.ensure_customer_number(7)

        assert first == "C-2000"
        assert second == "C-2000"
        assert customer.customer_number == 2000

    def test_ensure_customer_number_unknown_customer(self, service):
        with pytest.raises(EntityNotFoundError):
            service.ensure_customer_number(99)


class TestCustomerQueries:
    def test_get_by_email_falls_back_to_contacts(self, service, customer_repo):
        owner = Customer(id=3, name="Acme", email="office@acme.example")
        customer_repo.get_by_contact_email.return_value = owner

        assert service.get_by_email("jane@acme.example") is None
        assert service.get_by_email("jane@acme.example", include_contacts=True) is owner

    def test_search_blank_term_returns_nothing(self, service, customer_repo):
        assert service.search("   ") == []
        customer_repo.search.assert_not_called()

    @pytest.mark.parametrize("page,page_size", [(0, 10), (1, 0), (1, 101)])
    def test_get_paged_validates_bounds(self, service, page, page_size):
        with pytest.raises(ValueError):
            service.get_paged(page, page_size)

    def test_update_applies_only_supplied_fields(self, service, customer_repo):
        customer = Customer(id=1, name="Old", email="old@acme.example", phone="123")
        customer_repo.get_by_id.return_value = customer

        service.update(1, CustomerUpdateRequest(name="New"))

        assert customer.name == "New"
        assert customer.phone == "123"


class TestContactPersons:
    def test_primary_contact_clears_previous_primary(self, customer_repo):
        contact_repo = create_mock_repository(IContactPersonRepository)
        customer_repo.get_by_id.return_value = Customer(id=5, name="Acme", email="a@acme.example")
        service = ContactPersonService(contact_repo, customer_repo)

        contact = service.create(
            ContactPersonCreateRequest(customer_id=5, first_name="Jane", is_primary=True)
        )

        assert isinstance(contact, ContactPerson)
        contact_repo.clear_primary.assert_called_once_with(5)
