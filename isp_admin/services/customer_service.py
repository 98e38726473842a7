"""
Customer and contact person services.

Customers get a reference number at creation (sequence ``PNR``, prefix
``RSX``) and a customer number the first time something is sold to them
(sequence ``CNR``, prefix ``CSX``).
"""

import logging
from typing import List, Optional, Tuple

from isp_admin.core.exceptions import EntityNotFoundError, InvalidOperationError
from isp_admin.db.base import ContactPerson, Customer
from isp_admin.domain.interfaces import IContactPersonRepository, ICustomerRepository
from isp_admin.schemas.dtos import (
    ContactPersonCreateRequest,
    ContactPersonUpdateRequest,
    CustomerCreateRequest,
    CustomerUpdateRequest,
)
from isp_admin.services.system_setting_service import (
    CUSTOMER_NUMBER_PREFIX,
    CUSTOMER_NUMBER_SEQUENCE,
    CUSTOMER_REFERENCE_PREFIX,
    CUSTOMER_REFERENCE_SEQUENCE,
    SystemSettingService,
)

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class CustomerService:
    def __init__(
        self,
        repo: ICustomerRepository,
        settings: SystemSettingService,
        contact_repo: Optional[IContactPersonRepository] = None,
    ) -> None:
        self.repo = repo
        self.settings = settings
        self.contact_repo = contact_repo

    def get_all(self) -> List[Customer]:
        return self.repo.get_all()

    def get_paged(self, page: int, page_size: int) -> Tuple[List[Customer], int]:
        if page < 1:
            raise ValueError("page must be >= 1")
        if page_size < 1 or page_size > MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")
        return self.repo.get_paged(page, page_size)

    def get_by_id(self, customer_id: int) -> Optional[Customer]:
        return self.repo.get_by_id(customer_id)

    def get_by_email(self, email: str, include_contacts: bool = False) -> Optional[Customer]:
        """Find a customer by primary or billing email.

        With ``include_contacts`` the lookup falls back to the customer of a
        contact person carrying that email.
        """
        if not email:
            return None
        customer = self.repo.get_by_email(email)
        if customer is None and include_contacts:
            customer = self.repo.get_by_contact_email(email)
        return customer

    def email_exists(self, email: str, exclude_id: Optional[int] = None) -> bool:
        return self.repo.email_exists(email, exclude_id)

    def search(self, term: str) -> List[Customer]:
        if not term or not term.strip():
            return []
        return self.repo.search(term, limit=50)

    def create(self, dto: CustomerCreateRequest) -> Customer:
        dto.validate()
        if self.repo.email_exists(dto.email):
            raise InvalidOperationError(f"A customer with email {dto.email} already exists")

        reference = self.settings.next_number(CUSTOMER_REFERENCE_SEQUENCE)
        prefix = self.settings.get_prefix(CUSTOMER_REFERENCE_PREFIX, "")

        customer = Customer(**dto.changes())
        customer.reference_number = reference
        customer.formatted_reference_number = f"{prefix}{reference}"
        customer = self.repo.add(customer)

        logger.info(
            "Customer created",
            extra={
                "context": {
                    "customer_id": customer.id,
                    "reference": customer.formatted_reference_number,
                }
            },
        )
        return customer

    def update(self, customer_id: int, dto: CustomerUpdateRequest) -> Customer:
        dto.validate()
        customer = self.repo.get_by_id(customer_id)
        if customer is None:
            raise EntityNotFoundError("Customer", customer_id)
        if dto.email and self.repo.email_exists(dto.email, exclude_id=customer_id):
            raise InvalidOperationError(f"A customer with email {dto.email} already exists")

        for name, value in dto.changes().items():
            setattr(customer, name, value)
        return self.repo.save(customer)

    def delete(self, customer_id: int) -> None:
        customer = self.repo.get_by_id(customer_id)
        if customer is None:
            raise EntityNotFoundError("Customer", customer_id)
        self.repo.delete(customer)
        logger.info("Customer deleted", extra={"context": {"customer_id": customer_id}})

    def ensure_customer_number(self, customer_id: int) -> str:
        """Assign a customer number on first sale; later calls return it."""
        customer = self.repo.get_by_id(customer_id)
        if customer is None:
            raise EntityNotFoundError("Customer", customer_id)
        if customer.customer_number is not None:
            return customer.formatted_customer_number or str(customer.customer_number)

        number = self.settings.next_number(CUSTOMER_NUMBER_SEQUENCE)
        prefix = self.settings.get_prefix(CUSTOMER_NUMBER_PREFIX, "")
        customer.customer_number = number
        customer.formatted_customer_number = f"{prefix}{number}"
        self.repo.save(customer)
        logger.info(
            "Customer number assigned",
            extra={
                "context": {
                    "customer_id": customer_id,
                    "customer_number": customer.formatted_customer_number,
                }
            },
        )
        return customer.formatted_customer_number


class ContactPersonService:
    def __init__(
        self, repo: IContactPersonRepository, customer_repo: ICustomerRepository
    ) -> None:
        self.repo = repo
        self.customer_repo = customer_repo

    def get_by_customer(self, customer_id: int) -> List[ContactPerson]:
        return self.repo.get_by_customer(customer_id)

    def get_by_id(self, contact_id: int) -> Optional[ContactPerson]:
        return self.repo.get_by_id(contact_id)

    def create(self, dto: ContactPersonCreateRequest) -> ContactPerson:
        dto.validate()
        if self.customer_repo.get_by_id(dto.customer_id) is None:
            raise EntityNotFoundError("Customer", dto.customer_id)

        if dto.is_primary:
            self.repo.clear_primary(dto.customer_id)
        return self.repo.add(ContactPerson(**dto.changes()))

    def update(self, contact_id: int, dto: ContactPersonUpdateRequest) -> ContactPerson:
        dto.validate()
        contact = self.repo.get_by_id(contact_id)
        if contact is None:
            raise EntityNotFoundError("Contact person", contact_id)

        if dto.is_primary:
            self.repo.clear_primary(contact.customer_id, except_id=contact.id)
        for name, value in dto.changes().items():
            setattr(contact, name, value)
        return self.repo.save(contact)

    def delete(self, contact_id: int) -> None:
        contact = self.repo.get_by_id(contact_id)
        if contact is None:
            raise EntityNotFoundError("Contact person", contact_id)
        self.repo.delete(contact)
