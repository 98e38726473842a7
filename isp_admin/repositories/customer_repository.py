from typing import List, Optional, Tuple

from sqlalchemy import String, cast, func, or_, select

from isp_admin.db.base import ContactPerson, Customer
from isp_admin.domain.interfaces import IContactPersonRepository, ICustomerRepository

from .base_repository import SqlAlchemyRepository


class CustomerRepository(SqlAlchemyRepository[Customer], ICustomerRepository):
    """Repository for customers following SOLID principles."""

    model = Customer

    def get_all(self) -> List[Customer]:
        return self.db.query(Customer).order_by(Customer.name).all()

    def get_paged(self, page: int, page_size: int) -> Tuple[List[Customer], int]:
        query = self.db.query(Customer)
        total = query.count()
        items = (
            query.order_by(Customer.name)
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return items, total

    def get_by_email(self, email: str) -> Optional[Customer]:
        """Match on the primary or the billing email, case-insensitively."""
        normalized = email.strip().lower()
        return (
            self.db.query(Customer)
            .filter(
                or_(
                    func.lower(Customer.email) == normalized,
                    func.lower(Customer.billing_email) == normalized,
                )
            )
            .first()
        )

    def get_by_contact_email(self, email: str) -> Optional[Customer]:
        normalized = email.strip().lower()
        return (
            self.db.query(Customer)
            .join(ContactPerson, ContactPerson.customer_id == Customer.id)
            .filter(func.lower(ContactPerson.email) == normalized)
            .first()
        )

    def email_exists(self, email: str, exclude_id: Optional[int] = None) -> bool:
        query = self.db.query(Customer.id).filter(
            func.lower(Customer.email) == email.strip().lower()
        )
        if exclude_id is not None:
            query = query.filter(Customer.id != exclude_id)
        return query.first() is not None

    def search(self, term: str, limit: int = 50) -> List[Customer]:
        pattern = f"%{term.strip().upper()}%"
        contact_match = select(ContactPerson.customer_id).where(
            or_(
                func.upper(ContactPerson.first_name).like(pattern),
                func.upper(ContactPerson.last_name).like(pattern),
                func.upper(ContactPerson.email).like(pattern),
                func.upper(ContactPerson.phone).like(pattern),
            )
        )
        return (
            self.db.query(Customer)
            .filter(
                or_(
                    func.upper(Customer.name).like(pattern),
                    func.upper(Customer.email).like(pattern),
                    func.upper(Customer.phone).like(pattern),
                    func.upper(Customer.customer_name).like(pattern),
                    func.upper(Customer.formatted_reference_number).like(pattern),
                    func.upper(Customer.formatted_customer_number).like(pattern),
                    cast(Customer.reference_number, String).like(pattern),
                    cast(Customer.customer_number, String).like(pattern),
                    Customer.id.in_(contact_match),
                )
            )
            .order_by(Customer.name)
            .limit(limit)
            .all()
        )


class ContactPersonRepository(SqlAlchemyRepository[ContactPerson], IContactPersonRepository):
    model = ContactPerson

    def get_by_customer(self, customer_id: int) -> List[ContactPerson]:
        return (
            self.db.query(ContactPerson)
            .filter(ContactPerson.customer_id == customer_id)
            .order_by(ContactPerson.is_primary.desc(), ContactPerson.last_name)
            .all()
        )

    def clear_primary(self, customer_id: int, except_id: Optional[int] = None) -> None:
        query = self.db.query(ContactPerson).filter(
            ContactPerson.customer_id == customer_id,
            ContactPerson.is_primary.is_(True),
        )
        if except_id is not None:
            query = query.filter(ContactPerson.id != except_id)
        query.update({"is_primary": False}, synchronize_session="fetch")
