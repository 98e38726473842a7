from typing import List, Optional

from isp_admin.db.base import (
    CustomerPaymentMethod,
    PaymentAttempt,
    PaymentGateway,
    PaymentTransaction,
)
from isp_admin.domain.interfaces import (
    ICustomerPaymentMethodRepository,
    IPaymentAttemptRepository,
    IPaymentGatewayRepository,
    IPaymentTransactionRepository,
)

from .base_repository import SqlAlchemyRepository


class PaymentGatewayRepository(SqlAlchemyRepository[PaymentGateway], IPaymentGatewayRepository):
    model = PaymentGateway

    def get_all(self) -> List[PaymentGateway]:
        return self.db.query(PaymentGateway).order_by(PaymentGateway.name).all()

    def get_active(self) -> List[PaymentGateway]:
        return (
            self.db.query(PaymentGateway)
            .filter(PaymentGateway.is_active.is_(True))
            .order_by(PaymentGateway.name)
            .all()
        )

    def get_default(self) -> Optional[PaymentGateway]:
        """Active default gateway, falling back to the first active one."""
        gateway = (
            self.db.query(PaymentGateway)
            .filter(
                PaymentGateway.is_active.is_(True), PaymentGateway.is_default.is_(True)
            )
            .first()
        )
        if gateway is not None:
            return gateway
        return (
            self.db.query(PaymentGateway)
            .filter(PaymentGateway.is_active.is_(True))
            .order_by(PaymentGateway.id)
            .first()
        )

    def get_by_code(self, provider_code: str) -> Optional[PaymentGateway]:
        return (
            self.db.query(PaymentGateway)
            .filter(PaymentGateway.provider_code == provider_code.lower())
            .order_by(PaymentGateway.is_default.desc(), PaymentGateway.id)
            .first()
        )

    def clear_default(self, except_id: Optional[int] = None) -> None:
        query = self.db.query(PaymentGateway).filter(PaymentGateway.is_default.is_(True))
        if except_id is not None:
            query = query.filter(PaymentGateway.id != except_id)
        query.update({"is_default": False}, synchronize_session="fetch")


class PaymentAttemptRepository(SqlAlchemyRepository[PaymentAttempt], IPaymentAttemptRepository):
    model = PaymentAttempt

    def get_by_invoice(self, invoice_id: int) -> List[PaymentAttempt]:
        return (
            self.db.query(PaymentAttempt)
            .filter(PaymentAttempt.invoice_id == invoice_id)
            .order_by(PaymentAttempt.created_at.desc(), PaymentAttempt.id.desc())
            .all()
        )


class PaymentTransactionRepository(
    SqlAlchemyRepository[PaymentTransaction], IPaymentTransactionRepository
):
    model = PaymentTransaction

    def get_by_invoice(self, invoice_id: int) -> List[PaymentTransaction]:
        return (
            self.db.query(PaymentTransaction)
            .filter(PaymentTransaction.invoice_id == invoice_id)
            .order_by(PaymentTransaction.created_at.desc(), PaymentTransaction.id.desc())
            .all()
        )

    def get_by_transaction_id(self, transaction_id: str) -> Optional[PaymentTransaction]:
        return (
            self.db.query(PaymentTransaction)
            .filter(PaymentTransaction.transaction_id == transaction_id)
            .first()
        )

    def get_by_gateway_transaction_id(
        self, gateway_transaction_id: str
    ) -> Optional[PaymentTransaction]:
        return (
            self.db.query(PaymentTransaction)
            .filter(PaymentTransaction.gateway_transaction_id == gateway_transaction_id)
            .first()
        )


class CustomerPaymentMethodRepository(
    SqlAlchemyRepository[CustomerPaymentMethod], ICustomerPaymentMethodRepository
):
    model = CustomerPaymentMethod

    def get_by_customer(self, customer_id: int) -> List[CustomerPaymentMethod]:
        return (
            self.db.query(CustomerPaymentMethod)
            .filter(
                CustomerPaymentMethod.customer_id == customer_id,
                CustomerPaymentMethod.is_active.is_(True),
            )
            .order_by(
                CustomerPaymentMethod.is_default.desc(),
                CustomerPaymentMethod.created_at.desc(),
            )
            .all()
        )

    def get_default(self, customer_id: int) -> Optional[CustomerPaymentMethod]:
        return (
            self.db.query(CustomerPaymentMethod)
            .filter(
                CustomerPaymentMethod.customer_id == customer_id,
                CustomerPaymentMethod.is_active.is_(True),
                CustomerPaymentMethod.is_default.is_(True),
            )
            .first()
        )

    def get_newest(
        self, customer_id: int, exclude_id: Optional[int] = None
    ) -> Optional[CustomerPaymentMethod]:
        query = self.db.query(CustomerPaymentMethod).filter(
            CustomerPaymentMethod.customer_id == customer_id,
            CustomerPaymentMethod.is_active.is_(True),
        )
        if exclude_id is not None:
            query = query.filter(CustomerPaymentMethod.id != exclude_id)
        return query.order_by(
            CustomerPaymentMethod.created_at.desc(), CustomerPaymentMethod.id.desc()
        ).first()

    def clear_default(self, customer_id: int, except_id: Optional[int] = None) -> None:
        query = self.db.query(CustomerPaymentMethod).filter(
            CustomerPaymentMethod.customer_id == customer_id,
            CustomerPaymentMethod.is_default.is_(True),
        )
        if except_id is not None:
            query = query.filter(CustomerPaymentMethod.id != except_id)
        query.update({"is_default": False}, synchronize_session="fetch")
