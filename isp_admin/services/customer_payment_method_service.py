import logging
from typing import List, Optional

from isp_admin.core.exceptions import EntityNotFoundError, InvalidOperationError
from isp_admin.db.base import CustomerPaymentMethod
from isp_admin.domain.interfaces import (
    ICustomerPaymentMethodRepository,
    ICustomerRepository,
    IPaymentGatewayRepository,
)
from isp_admin.schemas.dtos import CustomerPaymentMethodCreateRequest

logger = logging.getLogger(__name__)


class CustomerPaymentMethodService:
    """Stored payment methods; each customer has at most one default."""

    def __init__(
        self,
        repo: ICustomerPaymentMethodRepository,
        customer_repo: ICustomerRepository,
        gateway_repo: IPaymentGatewayRepository,
    ) -> None:
        self.repo = repo
        self.customer_repo = customer_repo
        self.gateway_repo = gateway_repo

    def get_by_customer(self, customer_id: int) -> List[CustomerPaymentMethod]:
        return self.repo.get_by_customer(customer_id)

    def get_by_id(self, method_id: int) -> Optional[CustomerPaymentMethod]:
        return self.repo.get_by_id(method_id)

    def get_default(self, customer_id: int) -> Optional[CustomerPaymentMethod]:
        return self.repo.get_default(customer_id)

    def create(self, dto: CustomerPaymentMethodCreateRequest) -> CustomerPaymentMethod:
        dto.validate()
        if self.customer_repo.get_by_id(dto.customer_id) is None:
            raise EntityNotFoundError("Customer", dto.customer_id)
        gateway = self.gateway_repo.get_by_id(dto.payment_gateway_id)
        if gateway is None:
            raise EntityNotFoundError("Payment gateway", dto.payment_gateway_id)
        if not gateway.is_active:
            raise InvalidOperationError("Payment gateway is not active")

        is_first = not self.repo.get_by_customer(dto.customer_id)
        make_default = dto.is_default or is_first
        if make_default:
            self.repo.clear_default(dto.customer_id)

        values = dto.changes()
        values["is_default"] = make_default
        method = self.repo.add(CustomerPaymentMethod(is_active=True, **values))
        logger.info(
            "Payment method added",
            extra={
                "context": {
                    "customer_id": dto.customer_id,
                    "method_id": method.id,
                    "is_default": make_default,
                }
            },
        )
        return method

    def set_as_default(self, method_id: int, customer_id: int) -> CustomerPaymentMethod:
        method = self._get_owned(method_id, customer_id)
        if not method.is_active:
            raise InvalidOperationError("Inactive payment methods cannot be the default")
        self.repo.clear_default(customer_id, except_id=method.id)
        method.is_default = True
        return self.repo.save(method)

    def delete(self, method_id: int, customer_id: int) -> None:
        """Remove a method; deleting the default promotes the newest remaining one."""
        method = self._get_owned(method_id, customer_id)
        was_default = method.is_default
        self.repo.delete(method)

        if was_default:
            replacement = self.repo.get_newest(customer_id, exclude_id=method_id)
            if replacement is not None:
                replacement.is_default = True
                self.repo.save(replacement)
                logger.info(
                    "Default payment method promoted",
                    extra={"context": {"customer_id": customer_id, "method_id": replacement.id}},
                )

    def _get_owned(self, method_id: int, customer_id: int) -> CustomerPaymentMethod:
        method = self.repo.get_by_id(method_id)
        if method is None or method.customer_id != customer_id:
            raise EntityNotFoundError("Payment method", method_id)
        return method
