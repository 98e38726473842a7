import logging
from decimal import Decimal
from typing import List, Optional

from isp_admin.core.config import DEFAULT_CURRENCY
from isp_admin.core.exceptions import EntityNotFoundError, InsufficientCreditError
from isp_admin.db.base import CreditTransaction, CustomerCredit
from isp_admin.domain.entities import CreditTransactionType
from isp_admin.domain.interfaces import ICreditRepository, ICustomerRepository
from isp_admin.schemas.dtos import CreditTransactionCreateRequest
from isp_admin.utils.billing_utils import to_money

logger = logging.getLogger(__name__)

# Transaction types that reduce the balance
DEBIT_TYPES = (CreditTransactionType.DEDUCTION,)


class CreditService:
    """Customer credit balances with an append-only transaction ledger.

    Deposits and refunds add to the balance, deductions subtract, and
    adjustments carry their own sign. The balance may never go negative.
    """

    def __init__(self, repo: ICreditRepository, customer_repo: ICustomerRepository) -> None:
        self.repo = repo
        self.customer_repo = customer_repo

    def get_customer_credit(self, customer_id: int) -> CustomerCredit:
        """Return the customer's credit account, creating a zero balance lazily."""
        credit = self.repo.get_by_customer(customer_id)
        if credit is not None:
            return credit

        customer = self.customer_repo.get_by_id(customer_id)
        if customer is None:
            raise EntityNotFoundError("Customer", customer_id)
        credit = CustomerCredit(
            customer_id=customer_id,
            balance=Decimal("0.00"),
            currency_code=customer.preferred_currency or DEFAULT_CURRENCY,
        )
        return self.repo.add(credit)

    def get_credit_transactions(self, customer_id: int) -> List[CreditTransaction]:
        credit = self.repo.get_by_customer(customer_id)
        if credit is None:
            return []
        return self.repo.get_transactions(credit.id)

    def has_sufficient_credit(self, customer_id: int, amount: Decimal) -> bool:
        credit = self.repo.get_by_customer(customer_id)
        balance = credit.balance if credit is not None else Decimal("0")
        return to_money(balance) >= to_money(amount)

    def create_credit_transaction(
        self, dto: CreditTransactionCreateRequest, user_id: Optional[int] = None
    ) -> CreditTransaction:
        dto.validate()
        amount = to_money(dto.amount)
        if dto.transaction_type in DEBIT_TYPES:
            amount = -amount
        return self._post(
            dto.customer_id,
            dto.transaction_type,
            amount,
            dto.description,
            user_id,
            dto.invoice_id,
        )

    def add_credit(
        self,
        customer_id: int,
        amount: Decimal,
        description: str = "",
        user_id: Optional[int] = None,
    ) -> Decimal:
        """Deposit credit; returns the new balance."""
        if amount is None or Decimal(amount) <= 0:
            raise ValueError("Amount must be greater than zero")
        self._post(
            customer_id,
            CreditTransactionType.DEPOSIT,
            to_money(amount),
            description,
            user_id,
        )
        return self.get_customer_credit(customer_id).balance

    def deduct_credit(
        self,
        customer_id: int,
        amount: Decimal,
        description: str = "",
        user_id: Optional[int] = None,
        invoice_id: Optional[int] = None,
    ) -> Decimal:
        """Deduct credit; returns the new balance.

        Raises:
            InsufficientCreditError: If the balance is lower than ``amount``
        """
        if amount is None or Decimal(amount) <= 0:
            raise ValueError("Amount must be greater than zero")
        self._post(
            customer_id,
            CreditTransactionType.DEDUCTION,
            -to_money(amount),
            description,
            user_id,
            invoice_id,
        )
        return self.get_customer_credit(customer_id).balance

    def _post(
        self,
        customer_id: int,
        transaction_type: str,
        signed_amount: Decimal,
        description: Optional[str],
        user_id: Optional[int],
        invoice_id: Optional[int] = None,
    ) -> CreditTransaction:
        credit = self.get_customer_credit(customer_id)
        balance = to_money(credit.balance)
        new_balance = to_money(balance + signed_amount)
        if new_balance < 0:
            raise InsufficientCreditError(customer_id, balance, abs(signed_amount))

        credit.balance = new_balance
        transaction = CreditTransaction(
            transaction_type=transaction_type,
            amount=abs(signed_amount),
            balance_after=new_balance,
            invoice_id=invoice_id,
            description=description,
            created_by_user_id=user_id,
        )
        transaction = self.repo.save_with_transaction(credit, transaction)
        logger.info(
            "Credit transaction recorded",
            extra={
                "context": {
                    "customer_id": customer_id,
                    "type": transaction_type,
                    "amount": str(signed_amount),
                    "balance_after": str(new_balance),
                }
            },
        )
        return transaction
