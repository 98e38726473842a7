from typing import List, Optional

from isp_admin.db.base import CreditTransaction, CustomerCredit
from isp_admin.domain.interfaces import ICreditRepository

from .base_repository import SqlAlchemyRepository


class CreditRepository(SqlAlchemyRepository[CustomerCredit], ICreditRepository):
    """Credit balances and their ledger of transactions."""

    model = CustomerCredit

    def get_by_customer(self, customer_id: int) -> Optional[CustomerCredit]:
        return (
            self.db.query(CustomerCredit)
            .filter(CustomerCredit.customer_id == customer_id)
            .first()
        )

    def get_transactions(self, credit_id: int) -> List[CreditTransaction]:
        return (
            self.db.query(CreditTransaction)
            .filter(CreditTransaction.customer_credit_id == credit_id)
            .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
            .all()
        )

    def save_with_transaction(
        self, credit: CustomerCredit, transaction: CreditTransaction
    ) -> CreditTransaction:
        """Persist a balance change and its ledger row in one commit."""
        self.db.add(credit)
        self.db.flush()
        transaction.customer_credit_id = credit.id
        self.db.add(transaction)
        self._commit("balance change", credit)
        self.db.refresh(credit)
        self.db.refresh(transaction)
        return transaction
