from typing import List, Optional

from isp_admin.db.base import PaymentIntent
from isp_admin.domain.interfaces import IPaymentIntentRepository

from .base_repository import SqlAlchemyRepository


class PaymentIntentRepository(SqlAlchemyRepository[PaymentIntent], IPaymentIntentRepository):
    model = PaymentIntent

    def get_all(self) -> List[PaymentIntent]:
        return self.db.query(PaymentIntent).order_by(PaymentIntent.id.desc()).all()

    def get_by_customer(self, customer_id: int) -> List[PaymentIntent]:
        return (
            self.db.query(PaymentIntent)
            .filter(PaymentIntent.customer_id == customer_id)
            .order_by(PaymentIntent.id.desc())
            .all()
        )

    def get_by_gateway_intent_id(
        self, gateway_id: int, gateway_intent_id: str
    ) -> Optional[PaymentIntent]:
        return (
            self.db.query(PaymentIntent)
            .filter(
                PaymentIntent.payment_gateway_id == gateway_id,
                PaymentIntent.gateway_intent_id == gateway_intent_id,
            )
            .first()
        )
