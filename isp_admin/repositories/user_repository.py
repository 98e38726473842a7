from typing import List, Optional

from sqlalchemy import func

from isp_admin.db.base import User
from isp_admin.domain.interfaces import IUserRepository

from .base_repository import SqlAlchemyRepository


class UserRepository(SqlAlchemyRepository[User], IUserRepository):
    """Repository for back-office users."""

    model = User

    def get_by_email(self, email: str) -> Optional[User]:
        return (
            self.db.query(User)
            .filter(func.lower(User.email) == email.strip().lower())
            .first()
        )

    def get_all(self) -> List[User]:
        return self.db.query(User).order_by(User.name).all()
