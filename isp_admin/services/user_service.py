import logging
from typing import List, Optional, Tuple

from isp_admin.core.auth_decorators import ROLE_CUSTOMER
from isp_admin.core.config import utc_now
from isp_admin.core.exceptions import EntityNotFoundError, InvalidOperationError
from isp_admin.core.security import create_user_token, hash_password, verify_password
from isp_admin.db.base import User
from isp_admin.domain.interfaces import IUserRepository
from isp_admin.schemas.dtos import UserCreateRequest, UserUpdateRequest

logger = logging.getLogger(__name__)


class UserService:
    """Application service for back-office users and login.

    Passwords are stored as bcrypt hashes; login issues a JWT carrying the
    user's role so route policies can be checked without a database hit.
    """

    def __init__(self, repo: IUserRepository) -> None:
        self.repo = repo

    def login(self, email: str, password: str) -> Tuple[str, User]:
        """Authenticate with email and password.

        Returns:
            (token, user) on success

        Raises:
            ValueError: "Invalid credentials" for unknown, inactive or
                wrong-password users alike
        """
        user = self.repo.get_by_email(email)
        if (
            user is None
            or not user.is_active
            or not user.password_hash
            or not verify_password(password, user.password_hash)
        ):
            logger.warning("Failed login attempt", extra={"context": {"email": email}})
            raise ValueError("Invalid credentials")

        user.last_login_at = utc_now()
        self.repo.save(user)
        token = create_user_token(user.id, user.email, user.role, user.customer_id)
        logger.info("User logged in", extra={"context": {"user_id": user.id}})
        return token, user

    def get_all(self) -> List[User]:
        return self.repo.get_all()

    def get_by_id(self, user_id: int) -> Optional[User]:
        return self.repo.get_by_id(user_id)

    def create(self, dto: UserCreateRequest) -> User:
        dto.validate()
        if self.repo.get_by_email(dto.email):
            raise InvalidOperationError(f"Email {dto.email} is already registered")

        user = User(
            email=dto.email,
            name=dto.name.strip(),
            password_hash=hash_password(dto.password),
            role=dto.role,
            customer_id=dto.customer_id,
            active_flag=True,
        )
        user = self.repo.add(user)
        logger.info(
            "User created", extra={"context": {"user_id": user.id, "role": user.role}}
        )
        return user

    def update(self, user_id: int, dto: UserUpdateRequest) -> User:
        dto.validate()
        user = self.repo.get_by_id(user_id)
        if user is None:
            raise EntityNotFoundError("User", user_id)

        if dto.email and dto.email != user.email:
            existing = self.repo.get_by_email(dto.email)
            if existing is not None and existing.id != user.id:
                raise InvalidOperationError(f"Email {dto.email} is already registered")
            user.email = dto.email
        if dto.name is not None:
            user.name = dto.name.strip()
        if dto.role is not None:
            user.role = dto.role
        if dto.is_active is not None:
            user.is_active = dto.is_active
        if dto.customer_id is not None:
            user.customer_id = dto.customer_id
        if dto.password:
            user.password_hash = hash_password(dto.password)

        return self.repo.save(user)

    def delete(self, user_id: int) -> None:
        user = self.repo.get_by_id(user_id)
        if user is None:
            raise EntityNotFoundError("User", user_id)
        self.repo.delete(user)
        logger.info("User deleted", extra={"context": {"user_id": user_id}})

    def resolve_customer_id(
        self, user_id: Optional[int], role: Optional[str], requested_id: Optional[int]
    ) -> int:
        """Customer users act for their own customer; staff must name one."""
        if role == ROLE_CUSTOMER:
            user = self.repo.get_by_id(user_id) if user_id is not None else None
            if user is None or user.customer_id is None:
                raise InvalidOperationError("Your user account is not linked to a customer")
            return user.customer_id
        if requested_id is None:
            raise ValueError("customer_id is required")
        return requested_id

    def customer_scope(self, user_id: Optional[int], role: Optional[str]) -> Optional[int]:
        """Customer id a caller is confined to; None for staff."""
        if role != ROLE_CUSTOMER:
            return None
        return self.resolve_customer_id(user_id, role, None)
