"""
Account Service

Registration, login, profile lookup and administrative role changes.
Self-registration always yields a CUSTOMER account; staff roles are only
granted by an ADMIN caller.

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from restaurant_orders.core.errors import (
    EmailAlreadyRegistered,
    Forbidden,
    InvalidCredentials,
    UserNotFound,
)
from restaurant_orders.core.security import (
    AuthenticatedUser,
    CredentialVerifier,
    PasswordService,
    ensure_role,
)
from restaurant_orders.models import User, UserRole
from restaurant_orders.schemas import RegisterRequest

logger = logging.getLogger(__name__)


class AccountService:
    """User accounts backed by the request's database session."""

    def __init__(
        self,
        db: AsyncSession,
        verifier: CredentialVerifier,
        passwords: PasswordService,
    ):
        self.db = db
        self.verifier = verifier
        self.passwords = passwords

    def issue_token(self, user: User) -> str:
        return self.verifier.issue(user.id, user.email, user.role)

    async def _find_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def register(
        self,
        data: RegisterRequest,
        caller: Optional[AuthenticatedUser] = None,
    ) -> tuple[User, str]:
        """
        Create an account and return it with a fresh token.

        Raises:
            Forbidden: Staff role requested without an ADMIN caller
            EmailAlreadyRegistered: Email taken
        """
        if data.role != UserRole.CUSTOMER:
            if caller is None:
                raise Forbidden("Only administrators can create staff accounts")
            ensure_role(caller, (UserRole.ADMIN,))

        if await self._find_by_email(data.email) is not None:
            raise EmailAlreadyRegistered()

        user = User(
            email=data.email,
            password_hash=self.passwords.hash(data.password),
            first_name=data.first_name,
            last_name=data.last_name,
            phone=data.phone,
            role=data.role,
            loyalty_points=0,
        )
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise EmailAlreadyRegistered() from e
        await self.db.refresh(user)

        logger.info(f"User {user.email} registered as {user.role.value}")
        return user, self.issue_token(user)

    async def login(self, email: str, password: str) -> tuple[User, str]:
        """
        Exchange credentials for a token.

        Raises:
            InvalidCredentials: Unknown email or wrong password
        """
        user = await self._find_by_email(email)
        if user is None or not self.passwords.verify(user.password_hash, password):
            logger.info(f"Failed login attempt for {email}")
            raise InvalidCredentials()
        return user, self.issue_token(user)

    async def get_user(self, user_id: int) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise UserNotFound()
        return user

    async def change_role(
        self,
        caller: AuthenticatedUser,
        user_id: int,
        role: UserRole,
    ) -> User:
        """Assign a role. Admin only."""
        ensure_role(caller, (UserRole.ADMIN,))
        user = await self.get_user(user_id)
        previous = user.role
        user.role = role
        await self.db.commit()
        await self.db.refresh(user)
        logger.info(
            f"User {user.email} role {previous.value} -> {role.value} "
            f"by admin {caller.user_id}"
        )
        return user
