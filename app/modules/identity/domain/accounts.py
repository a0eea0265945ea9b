from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User, UserRole
from app.shared.core.exceptions import NimbusException, ValidationError
from app.shared.core.security import MIN_PASSWORD_LENGTH, hash_password, verify_password

logger = structlog.get_logger()


class InvalidCredentialsError(NimbusException):
    def __init__(self) -> None:
        super().__init__(
            "Invalid email or password", code="INVALID_CREDENTIALS", status_code=401
        )


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AccountService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.email == normalize_email(email))
        )
        return result.scalar_one_or_none()

    async def register(self, email: str, password: str, name: str) -> User:
        """New accounts always start at the user role."""
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )
        email = normalize_email(email)
        if await self.get_by_email(email) is not None:
            raise ValidationError("An account with this email already exists")

        user = User(
            email=email,
            name=name.strip() or email.split("@", 1)[0],
            password_hash=hash_password(password),
            role=UserRole.USER.value,
        )
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError as e:
            # Lost a race with a concurrent registration for the same email.
            await self.db.rollback()
            raise ValidationError("An account with this email already exists") from e
        await self.db.refresh(user)
        return user

    async def authenticate(self, email: str, password: str) -> User:
        user = await self.get_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            logger.warning("login_failed", reason="invalid_credentials")
            raise InvalidCredentialsError()
        return user
