"""
Access control gate.

Verifies the bearer credential, resolves the principal's role and enforces the
total order ``guest < user < admin < superadmin`` per route. The gate is
stateless: it performs no I/O beyond token verification.
"""

from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Awaitable, Callable, Optional, cast

import jwt
import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from app.models.user import UserRole
from app.shared.core.config import get_settings
from app.shared.core.exceptions import AuthenticationError, AuthorizationError

logger = structlog.get_logger()

__all__ = [
    "CurrentUser",
    "ROLE_RANKS",
    "UserRole",
    "create_access_token",
    "decode_jwt",
    "get_current_user",
    "has_required_role",
    "requires_role",
    "resolve_principal_role",
    "resolve_required_role",
    "role_rank",
]

security = HTTPBearer(auto_error=False)

ROLE_RANKS: dict[UserRole, int] = {
    UserRole.GUEST: 0,
    UserRole.USER: 1,
    UserRole.ADMIN: 2,
    UserRole.SUPERADMIN: 3,
}


def _parse_role(value: Any) -> Optional[UserRole]:
    # Exact match only; "ADMIN" or " admin" is an unknown role.
    if isinstance(value, UserRole):
        return value
    if not isinstance(value, str):
        return None
    try:
        return UserRole(value)
    except ValueError:
        return None


def resolve_principal_role(value: Any) -> UserRole:
    """A principal whose role claim is absent or unknown is treated as a guest."""
    return _parse_role(value) or UserRole.GUEST


def resolve_required_role(value: Any) -> UserRole:
    """A route declaring an unknown minimum role requires at least ``user``."""
    return _parse_role(value) or UserRole.USER


def role_rank(role: UserRole) -> int:
    return ROLE_RANKS[role]


def has_required_role(actual: Any, required: Any) -> bool:
    """Access is granted iff rank(actual) >= rank(required)."""
    return role_rank(resolve_principal_role(actual)) >= role_rank(
        resolve_required_role(required)
    )


def create_access_token(
    data: dict[str, Any], expires_delta: Optional[timedelta] = None
) -> str:
    """
    Generate a new JWT signed with the process-wide secret.
    """
    settings = get_settings()
    if not settings.JWT_SECRET:
        raise ValueError("JWT_SECRET is not configured")

    now = datetime.now(timezone.utc)
    to_encode = data.copy()
    to_encode.setdefault("aud", settings.JWT_AUDIENCE)
    to_encode.setdefault("iss", settings.JWT_ISSUER)
    to_encode.update(
        {
            "iat": now,
            "exp": now
            + (expires_delta or timedelta(minutes=settings.JWT_EXPIRE_MINUTES)),
        }
    )
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


class CurrentUser(BaseModel):
    """
    Represents the authenticated principal from the JWT.
    """

    id: str
    role: UserRole = UserRole.GUEST
    email: Optional[str] = None
    name: Optional[str] = None


def decode_jwt(token: str) -> dict[str, Any]:
    """
    Decode and verify a bearer token.

    Signature, expiry and audience are all enforced; any failure is reported
    as TOKEN_INVALID.
    """
    settings = get_settings()
    if not settings.JWT_SECRET:
        logger.error("jwt_secret_missing_in_decode")
        raise AuthenticationError("Invalid or expired token")

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        logger.warning("jwt_expired")
        raise AuthenticationError("Invalid or expired token")
    except jwt.InvalidTokenError as e:
        logger.warning("jwt_invalid", error=str(e))
        raise AuthenticationError("Invalid or expired token")
    return cast(dict[str, Any], payload)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> CurrentUser:
    """
    Authenticate the request and attach the principal to ``request.state.user``.
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError(
            "Access token required", code="TOKEN_MISSING", status_code=401
        )

    payload = decode_jwt(credentials.credentials)
    user = CurrentUser(
        id=str(payload["sub"]),
        role=resolve_principal_role(payload.get("role")),
        email=payload.get("email"),
        name=payload.get("name"),
    )
    request.state.user = user
    return user


@lru_cache(maxsize=16)
def requires_role(required_role: str) -> Callable[..., Awaitable[CurrentUser]]:
    """
    FastAPI dependency for RBAC.

    Usage:
        @router.get("/posture")
        async def posture(user: CurrentUser = Depends(requires_role("admin"))):
            ...
    """
    required = resolve_required_role(required_role)

    async def role_checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if not has_required_role(user.role, required):
            logger.warning(
                "insufficient_permissions",
                user_id=user.id,
                user_role=user.role.value,
                required_role=required.value,
            )
            raise AuthorizationError(
                f"Access denied. Required role: {required.value}, "
                f"current role: {user.role.value}",
                details={"requiredRole": required.value, "currentRole": user.role.value},
            )
        return user

    return role_checker
