"""
Identity API

Sign-up, sign-in and token checks. Tokens are stateless HS256 JWTs carrying
the principal's role; logout is acknowledged and the client drops the token.
"""

from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User, UserRole
from app.modules.identity.domain.accounts import AccountService
from app.shared.core.auth import CurrentUser, create_access_token, get_current_user
from app.shared.core.config import get_settings
from app.shared.core.exceptions import NotFoundError, ValidationError
from app.shared.core.logging import audit_log
from app.shared.core.rate_limit import auth_limit, rate_limit
from app.shared.db.session import get_db

logger = structlog.get_logger()
router = APIRouter(tags=["Identity"])


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(max_length=128)
    name: str = Field(default="", max_length=200)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(max_length=128)


class DemoLoginRequest(BaseModel):
    role: str = "user"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _user_payload(user: User) -> dict[str, Any]:
    return {"id": str(user.id), "email": user.email, "name": user.name, "role": user.role}


def _issue_token(user_id: str, role: str, email: str | None, name: str | None) -> str:
    return create_access_token(
        {"sub": user_id, "role": role, "email": email, "name": name}
    )


@router.post("/register", status_code=201)
@rate_limit(auth_limit)
async def register(
    request: Request,
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    user = await AccountService(db).register(body.email, body.password, body.name)
    audit_log("user_registered", str(user.id), {"role": user.role})
    return {
        "message": "User registered successfully",
        "token": _issue_token(str(user.id), user.role, user.email, user.name),
        "user": _user_payload(user),
        "timestamp": _timestamp(),
    }


@router.post("/login")
@rate_limit(auth_limit)
async def login(
    request: Request,
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    user = await AccountService(db).authenticate(body.email, body.password)
    audit_log("user_logged_in", str(user.id))
    return {
        "message": "Login successful",
        "token": _issue_token(str(user.id), user.role, user.email, user.name),
        "user": _user_payload(user),
        "timestamp": _timestamp(),
    }


@router.post("/demo-login")
async def demo_login(body: DemoLoginRequest | None = None) -> dict[str, Any]:
    if not get_settings().demo_login_enabled:
        raise NotFoundError("Demo login is disabled")
    requested = (body or DemoLoginRequest()).role.strip().lower()
    try:
        role = UserRole(requested)
    except ValueError:
        raise ValidationError(
            f"Unknown role: {requested}",
            details={"allowed": [r.value for r in UserRole]},
        ) from None

    user_id = f"demo-{role.value}"
    name = f"Demo {role.value.capitalize()}"
    audit_log("demo_login", user_id, {"role": role.value})
    return {
        "message": "Demo login successful",
        "token": _issue_token(user_id, role.value, None, name),
        "user": {"id": user_id, "email": None, "name": name, "role": role.value},
        "timestamp": _timestamp(),
    }


@router.get("/verify")
async def verify(user: CurrentUser = Depends(get_current_user)) -> dict[str, Any]:
    return {
        "valid": True,
        "user": user.model_dump(mode="json"),
        "timestamp": _timestamp(),
    }


@router.post("/logout")
async def logout(user: CurrentUser = Depends(get_current_user)) -> dict[str, Any]:
    audit_log("user_logged_out", user.id)
    return {"message": "Logged out successfully", "timestamp": _timestamp()}
