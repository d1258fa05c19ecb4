"""
Authentication router: registration, login, logout and current-user lookup.
"""

from datetime import datetime, timezone
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from database import get_db
from models.user import User
from routers.auth_scope import get_auth_strategy, get_principal
from routers.rate_limit import rate_limit
from services.auth_strategy import AuthStrategy
from services.errors import AuthenticationFailure, DuplicateAccount, InvalidCredentials
from services.passwords import burn_verification_async, hash_password_async, verify_password_async
from services.session_token import Principal, create_access_token
from services.sessions import issue_session, revoke_session

router = APIRouter()
logger = logging.getLogger(__name__)


class RegisterRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    username: Optional[str] = Field(default=None, max_length=100)
    password: str = Field(min_length=6, max_length=256)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        email = value.strip().lower()
        local, _, domain = email.partition("@")
        if not local or "." not in domain:
            raise ValueError("must be a valid email address")
        return email

    @field_validator("username")
    @classmethod
    def _normalize_username(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


class LoginRequest(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: str = Field(min_length=1, max_length=256)

    @model_validator(mode="after")
    def _require_identifier(self) -> "LoginRequest":
        if not (self.email or self.username or "").strip():
            raise ValueError("username or email is required")
        return self

    @property
    def identifier(self) -> str:
        return (self.email or self.username or "").strip()


def _set_session_cookie(response: Response, handle: str) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=handle,
        max_age=max(int(settings.SESSION_TTL_HOURS), 1) * 3600,
        httponly=True,
        secure=settings.is_production,
        samesite="strict" if settings.is_production else "lax",
        path="/",
    )


async def _issue_credentials(
    user: User,
    strategy: AuthStrategy,
    response: Response,
    db: AsyncSession,
) -> Dict[str, Any]:
    """Create the artifacts the active strategy hands back to clients."""
    principal = Principal(account_id=user.id, email=user.email)
    issued: Dict[str, Any] = {}
    if strategy.issues_sessions:
        session = await issue_session(principal, db)
        _set_session_cookie(response, str(session["handle"]))
    if strategy.issues_tokens:
        issued["token"] = create_access_token(user.id, user.email)["token"]
    return issued


async def _find_user_for_login(identifier: str, db: AsyncSession) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == identifier.lower()))
    user = result.scalar_one_or_none()
    if user is not None:
        return user
    result = await db.execute(select(User).where(User.username == identifier))
    return result.scalar_one_or_none()


@router.post("/register", status_code=201)
async def register(
    request: RegisterRequest,
    response: Response,
    _rate_limit: None = Depends(rate_limit("register", limit=20, window_seconds=3600)),
    strategy: AuthStrategy = Depends(get_auth_strategy),
    db: AsyncSession = Depends(get_db),
):
    """Create an account and sign it in."""
    existing = await db.execute(select(User.id).where(User.email == request.email))
    if existing.scalar_one_or_none():
        raise DuplicateAccount("Email already exists")

    username = request.username or request.email
    existing = await db.execute(select(User.id).where(User.username == username))
    if existing.scalar_one_or_none():
        raise DuplicateAccount("Username already exists")

    user = User(
        email=request.email,
        username=username,
        password_hash=await hash_password_async(request.password),
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise DuplicateAccount("Email already exists") from exc
    await db.refresh(user)

    logger.info("account_registered user=%s strategy=%s", user.id, strategy.value)
    payload: Dict[str, Any] = {
        "success": True,
        "user": user.to_public_dict(),
        "message": "Registration successful",
    }
    payload.update(await _issue_credentials(user, strategy, response, db))
    return payload


@router.post("/login")
async def login(
    request: LoginRequest,
    response: Response,
    _rate_limit: None = Depends(rate_limit("login", limit=30, window_seconds=900)),
    strategy: AuthStrategy = Depends(get_auth_strategy),
    db: AsyncSession = Depends(get_db),
):
    """Verify a password and issue a session and/or token."""
    user = await _find_user_for_login(request.identifier, db)
    if user is None:
        await burn_verification_async(request.password)
        raise InvalidCredentials()
    if not await verify_password_async(request.password, user.password_hash):
        raise InvalidCredentials()

    payload: Dict[str, Any] = {
        "success": True,
        "user": user.to_public_dict(),
        "message": "Login successful",
    }
    payload.update(await _issue_credentials(user, strategy, response, db))
    return payload


@router.post("/logout")
async def logout(
    http_request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    """End the server session if one is presented and clear auth cookies."""
    await revoke_session(http_request.cookies.get(settings.SESSION_COOKIE_NAME), db)
    response.delete_cookie(settings.SESSION_COOKIE_NAME, path="/")
    response.delete_cookie(settings.JWT_COOKIE_NAME, path="/")
    return {"success": True, "message": "Logout successful"}


@router.get("/user")
async def current_user(
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(User).where(User.id == principal.account_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise AuthenticationFailure()
    return {"success": True, "user": user.to_public_dict()}


@router.get("/auth/health")
async def auth_health(strategy: AuthStrategy = Depends(get_auth_strategy)):
    return {
        "success": True,
        "strategy": strategy.value,
        "environment": settings.ENVIRONMENT,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
