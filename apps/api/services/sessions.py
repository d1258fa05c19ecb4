"""Server-side session store for the session authentication backend."""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.auth_session import AuthSession
from services.session_token import Principal

logger = logging.getLogger(__name__)

HANDLE_BYTES = 32
_MAX_HANDLE_LENGTH = 256


def _digest(handle: str) -> str:
    return hmac.new(
        settings.SESSION_SECRET.encode("utf-8"),
        handle.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


async def issue_session(principal: Principal, db: AsyncSession) -> Dict[str, object]:
    """Persist a new session for the principal and return its opaque handle."""
    handle = secrets.token_urlsafe(HANDLE_BYTES)
    expires_at = datetime.now(timezone.utc) + timedelta(hours=max(int(settings.SESSION_TTL_HOURS), 1))
    db.add(
        AuthSession(
            handle_digest=_digest(handle),
            user_id=principal.account_id,
            email=principal.email or "",
            expires_at=expires_at,
        )
    )
    await db.commit()
    return {"handle": handle, "expires_at": int(expires_at.timestamp())}


async def resolve_session(handle: Optional[str], db: AsyncSession) -> Optional[Principal]:
    """Look a handle up in the store; unknown, expired or malformed handles yield None."""
    if not handle or not isinstance(handle, str) or len(handle) > _MAX_HANDLE_LENGTH:
        return None

    result = await db.execute(select(AuthSession).where(AuthSession.handle_digest == _digest(handle)))
    record = result.scalar_one_or_none()
    if record is None:
        return None

    expires_at = _as_utc(record.expires_at)
    if expires_at is None or expires_at <= datetime.now(timezone.utc):
        return None

    return Principal(account_id=record.user_id, email=record.email or None)


async def revoke_session(handle: Optional[str], db: AsyncSession) -> None:
    """Delete a session if it exists; repeated calls are no-ops."""
    if not handle or len(handle) > _MAX_HANDLE_LENGTH:
        return
    try:
        await db.execute(delete(AuthSession).where(AuthSession.handle_digest == _digest(handle)))
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.warning("Session revoke failed: %s", exc)


async def purge_expired_sessions(db: AsyncSession) -> int:
    result = await db.execute(delete(AuthSession).where(AuthSession.expires_at <= datetime.now(timezone.utc)))
    await db.commit()
    return int(result.rowcount or 0)
