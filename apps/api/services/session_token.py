"""Signed bearer token helpers for the token authentication backend."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from config import settings


ACCESS_TOKEN_TYPE = "profile_access"


@dataclass(frozen=True)
class Principal:
    """Authenticated identity attached to a request."""

    account_id: str
    email: Optional[str] = None


def create_access_token(
    account_id: str,
    email: Optional[str] = None,
    expires_hours: Optional[int] = None,
) -> Dict[str, Any]:
    """Create a signed access token embedding the account identity."""
    now = datetime.now(timezone.utc)
    ttl_hours = int(expires_hours or settings.JWT_EXPIRATION_HOURS or 24 * 7)
    expires_at = now + timedelta(hours=max(ttl_hours, 1))
    claims: Dict[str, Any] = {
        "sub": account_id,
        "type": ACCESS_TOKEN_TYPE,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    if email:
        claims["email"] = email

    token = jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return {
        "token": token,
        "expires_at": int(expires_at.timestamp()),
    }


def decode_access_token(token: str) -> Dict[str, Any]:
    """Decode and validate a signed access token."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as exc:
        raise ValueError("Invalid or expired access token.") from exc

    token_type = str(payload.get("type", "")).strip()
    if token_type != ACCESS_TOKEN_TYPE:
        raise ValueError("Invalid access token type.")

    subject = str(payload.get("sub", "")).strip()
    if not subject:
        raise ValueError("Access token missing subject.")

    return payload


def resolve_access_token(token: Optional[str]) -> Optional[Principal]:
    """Return the token's principal, or None for anything that does not verify."""
    if not token or not isinstance(token, str):
        return None
    try:
        payload = decode_access_token(token.strip())
    except (ValueError, TypeError):
        return None
    return Principal(
        account_id=str(payload["sub"]).strip(),
        email=str(payload.get("email", "")) or None,
    )
