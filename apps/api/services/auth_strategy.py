"""Authentication strategy selection.

One verifier is built per application from the configured strategy:

- ``session``: server-side session cookie only
- ``token``: signed bearer token (``Authorization`` header or ``jwt`` cookie)
- ``hybrid``: session first, bearer token as fallback

Every authenticated route resolves its principal through the verifier stored
on ``app.state`` so the choice is made exactly once per process.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Protocol, Sequence

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from config import AUTH_STRATEGIES, settings
from services.session_token import Principal, resolve_access_token
from services.sessions import resolve_session


class AuthStrategy(str, Enum):
    SESSION = "session"
    TOKEN = "token"
    HYBRID = "hybrid"

    @classmethod
    def parse(cls, value: Optional[str]) -> "AuthStrategy":
        normalized = str(value or "").strip().lower()
        if normalized not in AUTH_STRATEGIES:
            raise ValueError(f"Unknown auth strategy: {value!r}")
        return cls(normalized)

    @property
    def issues_sessions(self) -> bool:
        return self is not AuthStrategy.TOKEN

    @property
    def issues_tokens(self) -> bool:
        return self is not AuthStrategy.SESSION


class Verifier(Protocol):
    async def resolve(self, request: Request, db: AsyncSession) -> Optional[Principal]:
        ...


def bearer_token_from_request(request: Request) -> Optional[str]:
    authorization = request.headers.get("authorization") or ""
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get(settings.JWT_COOKIE_NAME) or None


class SessionVerifier:
    async def resolve(self, request: Request, db: AsyncSession) -> Optional[Principal]:
        return await resolve_session(request.cookies.get(settings.SESSION_COOKIE_NAME), db)


class TokenVerifier:
    async def resolve(self, request: Request, db: AsyncSession) -> Optional[Principal]:
        return resolve_access_token(bearer_token_from_request(request))


class HybridVerifier:
    """Try each child verifier in order and return the first principal found."""

    def __init__(self, verifiers: Sequence[Verifier]):
        self.verifiers = tuple(verifiers)

    async def resolve(self, request: Request, db: AsyncSession) -> Optional[Principal]:
        for verifier in self.verifiers:
            principal = await verifier.resolve(request, db)
            if principal is not None:
                return principal
        return None


def build_verifier(strategy: AuthStrategy) -> Verifier:
    if strategy is AuthStrategy.SESSION:
        return SessionVerifier()
    if strategy is AuthStrategy.TOKEN:
        return TokenVerifier()
    return HybridVerifier([SessionVerifier(), TokenVerifier()])
