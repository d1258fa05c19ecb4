"""Authentication dependencies for account scoping."""

from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from services.auth_strategy import AuthStrategy, Verifier
from services.errors import AuthenticationFailure, AuthorizationFailure
from services.session_token import Principal


def get_auth_strategy(request: Request) -> AuthStrategy:
    return request.app.state.auth_strategy


def get_verifier(request: Request) -> Verifier:
    return request.app.state.auth_verifier


def ensure_account_scope(principal: Principal, supplied_account_id: Optional[str]) -> str:
    """Return the authenticated account id and reject cross-account attempts."""
    if supplied_account_id and supplied_account_id != principal.account_id:
        raise AuthorizationFailure("Access denied: tenant isolation")
    return principal.account_id


async def get_principal(
    request: Request,
    verifier: Verifier = Depends(get_verifier),
    db: AsyncSession = Depends(get_db),
) -> Principal:
    """Resolve the authenticated account through the app's configured strategy."""
    principal = await verifier.resolve(request, db)
    if principal is None:
        raise AuthenticationFailure()
    return principal
