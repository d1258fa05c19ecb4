"""Domain error taxonomy mapped onto HTTP responses by ``main``."""

from __future__ import annotations

from typing import Any, Dict, Optional


class AppError(Exception):
    """Base class for errors that carry a client-safe message and status."""

    status_code: int = 400
    code: str = "bad_request"
    message: str = "Request could not be processed."

    def __init__(self, message: Optional[str] = None, *, extra: Optional[Dict[str, Any]] = None):
        self.message = message or self.message
        self.extra = dict(extra or {})
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": False, "message": self.message, "code": self.code}
        payload.update(self.extra)
        return payload


class AuthenticationFailure(AppError):
    status_code = 401
    code = "authentication_required"
    message = "Authentication required"


class InvalidCredentials(AuthenticationFailure):
    code = "invalid_credentials"
    message = "Invalid credentials"


class AuthorizationFailure(AppError):
    status_code = 403
    code = "forbidden"
    message = "Access denied"


class CreditGateDenied(AppError):
    """Raised when the access gate refuses a credit-costing mutation."""

    status_code = 403
    code = "credit_gate_denied"


class InsufficientCredits(CreditGateDenied):
    code = "insufficient_credits"
    message = "Insufficient credits"


class SubscriptionRequired(CreditGateDenied):
    code = "no_subscription"
    message = "Active subscription required"


class SubscriptionExpired(CreditGateDenied):
    code = "expired"
    message = "Subscription expired"


class NotFound(AppError):
    status_code = 404
    code = "not_found"
    message = "Not found"


class DuplicateAccount(AppError):
    status_code = 400
    code = "account_exists"
    message = "Email already exists"


class InvalidPlan(AppError):
    status_code = 400
    code = "invalid_plan"
    message = "Invalid plan type"


class DuplicateActiveSubscription(AppError):
    status_code = 409
    code = "duplicate_active_subscription"
    message = "Account already has an active subscription"


class NoActiveSubscription(AppError):
    status_code = 403
    code = "no_active_subscription"
    message = "Active subscription required for credit top-up"


class MalformedPasswordHash(ValueError):
    """Stored password hash cannot be parsed; data corruption, not a failed login."""


class ShareSlugTaken(AppError):
    status_code = 409
    code = "share_slug_taken"
    message = "Share link is already in use"


class RateLimited(AppError):
    status_code = 429
    code = "rate_limited"
    message = "Too many requests. Try again later."
