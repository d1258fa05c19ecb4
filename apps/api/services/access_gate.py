"""Credit gate decisions for credit-costing mutations.

Pure functions over a subscription snapshot; nothing here touches storage.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from config import settings
from models.subscription import Subscription
from services.errors import (
    CreditGateDenied,
    InsufficientCredits,
    SubscriptionExpired,
    SubscriptionRequired,
)


DENY_NO_SUBSCRIPTION = "no_subscription"
DENY_EXPIRED = "expired"
DENY_INSUFFICIENT_CREDITS = "insufficient_credits"

_SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class GateDecision:
    allowed: bool
    reason: Optional[str] = None

    def raise_if_denied(self, credits_remaining: Optional[int] = None) -> None:
        """Translate a denial into the matching 403 error."""
        if self.allowed:
            return
        if self.reason == DENY_NO_SUBSCRIPTION:
            raise SubscriptionRequired()
        if self.reason == DENY_EXPIRED:
            raise SubscriptionExpired()
        if self.reason == DENY_INSUFFICIENT_CREDITS:
            extra = {"creditsRemaining": credits_remaining} if credits_remaining is not None else None
            raise InsufficientCredits(
                "Insufficient credits. Please top-up or upgrade your plan.",
                extra=extra,
            )
        raise CreditGateDenied(f"Edit not allowed: {self.reason}")


ALLOWED = GateDecision(allowed=True)


@dataclass(frozen=True)
class SubscriptionStatus:
    hasActiveSubscription: bool
    planType: Optional[str]
    creditsRemaining: int
    creditsAllocated: int
    isExpired: bool
    daysUntilExpiry: Optional[int]
    canEdit: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def is_expired(subscription: Subscription, now: Optional[datetime] = None) -> bool:
    end_date = _as_utc(subscription.end_date)
    if end_date is None:
        return False
    return (now or datetime.now(timezone.utc)) > end_date


def edit_cost() -> int:
    return max(int(settings.EDIT_CREDIT_COST), 0)


def evaluate(
    subscription: Optional[Subscription],
    *,
    cost: Optional[int] = None,
    now: Optional[datetime] = None,
) -> GateDecision:
    """Decide whether an action of ``cost`` credits may proceed."""
    required = edit_cost() if cost is None else int(cost)
    if subscription is None:
        return GateDecision(allowed=False, reason=DENY_NO_SUBSCRIPTION)
    if not subscription.active or is_expired(subscription, now):
        return GateDecision(allowed=False, reason=DENY_EXPIRED)
    if int(subscription.credits_remaining or 0) < required:
        return GateDecision(allowed=False, reason=DENY_INSUFFICIENT_CREDITS)
    return ALLOWED


def build_status(
    subscription: Optional[Subscription],
    *,
    cost: Optional[int] = None,
    now: Optional[datetime] = None,
) -> SubscriptionStatus:
    """Derive the UI-facing status view from a subscription snapshot."""
    if subscription is None:
        return SubscriptionStatus(
            hasActiveSubscription=False,
            planType=None,
            creditsRemaining=0,
            creditsAllocated=0,
            isExpired=False,
            daysUntilExpiry=None,
            canEdit=False,
        )

    current = now or datetime.now(timezone.utc)
    end_date = _as_utc(subscription.end_date)
    expired = is_expired(subscription, current)
    days_until_expiry = None
    if end_date is not None:
        days_until_expiry = math.ceil((end_date - current).total_seconds() / _SECONDS_PER_DAY)

    return SubscriptionStatus(
        hasActiveSubscription=bool(subscription.active) and not expired,
        planType=subscription.plan_type,
        creditsRemaining=int(subscription.credits_remaining or 0),
        creditsAllocated=int(subscription.credits_allocated or 0),
        isExpired=expired,
        daysUntilExpiry=days_until_expiry,
        canEdit=evaluate(subscription, cost=cost, now=current).allowed,
    )
