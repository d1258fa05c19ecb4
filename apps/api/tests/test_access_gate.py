from datetime import datetime, timedelta, timezone

import pytest

from models.subscription import Subscription
from services.access_gate import (
    DENY_EXPIRED,
    DENY_INSUFFICIENT_CREDITS,
    DENY_NO_SUBSCRIPTION,
    GateDecision,
    build_status,
    edit_cost,
    evaluate,
    is_expired,
)
from services.errors import InsufficientCredits, SubscriptionExpired, SubscriptionRequired


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _subscription(credits: int = 500, *, active: bool = True, end_in: timedelta = timedelta(days=30)) -> Subscription:
    return Subscription(
        user_id="acct-1",
        plan_type="Basic",
        credits_allocated=500,
        credits_remaining=credits,
        active=active,
        start_date=NOW - timedelta(days=1),
        end_date=NOW + end_in,
    )


def test_default_edit_cost_is_five():
    assert edit_cost() == 5


def test_missing_subscription_is_denied_first():
    assert evaluate(None, now=NOW) == GateDecision(allowed=False, reason=DENY_NO_SUBSCRIPTION)


def test_expired_subscription_denied_even_with_credits():
    subscription = _subscription(credits=500, end_in=-timedelta(seconds=1))

    assert is_expired(subscription, NOW)
    assert evaluate(subscription, now=NOW).reason == DENY_EXPIRED


def test_inactive_subscription_is_treated_as_expired():
    assert evaluate(_subscription(active=False), now=NOW).reason == DENY_EXPIRED


def test_expiry_checked_before_balance():
    subscription = _subscription(credits=0, end_in=-timedelta(days=2))

    assert evaluate(subscription, now=NOW).reason == DENY_EXPIRED


@pytest.mark.parametrize(
    ("credits", "allowed"),
    [(0, False), (4, False), (5, True), (6, True), (500, True)],
)
def test_balance_threshold(credits, allowed):
    decision = evaluate(_subscription(credits=credits), now=NOW)

    assert decision.allowed is allowed
    if not allowed:
        assert decision.reason == DENY_INSUFFICIENT_CREDITS


def test_end_date_boundary_is_still_valid():
    subscription = _subscription(end_in=timedelta(0))

    assert not is_expired(subscription, NOW)
    assert evaluate(subscription, now=NOW).allowed


def test_naive_end_date_is_read_as_utc():
    subscription = _subscription()
    subscription.end_date = (NOW - timedelta(hours=1)).replace(tzinfo=None)

    assert is_expired(subscription, NOW)


def test_denials_map_to_specific_errors():
    with pytest.raises(SubscriptionRequired):
        GateDecision(False, DENY_NO_SUBSCRIPTION).raise_if_denied()
    with pytest.raises(SubscriptionExpired):
        GateDecision(False, DENY_EXPIRED).raise_if_denied()
    with pytest.raises(InsufficientCredits) as exc_info:
        GateDecision(False, DENY_INSUFFICIENT_CREDITS).raise_if_denied(3)

    assert exc_info.value.status_code == 403
    assert exc_info.value.to_payload()["creditsRemaining"] == 3
    GateDecision(True).raise_if_denied()


def test_status_without_subscription():
    status = build_status(None, now=NOW)

    assert status.hasActiveSubscription is False
    assert status.canEdit is False
    assert status.creditsRemaining == 0
    assert status.daysUntilExpiry is None


def test_status_rounds_days_up():
    status = build_status(_subscription(end_in=timedelta(days=2, hours=1)), now=NOW)

    assert status.daysUntilExpiry == 3
    assert status.hasActiveSubscription is True
    assert status.isExpired is False
    assert status.canEdit is True
    assert status.planType == "Basic"


def test_status_for_expired_subscription_with_credits():
    status = build_status(_subscription(credits=500, end_in=-timedelta(days=1)), now=NOW)

    assert status.isExpired is True
    assert status.hasActiveSubscription is False
    assert status.canEdit is False
    assert status.creditsRemaining == 500
    assert status.daysUntilExpiry == -1


def test_status_cannot_edit_below_cost():
    status = build_status(_subscription(credits=3), now=NOW)

    assert status.hasActiveSubscription is True
    assert status.canEdit is False
    assert status.to_dict()["creditsRemaining"] == 3
