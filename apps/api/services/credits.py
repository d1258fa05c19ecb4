"""Subscription ledger: plans, credit balances and top-ups.

This module is the only writer of ``Subscription.credits_remaining``. Balance
changes are conditional atomic UPDATEs, and every mutation for one account is
additionally serialized through an in-process lock.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.credit_purchase import CreditPurchase
from models.subscription import Subscription
from services.access_gate import SubscriptionStatus, build_status, edit_cost, evaluate, is_expired
from services.errors import (
    DuplicateActiveSubscription,
    InvalidPlan,
    NoActiveSubscription,
    NotFound,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Plan:
    id: str
    name: str
    price: int  # paise
    credits: int
    duration_days: int
    features: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "credits": self.credits,
            "duration": self.duration_days,
            "features": list(self.features),
        }


PLANS: Dict[str, Plan] = {
    "basic": Plan(
        id="basic",
        name="Basic",
        price=199900,
        credits=500,
        duration_days=30,
        features=(
            "500 editing credits",
            "PDF export unlimited",
            "Public profile sharing",
            "Photo & CV upload",
        ),
    ),
    "premium": Plan(
        id="premium",
        name="Premium",
        price=299900,
        credits=1000,
        duration_days=30,
        features=(
            "1,000 editing credits",
            "PDF export unlimited",
            "Public profile sharing",
            "Photo & CV upload",
            "Priority support",
        ),
    ),
}

_account_locks: Dict[str, asyncio.Lock] = {}


def _account_lock(account_id: str) -> asyncio.Lock:
    lock = _account_locks.get(account_id)
    if lock is None:
        lock = _account_locks.setdefault(account_id, asyncio.Lock())
    return lock


def _require_non_negative(amount: int, name: str) -> int:
    value = int(amount)
    if value < 0:
        raise ValueError(f"{name} must be non-negative")
    return value


def get_plans() -> List[Plan]:
    return list(PLANS.values())


def get_plan(plan_type: Optional[str]) -> Optional[Plan]:
    """Look a plan up by id or display name, case-insensitively."""
    return PLANS.get(str(plan_type or "").strip().lower())


async def get_active_subscription(account_id: str, db: AsyncSession) -> Optional[Subscription]:
    """Return the most recently created active subscription, if any."""
    result = await db.execute(
        select(Subscription)
        .where(Subscription.user_id == account_id, Subscription.active.is_(True))
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def has_any_subscription(account_id: str, db: AsyncSession) -> bool:
    result = await db.execute(select(Subscription.id).where(Subscription.user_id == account_id).limit(1))
    return result.scalar_one_or_none() is not None


async def create_subscription(
    account_id: str,
    plan_type: str,
    db: AsyncSession,
    *,
    now: Optional[datetime] = None,
) -> Subscription:
    """
    Start a subscription on ``plan_type`` with the plan's full credit grant.

    An active subscription that has already expired is closed out first; an
    active unexpired one is a ``DuplicateActiveSubscription``.
    """
    plan = get_plan(plan_type)
    if plan is None:
        raise InvalidPlan(f"Invalid plan type: {plan_type}")

    current = now or datetime.now(timezone.utc)
    async with _account_lock(account_id):
        existing = await get_active_subscription(account_id, db)
        if existing is not None:
            if not is_expired(existing, current):
                raise DuplicateActiveSubscription()
            existing.active = False
            await db.flush()
            logger.info("subscription_renewal user=%s closed=%s", account_id, existing.id)

        subscription = Subscription(
            user_id=account_id,
            plan_type=plan.name,
            credits_allocated=plan.credits,
            credits_remaining=plan.credits,
            active=True,
            start_date=current,
            end_date=current + timedelta(days=plan.duration_days),
        )
        db.add(subscription)
        try:
            await db.commit()
        except IntegrityError as exc:
            await db.rollback()
            raise DuplicateActiveSubscription() from exc
        await db.refresh(subscription)

    logger.info(
        "subscription_created user=%s plan=%s credits=%s",
        account_id,
        subscription.plan_type,
        subscription.credits_allocated,
    )
    return subscription


async def ensure_subscription(account_id: str, db: AsyncSession) -> Optional[Subscription]:
    """
    Return the active subscription, provisioning ``AUTO_PROVISION_PLAN`` for
    accounts that never had one when that setting is configured.
    """
    subscription = await get_active_subscription(account_id, db)
    plan_type = (settings.AUTO_PROVISION_PLAN or "").strip()
    if subscription is not None or not plan_type:
        return subscription
    if await has_any_subscription(account_id, db):
        return None
    try:
        return await create_subscription(account_id, plan_type, db)
    except DuplicateActiveSubscription:
        return await get_active_subscription(account_id, db)


async def _debit_locked(account_id: str, cost: int, db: AsyncSession) -> Optional[Subscription]:
    """Conditional decrement; the caller must hold the account lock."""
    subscription = await get_active_subscription(account_id, db)
    if subscription is None:
        return None

    result = await db.execute(
        update(Subscription)
        .where(
            Subscription.id == subscription.id,
            Subscription.active.is_(True),
            Subscription.credits_remaining >= cost,
        )
        .values(credits_remaining=Subscription.credits_remaining - cost)
        .execution_options(synchronize_session=False)
    )
    # Commit either way so the write transaction is released.
    await db.commit()
    if not result.rowcount:
        logger.info("credit_debit_denied user=%s amount=%s", account_id, cost)
        return None
    await db.refresh(subscription)

    logger.info(
        "credit_debit user=%s amount=%s remaining=%s",
        account_id,
        cost,
        subscription.credits_remaining,
    )
    return subscription


async def debit(account_id: str, amount: int, db: AsyncSession) -> Optional[Subscription]:
    """
    Atomically take ``amount`` credits from the active subscription.

    Returns the updated subscription, or None when the account has no active
    subscription or fewer than ``amount`` credits (nothing is written).
    """
    cost = _require_non_negative(amount, "amount")
    async with _account_lock(account_id):
        return await _debit_locked(account_id, cost, db)


async def _absorb_debit_failure(
    charge: Callable[[str, int, AsyncSession], Awaitable[Optional[Subscription]]],
    account_id: str,
    amount: int,
    db: AsyncSession,
) -> Optional[Subscription]:
    try:
        charged = await charge(account_id, amount, db)
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.warning("Best-effort debit failed for user %s (amount=%s): %s", account_id, amount, exc)
        return None
    if charged is None:
        logger.warning("Best-effort debit denied for user %s (amount=%s); edit not charged", account_id, amount)
    return charged


async def best_effort_debit(account_id: str, amount: int, db: AsyncSession) -> Optional[Subscription]:
    """
    Charge for a mutation that has already been committed.

    Fail-open: a denial or storage error is logged and swallowed so the
    committed write is never reported as failed.
    """
    return await _absorb_debit_failure(debit, account_id, _require_non_negative(amount, "amount"), db)


@asynccontextmanager
async def gated_edit(
    account_id: str,
    db: AsyncSession,
    *,
    cost: Optional[int] = None,
) -> AsyncIterator[Subscription]:
    """
    Run one credit-costing write for ``account_id``.

    The account lock is held from the gate check until the debit. A denial
    raises before the body runs and an exception from the body skips the
    debit. The debit runs after the body commits and is best effort.
    """
    charge = edit_cost() if cost is None else _require_non_negative(cost, "cost")
    # Provisioning takes the account lock itself.
    await ensure_subscription(account_id, db)

    async with _account_lock(account_id):
        subscription = await get_active_subscription(account_id, db)
        if subscription is not None:
            await db.refresh(subscription)
        evaluate(subscription, cost=charge).raise_if_denied(
            subscription.credits_remaining if subscription is not None else None
        )
        yield subscription
        await _absorb_debit_failure(_debit_locked, account_id, charge, db)


async def _apply_credit(subscription: Subscription, amount: int, db: AsyncSession) -> None:
    await db.execute(
        update(Subscription)
        .where(Subscription.id == subscription.id)
        .values(credits_remaining=Subscription.credits_remaining + amount)
        .execution_options(synchronize_session=False)
    )


async def credit(account_id: str, amount: int, db: AsyncSession) -> Subscription:
    """Add ``amount`` credits to the active subscription (no cap at the allocation)."""
    grant = _require_non_negative(amount, "amount")
    async with _account_lock(account_id):
        subscription = await get_active_subscription(account_id, db)
        if subscription is None:
            raise NoActiveSubscription()
        await _apply_credit(subscription, grant, db)
        await db.commit()
        await db.refresh(subscription)

    logger.info(
        "credit_grant user=%s amount=%s remaining=%s",
        account_id,
        grant,
        subscription.credits_remaining,
    )
    return subscription


async def record_purchase(
    account_id: str,
    credits: int,
    amount_charged: int,
    db: AsyncSession,
) -> CreditPurchase:
    """Append a purchase record; balances are not touched."""
    purchase = CreditPurchase(
        user_id=account_id,
        credits=_require_non_negative(credits, "credits"),
        amount=_require_non_negative(amount_charged, "amount_charged"),
    )
    db.add(purchase)
    await db.commit()
    await db.refresh(purchase)
    return purchase


async def top_up(
    account_id: str,
    credits: int,
    amount_charged: int,
    db: AsyncSession,
) -> Tuple[CreditPurchase, Subscription]:
    """Record a purchase and grant its credits in a single transaction."""
    grant = _require_non_negative(credits, "credits")
    charged = _require_non_negative(amount_charged, "amount_charged")
    async with _account_lock(account_id):
        subscription = await get_active_subscription(account_id, db)
        if subscription is None:
            raise NoActiveSubscription()

        purchase = CreditPurchase(user_id=account_id, credits=grant, amount=charged)
        db.add(purchase)
        await _apply_credit(subscription, grant, db)
        try:
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            raise
        await db.refresh(subscription)
        await db.refresh(purchase)

    logger.info(
        "credit_topup user=%s credits=%s amount=%s remaining=%s",
        account_id,
        grant,
        charged,
        subscription.credits_remaining,
    )
    return purchase, subscription


async def cancel_subscription(account_id: str, db: AsyncSession) -> Subscription:
    async with _account_lock(account_id):
        subscription = await get_active_subscription(account_id, db)
        if subscription is None:
            raise NotFound("No active subscription found")
        subscription.active = False
        await db.commit()
        await db.refresh(subscription)

    logger.info("subscription_cancelled user=%s subscription=%s", account_id, subscription.id)
    return subscription


async def list_purchases(account_id: str, db: AsyncSession, *, limit: int = 50) -> List[CreditPurchase]:
    result = await db.execute(
        select(CreditPurchase)
        .where(CreditPurchase.user_id == account_id)
        .order_by(CreditPurchase.purchase_date.desc())
        .limit(max(int(limit), 1))
    )
    return list(result.scalars().all())


async def get_subscription_status(
    account_id: str,
    db: AsyncSession,
    *,
    now: Optional[datetime] = None,
) -> SubscriptionStatus:
    subscription = await get_active_subscription(account_id, db)
    return build_status(subscription, now=now)
