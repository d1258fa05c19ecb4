"""Subscription, top-up and credit balance router."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import get_principal
from routers.rate_limit import rate_limit
from services.credits import (
    cancel_subscription,
    create_subscription,
    get_plans,
    get_subscription_status,
    list_purchases,
    top_up,
)
from services.session_token import Principal

router = APIRouter()


class SubscribeRequest(BaseModel):
    planType: str = Field(min_length=1, max_length=20)


class CreditTopUpRequest(BaseModel):
    credits: int = Field(ge=1, le=100000)
    amount: int = Field(ge=0, le=100_000_000)  # paise, already charged by the billing provider


@router.get("/subscription/plans")
async def subscription_plans():
    return {"success": True, "plans": [plan.to_dict() for plan in get_plans()]}


@router.post("/subscription/subscribe")
async def subscribe(
    request: SubscribeRequest,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    subscription = await create_subscription(principal.account_id, request.planType, db)
    return {"success": True, "subscription": subscription.to_dict()}


@router.post("/subscription/cancel")
async def cancel(
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    subscription = await cancel_subscription(principal.account_id, db)
    return {"success": True, "subscription": subscription.to_dict()}


@router.post("/subscription/credits/topup")
async def credit_topup(
    request: CreditTopUpRequest,
    _rate_limit: None = Depends(rate_limit("credit_topup", limit=30, window_seconds=3600)),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    purchase, subscription = await top_up(principal.account_id, request.credits, request.amount, db)
    return {
        "success": True,
        "message": "Credits added successfully",
        "credits": purchase.credits,
        "newBalance": subscription.credits_remaining,
        "purchase": purchase.to_dict(),
    }


@router.get("/subscription/credits/history")
async def credit_history(
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    purchases = await list_purchases(principal.account_id, db)
    return {"success": True, "purchases": [purchase.to_dict() for purchase in purchases]}


@router.get("/credits")
async def credits_summary(
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    status = await get_subscription_status(principal.account_id, db)
    return {"success": True, **status.to_dict()}
