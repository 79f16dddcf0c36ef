"""Billing routes: subscription status, plan usage, and the provider webhook."""

import json

import structlog
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy import func, select

from app.core.auth import require_user
from app.core.config import get_settings
from app.db.base import get_session_factory
from app.db.models.form import Form
from app.domain.plans import get_limits, month_start_utc, resolve_plan
from app.services.quota import QuotaLedger
from app.services.subscription import ACTIVE, INACTIVE, SubscriptionService

logger = structlog.get_logger(__name__)

router = APIRouter()

ACTIVATING_EVENTS = frozenset({"subscription_created", "subscription_updated"})
DEACTIVATING_EVENTS = frozenset({"subscription_cancelled", "subscription_expired"})


# ── Request / Response schemas ──────────────────────────────────────


class BillingStatusResponse(BaseModel):
    status: str
    plan: str


class UsageResponse(BaseModel):
    plan: str
    forms_used: int
    forms_limit: int | None  # None = unlimited
    submissions_this_month: int
    submissions_limit: int | None  # None = unlimited
    reset_at: str  # ISO 8601, start of next UTC month


# ── Helpers ─────────────────────────────────────────────────────────


def verify_webhook_signature(secret: str, body: bytes, signature: str | None) -> bool:
    """Check a hex HMAC-SHA256 of the raw body in constant time."""
    if not signature:
        return False
    try:
        expected = bytes.fromhex(signature.strip())
    except ValueError:
        return False
    mac = hmac.HMAC(secret.encode("utf-8"), hashes.SHA256())
    mac.update(body)
    try:
        mac.verify(expected)
    except InvalidSignature:
        return False
    return True


def _get(obj, *path):
    for key in path:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


# ── Routes ──────────────────────────────────────────────────────────


@router.get("/billing/status", response_model=BillingStatusResponse)
async def billing_status(email: str = Depends(require_user)):
    status = await SubscriptionService(get_session_factory()).get_status(email)
    return BillingStatusResponse(status=status, plan=resolve_plan(status).value)


@router.get("/billing/usage", response_model=UsageResponse)
async def billing_usage(email: str = Depends(require_user)):
    factory = get_session_factory()
    subscriptions = SubscriptionService(factory)
    plan = await subscriptions.plan_for(email)
    limits = get_limits(plan)
    ledger = QuotaLedger(factory, subscriptions.plan_for)

    async with factory() as session:
        forms_result = await session.execute(
            select(func.count()).select_from(Form).where(Form.owner_email == email)
        )
        forms_used = forms_result.scalar_one()
        submissions_used = await ledger.count_submissions_this_month(session, email)

    month_start = month_start_utc(ledger.clock())
    if month_start.month == 12:
        reset_at = month_start.replace(year=month_start.year + 1, month=1)
    else:
        reset_at = month_start.replace(month=month_start.month + 1)

    return UsageResponse(
        plan=plan.value,
        forms_used=forms_used,
        forms_limit=limits.max_forms,
        submissions_this_month=submissions_used,
        submissions_limit=limits.max_submissions_per_month,
        reset_at=reset_at.isoformat(),
    )


@router.post("/billing/webhook")
async def billing_webhook(request: Request):
    """Mirror subscription lifecycle events into the subscriptions table.

    The X-Signature header is verified only when BILLING_WEBHOOK_SECRET is set.
    """
    settings = get_settings()
    raw = await request.body()

    if settings.billing_webhook_secret:
        if not verify_webhook_signature(settings.billing_webhook_secret, raw, request.headers.get("x-signature")):
            logger.warning("billing_webhook_bad_signature")
            raise HTTPException(status_code=401, detail="Invalid signature")
    else:
        logger.warning("billing_webhook_unverified")

    try:
        body = json.loads(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON") from None

    event = _get(body, "meta", "event_name")
    data = _get(body, "data")
    email = _get(data, "attributes", "user_email") or _get(data, "attributes", "customer_email")

    if not isinstance(email, str) or not email.strip():
        logger.info("billing_webhook_ignored", billing_event=event, reason="no_email")
        return {"ok": True}

    service = SubscriptionService(get_session_factory())
    if event in ACTIVATING_EVENTS:
        subscription_id = _get(data, "id")
        customer_id = _get(data, "relationships", "customer", "data", "id")
        await service.set_status(
            email,
            ACTIVE,
            provider_subscription_id=str(subscription_id) if subscription_id is not None else None,
            provider_customer_id=str(customer_id) if customer_id is not None else None,
        )
    elif event in DEACTIVATING_EVENTS:
        await service.set_status(email, INACTIVE)
    else:
        logger.info("billing_webhook_ignored", billing_event=event, reason="unhandled_event")

    return {"ok": True}
