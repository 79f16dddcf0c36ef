"""Plan tiers and their quota limits.

Pure domain functions: no DB access. ``None`` as a limit means unbounded.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum


class PlanTier(str, Enum):
    FREE = "free"
    STARTER = "starter"
    PRO = "pro"
    ENTERPRISE = "enterprise"


@dataclass(frozen=True)
class PlanLimits:
    max_forms: int | None
    max_submissions_per_month: int | None


PLAN_LIMITS: dict[PlanTier, PlanLimits] = {
    PlanTier.FREE: PlanLimits(max_forms=1, max_submissions_per_month=50),
    PlanTier.STARTER: PlanLimits(max_forms=5, max_submissions_per_month=500),
    PlanTier.PRO: PlanLimits(max_forms=None, max_submissions_per_month=5000),
    PlanTier.ENTERPRISE: PlanLimits(max_forms=None, max_submissions_per_month=None),
}


def resolve_plan(subscription_status: str | None) -> PlanTier:
    """Map a stored subscription status to a plan.

    Only one paid plan is sold today, so any active subscription is ``starter``.
    """
    return PlanTier.STARTER if subscription_status == "active" else PlanTier.FREE


def get_limits(plan: PlanTier) -> PlanLimits:
    return PLAN_LIMITS[plan]


def month_start_utc(now: datetime | None = None) -> datetime:
    """First instant of the current UTC calendar month."""
    now = (now or datetime.now(UTC)).astimezone(UTC)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
