"""Subscription status storage and plan resolution."""

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models.subscription import Subscription
from app.db.types import utc_now
from app.domain.plans import PlanTier, resolve_plan

logger = structlog.get_logger(__name__)

ACTIVE = "active"
INACTIVE = "inactive"


class SubscriptionService:
    """Reads and writes the billing status mirrored from the webhook.

    Uses dependency injection (takes session_factory) like the other services.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_status(self, email: str) -> str:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Subscription.status).where(Subscription.user_email == email.strip().lower())
            )
            status = result.scalar_one_or_none()
        return status or INACTIVE

    async def plan_for(self, email: str) -> PlanTier:
        """Plan resolver used by the quota ledger."""
        return resolve_plan(await self.get_status(email))

    async def set_status(
        self,
        email: str,
        status: str,
        *,
        provider_subscription_id: str | None = None,
        provider_customer_id: str | None = None,
    ) -> Subscription:
        """Insert or update the subscription row for ``email``."""
        email = email.strip().lower()
        async with self.session_factory() as session:
            result = await session.execute(select(Subscription).where(Subscription.user_email == email))
            sub = result.scalar_one_or_none()
            if sub is None:
                sub = Subscription(user_email=email)
                session.add(sub)

            sub.status = status
            if provider_subscription_id is not None:
                sub.provider_subscription_id = provider_subscription_id
            if provider_customer_id is not None:
                sub.provider_customer_id = provider_customer_id
            sub.updated_at = utc_now()

            await session.commit()
            await session.refresh(sub)

        logger.info("subscription_status_updated", status=status)
        return sub
