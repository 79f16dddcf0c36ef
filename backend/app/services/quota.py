"""QuotaLedger: atomic check-then-insert for plan-limited resources.

Two dimensions are limited: forms per owner and submissions per calendar
month (UTC) across all of an owner's forms. The count and the insert run in
one transaction that first takes a PostgreSQL advisory lock keyed on the
owner e-mail, so concurrent inserts for the same owner are serialized and
cannot overshoot the limit. The lock needs no row to exist: forms can outlive
their owner's ``users`` row.
On SQLite the engine opens every transaction with BEGIN IMMEDIATE instead
(see app.db.base), which serializes all writers.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Generic, Literal, TypeVar

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models.form import Form
from app.db.models.submission import Submission
from app.domain.plans import PlanTier, get_limits, month_start_utc

logger = structlog.get_logger(__name__)

T = TypeVar("T")

PlanResolver = Callable[[str], Awaitable[PlanTier]]


@dataclass(frozen=True)
class QuotaAllowed(Generic[T]):
    resource: T
    ok: Literal[True] = True


@dataclass(frozen=True)
class QuotaExceeded:
    current: int
    max: int
    ok: Literal[False] = False


QuotaResult = QuotaAllowed[T] | QuotaExceeded


class QuotaLedger:
    """Inserts forms and submissions only while the owner's plan allows it.

    Args:
        session_factory: SQLAlchemy async session factory
        plan_resolver: async callable mapping an owner e-mail to its PlanTier
        clock: returns the current UTC time (month window anchor)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        plan_resolver: PlanResolver,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.session_factory = session_factory
        self.plan_resolver = plan_resolver
        self.clock = clock

    async def _lock_owner(self, session: AsyncSession, subject: str) -> None:
        # Held until commit or rollback; SQLite relies on BEGIN IMMEDIATE instead
        if session.bind.dialect.name == "postgresql":
            await session.execute(select(func.pg_advisory_xact_lock(func.hashtextextended(subject, 0))))

    async def _insert(self, session: AsyncSession, resource):
        session.add(resource)
        await session.commit()
        return resource

    async def insert_form_if_allowed(self, subject: str, form: Form) -> QuotaResult[Form]:
        subject = subject.strip().lower()
        limits = get_limits(await self.plan_resolver(subject))

        async with self.session_factory() as session:
            if limits.max_forms is None:
                return QuotaAllowed(await self._insert(session, form))

            await self._lock_owner(session, subject)
            result = await session.execute(
                select(func.count()).select_from(Form).where(Form.owner_email == subject)
            )
            current = result.scalar_one()

            if current >= limits.max_forms:
                await session.rollback()
                logger.info("form_quota_exceeded", current=current, max=limits.max_forms)
                return QuotaExceeded(current=current, max=limits.max_forms)

            return QuotaAllowed(await self._insert(session, form))

    async def count_submissions_this_month(self, session: AsyncSession, subject: str) -> int:
        owned_form_ids = select(Form.id).where(Form.owner_email == subject)
        result = await session.execute(
            select(func.count())
            .select_from(Submission)
            .where(
                Submission.form_id.in_(owned_form_ids),
                Submission.created_at >= month_start_utc(self.clock()),
            )
        )
        return result.scalar_one()

    async def insert_submission_if_allowed(self, subject: str, submission: Submission) -> QuotaResult[Submission]:
        subject = subject.strip().lower()
        limits = get_limits(await self.plan_resolver(subject))

        async with self.session_factory() as session:
            if limits.max_submissions_per_month is None:
                return QuotaAllowed(await self._insert(session, submission))

            await self._lock_owner(session, subject)
            current = await self.count_submissions_this_month(session, subject)

            if current >= limits.max_submissions_per_month:
                await session.rollback()
                logger.info(
                    "submission_quota_exceeded",
                    current=current,
                    max=limits.max_submissions_per_month,
                )
                return QuotaExceeded(current=current, max=limits.max_submissions_per_month)

            return QuotaAllowed(await self._insert(session, submission))
