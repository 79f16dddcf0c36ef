"""Best-effort forwarding of accepted submissions to Backlog.

Runs after the submission is committed (FastAPI background task). Failures
are logged and swallowed: a submission is never rejected or rolled back
because the ticketing system is unavailable. Log entries carry ids and error
codes only, never the API key or the submission payload.
"""

from collections.abc import Callable
from datetime import UTC, datetime

import httpx
import structlog
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import BacklogError, DecryptionError
from app.core.rate_limit import RateLimitStore
from app.core.secret_box import SecretBox
from app.db.models.backlog import BacklogConnection, BacklogFormSettings
from app.db.models.form import Form
from app.db.models.submission import Submission
from app.domain.backlog_mapping import BacklogFieldMapping, build_mapped_issue
from app.integrations.backlog import BacklogClient

logger = structlog.get_logger(__name__)


class BacklogForwarder:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        secret_box: SecretBox,
        rate_limiter: RateLimitStore,
        *,
        timeout: float = 10.0,
        tz_name: str = "Asia/Tokyo",
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.session_factory = session_factory
        self.secret_box = secret_box
        self.rate_limiter = rate_limiter
        self.timeout = timeout
        self.tz_name = tz_name
        self.transport = transport
        self.clock = clock

    async def forward(self, form_id: str, submission_id: str) -> bool:
        """Create a Backlog issue for one submission. Returns True on success."""
        log = logger.bind(form_id=form_id, submission_id=submission_id)

        async with self.session_factory() as session:
            form = await session.get(Form, form_id)
            submission = await session.get(Submission, submission_id)
            settings = await session.get(BacklogFormSettings, form_id)
            if form is None or submission is None or settings is None or not settings.enabled:
                return False

            result = await session.execute(
                select(BacklogConnection).where(BacklogConnection.user_email == form.owner_email)
            )
            connection = result.scalar_one_or_none()

        if connection is None:
            log.info("backlog_forward_skipped", reason="no_connection")
            return False

        try:
            api_key = self.secret_box.decrypt(connection.api_key_enc)
        except DecryptionError:
            log.error("backlog_api_key_decrypt_failed")
            return False

        mapping = None
        if settings.field_mapping:
            try:
                mapping = BacklogFieldMapping.model_validate(settings.field_mapping)
            except ValidationError:
                log.warning("backlog_field_mapping_invalid")

        issue = build_mapped_issue(
            form_name=form.name,
            form_slug=form.slug,
            submission_id=submission.id,
            payload=submission.payload or {},
            mapping=mapping,
            now=self.clock(),
            tz_name=self.tz_name,
        )

        client = BacklogClient(
            connection.space_url,
            api_key,
            rate_limiter=self.rate_limiter,
            timeout=self.timeout,
            transport=self.transport,
        )
        project_key = settings.project_key or connection.default_project_key

        try:
            await client.create_issue(project_key, issue)
        except BacklogError as exc:
            log.warning("backlog_issue_failed", code=exc.code, status=exc.status)
            return False

        log.info("backlog_issue_created", project_key=project_key)
        return True

    async def forward_best_effort(self, form_id: str, submission_id: str) -> None:
        """Background-task entry point: nothing escapes."""
        try:
            await self.forward(form_id, submission_id)
        except Exception:
            logger.exception("backlog_forward_unexpected_error", form_id=form_id, submission_id=submission_id)
