"""Backlog (Nulab) REST v2 client.

Backlog authenticates with an ``apiKey`` query parameter, so request URLs are
secret-bearing: they are never logged, and error messages only carry a short
code and the HTTP status.
"""

import re
from typing import Any

import httpx
import structlog

from app.core.exceptions import BacklogError
from app.core.rate_limit import RateLimitStore
from app.domain.backlog_mapping import MappedIssue

logger = structlog.get_logger(__name__)

# Backlog allows about 600 requests/hour per key; keep a margin.
BACKLOG_RATE_LIMIT = 500
BACKLOG_RATE_WINDOW_SECONDS = 60 * 60

PROJECT_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")


def normalize_space_url(space_url: str) -> str:
    return space_url.strip().rstrip("/")


def normalize_project_key(project_key: str | None) -> str | None:
    """Drop all whitespace and upper-case; empty becomes None."""
    if project_key is None:
        return None
    key = re.sub(r"\s+", "", project_key).upper()
    return key or None


class BacklogClient:
    """Client for one Backlog space, authenticated with one API key."""

    def __init__(
        self,
        space_url: str,
        api_key: str,
        *,
        rate_limiter: RateLimitStore,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.space_url = normalize_space_url(space_url)
        self._api_key = api_key
        self.rate_limiter = rate_limiter
        self.timeout = timeout
        self._transport = transport

    def __repr__(self) -> str:
        return f"BacklogClient(space_url={self.space_url!r})"

    async def _check_rate_limit(self) -> None:
        decision = await self.rate_limiter.hit(
            f"backlog:{self.space_url}", BACKLOG_RATE_LIMIT, BACKLOG_RATE_WINDOW_SECONDS
        )
        if not decision.allowed:
            raise BacklogError("rate_limited", 429)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        query: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
    ) -> httpx.Response:
        await self._check_rate_limit()

        params = {"apiKey": self._api_key}
        for key, value in (query or {}).items():
            if value is not None:
                params[key] = str(value)

        async with httpx.AsyncClient(
            base_url=self.space_url,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            try:
                response = await client.request(method, path, params=params, data=data)
            except httpx.HTTPError:
                # Not chained: httpx errors carry the request URL, apiKey included
                raise BacklogError("network_error", 0) from None

        if response.is_error:
            raise BacklogError("http_error", response.status_code)
        return response

    async def get_json(self, path: str, query: dict[str, Any] | None = None) -> Any:
        response = await self._request("GET", path, query=query)
        try:
            return response.json()
        except ValueError:
            raise BacklogError("invalid_json", response.status_code) from None

    async def post_form(self, path: str, data: dict[str, Any]) -> Any:
        """POST form-encoded fields, the encoding Backlog's write endpoints accept."""
        response = await self._request("POST", path, data=data)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            # Some write endpoints answer 2xx with an empty or non-JSON body
            return {}

    async def list_projects(self) -> list[dict]:
        return await self.get_json("/api/v2/projects")

    async def find_project(self, project_key: str) -> dict | None:
        for project in await self.list_projects():
            if project.get("projectKey") == project_key:
                return project
        return None

    async def list_issue_types(self, project_id_or_key: int | str) -> list[dict]:
        return await self.get_json(f"/api/v2/projects/{project_id_or_key}/issueTypes")

    async def get_project_custom_fields(self, project_id_or_key: int | str) -> list[dict]:
        return await self.get_json(f"/api/v2/projects/{project_id_or_key}/customFields")

    async def list_priorities(self) -> list[dict]:
        return await self.get_json("/api/v2/priorities")

    async def create_issue(self, project_key: str, issue: MappedIssue) -> dict:
        """Resolve project and issue type, then create the issue.

        Raises BacklogError with codes ``project_not_found`` or
        ``no_issue_type`` when the lookups come back empty.
        """
        project = await self.find_project(project_key)
        if project is None:
            raise BacklogError("project_not_found")

        issue_type_id = issue.issue_type_id
        if not issue_type_id:
            issue_types = await self.list_issue_types(project["id"])
            if not issue_types:
                raise BacklogError("no_issue_type")
            issue_type_id = issue_types[0]["id"]

        body: dict[str, Any] = {
            "projectId": project["id"],
            "summary": issue.summary,
            "description": issue.description,
            "issueTypeId": issue_type_id,
            "priorityId": issue.priority_id,
        }
        for cf in issue.custom_field_values:
            if cf.value is None or cf.value == "":
                continue
            body[f"customField_{cf.backlog_field_id}"] = str(cf.value)

        return await self.post_form("/api/v2/issues", body)
