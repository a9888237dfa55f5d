"""GitHub client for the notification relay.

This module provides the GitHubClient class that covers the two GitHub REST
calls the relay needs:

- Listing the authenticated user's notifications with conditional
  `If-Modified-Since` polling
- Fetching an arbitrary API resource to learn its `html_url`

Poll responses are turned into `PollResult` values so that the poll loop can
decide what to do without touching HTTP details.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import httpx

from gh_notif_bridge.core.settings import Settings, settings

# Configure logger for this module
logger = logging.getLogger(__name__)

# HTTP status codes
HTTP_OK = 200
HTTP_NOT_MODIFIED = 304
HTTP_FORBIDDEN = 403
HTTP_TOO_MANY_REQUESTS = 429
HTTP_INTERNAL_SERVER_ERROR = 500

GITHUB_API_VERSION = "2022-11-28"


class GitHubError(RuntimeError):
    """Base exception raised for GitHub API failures."""


class GitHubRateLimitError(GitHubError):
    """Raised when GitHub rejects a request because of rate limiting.

    `retry_after` holds the number of seconds GitHub asked us to wait, when
    the response said so.
    """

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class PollOutcome(Enum):
    """How a single notification poll ended."""

    SUCCESS = "success"
    NOT_MODIFIED = "not_modified"
    TRANSIENT_FAILURE = "transient_failure"


@dataclass(frozen=True)
class Notification:
    """A single GitHub notification thread as seen at one point in time."""

    id: str
    subject_type: str
    subject_url: str | None
    subject_title: str
    reason: str
    repository_name: str
    updated_at: datetime

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Notification:
        """Build a notification from one item of the GitHub API response."""

        subject = payload.get("subject") or {}
        repository = payload.get("repository") or {}
        return cls(
            id=str(payload["id"]),
            subject_type=subject.get("type", ""),
            subject_url=subject.get("url"),
            subject_title=subject.get("title", ""),
            reason=payload.get("reason", ""),
            repository_name=repository.get("full_name") or repository.get("name", ""),
            updated_at=parse_timestamp(payload["updated_at"]),
        )


@dataclass(frozen=True)
class PollResult:
    """Outcome of one conditional notifications poll."""

    outcome: PollOutcome
    notifications: list[Notification] = field(default_factory=list)
    watermark: str | None = None
    poll_interval: float | None = None
    error: BaseException | None = None


@dataclass(frozen=True)
class GitHubConfig:
    """Immutable configuration for one account's GitHub client."""

    token: str
    api_url: str
    per_page: int
    max_pages: int
    timeout_seconds: float


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 GitHub timestamp into an aware datetime."""

    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def parse_poll_interval(value: str | None) -> float | None:
    """Return the `X-Poll-Interval` header as seconds, if present and valid."""

    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        logger.warning("Ignoring malformed X-Poll-Interval header: %r", value)
        return None


def load_github_config(token: str, app_settings: Settings | None = None) -> GitHubConfig:
    """Build a client configuration for ``token`` from global settings."""

    app_settings = app_settings or settings
    return GitHubConfig(
        token=token,
        api_url=app_settings.github_api_url.rstrip("/"),
        per_page=app_settings.github_per_page,
        max_pages=app_settings.github_max_pages,
        timeout_seconds=float(app_settings.http_timeout_seconds),
    )


def _retry_after(response: httpx.Response) -> float | None:
    retry_after = response.headers.get("Retry-After")
    if retry_after is not None:
        try:
            return float(retry_after)
        except ValueError:
            return None

    reset = response.headers.get("X-RateLimit-Reset")
    if reset is not None:
        try:
            return max(0.0, float(reset) - time.time())
        except ValueError:
            return None
    return None


def _is_rate_limited(response: httpx.Response) -> bool:
    if response.status_code == HTTP_TOO_MANY_REQUESTS:
        return True
    if response.status_code != HTTP_FORBIDDEN:
        return False
    return (
        response.headers.get("X-RateLimit-Remaining") == "0"
        or "Retry-After" in response.headers
    )


class GitHubClient:
    """HTTP client wrapper for the GitHub REST API."""

    def __init__(
        self,
        config: GitHubConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self.config.api_url,
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                    follow_redirects=True,
                    transport=self._transport,
                )

        return self._client

    def _build_headers(self, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self.config.token}",
            "User-Agent": settings.app_name,
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }
        if extra:
            headers.update(extra)
        return headers

    @dataclass
    class RequestParams:
        """Parameters for HTTP requests."""
        method: str
        path: str
        params: Mapping[str, Any] | None = None
        headers: dict[str, str] | None = None

    async def _request(self, params: RequestParams) -> httpx.Response:
        client = await self._ensure_client()
        endpoint = f"{params.method} {params.path}"

        try:
            response = await client.request(
                params.method,
                params.path,
                params=params.params,
                headers=self._build_headers(params.headers),
            )
        except httpx.HTTPError as exc:
            raise GitHubError(f"GitHub request {endpoint} failed: {exc}") from exc

        if _is_rate_limited(response):
            retry_after = _retry_after(response)
            raise GitHubRateLimitError(
                f"GitHub rate limit hit on {endpoint} ({response.status_code})",
                retry_after=retry_after,
            )
        if response.status_code >= HTTP_INTERNAL_SERVER_ERROR:
            raise GitHubError(f"GitHub responded with {response.status_code} to {endpoint}")

        return response

    async def list_notifications(self, if_modified_since: str | None = None) -> PollResult:
        """Poll the authenticated user's notifications.

        With ``if_modified_since`` set the request is conditional, GitHub may
        answer 304 and the result is `PollOutcome.NOT_MODIFIED`. Conditional
        polls also follow `Link: rel="next"` pages (up to `max_pages`) so
        that a burst of changes between polls is not cut at one page. An
        unconditional poll only establishes a baseline, so one page is
        enough.

        Raises:
            GitHubRateLimitError: GitHub refused the request for rate limiting.
            GitHubError: Any other transport or HTTP failure.
        """

        headers: dict[str, str] = {}
        if if_modified_since is not None:
            headers["If-Modified-Since"] = if_modified_since

        response = await self._request(
            self.RequestParams(
                method="GET",
                path="/notifications",
                params={"per_page": self.config.per_page},
                headers=headers,
            )
        )
        poll_interval = parse_poll_interval(response.headers.get("X-Poll-Interval"))

        if response.status_code == HTTP_NOT_MODIFIED:
            return PollResult(outcome=PollOutcome.NOT_MODIFIED, poll_interval=poll_interval)
        if response.status_code != HTTP_OK:
            raise GitHubError(
                f"Unexpected GitHub response ({response.status_code}) when listing notifications",
            )

        items: list[Mapping[str, Any]] = list(response.json())
        next_url = response.links.get("next", {}).get("url")
        pages = 1
        while if_modified_since is not None and next_url and pages < self.config.max_pages:
            page = await self._request(self.RequestParams(method="GET", path=next_url))
            if page.status_code != HTTP_OK:
                raise GitHubError(
                    f"Unexpected GitHub response ({page.status_code}) when paging notifications",
                )
            items.extend(page.json())
            next_url = page.links.get("next", {}).get("url")
            pages += 1

        if if_modified_since is not None and next_url:
            logger.warning(
                "Stopped paging notifications after %d pages; older changes will be skipped",
                pages,
            )

        return PollResult(
            outcome=PollOutcome.SUCCESS,
            notifications=[Notification.from_payload(item) for item in items],
            watermark=response.headers.get("Last-Modified"),
            poll_interval=poll_interval,
        )

    async def fetch_html_url(self, api_url: str) -> str:
        """Fetch an API resource and return its human-facing `html_url`.

        This needs read access to the resource, which the token may lack for
        private repositories; the failure is raised to the caller.
        """

        response = await self._request(self.RequestParams(method="GET", path=api_url))
        if response.status_code != HTTP_OK:
            raise GitHubError(
                f"Unexpected GitHub response ({response.status_code}) when fetching {api_url}",
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise GitHubError(f"GitHub resource {api_url} did not return JSON") from exc
        if not isinstance(body, Mapping):
            raise GitHubError(f"GitHub resource {api_url} did not return an object")

        html_url = body.get("html_url")
        if not html_url:
            raise GitHubError(f"GitHub resource {api_url} has no html_url")
        return str(html_url)

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""

        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None
