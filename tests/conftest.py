# tests/conftest.py
from __future__ import annotations

from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock

import pytest

from gh_notif_bridge.core.config import AccountConfig
from gh_notif_bridge.core.settings import Settings
from gh_notif_bridge.services.formatter import NotificationFormatter
from gh_notif_bridge.services.github import GitHubClient, Notification, parse_timestamp
from gh_notif_bridge.services.links import LinkResolver, default_rules
from gh_notif_bridge.services.matrix import MatrixClient

BOT_USER_ID = "@notifbot:example.org"
ROOM_ID = "!notifications:example.org"
WATERMARK = "Mon, 02 Jan 2023 10:00:00 GMT"
NEXT_WATERMARK = "Mon, 02 Jan 2023 10:10:00 GMT"
API_URL = "https://api.github.com"
WEB_URL = "https://github.com"


def notification_payload(
    notif_id: str = "1",
    updated_at: str = "2023-01-02T10:05:00Z",
    *,
    subject_type: str = "PullRequest",
    subject_url: str | None = f"{API_URL}/repos/acme/widgets/pulls/42",
    title: str = "Fix bug",
    reason: str = "review_requested",
    repository: str = "acme/widgets",
) -> dict[str, Any]:
    """A notification item shaped like the GitHub API returns it."""
    owner, _, name = repository.partition("/")
    return {
        "id": notif_id,
        "unread": True,
        "reason": reason,
        "updated_at": updated_at,
        "subject": {"type": subject_type, "url": subject_url, "title": title},
        "repository": {"name": name, "full_name": repository, "owner": {"login": owner}},
    }


@pytest.fixture
def make_notification() -> Callable[..., Notification]:
    def _make(
        notif_id: str = "1",
        updated_at: str = "2023-01-02T10:05:00Z",
        **overrides: Any,
    ) -> Notification:
        return Notification(
            id=notif_id,
            subject_type=overrides.get("subject_type", "PullRequest"),
            subject_url=overrides.get("subject_url", f"{API_URL}/repos/acme/widgets/pulls/42"),
            subject_title=overrides.get("title", "Fix bug"),
            reason=overrides.get("reason", "review_requested"),
            repository_name=overrides.get("repository", "acme/widgets"),
            updated_at=parse_timestamp(updated_at),
        )

    return _make


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        GITHUB_API_URL=API_URL,
        GITHUB_WEB_URL=WEB_URL,
        MIN_POLL_INTERVAL_SECONDS=60.0,
        ERROR_BACKOFF_SECONDS=60.0,
        MATRIX_HISTORY_PAGE_SIZE=100,
        CHECKPOINT_MAX_PAGES=None,
    )


@pytest.fixture
def account() -> AccountConfig:
    return AccountConfig(name="work", github_token="ghp_test", matrix_room_id=ROOM_ID)


@pytest.fixture
def mock_github():
    client = AsyncMock(spec=GitHubClient)
    client.fetch_html_url.return_value = "https://github.com/acme/widgets/commit/abc"
    return client


@pytest.fixture
def mock_matrix():
    client = AsyncMock(spec=MatrixClient)
    client.send_message.return_value = "$event"
    return client


@pytest.fixture
def formatter(mock_github) -> NotificationFormatter:
    links = LinkResolver(default_rules(API_URL, WEB_URL), mock_github.fetch_html_url)
    return NotificationFormatter(links)
