"""Relay worker for one GitHub account.

This module provides the AccountWorker class, which owns the GitHub and
Matrix clients for one (account, room) pair and runs the poll loop:

- Recover the last watermark from the room once at startup
- Poll GitHub, turning failures into transient poll results
- Deliver the planned notifications oldest first, tagged with the watermark
- Adopt the new state and sleep for the planned delay
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from gh_notif_bridge.core.config import AccountConfig, AppConfig
from gh_notif_bridge.core.settings import Settings, settings
from gh_notif_bridge.services.checkpoint import WATERMARK_KEY, recover_watermark
from gh_notif_bridge.services.formatter import NotificationFormatter
from gh_notif_bridge.services.github import (
    GitHubClient,
    GitHubError,
    GitHubRateLimitError,
    Notification,
    PollOutcome,
    PollResult,
    load_github_config,
)
from gh_notif_bridge.services.links import LinkResolver, default_rules
from gh_notif_bridge.services.matrix import MatrixClient, MatrixError, load_matrix_config
from gh_notif_bridge.services.poller import SyncState, plan_poll, watermark_instant

# Configure logger for this module
logger = logging.getLogger(__name__)

HTML_FORMAT = "org.matrix.custom.html"

Sleeper = Callable[[float], Awaitable[Any]]


def txn_id_for(notification: Notification) -> str:
    """Transaction ID for a notification: its ID plus update time in epoch millis."""

    return f"{notification.id}{int(notification.updated_at.timestamp() * 1000)}"


def build_message_content(plain: str, rich: str, watermark: str) -> dict[str, str]:
    """Content of the `m.room.message` event posted for one notification."""

    return {
        "msgtype": "m.text",
        "body": plain,
        "format": HTML_FORMAT,
        "formatted_body": rich,
        WATERMARK_KEY: watermark,
    }


class AccountWorker:
    """Relays one GitHub account's notifications into one Matrix room."""

    def __init__(
        self,
        account: AccountConfig,
        self_user_id: str,
        github: GitHubClient,
        matrix: MatrixClient,
        formatter: NotificationFormatter,
        *,
        app_settings: Settings | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.account = account
        self.self_user_id = self_user_id
        self.github = github
        self.matrix = matrix
        self.formatter = formatter
        self.settings = app_settings or settings
        self.state = SyncState()
        self._sleep = sleep

    async def recover(self) -> None:
        """Load the last watermark posted to the room, if any."""

        watermark = await recover_watermark(
            self.matrix,
            self.account.matrix_room_id,
            self.self_user_id,
            page_size=self.settings.matrix_history_page_size,
            max_pages=self.settings.checkpoint_max_pages,
        )
        if watermark is not None:
            try:
                watermark_instant(watermark)
            except (TypeError, ValueError):
                logger.warning(
                    "[%s] Ignoring unparseable watermark %r from room history",
                    self.account.name,
                    watermark,
                )
                watermark = None
        self.state = SyncState(watermark=watermark)

    async def poll(self) -> PollResult:
        """Poll GitHub once; failures become a transient-failure result."""

        if self.state.watermark is not None:
            logger.info(
                "[%s] Polling with if-modified-since: %s", self.account.name, self.state.watermark
            )

        try:
            return await self.github.list_notifications(self.state.watermark)
        except GitHubRateLimitError as e:
            logger.warning(
                "[%s] Rate limited by GitHub (retry after %s): %s",
                self.account.name,
                e.retry_after,
                e,
            )
            return PollResult(outcome=PollOutcome.TRANSIENT_FAILURE, error=e)
        except GitHubError as e:
            logger.warning("[%s] Error whilst polling: %s", self.account.name, e)
            return PollResult(outcome=PollOutcome.TRANSIENT_FAILURE, error=e)
        except (ValueError, TypeError, KeyError) as e:
            logger.error(
                "[%s] Malformed notifications response: %s", self.account.name, e, exc_info=True
            )
            return PollResult(outcome=PollOutcome.TRANSIENT_FAILURE, error=e)

    async def deliver(self, notification: Notification, watermark: str) -> bool:
        """Post one notification to the room. Returns False if it failed."""

        logger.info(
            "[%s] Processing notif ID %s, updated at %s",
            self.account.name,
            notification.id,
            notification.updated_at.isoformat(),
        )
        try:
            plain, rich = await self.formatter.render_both(notification)
            await self.matrix.send_message(
                self.account.matrix_room_id,
                txn_id_for(notification),
                build_message_content(plain, rich, watermark),
            )
        except (GitHubError, MatrixError) as e:
            logger.error(
                "[%s] Failed to deliver notif ID %s updated at %s: %s",
                self.account.name,
                notification.id,
                notification.updated_at.isoformat(),
                e,
            )
            return False
        return True

    async def step(self) -> float:
        """Run one poll and its deliveries; return the delay before the next poll."""

        result = await self.poll()
        plan = plan_poll(
            self.state,
            result,
            min_interval=self.settings.min_poll_interval_seconds,
            error_backoff=self.settings.error_backoff_seconds,
        )

        watermark = plan.next_state.watermark
        if plan.deliveries and watermark is not None:
            for notification in plan.deliveries:
                await self.deliver(notification, watermark)

        self.state = plan.next_state
        return plan.delay

    async def run(self) -> None:
        """Recover the checkpoint, then poll until the process ends."""

        await self.recover()
        while True:
            delay = await self.step()
            logger.info("[%s] Polling again in %s", self.account.name, delay)
            await self._sleep(delay)

    async def close(self) -> None:
        await self.github.close()
        await self.matrix.close()


def create_worker(
    account: AccountConfig,
    app_config: AppConfig,
    self_user_id: str,
    *,
    app_settings: Settings | None = None,
) -> AccountWorker:
    """Wire up a worker with its own GitHub and Matrix clients."""

    app_settings = app_settings or settings
    github = GitHubClient(load_github_config(account.github_token, app_settings))
    matrix = MatrixClient(
        load_matrix_config(
            app_config.matrix_hs_url, app_config.matrix_access_token, app_settings
        )
    )
    links = LinkResolver(
        default_rules(app_settings.github_api_url, app_settings.github_web_url),
        github.fetch_html_url,
    )
    return AccountWorker(
        account,
        self_user_id,
        github,
        matrix,
        NotificationFormatter(links),
        app_settings=app_settings,
    )
