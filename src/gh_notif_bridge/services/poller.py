"""Poll state machine for one account.

The loop has two modes. Without a baseline (first run, or a room the bot has
never posted to) the first successful poll only records GitHub's watermark:
there is no way to tell new notifications from backlog, so nothing is
delivered. Once tracking, each successful poll delivers the notifications
updated after the previous watermark, oldest first, and then moves the
watermark forward.

`plan_poll` is a pure function from (state, poll result) to a plan; the
worker carries out the deliveries and only then adopts the new state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from enum import Enum

from gh_notif_bridge.services.github import Notification, PollOutcome, PollResult

logger = logging.getLogger(__name__)

MIN_POLL_INTERVAL_SECONDS = 60.0
ERROR_BACKOFF_SECONDS = 60.0


class SyncMode(Enum):
    """Whether a watermark is known for the account."""

    NO_BASELINE = "no_baseline"
    TRACKING = "tracking"


@dataclass(frozen=True)
class SyncState:
    """Progress of one account, as far as this process knows."""

    watermark: str | None = None

    @property
    def mode(self) -> SyncMode:
        return SyncMode.TRACKING if self.watermark else SyncMode.NO_BASELINE


@dataclass(frozen=True)
class PollPlan:
    """What to do after a poll: deliver, adopt ``next_state``, sleep ``delay``."""

    next_state: SyncState
    delay: float
    deliveries: list[Notification] = field(default_factory=list)


def watermark_instant(watermark: str) -> datetime:
    """Return the instant a `Last-Modified` watermark stands for."""

    instant = parsedate_to_datetime(watermark)
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=UTC)
    return instant


def next_poll_delay(
    poll_interval: float | None, min_interval: float = MIN_POLL_INTERVAL_SECONDS
) -> float:
    """GitHub's suggested interval, never below ``min_interval``."""

    if poll_interval is None:
        return min_interval
    return max(poll_interval, min_interval)


def select_new(notifications: list[Notification], watermark: str) -> list[Notification]:
    """Notifications updated strictly after ``watermark``, oldest first.

    GitHub lists newest first; reversing gives oldest first, and the stable
    sort only matters if the listing was not perfectly ordered.
    """

    since = watermark_instant(watermark)
    fresh = [n for n in reversed(notifications) if n.updated_at > since]
    return sorted(fresh, key=lambda n: n.updated_at)


def plan_poll(
    state: SyncState,
    result: PollResult,
    *,
    min_interval: float = MIN_POLL_INTERVAL_SECONDS,
    error_backoff: float = ERROR_BACKOFF_SECONDS,
) -> PollPlan:
    """Decide deliveries, next state and sleep for one poll result."""

    if result.outcome is PollOutcome.TRANSIENT_FAILURE:
        return PollPlan(next_state=state, delay=error_backoff)

    delay = next_poll_delay(result.poll_interval, min_interval)

    if result.outcome is PollOutcome.NOT_MODIFIED:
        logger.info("Not modified")
        return PollPlan(next_state=state, delay=delay)

    watermark = state.watermark
    if state.mode is SyncMode.NO_BASELINE or watermark is None:
        logger.info(
            "No previous notification: ignoring %d notifs and starting from %s",
            len(result.notifications),
            result.watermark,
        )
        return PollPlan(next_state=SyncState(watermark=result.watermark), delay=delay)

    if not result.notifications:
        # GitHub should have answered 304 instead
        logger.warning("No notifs despite a changed response (this probably shouldn't happen)")

    deliveries = select_new(result.notifications, watermark)
    next_state = SyncState(watermark=result.watermark or watermark)
    return PollPlan(next_state=next_state, delay=delay, deliveries=deliveries)
