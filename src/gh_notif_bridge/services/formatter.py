"""Render notifications as one-line chat messages."""

from __future__ import annotations

import html
import logging

from gh_notif_bridge.services.github import Notification
from gh_notif_bridge.services.links import LinkResolver

logger = logging.getLogger(__name__)


def split_camel_case(value: str) -> str:
    """Insert a space before each inner capital: "PullRequest" -> "Pull Request"."""

    out: list[str] = []
    for char in value:
        if char.isupper() and out:
            out.append(" ")
        out.append(char)
    return "".join(out)


def format_reason(reason: str) -> str:
    """Turn "review_requested" into "Review requested"."""

    reason = reason.replace("_", " ")
    return reason[:1].upper() + reason[1:]


def item_number(subject_url: str | None) -> str | None:
    """Return the trailing path segment of a subject URL (the PR/issue number)."""

    if not subject_url:
        return None
    return subject_url.rstrip("/").rsplit("/", 1)[-1] or None


class NotificationFormatter:
    """Produces the plain and HTML bodies for a notification message."""

    def __init__(self, links: LinkResolver) -> None:
        self._links = links

    async def render(self, notification: Notification, *, html_mode: bool = False) -> str:
        """Render ``notification`` as a single line.

        In HTML mode the subject type is linked to the resolved web URL; link
        resolution errors propagate.
        """

        title = split_camel_case(notification.subject_type)
        reason = format_reason(notification.reason)
        number = item_number(notification.subject_url)
        if number is None:
            logger.warning("Notification %s has no subject url", notification.id)

        repo = notification.repository_name
        subject = notification.subject_title
        if html_mode:
            title = html.escape(title)
            if notification.subject_url:
                link = await self._links.resolve(notification.subject_url)
                title = f'<a href="{html.escape(link, quote=True)}">{title}</a>'
            repo = html.escape(repo)
            subject = html.escape(subject)
            reason = html.escape(reason)

        where = f"{repo} #{number}" if number is not None else repo
        return f"{title} {where}: {subject} ({reason})"

    async def render_both(self, notification: Notification) -> tuple[str, str]:
        """Return ``(plain, html)`` bodies for ``notification``."""

        plain = await self.render(notification)
        rich = await self.render(notification, html_mode=True)
        return plain, rich
