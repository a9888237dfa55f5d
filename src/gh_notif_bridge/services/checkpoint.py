"""Recover the last processed watermark from a room's history.

The relay keeps no local state. Every message it posts carries the GitHub
`Last-Modified` value it was acting on under `WATERMARK_KEY`, so the newest
such message in the room tells us where to resume.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from gh_notif_bridge.services.matrix import ROOM_MESSAGE_EVENT, MatrixClient

logger = logging.getLogger(__name__)

WATERMARK_KEY = "gh_last_mod"


def watermark_from_event(event: Mapping[str, Any], self_user_id: str) -> str | None:
    """Return the watermark carried by ``event`` if the bot sent it."""

    if event.get("sender") != self_user_id:
        return None
    if event.get("type") != ROOM_MESSAGE_EVENT:
        return None

    content = event.get("content") or {}
    watermark = content.get(WATERMARK_KEY)
    if isinstance(watermark, str) and watermark:
        return watermark
    return None


async def recover_watermark(
    matrix: MatrixClient,
    room_id: str,
    self_user_id: str,
    *,
    page_size: int | None = None,
    max_pages: int | None = None,
) -> str | None:
    """Scan ``room_id`` newest first for the bot's most recent watermark.

    Returns None once history is exhausted (or ``max_pages`` pages were read)
    without finding one.
    """

    from_token: str | None = None
    pages = 0

    while max_pages is None or pages < max_pages:
        page = await matrix.room_messages(
            room_id, direction="b", from_token=from_token, limit=page_size
        )
        pages += 1

        for event in page.events:
            watermark = watermark_from_event(event, self_user_id)
            if watermark:
                logger.info("Found last notification in %s with ts %s", room_id, watermark)
                return watermark

        # an empty chunk with an end token is not the start of the room
        if not page.end or page.end == from_token:
            return None
        from_token = page.end

    logger.warning(
        "No watermark in the last %d pages of %s; treating history as exhausted",
        pages,
        room_id,
    )
    return None
