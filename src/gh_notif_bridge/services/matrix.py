"""Matrix client-server API client.

Only three endpoints are used: `whoami` to learn the bot's own user ID,
`/messages` to read room history backwards during checkpoint recovery, and
`/send` to post a notification message under a caller-chosen transaction ID.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import httpx

from gh_notif_bridge.core.settings import Settings, settings

# Configure logger for this module
logger = logging.getLogger(__name__)

CLIENT_API_PREFIX = "/_matrix/client/v3"
ROOM_MESSAGE_EVENT = "m.room.message"


class MatrixError(RuntimeError):
    """Raised for failed Matrix requests.

    `status_code` is set when the homeserver answered with an HTTP error.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class MatrixConfig:
    """Immutable configuration for the Matrix client."""

    hs_url: str
    access_token: str
    timeout_seconds: float


@dataclass(frozen=True)
class RoomMessagesPage:
    """One page of room history as returned by `/messages`."""

    events: list[Mapping[str, Any]] = field(default_factory=list)
    end: str | None = None


def load_matrix_config(
    hs_url: str, access_token: str, app_settings: Settings | None = None
) -> MatrixConfig:
    """Build a client configuration from the app config and global settings."""

    app_settings = app_settings or settings
    return MatrixConfig(
        hs_url=hs_url.rstrip("/"),
        access_token=access_token,
        timeout_seconds=float(app_settings.http_timeout_seconds),
    )


def _room_path(room_id: str) -> str:
    return f"{CLIENT_API_PREFIX}/rooms/{quote(room_id, safe='')}"


class MatrixClient:
    """HTTP client wrapper for a Matrix homeserver."""

    def __init__(
        self,
        config: MatrixConfig,
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
                    base_url=self.config.hs_url,
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                    headers={"Authorization": f"Bearer {self.config.access_token}"},
                    transport=self._transport,
                )

        return self._client

    @dataclass
    class RequestParams:
        """Parameters for HTTP requests."""
        method: str
        path: str
        json_data: Any | None = None
        params: Mapping[str, Any] | None = None

    async def _request(self, params: RequestParams) -> Any:
        client = await self._ensure_client()
        endpoint = f"{params.method} {params.path}"

        try:
            response = await client.request(
                params.method,
                params.path,
                json=params.json_data,
                params=params.params,
            )
        except httpx.HTTPError as exc:
            raise MatrixError(f"Matrix request {endpoint} failed: {exc}") from exc

        if not response.is_success:
            raise MatrixError(
                f"Matrix responded with {response.status_code} to {endpoint}: {response.text}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise MatrixError(f"Matrix sent a non-JSON body for {endpoint}") from exc

    async def whoami(self) -> str:
        """Return the user ID the access token belongs to."""

        body = await self._request(
            self.RequestParams(method="GET", path=f"{CLIENT_API_PREFIX}/account/whoami")
        )
        user_id = body.get("user_id")
        if not user_id:
            raise MatrixError("whoami response did not include a user_id")
        return str(user_id)

    async def room_messages(
        self,
        room_id: str,
        *,
        direction: str = "b",
        from_token: str | None = None,
        limit: int | None = None,
    ) -> RoomMessagesPage:
        """Read one page of a room's history, newest first by default."""

        query: dict[str, Any] = {"dir": direction}
        if from_token is not None:
            query["from"] = from_token
        if limit is not None:
            query["limit"] = limit

        body = await self._request(
            self.RequestParams(method="GET", path=f"{_room_path(room_id)}/messages", params=query)
        )
        return RoomMessagesPage(events=list(body.get("chunk") or []), end=body.get("end"))

    async def send_message(
        self, room_id: str, txn_id: str, content: Mapping[str, Any]
    ) -> str | None:
        """Send an `m.room.message` event and return its event ID.

        The homeserver treats a repeated ``txn_id`` from the same access token
        as the same request, so retries never produce a second message.
        """

        path = f"{_room_path(room_id)}/send/{ROOM_MESSAGE_EVENT}/{quote(txn_id, safe='')}"
        body = await self._request(
            self.RequestParams(method="PUT", path=path, json_data=dict(content))
        )
        return body.get("event_id")

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""

        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None
