"""Tests for the Matrix client against a mocked transport."""

import json

import httpx
import pytest

from gh_notif_bridge.services.matrix import MatrixClient, MatrixConfig, MatrixError
from tests.conftest import BOT_USER_ID, ROOM_ID

ENCODED_ROOM = "%21notifications%3Aexample.org"


def make_client(handler):
    config = MatrixConfig(
        hs_url="https://matrix.example.org", access_token="syt_test", timeout_seconds=5.0
    )
    return MatrixClient(config, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_whoami():
    def handler(request):
        assert request.url.path == "/_matrix/client/v3/account/whoami"
        assert request.headers["Authorization"] == "Bearer syt_test"
        return httpx.Response(200, json={"user_id": BOT_USER_ID})

    client = make_client(handler)

    assert await client.whoami() == BOT_USER_ID
    await client.close()


@pytest.mark.asyncio
async def test_whoami_without_user_id():
    client = make_client(lambda request: httpx.Response(200, json={}))

    with pytest.raises(MatrixError, match="user_id"):
        await client.whoami()


@pytest.mark.asyncio
async def test_room_messages_reads_backwards():
    def handler(request):
        assert request.url.raw_path.decode().startswith(
            f"/_matrix/client/v3/rooms/{ENCODED_ROOM}/messages"
        )
        assert request.url.params["dir"] == "b"
        assert request.url.params["from"] == "t1"
        assert request.url.params["limit"] == "20"
        return httpx.Response(
            200,
            json={"chunk": [{"type": "m.room.message", "sender": BOT_USER_ID}], "end": "t2"},
        )

    client = make_client(handler)
    page = await client.room_messages(ROOM_ID, from_token="t1", limit=20)

    assert page.end == "t2"
    assert page.events == [{"type": "m.room.message", "sender": BOT_USER_ID}]


@pytest.mark.asyncio
async def test_room_messages_end_of_history():
    client = make_client(lambda request: httpx.Response(200, json={"chunk": [], "start": "t9"}))

    page = await client.room_messages(ROOM_ID)

    assert page.events == []
    assert page.end is None


@pytest.mark.asyncio
async def test_send_message_puts_under_transaction_id():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"event_id": "$abc"})

    client = make_client(handler)
    content = {"msgtype": "m.text", "body": "hello", "gh_last_mod": "Mon, 02 Jan 2023"}

    event_id = await client.send_message(ROOM_ID, "1231672653900000", content)

    assert event_id == "$abc"
    request = seen[0]
    assert request.method == "PUT"
    assert request.url.raw_path.decode() == (
        f"/_matrix/client/v3/rooms/{ENCODED_ROOM}/send/m.room.message/1231672653900000"
    )
    assert json.loads(request.content) == content


@pytest.mark.asyncio
async def test_http_error_raises_with_status():
    client = make_client(
        lambda request: httpx.Response(403, json={"errcode": "M_FORBIDDEN", "error": "nope"})
    )

    with pytest.raises(MatrixError) as excinfo:
        await client.send_message(ROOM_ID, "txn", {"body": "x"})

    assert excinfo.value.status_code == 403


@pytest.mark.asyncio
async def test_transport_error_is_wrapped():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    client = make_client(handler)

    with pytest.raises(MatrixError, match="timed out"):
        await client.whoami()
