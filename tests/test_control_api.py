"""Tests for the HTTP control API."""

import pytest
import pytest_asyncio
import aiohttp
from aiohttp.test_utils import unused_port

from zipcaptions_relay.control.api import ControlAPI
from zipcaptions_relay.control.dispatcher import CommandDispatcher


@pytest_asyncio.fixture
async def api_url(manager, status, port):
    await manager.start(port)
    control_port = unused_port()
    api = ControlAPI(CommandDispatcher(manager, status), manager, status,
                     host="127.0.0.1", port=control_port)
    await api.start()
    yield f"http://127.0.0.1:{control_port}"
    await api.stop()


@pytest_asyncio.fixture
async def session():
    async with aiohttp.ClientSession() as s:
        yield s


class TestControlAPI:
    """Tests for ControlAPI endpoints."""

    @pytest.mark.asyncio
    async def test_status_without_peer(self, api_url, session, port):
        async with session.get(f"{api_url}/status") as resp:
            assert resp.status == 200
            body = await resp.json()
        assert body["status"] == "connecting"
        assert body["state"] == "BOUND_NO_PEER"
        assert body["connected"] is False
        assert body["port"] == port

    @pytest.mark.asyncio
    async def test_list_commands(self, api_url, session):
        async with session.get(f"{api_url}/commands") as resp:
            body = await resp.json()
        assert [c["id"] for c in body["commands"]] == ["PLAY_PAUSE", "TOGGLE_LISTEN"]

    @pytest.mark.asyncio
    async def test_post_command_not_connected(self, api_url, session):
        async with session.post(f"{api_url}/commands", json={"command": "PLAY_PAUSE"}) as resp:
            assert resp.status == 503
            body = await resp.json()
        assert body["result"] == "not_connected"

        async with session.get(f"{api_url}/status") as resp:
            status = await resp.json()
        assert status["status"] == "warning"
        assert status["detail"] == "Extension Not Connected"

    @pytest.mark.asyncio
    async def test_post_command_forwarded_to_peer(self, api_url, session, manager, port, wait_until):
        ws = await session.ws_connect(f"http://127.0.0.1:{port}/")
        await wait_until(lambda: manager.is_connected)

        async with session.post(f"{api_url}/commands", json={"command": "TOGGLE_LISTEN"}) as resp:
            assert resp.status == 200
            body = await resp.json()
        assert body == {"command": "TOGGLE_LISTEN", "result": "sent"}
        assert await ws.receive_str(timeout=1.0) == "TOGGLE_LISTEN"
        await ws.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [{"command": "SHUTDOWN"}, {}, ["PLAY_PAUSE"]])
    async def test_post_invalid_command(self, api_url, session, payload):
        async with session.post(f"{api_url}/commands", json=payload) as resp:
            assert resp.status == 400
            body = await resp.json()
        assert "error" in body

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", [b"not json", b'{"command": "\xff"}'])
    async def test_post_invalid_json(self, api_url, session, raw):
        async with session.post(f"{api_url}/commands", data=raw,
                                headers={"Content-Type": "application/json"}) as resp:
            assert resp.status == 400
            body = await resp.json()
        assert body == {"error": "Invalid JSON"}
