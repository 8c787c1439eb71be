"""Pytest configuration and shared fixtures."""
import asyncio
import os
import sys

import pytest
import pytest_asyncio
from aiohttp.test_utils import unused_port

# Ensure the project root is on sys.path so 'zipcaptions_relay' is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from zipcaptions_relay.relay.manager import ConnectionManager
from zipcaptions_relay.relay.status import StatusReporter

# Fast cadence so keepalive tests finish quickly
TEST_PROBE_INTERVAL = 0.3


@pytest.fixture
def port():
    return unused_port()


@pytest.fixture
def status():
    return StatusReporter()


@pytest_asyncio.fixture
async def manager(status):
    mgr = ConnectionManager(status, host="127.0.0.1", probe_interval=TEST_PROBE_INTERVAL)
    yield mgr
    await mgr.stop()


@pytest.fixture
def wait_until():
    """Poll ``predicate`` until true; fails the test after ``timeout`` seconds."""
    async def _wait(predicate, timeout: float = 2.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                pytest.fail("condition not met in time")
            await asyncio.sleep(0.01)
    return _wait
