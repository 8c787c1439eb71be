"""Tests for the liveness prober."""

import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock

from zipcaptions_relay.relay.prober import LivenessProber

INTERVAL = 0.05


def make_connection():
    conn = MagicMock()
    conn.send_str = AsyncMock()
    return conn


def prober_tasks():
    return [t for t in asyncio.all_tasks() if t.get_name() == "liveness-prober" and not t.done()]


class TestLivenessProber:
    """Tests for LivenessProber tick behaviour."""

    @pytest.mark.asyncio
    async def test_sends_ping_each_tick(self):
        conn = make_connection()
        prober = LivenessProber(lambda c: True)
        prober.start_for(conn, INTERVAL)
        await asyncio.sleep(INTERVAL * 3.5)
        prober.stop()
        assert conn.send_str.await_count == 3
        conn.send_str.assert_awaited_with("PING")
        assert prober.get_metrics()["probes_sent"] == 3

    @pytest.mark.asyncio
    async def test_nothing_sent_before_first_interval(self):
        conn = make_connection()
        prober = LivenessProber(lambda c: True)
        prober.start_for(conn, 1.0)
        await asyncio.sleep(0.05)
        prober.stop()
        conn.send_str.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stale_connection_tick_is_noop_and_keeps_running(self):
        conn = make_connection()
        live = {"value": False}
        prober = LivenessProber(lambda c: live["value"])
        prober.start_for(conn, INTERVAL)

        await asyncio.sleep(INTERVAL * 2.5)
        conn.send_str.assert_not_awaited()
        assert prober.running
        assert prober.get_metrics()["ticks_skipped"] >= 2

        live["value"] = True
        await asyncio.sleep(INTERVAL * 1.5)
        prober.stop()
        conn.send_str.assert_awaited_with("PING")

    @pytest.mark.asyncio
    async def test_send_failure_is_swallowed(self):
        conn = make_connection()
        conn.send_str.side_effect = ConnectionResetError("Cannot write to closing transport")
        metrics = MagicMock()
        prober = LivenessProber(lambda c: True, metrics=metrics)
        prober.start_for(conn, INTERVAL)
        await asyncio.sleep(INTERVAL * 2.5)

        assert prober.running
        prober.stop()
        assert prober.get_metrics()["probe_failures"] == 2
        assert prober.get_metrics()["probes_sent"] == 0
        assert metrics.probe_failures.inc.call_count == 2

    @pytest.mark.asyncio
    async def test_stop_prevents_further_probes(self):
        conn = make_connection()
        prober = LivenessProber(lambda c: True)
        prober.start_for(conn, INTERVAL)
        await asyncio.sleep(INTERVAL * 1.5)
        prober.stop()
        sent = conn.send_str.await_count
        await asyncio.sleep(INTERVAL * 3)
        assert conn.send_str.await_count == sent
        assert not prober.running

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self):
        prober = LivenessProber(lambda c: True)
        prober.stop()
        prober.start_for(make_connection(), INTERVAL)
        prober.stop()
        prober.stop()
        assert not prober.running
        assert prober.connection is None

    @pytest.mark.asyncio
    async def test_restart_keeps_single_timer(self):
        first = make_connection()
        second = make_connection()
        prober = LivenessProber(lambda c: True)
        prober.start_for(first, INTERVAL)
        prober.start_for(second, INTERVAL)
        await asyncio.sleep(INTERVAL * 2.5)
        assert len(prober_tasks()) == 1

        prober.stop()
        await asyncio.sleep(0)  # let the cancellation land

        first.send_str.assert_not_awaited()
        assert second.send_str.await_count == 2
        assert prober_tasks() == []
