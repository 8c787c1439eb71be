"""LivenessProber - keeps the extension's service worker awake.

Chrome suspends idle extension service workers, which drops the socket.
Sending a bare ``PING`` text frame on a fixed cadence prevents that.

Rules:
- One prober task per live connection, owned by the ConnectionManager
- Tick on a stale or closed connection -> no-op (NOT self-cancelling)
- Probe send failure -> log, never raise (keepalive is best-effort)
- stop() is synchronous and idempotent
"""

import asyncio
import logging
from typing import Callable, Optional

from zipcaptions_relay.config.settings import PROBE_INTERVAL_SECONDS, PROBE_TOKEN

logger = logging.getLogger(__name__)


class ProbeSendFailure(Exception):
    """A keepalive probe could not be delivered."""


class LivenessProber:
    """Recurring PING sender bound to a single connection.

    ``is_live`` is asked on every tick whether the connection is still the
    manager's active, open peer.
    """

    def __init__(self, is_live: Callable[[object], bool], metrics=None):
        self._is_live = is_live
        self._metrics = metrics
        self._task: Optional[asyncio.Task] = None
        self._connection = None

        # Metrics
        self._probes_sent = 0
        self._probe_failures = 0
        self._ticks_skipped = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def connection(self):
        return self._connection

    def start_for(self, connection, interval: float = PROBE_INTERVAL_SECONDS):
        """Begin probing ``connection`` every ``interval`` seconds.

        Any previous tick is cancelled first, so at most one timer exists.
        """
        self.stop()
        self._connection = connection
        self._task = asyncio.get_running_loop().create_task(
            self._tick_loop(connection, interval),
            name="liveness-prober",
        )
        logger.debug(f"Liveness prober started (interval={interval}s)")

    def stop(self):
        """Cancel the recurring tick. Safe to call when not running."""
        task, self._task = self._task, None
        self._connection = None
        if task is not None and not task.done():
            task.cancel()
            logger.debug("Liveness prober stopped")

    async def _tick_loop(self, connection, interval: float):
        while True:
            await asyncio.sleep(interval)
            if not self._is_live(connection):
                self._ticks_skipped += 1
                continue
            try:
                await self._send_probe(connection)
            except ProbeSendFailure as e:
                self._probe_failures += 1
                if self._metrics is not None:
                    self._metrics.probe_failures.inc()
                logger.warning(f"Keepalive probe failed: {e}")

    async def _send_probe(self, connection):
        try:
            await connection.send_str(PROBE_TOKEN)
        except Exception as e:
            raise ProbeSendFailure(str(e) or type(e).__name__) from e
        self._probes_sent += 1
        if self._metrics is not None:
            self._metrics.probes_sent.inc()
        logger.debug("Sent PING to extension.")

    def get_metrics(self) -> dict:
        return {
            "running": self.running,
            "probes_sent": self._probes_sent,
            "probe_failures": self._probe_failures,
            "ticks_skipped": self._ticks_skipped,
        }
