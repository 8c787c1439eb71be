"""ConnectionManager - single-peer WebSocket listener for the extension.

Rules:
- At most ONE active peer; a newer connection supersedes the older one,
  which is force-closed (1001 going away)
- Peer connect -> start liveness prober; peer close -> stop prober in the
  same handler, before control returns to the loop
- Stale close/error events from a superseded peer are ignored
- send_command() with no peer -> NOT_CONNECTED result, never an exception
- stop() releases the listener on every exit path and is idempotent

State machine:
    UNBOUND -> BOUND_NO_PEER <-> BOUND_CONNECTED -> (stop) UNBOUND
"""

import errno
import logging
from enum import Enum
from typing import Optional

from aiohttp import WSCloseCode, WSMsgType, web

from zipcaptions_relay.config.settings import PROBE_INTERVAL_SECONDS
from zipcaptions_relay.relay.prober import LivenessProber
from zipcaptions_relay.relay.status import ConnectionStatus, StatusReporter

logger = logging.getLogger(__name__)


class ManagerState(str, Enum):
    UNBOUND = "UNBOUND"
    BOUND_NO_PEER = "BOUND_NO_PEER"
    BOUND_CONNECTED = "BOUND_CONNECTED"


class SendResult(str, Enum):
    SENT = "sent"
    NOT_CONNECTED = "not_connected"


class BindError(Exception):
    """The listener could not be established on the requested port."""

    def __init__(self, port: int, cause: OSError):
        self.port = port
        self.cause = cause
        super().__init__(f"Cannot listen on port {port}: {cause}")

    @property
    def address_in_use(self) -> bool:
        return self.cause.errno == errno.EADDRINUSE


class PeerError(Exception):
    """Transport-level error on the active extension connection."""


class ConnectionManager:
    """Owns the listener and the single extension connection.

    The manager is the only writer of the active peer reference and of the
    prober; ``send_command`` only reads them.
    """

    def __init__(self, status: StatusReporter, host: str = "0.0.0.0", ws_path: str = "/",
                 probe_interval: float = PROBE_INTERVAL_SECONDS, metrics=None):
        self._status = status
        self._host = host
        self._ws_path = ws_path
        self._probe_interval = probe_interval
        self._metrics = metrics

        self._runner: Optional[web.AppRunner] = None
        self._port: Optional[int] = None
        self._peer: Optional[web.WebSocketResponse] = None
        self._prober = LivenessProber(self._is_live, metrics=metrics)
        self._last_error: Optional[PeerError] = None

        # Metrics
        self._connections_accepted = 0
        self._connections_superseded = 0
        self._commands_sent = 0
        self._commands_not_sent = 0

    # === Public API ===

    @property
    def state(self) -> ManagerState:
        if self._runner is None:
            return ManagerState.UNBOUND
        if self._peer is None:
            return ManagerState.BOUND_NO_PEER
        return ManagerState.BOUND_CONNECTED

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> Optional[int]:
        """Port actually bound, or None when unbound."""
        return self._port

    @property
    def is_connected(self) -> bool:
        return self._is_live(self._peer)

    @property
    def prober(self) -> LivenessProber:
        return self._prober

    @property
    def last_error(self) -> Optional[PeerError]:
        return self._last_error

    async def start(self, port: int):
        """Bind the listener on ``port``.

        Raises:
            BindError: the port is in use or otherwise unavailable.
        """
        if self._runner is not None:
            raise RuntimeError(f"Already listening on port {self._port}; use restart()")

        app = web.Application()
        app.router.add_get(self._ws_path, self._handle_peer)
        app.on_shutdown.append(self._on_app_shutdown)

        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, self._host, port)
        try:
            await site.start()
        except OSError as e:
            await runner.cleanup()
            self._on_bind_failed(port, e)
            raise BindError(port, e) from e

        self._runner = runner
        self._port = self._bound_port(runner, port)
        logger.info(f"WebSocket server listening on port {self._port}")
        self._status.update(ConnectionStatus.CONNECTING, f"Waiting for Extension on port {self._port}")

    async def stop(self):
        """Close the peer, cancel the prober, release the listener."""
        peer, self._peer = self._peer, None
        self._prober.stop()
        runner, self._runner = self._runner, None
        self._port = None
        if self._metrics is not None:
            self._metrics.peer_connected.set(0)
        if peer is not None:
            self._status.update(ConnectionStatus.WARNING, "Disconnected from Extension")

        try:
            if peer is not None and not peer.closed:
                await peer.close(code=WSCloseCode.GOING_AWAY, message=b"Server shutting down")
        except Exception as e:
            logger.warning(f"Error closing extension connection: {e}")
        finally:
            if runner is not None:
                await runner.cleanup()
                logger.info("WebSocket server stopped")

    async def restart(self, port: int, host: Optional[str] = None):
        """Rebind on ``port`` (and ``host``, if given); used when configuration changes."""
        logger.debug("Configuration updated. Restarting WebSocket server...")
        await self.stop()
        if host is not None:
            self._host = host
        await self.start(port)

    async def send_command(self, token: str) -> SendResult:
        """Forward ``token`` verbatim to the extension, if one is connected."""
        peer = self._peer
        if not self._is_live(peer):
            self._commands_not_sent += 1
            logger.warning(f'No WebSocket client connected or client not ready. Command "{token}" not sent.')
            return SendResult.NOT_CONNECTED

        try:
            await peer.send_str(token)
        except (ConnectionError, RuntimeError) as e:
            self._commands_not_sent += 1
            logger.warning(f'Command "{token}" not sent, connection is going away: {e}')
            return SendResult.NOT_CONNECTED

        self._commands_sent += 1
        logger.info(f'Command "{token}" sent.')
        return SendResult.SENT

    # === Listener handlers ===

    async def _handle_peer(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        superseded = self._on_connection_established(ws, request.remote)
        if superseded is not None:
            await self._close_superseded(superseded)

        reason = ""
        try:
            while True:
                msg = await ws.receive()
                if msg.type == WSMsgType.TEXT:
                    logger.debug(f"Ignoring message from extension: {msg.data!r}")
                elif msg.type == WSMsgType.ERROR:
                    self._on_connection_error(ws, ws.exception() or msg.data)
                elif msg.type == WSMsgType.CLOSE:
                    reason = msg.extra or ""
                    break
                elif msg.type in (WSMsgType.CLOSING, WSMsgType.CLOSED):
                    break
        finally:
            self._on_connection_closed(ws, ws.close_code, reason)
        return ws

    def _on_connection_established(self, ws: web.WebSocketResponse,
                                   remote: Optional[str]) -> Optional[web.WebSocketResponse]:
        """Make ``ws`` the active peer. Returns the peer it superseded, if any."""
        previous = self._peer
        self._peer = ws
        self._connections_accepted += 1
        if self._metrics is not None:
            self._metrics.connections_accepted.inc()
            self._metrics.peer_connected.set(1)

        logger.info(f"WebSocket client connected on port {self._port} from {remote}")
        self._status.update(ConnectionStatus.OK, "Connected to Extension")
        self._prober.start_for(ws, self._probe_interval)

        if previous is not None and not previous.closed:
            return previous
        return None

    async def _close_superseded(self, previous: web.WebSocketResponse):
        self._connections_superseded += 1
        if self._metrics is not None:
            self._metrics.connections_superseded.inc()
        logger.warning("New extension connection replaces an open one, closing the old connection")
        try:
            await previous.close(code=WSCloseCode.GOING_AWAY, message=b"Superseded by a newer connection")
        except Exception as e:
            logger.warning(f"Error closing superseded connection: {e}")

    def _on_connection_closed(self, ws: web.WebSocketResponse, code: Optional[int], reason: str) -> bool:
        if ws is not self._peer:
            logger.debug(f"Ignoring close of stale connection. Code: {code}")
            return False

        self._peer = None
        self._prober.stop()
        if self._metrics is not None:
            self._metrics.peer_connected.set(0)

        logger.info(f"WebSocket client disconnected. Code: {code}, Reason: {reason}")
        self._status.update(ConnectionStatus.WARNING, "Disconnected from Extension")
        return True

    def _on_connection_error(self, ws: web.WebSocketResponse, err) -> bool:
        if ws is not self._peer:
            logger.debug(f"Ignoring error on stale connection: {err}")
            return False

        self._last_error = PeerError(str(err))
        logger.error(f"WebSocket client error: {self._last_error}")
        self._status.update(ConnectionStatus.CONNECTION_FAILURE, f"Extension Error: {self._last_error}")
        return True

    def _on_bind_failed(self, port: int, error: OSError):
        logger.error(f"WebSocket server setup error: {error}")
        if error.errno == errno.EADDRINUSE:
            reason = "address_in_use"
            detail = f"Port {port} is already in use!"
        else:
            reason = "os_error"
            detail = f"Server Error: {error}"
        if self._metrics is not None:
            self._metrics.bind_failures.labels(reason=reason).inc()
        self._status.update(ConnectionStatus.CONNECTION_FAILURE, detail)

    async def _on_app_shutdown(self, app: web.Application):
        # Covers runner.cleanup() reached without stop() having closed the peer
        peer = self._peer
        if peer is not None and not peer.closed:
            await peer.close(code=WSCloseCode.GOING_AWAY, message=b"Server shutting down")

    # === Internals ===

    def _is_live(self, connection) -> bool:
        return connection is not None and connection is self._peer and not connection.closed

    @staticmethod
    def _bound_port(runner: web.AppRunner, requested: int) -> int:
        for address in runner.addresses:
            if isinstance(address, tuple) and len(address) >= 2:
                return address[1]
        return requested

    def get_metrics(self) -> dict:
        return {
            "state": self.state.value,
            "port": self._port,
            "connected": self.is_connected,
            "connections_accepted": self._connections_accepted,
            "connections_superseded": self._connections_superseded,
            "commands_sent": self._commands_sent,
            "commands_not_sent": self._commands_not_sent,
            "prober": self._prober.get_metrics(),
        }
