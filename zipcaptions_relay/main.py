"""Zip Captions Relay - Main Application Entry Point.

Orchestrates the services in build order:
1. Configuration loading
2. Observability (metrics)
3. Status reporting
4. Connection Manager (extension WebSocket listener + keepalive)
5. Command Dispatcher
6. Control API

Signals:
- SIGINT / SIGTERM -> graceful shutdown
- SIGHUP           -> reload settings, rebind listener if host or port changed
"""

import asyncio
import logging
import logging.config
import signal
import json
from typing import Optional

from pydantic import ValidationError

from zipcaptions_relay import __version__
from zipcaptions_relay.config.settings import PROBE_INTERVAL_SECONDS, get_settings
from zipcaptions_relay.control.api import ControlAPI
from zipcaptions_relay.control.dispatcher import CommandDispatcher
from zipcaptions_relay.observability.metrics import get_metrics
from zipcaptions_relay.relay.manager import BindError, ConnectionManager, ManagerState
from zipcaptions_relay.relay.status import ConnectionStatus, StatusReporter


# ---------------------------------------------------------------------------
# Logging setup -- MUST happen before any other import that calls getLogger
# ---------------------------------------------------------------------------

def setup_logging(log_level: str = "INFO", log_format: str = "json"):
    """Setup structured JSON logging.

    Two modes are supported:
    - ``json``  -- machine-parseable JSON-ish format (default)
    - ``text``  -- human-readable format for local development

    Args:
        log_level: Root log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: ``"json"`` or ``"text"``.
    """
    if log_format == "json":
        formatter = {
            "class": "logging.Formatter",
            "format": json.dumps({
                "time": "%(asctime)s",
                "level": "%(levelname)s",
                "module": "%(name)s",
                "message": "%(message)s",
            }),
        }
    else:
        formatter = {
            "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        }
    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": formatter},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout",
            }
        },
        "root": {
            "level": log_level,
            "handlers": ["console"],
        },
        # aiohttp logs every request at INFO
        "loggers": {
            "aiohttp.access": {"level": "WARNING"},
        },
    }
    logging.config.dictConfig(config)


logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Application orchestrator
# ---------------------------------------------------------------------------

class RelayApplication:
    """Main application orchestrator.

    Owns the ConnectionManager (and through it the listener, the extension
    connection and the keepalive prober), the dispatcher and the control
    API.  No failure in here is allowed to take the process down: a bind
    failure is reported as status and retried on the next reload.

    Usage::

        app = RelayApplication()
        await app.initialize()
        await app.run()        # blocks until shutdown signal
        await app.shutdown()
    """

    def __init__(self, settings=None, metrics=None, probe_interval: Optional[float] = None):
        self._settings = settings
        self._metrics = metrics
        self._probe_interval = probe_interval
        self._status = None
        self._manager = None
        self._dispatcher = None
        self._control_api = None
        self._shutdown_event = asyncio.Event()
        self._reload_tasks: set[asyncio.Task] = set()

    @property
    def status(self):
        return self._status

    @property
    def manager(self):
        return self._manager

    @property
    def dispatcher(self):
        return self._dispatcher

    # ------------------------------------------------------------------
    # Initialisation (strict order)
    # ------------------------------------------------------------------

    async def initialize(self):
        """Initialize all components in dependency order."""
        # ---- 1. Load configuration ----------------------------------------
        if self._settings is None:
            self._settings = get_settings()
            setup_logging(self._settings.log_level, self._settings.log_format)

        logger.debug("Initializing Zip Captions relay...")
        logger.info("Instance: %s", self._settings.instance_id)

        # ---- 2. Initialize observability (metrics) -------------------------
        if self._metrics is None and self._settings.metrics_enabled:
            self._metrics = get_metrics(self._settings.prometheus_port)
            self._metrics.start_server()
            self._metrics.set_build_info(__version__, self._settings.instance_id)

        # ---- 3. Status reporting -------------------------------------------
        self._status = StatusReporter(metrics=self._metrics)
        self._status.update(ConnectionStatus.CONNECTING)

        # ---- 4. Connection Manager -----------------------------------------
        self._manager = ConnectionManager(
            self._status,
            host=self._settings.host,
            ws_path=self._settings.ws_path,
            probe_interval=self._probe_interval or PROBE_INTERVAL_SECONDS,
            metrics=self._metrics,
        )
        await self._start_listener(self._settings.port)

        # ---- 5. Command Dispatcher -----------------------------------------
        self._dispatcher = CommandDispatcher(self._manager, self._status, metrics=self._metrics)

        # ---- 6. Control API ------------------------------------------------
        if self._settings.control_enabled:
            control_api = ControlAPI(
                self._dispatcher,
                self._manager,
                self._status,
                host=self._settings.control_host,
                port=self._settings.control_port,
            )
            try:
                await control_api.start()
                self._control_api = control_api
            except OSError as exc:
                logger.error("Control API failed to start on port %d: %s", self._settings.control_port, exc)

        logger.info("All services initialized")

    async def _start_listener(self, port: int):
        try:
            await self._manager.start(port)
        except BindError as exc:
            logger.error("Extension listener unavailable: %s", exc)

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    async def run(self):
        """Block until shutdown signal."""
        logger.info("Zip Captions relay running")
        await self._shutdown_event.wait()

    def request_shutdown(self):
        self._shutdown_event.set()

    def request_reload(self):
        task = asyncio.get_running_loop().create_task(self.reload())
        self._reload_tasks.add(task)
        task.add_done_callback(self._reload_tasks.discard)

    # ------------------------------------------------------------------
    # Reconfiguration
    # ------------------------------------------------------------------

    async def reload(self):
        """Re-read settings from the environment and apply them."""
        get_settings.cache_clear()
        try:
            settings = get_settings()
        except ValidationError as exc:
            logger.error("Invalid configuration, keeping current settings: %s", exc)
            return
        await self.config_updated(settings)

    async def config_updated(self, settings):
        """Apply new settings; rebinds when host or port changed or the last bind failed."""
        self._settings = settings
        unchanged = settings.port == self._manager.port and settings.host == self._manager.host
        if unchanged and self._manager.state != ManagerState.UNBOUND:
            logger.debug("Configuration updated, listener unchanged (%s:%d)", settings.host, settings.port)
            return

        try:
            await self._manager.restart(settings.port, host=settings.host)
        except BindError as exc:
            logger.error("Extension listener unavailable: %s", exc)

    # ------------------------------------------------------------------
    # Graceful shutdown
    # ------------------------------------------------------------------

    async def shutdown(self):
        """Graceful shutdown in reverse order."""
        logger.debug("Destroying Zip Captions relay...")

        for task in list(self._reload_tasks):
            task.cancel()

        if self._control_api is not None:
            try:
                await self._control_api.stop()
            except Exception as exc:
                logger.error("Error stopping control API: %s", exc)

        if self._manager is not None:
            try:
                await self._manager.stop()
            except Exception as exc:
                logger.error("Error stopping connection manager: %s", exc)

        logger.info("Zip Captions relay shutdown complete")


# ---------------------------------------------------------------------------
# Async entry point
# ---------------------------------------------------------------------------

async def main():
    """Main async entry point."""
    app = RelayApplication()

    # Register OS signal handlers
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        app.request_shutdown()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)
    loop.add_signal_handler(signal.SIGHUP, app.request_reload)

    try:
        await app.initialize()
        await app.run()
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    except Exception as exc:
        logger.critical("Fatal error: %s", exc, exc_info=True)
    finally:
        await app.shutdown()


def cli():
    asyncio.run(main())


if __name__ == "__main__":
    cli()
