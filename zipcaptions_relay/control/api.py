"""Control API - HTTP entry point for external callers.

Endpoints:
    GET  /status    -> reported status, manager state, bound port
    GET  /commands  -> available command choices
    POST /commands  -> {"command": "PLAY_PAUSE"}; 200 sent, 503 not connected,
                       400 unknown/missing command

Bound to localhost by default; there is no authentication.
"""

import logging
from typing import Optional

from aiohttp import web

from zipcaptions_relay.control.dispatcher import CommandDispatcher, UnknownCommand
from zipcaptions_relay.relay.manager import ConnectionManager, SendResult
from zipcaptions_relay.relay.status import StatusReporter

logger = logging.getLogger(__name__)


class ControlAPI:
    """Small aiohttp app exposing command dispatch and status."""

    def __init__(self, dispatcher: CommandDispatcher, manager: ConnectionManager,
                 status: StatusReporter, host: str = "127.0.0.1", port: int = 8083):
        self._dispatcher = dispatcher
        self._manager = manager
        self._status = status
        self._host = host
        self._port = port
        self._runner: Optional[web.AppRunner] = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/status", self._get_status)
        app.router.add_get("/commands", self._get_commands)
        app.router.add_post("/commands", self._post_command)
        return app

    async def start(self):
        runner = web.AppRunner(self.build_app())
        await runner.setup()
        try:
            await web.TCPSite(runner, self._host, self._port).start()
        except OSError:
            await runner.cleanup()
            raise
        self._runner = runner
        logger.info("Control API listening on %s:%d", self._host, self._port)

    async def stop(self):
        runner, self._runner = self._runner, None
        if runner is not None:
            await runner.cleanup()
            logger.info("Control API stopped")

    # === Handlers ===

    async def _get_status(self, request: web.Request) -> web.Response:
        return web.json_response({
            **self._status.to_dict(),
            "state": self._manager.state.value,
            "connected": self._manager.is_connected,
            "port": self._manager.port,
        })

    async def _get_commands(self, request: web.Request) -> web.Response:
        return web.json_response({"commands": self._dispatcher.choices()})

    async def _post_command(self, request: web.Request) -> web.Response:
        try:
            body = await request.json()
        except ValueError:  # bad JSON or bad UTF-8
            return web.json_response({"error": "Invalid JSON"}, status=400)
        if not isinstance(body, dict) or not body.get("command"):
            return web.json_response({"error": "command required"}, status=400)

        try:
            result = await self._dispatcher.dispatch(body["command"])
        except UnknownCommand as e:
            return web.json_response({"error": str(e)}, status=400)

        status = 200 if result is SendResult.SENT else 503
        return web.json_response({"command": body["command"], "result": result.value}, status=status)
