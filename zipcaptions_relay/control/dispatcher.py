"""CommandDispatcher - the "send command" action.

Maps the user-facing choices to command tokens and hands them to the
ConnectionManager.  Not being connected is an expected, frequent outcome:
it is reported as a WARNING status, never raised.
"""

import logging
import time
from collections import deque
from enum import Enum
from typing import Optional

from zipcaptions_relay.relay.manager import ConnectionManager, SendResult
from zipcaptions_relay.relay.status import ConnectionStatus, StatusReporter

logger = logging.getLogger(__name__)


class CommandToken(str, Enum):
    PLAY_PAUSE = "PLAY_PAUSE"
    TOGGLE_LISTEN = "TOGGLE_LISTEN"


COMMAND_LABELS: dict[CommandToken, str] = {
    CommandToken.PLAY_PAUSE: "Play/Pause",
    CommandToken.TOGGLE_LISTEN: "Start/Stop",
}

DEFAULT_COMMAND = CommandToken.PLAY_PAUSE
COMMAND_HISTORY_SIZE = 100


class UnknownCommand(ValueError):
    """The requested command is not one of the known tokens."""


class CommandDispatcher:
    """Validates commands and forwards them to the connected extension."""

    def __init__(self, manager: ConnectionManager, status: StatusReporter, metrics=None):
        self._manager = manager
        self._status = status
        self._metrics = metrics
        self._command_history: deque[dict] = deque(maxlen=COMMAND_HISTORY_SIZE)

        # Metrics
        self._commands_sent = 0
        self._commands_not_connected = 0
        self._commands_rejected = 0

    @staticmethod
    def choices() -> list[dict]:
        return [{"id": token.value, "label": label} for token, label in COMMAND_LABELS.items()]

    def action_definitions(self) -> dict:
        """Describe the ``send_command`` action for a host UI."""
        return {
            "send_command": {
                "name": "Send Command to Zip Captions",
                "options": [
                    {
                        "type": "dropdown",
                        "id": "command",
                        "label": "Command",
                        "default": DEFAULT_COMMAND.value,
                        "choices": self.choices(),
                        "tooltip": "Select the action to perform in Zip Captions.",
                    }
                ],
                "callback": self.dispatch,
            }
        }

    async def dispatch(self, command: Optional[str]) -> SendResult:
        """Send one command token.

        Raises:
            UnknownCommand: ``command`` is not a known token.
        """
        try:
            token = CommandToken(command)
        except ValueError:
            self._commands_rejected += 1
            logger.error(f"Unknown command: {command!r}")
            raise UnknownCommand(f"Unknown command: {command!r}") from None

        logger.debug(f"Sending command: {token.value}")
        result = await self._manager.send_command(token.value)

        if result is SendResult.SENT:
            self._commands_sent += 1
        else:
            self._commands_not_connected += 1
            self._status.update(ConnectionStatus.WARNING, "Extension Not Connected")

        if self._metrics is not None:
            self._metrics.commands.labels(command=token.value, result=result.value).inc()
        self._command_history.append({
            "command": token.value,
            "result": result.value,
            "timestamp": time.time(),
        })
        return result

    @property
    def command_history(self) -> list[dict]:
        return list(self._command_history)

    def get_metrics(self) -> dict:
        return {
            "commands_sent": self._commands_sent,
            "commands_not_connected": self._commands_not_connected,
            "commands_rejected": self._commands_rejected,
        }
