"""Zip Captions Relay -- Control package.

Command dispatch (the "send command" action) and the HTTP control API
external callers use to trigger it.
"""

from zipcaptions_relay.control.api import ControlAPI
from zipcaptions_relay.control.dispatcher import (
    COMMAND_LABELS,
    CommandDispatcher,
    CommandToken,
    UnknownCommand,
)

__all__: list[str] = [
    "COMMAND_LABELS",
    "CommandDispatcher",
    "CommandToken",
    "ControlAPI",
    "UnknownCommand",
]
