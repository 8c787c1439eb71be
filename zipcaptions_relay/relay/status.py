"""Connection status reported to the host.

The host only ever sees one of four states plus a human-readable detail.
Listeners are plain callables so a host UI, the control API and tests can
all observe transitions.
"""

import logging
from collections import deque
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class ConnectionStatus(str, Enum):
    CONNECTING = "connecting"
    OK = "ok"
    WARNING = "warning"
    CONNECTION_FAILURE = "connection_failure"


StatusListener = Callable[[ConnectionStatus, str], None]

STATUS_HISTORY_SIZE = 100

_LOG_LEVELS = {
    ConnectionStatus.CONNECTING: logging.INFO,
    ConnectionStatus.OK: logging.INFO,
    ConnectionStatus.WARNING: logging.WARNING,
    ConnectionStatus.CONNECTION_FAILURE: logging.ERROR,
}


class StatusReporter:
    """Holds the last reported status and fans it out to listeners."""

    def __init__(self, metrics=None):
        self._status = ConnectionStatus.CONNECTING
        self._detail = ""
        self._metrics = metrics
        self._listeners: list[StatusListener] = []
        self._history: deque[tuple[ConnectionStatus, str]] = deque(maxlen=STATUS_HISTORY_SIZE)

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def detail(self) -> str:
        return self._detail

    @property
    def history(self) -> list[tuple[ConnectionStatus, str]]:
        return list(self._history)

    def add_listener(self, listener: StatusListener):
        self._listeners.append(listener)

    def update(self, status: ConnectionStatus, detail: Optional[str] = None):
        """Record a status change and notify listeners.

        A failing listener is logged and skipped; status reporting must
        never break the connection handlers calling it.
        """
        self._status = status
        self._detail = detail or ""
        self._history.append((status, self._detail))
        logger.log(_LOG_LEVELS[status], "Status: %s %s", status.value, self._detail)

        if self._metrics is not None:
            self._metrics.set_status(status.value)

        for listener in self._listeners:
            try:
                listener(status, self._detail)
            except Exception as e:
                logger.error(f"Status listener failed: {e}")

    def to_dict(self) -> dict:
        return {"status": self._status.value, "detail": self._detail}
