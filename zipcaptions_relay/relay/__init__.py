"""Zip Captions Relay -- extension connection package.

Single-peer WebSocket listener, keepalive prober and the status it
reports to the host.
"""

from zipcaptions_relay.relay.manager import (
    BindError,
    ConnectionManager,
    ManagerState,
    PeerError,
    SendResult,
)
from zipcaptions_relay.relay.prober import LivenessProber, ProbeSendFailure
from zipcaptions_relay.relay.status import ConnectionStatus, StatusReporter

__all__: list[str] = [
    "BindError",
    "ConnectionManager",
    "ConnectionStatus",
    "LivenessProber",
    "ManagerState",
    "PeerError",
    "ProbeSendFailure",
    "SendResult",
    "StatusReporter",
]
