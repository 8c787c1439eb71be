"""Prometheus Metrics - relay pack.

Minimum metrics that explain "why didn't my button do anything":
- connection status gauge (what the host UI is showing)
- peer connected gauge
- connections accepted / superseded
- commands sent by token and result
- keepalive probes sent / failed
- listener bind failures
"""

import logging
from typing import Optional

from prometheus_client import (
    Counter, Gauge, Info,
    start_http_server, CollectorRegistry, REGISTRY
)

logger = logging.getLogger(__name__)

# Gauge encoding for ConnectionStatus
STATUS_VALUES = {
    "connecting": 0,
    "ok": 1,
    "warning": 2,
    "connection_failure": 3,
}


class MetricsCollector:
    """Centralized Prometheus metrics collector."""

    def __init__(self, port: int = 8000, registry: CollectorRegistry = REGISTRY):
        self._port = port
        self._registry = registry
        self._started = False

        # === Connection Metrics ===
        self.connection_status = Gauge(
            'zcr_connection_status',
            'Reported status (0=connecting, 1=ok, 2=warning, 3=connection_failure)',
            registry=registry,
        )

        self.peer_connected = Gauge(
            'zcr_peer_connected',
            'Extension connection state (1=connected, 0=not connected)',
            registry=registry,
        )

        self.connections_accepted = Counter(
            'zcr_connections_accepted_total',
            'Extension connections accepted',
            registry=registry,
        )

        self.connections_superseded = Counter(
            'zcr_connections_superseded_total',
            'Connections force-closed because a newer one arrived',
            registry=registry,
        )

        self.bind_failures = Counter(
            'zcr_bind_failures_total',
            'Listener bind failures',
            ['reason'],
            registry=registry,
        )

        # === Command Metrics ===
        self.commands = Counter(
            'zcr_commands_total',
            'Commands dispatched by token and result',
            ['command', 'result'],
            registry=registry,
        )

        # === Keepalive ===
        self.probes_sent = Counter(
            'zcr_probes_sent_total',
            'Keepalive probes sent',
            registry=registry,
        )

        self.probe_failures = Counter(
            'zcr_probe_failures_total',
            'Keepalive probes that failed to send',
            registry=registry,
        )

        # === Build Info ===
        self.build_info = Info(
            'zcr_build',
            'Build information',
            registry=registry,
        )

    def start_server(self):
        """Start Prometheus HTTP server."""
        if self._started:
            return
        try:
            start_http_server(self._port, registry=self._registry)
            self._started = True
            logger.info(f"Prometheus metrics server started on port {self._port}")
        except Exception as e:
            logger.error(f"Failed to start metrics server: {e}")

    def set_build_info(self, version: str, instance_id: str):
        """Set build information."""
        self.build_info.info({
            'version': version,
            'instance_id': instance_id,
        })

    def set_status(self, status: str):
        self.connection_status.set(STATUS_VALUES.get(status, -1))


# Singleton
_metrics: Optional[MetricsCollector] = None

def get_metrics(port: int = 8000) -> MetricsCollector:
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector(port)
    return _metrics
