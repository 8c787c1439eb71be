"""Zip Captions Relay -- Observability package.

Prometheus metrics for the extension connection and command traffic.
"""

from zipcaptions_relay.observability.metrics import MetricsCollector, get_metrics

__all__: list[str] = [
    "MetricsCollector",
    "get_metrics",
]
