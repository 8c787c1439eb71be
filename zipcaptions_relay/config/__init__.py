"""Zip Captions Relay -- Configuration package."""

from zipcaptions_relay.config.settings import (
    DEFAULT_PORT,
    PROBE_INTERVAL_SECONDS,
    PROBE_TOKEN,
    RelaySettings,
    get_config_fields,
    get_settings,
)

__all__: list[str] = [
    "DEFAULT_PORT",
    "PROBE_INTERVAL_SECONDS",
    "PROBE_TOKEN",
    "RelaySettings",
    "get_config_fields",
    "get_settings",
]
