"""
Zip Captions Relay -- Centralised configuration via pydantic-settings.

Every tunable knob lives here.  Environment variables override defaults
using the ``ZCR_`` prefix (e.g. ``ZCR_PORT=9000``).

Usage:
    from zipcaptions_relay.config.settings import get_settings
    settings = get_settings()          # cached singleton
    print(settings.port)
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Must match the port configured in the Chrome extension's background.js
DEFAULT_PORT = 8082
MIN_PORT = 1024
MAX_PORT = 65535

# Keeps the extension's service worker from idling out
PROBE_INTERVAL_SECONDS = 10.0
PROBE_TOKEN = "PING"


class RelaySettings(BaseSettings):
    """Top-level configuration for the Zip Captions relay."""

    # ------------------------------------------------------------------
    # General
    # ------------------------------------------------------------------
    instance_id: str = "zcr-node-1"

    # ------------------------------------------------------------------
    # Extension WebSocket listener
    # ------------------------------------------------------------------
    host: str = "0.0.0.0"
    port: int = Field(default=DEFAULT_PORT, ge=MIN_PORT, le=MAX_PORT)
    ws_path: str = "/"

    # ------------------------------------------------------------------
    # Control API (command dispatch + status)
    # ------------------------------------------------------------------
    control_enabled: bool = True
    control_host: str = "127.0.0.1"
    control_port: int = Field(default=8083, ge=MIN_PORT, le=MAX_PORT)

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------
    metrics_enabled: bool = False
    prometheus_port: int = 8000
    log_level: str = "INFO"
    log_format: str = "json"  # json | text

    # ------------------------------------------------------------------
    # Pydantic-settings config
    # ------------------------------------------------------------------
    model_config = SettingsConfigDict(
        env_prefix="ZCR_",
        env_file=".env",
        env_file_encoding="utf-8",
    )


def get_config_fields() -> list[dict]:
    """Describe the user-editable configuration for a host UI."""
    return [
        {
            "type": "static-text",
            "id": "info",
            "width": 12,
            "label": "Information",
            "value": (
                "This module controls Zip Captions via a Chrome Extension. "
                "Ensure the Chrome Extension is installed and running, and the port matches."
            ),
        },
        {
            "type": "number",
            "id": "port",
            "label": "WebSocket Server Port",
            "width": 4,
            "min": MIN_PORT,
            "max": MAX_PORT,
            "default": DEFAULT_PORT,
            "tooltip": "This port must match the port configured in your Chrome Extension's background.js file.",
        },
    ]


@lru_cache(maxsize=1)
def get_settings() -> RelaySettings:
    """Return a cached singleton of the application settings.

    Call ``get_settings.cache_clear()`` to reload (tests, SIGHUP).
    """
    return RelaySettings()
