"""Tests for configuration loading."""

import pytest
from pydantic import ValidationError

from zipcaptions_relay.config.settings import (
    DEFAULT_PORT,
    PROBE_INTERVAL_SECONDS,
    RelaySettings,
    get_config_fields,
    get_settings,
)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestRelaySettings:

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("ZCR_PORT", raising=False)
        settings = RelaySettings(_env_file=None)
        assert settings.port == DEFAULT_PORT == 8082
        assert settings.ws_path == "/"
        assert PROBE_INTERVAL_SECONDS == 10.0

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("ZCR_PORT", "9001")
        monkeypatch.setenv("ZCR_LOG_FORMAT", "text")
        settings = get_settings()
        assert settings.port == 9001
        assert settings.log_format == "text"

    @pytest.mark.parametrize("port", [80, 1023, 65536])
    def test_port_out_of_range(self, port):
        with pytest.raises(ValidationError):
            RelaySettings(port=port, _env_file=None)

    def test_get_settings_cached(self):
        assert get_settings() is get_settings()

    def test_config_fields_describe_port(self):
        port_field = next(f for f in get_config_fields() if f["id"] == "port")
        assert port_field["min"] == 1024
        assert port_field["max"] == 65535
        assert port_field["default"] == DEFAULT_PORT
