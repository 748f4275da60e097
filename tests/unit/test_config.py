"""
Unit Tests for Configuration Module

These tests verify that the configuration system works correctly:
- Default values are applied when the environment is silent
- Validation catches invalid configurations
- Property methods work as expected

Run with:
    pytest tests/unit/test_config.py -v
"""

import pytest
from core.config import Settings, settings, validate_configuration


class TestConfigurationLoading:
    """Test that configuration loads with sane defaults"""

    def test_exchange_base_urls_loaded(self):
        """Verify every REST base URL is an http(s) URL"""
        for url in (
            settings.aster_base_url,
            settings.hyperliquid_base_url,
            settings.kraken_futures_base_url,
            settings.mexc_base_url,
        ):
            assert url.startswith("http")

    def test_stream_urls_are_websockets(self):
        for url in (settings.kraken_futures_ws_url, settings.hyperliquid_ws_url, settings.mexc_ws_url):
            assert url.startswith("ws")

    def test_app_port_is_valid_integer(self):
        """Verify app port is a valid integer"""
        assert isinstance(settings.app_port, int)
        assert 1 <= settings.app_port <= 65535

    def test_debug_mode_is_boolean(self):
        assert isinstance(settings.debug, bool)

    def test_log_level_is_set(self):
        assert isinstance(settings.log_level, str)
        assert len(settings.log_level) > 0

    def test_stream_defaults(self):
        """Verify the live stream timing defaults"""
        config = Settings()
        assert config.ws_handshake_timeout == 10.0
        assert config.ws_reconnect_base_delay == 1.0
        assert config.ws_reconnect_max_delay == 60.0
        assert config.ws_max_reconnect_attempts == 10
        assert config.ws_keepalive_interval < 60

    def test_environment_overrides_defaults(self, monkeypatch):
        """Verify values are read from the environment at construction time"""
        monkeypatch.setenv("REQUEST_TIMEOUT", "3.5")
        monkeypatch.setenv("MEXC_RECV_WINDOW", "5000")
        config = Settings()
        assert config.request_timeout == 3.5
        assert config.mexc_recv_window == 5000


class TestDexMarkersParsing:
    """Test that dex markers are parsed from a comma-separated string"""

    def test_default_marker(self):
        assert Settings(hyperliquid_dex_markers="SILVER").dex_markers_list == ["SILVER"]

    def test_markers_are_uppercased_and_stripped(self):
        config = Settings(hyperliquid_dex_markers=" silver, gold ,,")
        assert config.dex_markers_list == ["SILVER", "GOLD"]

    def test_empty_markers(self):
        assert Settings(hyperliquid_dex_markers="").dex_markers_list == []


class TestConfigurationValidation:
    """Test configuration validation logic"""

    def test_validate_configuration_succeeds(self):
        """Verify default configuration passes validation"""
        validate_configuration(Settings())

    def test_invalid_log_level_rejected(self):
        with pytest.raises(ValueError, match="LOG_LEVEL"):
            validate_configuration(Settings(log_level="LOUD"))

    def test_non_positive_timeout_rejected(self):
        with pytest.raises(ValueError, match="REQUEST_TIMEOUT"):
            validate_configuration(Settings(request_timeout=0))

    def test_keepalive_must_stay_under_idle_timeout(self):
        with pytest.raises(ValueError, match="WS_KEEPALIVE_INTERVAL"):
            validate_configuration(Settings(ws_keepalive_interval=60))

    def test_base_delay_above_max_rejected(self):
        with pytest.raises(ValueError, match="WS_RECONNECT_BASE_DELAY"):
            validate_configuration(Settings(ws_reconnect_base_delay=90, ws_reconnect_max_delay=60))

    def test_non_http_base_url_rejected(self):
        with pytest.raises(ValueError, match="MEXC_BASE_URL"):
            validate_configuration(Settings(mexc_base_url="ftp://contract.mexc.com"))

    def test_non_websocket_stream_url_rejected(self):
        with pytest.raises(ValueError, match="HYPERLIQUID_WS_URL"):
            validate_configuration(Settings(hyperliquid_ws_url="https://api.hyperliquid.xyz/ws"))

    def test_mexc_ping_interval_must_be_positive(self):
        with pytest.raises(ValueError, match="MEXC_WS_KEEPALIVE_INTERVAL"):
            validate_configuration(Settings(mexc_ws_keepalive_interval=0))

    def test_invalid_port_rejected(self):
        with pytest.raises(ValueError, match="port"):
            validate_configuration(Settings(app_port=70000))
