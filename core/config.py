"""
Configuration Management Module

This module handles loading, validating, and providing access to connector
configuration from environment variables (.env file).

Uses Pydantic Settings for automatic validation and type conversion.

Key Features:
- Loads configuration from .env file
- Provides type-safe access to exchange base URLs and timeouts
- Converts comma-separated strings to lists (Hyperliquid dex markers)
- Handles optional settings with sensible defaults

Credentials are NOT configuration. They are passed per call as
ExchangeCredentials and never read from the environment here.

Usage:
    from core.config import settings

    print(settings.aster_base_url)
    print(settings.dex_markers_list)  # Returns a list of strings
"""

from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """
    Application Settings

    Attributes:
        aster_base_url: Base URL for the Aster futures REST API
        hyperliquid_base_url: Base URL for the Hyperliquid info API
        kraken_futures_base_url: Base URL for Kraken Futures REST (includes gateway prefix host)
        kraken_futures_ws_url: Kraken Futures private WebSocket endpoint
        hyperliquid_ws_url: Hyperliquid WebSocket endpoint (clearinghouseState stream)
        mexc_ws_url: MEXC contract WebSocket endpoint (personal position stream)
        mexc_base_url: Base URL for the MEXC contract API
        request_timeout: Timeout for one signed REST call in seconds
        mexc_recv_window: MEXC Recv-Window header value in milliseconds
        ws_handshake_timeout: Seconds allowed between connect() and Subscribed
        ws_reconnect_base_delay: First reconnect delay in seconds
        ws_reconnect_max_delay: Cap for the reconnect delay in seconds
        ws_max_reconnect_attempts: Reconnect attempts before holding Error
        ws_keepalive_interval: Seconds between keep-alive pings
        mexc_ws_keepalive_interval: Seconds between MEXC {"method": "ping"} messages
        hyperliquid_dex_markers: Comma-separated symbols that select extra perp dexs
    """

    # ============================================
    # Exchange Endpoints
    # ============================================

    aster_base_url: str = Field(
        default="https://fapi.asterdex.com",
        description="Aster futures REST base URL"
    )

    hyperliquid_base_url: str = Field(
        default="https://api.hyperliquid.xyz",
        description="Hyperliquid info API base URL"
    )

    kraken_futures_base_url: str = Field(
        default="https://futures.kraken.com",
        description="Kraken Futures REST base URL"
    )

    kraken_futures_ws_url: str = Field(
        default="wss://futures.kraken.com/ws/v1",
        description="Kraken Futures private WebSocket URL"
    )

    mexc_base_url: str = Field(
        default="https://contract.mexc.com",
        description="MEXC contract API base URL"
    )

    hyperliquid_ws_url: str = Field(
        default="wss://api.hyperliquid.xyz/ws",
        description="Hyperliquid WebSocket URL"
    )

    mexc_ws_url: str = Field(
        default="wss://contract.mexc.com/edge",
        description="MEXC contract WebSocket URL"
    )

    # ============================================
    # REST Behaviour
    # ============================================

    request_timeout: float = Field(
        default=15.0,
        description="HTTP request timeout in seconds"
    )

    mexc_recv_window: int = Field(
        default=60_000,
        description="MEXC Recv-Window in milliseconds"
    )

    # ============================================
    # Live Streams (WebSocket)
    # ============================================

    ws_handshake_timeout: float = Field(
        default=10.0,
        description="Seconds allowed for challenge/subscribe handshake"
    )

    ws_reconnect_base_delay: float = Field(
        default=1.0,
        description="Initial reconnect delay (seconds), doubled per attempt"
    )

    ws_reconnect_max_delay: float = Field(
        default=60.0,
        description="Maximum reconnect delay (seconds)"
    )

    ws_max_reconnect_attempts: int = Field(
        default=10,
        description="Maximum WebSocket reconnection attempts"
    )

    ws_keepalive_interval: float = Field(
        default=50.0,
        description="Keep-alive ping interval (seconds), must stay under the 60s idle timeout"
    )

    mexc_ws_keepalive_interval: float = Field(
        default=15.0,
        description="MEXC ping interval (seconds), MEXC asks for 10 to 20"
    )

    # ============================================
    # Hyperliquid Discovery
    # ============================================

    hyperliquid_dex_markers: str = Field(
        default="SILVER",
        description="Comma-separated symbols; a non-default perp dex is queried if its universe lists one"
    )

    # ============================================
    # Application Configuration
    # ============================================

    app_host: str = Field(
        default="0.0.0.0",
        description="FastAPI server host address"
    )

    app_port: int = Field(
        default=8000,
        description="FastAPI server port"
    )

    environment: str = Field(
        default="development",
        description="Application environment (development, production)"
    )

    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # ============================================
    # Pydantic Settings Configuration
    # ============================================

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False
    )

    # ============================================
    # Custom Properties
    # ============================================

    @property
    def dex_markers_list(self) -> List[str]:
        """
        Convert comma-separated dex markers to a list.

        Example:
            >>> settings.dex_markers_list
            ['SILVER']
        """
        return [m.strip().upper() for m in self.hyperliquid_dex_markers.split(",") if m.strip()]


# ============================================
# Global Settings Instance
# ============================================

settings = Settings()


# ============================================
# Configuration Validation
# ============================================

def validate_configuration(config: Settings = None) -> None:
    """
    Validate critical configuration settings on application startup.

    Args:
        config: Settings to check (defaults to the module-level instance)

    Raises:
        ValueError: If configuration is invalid
    """
    # Import logger here to avoid circular import
    from core.logging import logger

    config = config or settings

    for name in ("aster_base_url", "hyperliquid_base_url", "kraken_futures_base_url", "mexc_base_url"):
        url = getattr(config, name)
        if not url.startswith("http"):
            raise ValueError(f"{name.upper()} must be an http(s) URL, got '{url}'")

    for name in ("kraken_futures_ws_url", "hyperliquid_ws_url", "mexc_ws_url"):
        url = getattr(config, name)
        if not url.startswith("ws"):
            raise ValueError(f"{name.upper()} must be a ws(s) URL, got '{url}'")

    if config.request_timeout <= 0:
        raise ValueError(f"REQUEST_TIMEOUT must be positive, got {config.request_timeout}")

    if config.ws_handshake_timeout <= 0:
        raise ValueError(f"WS_HANDSHAKE_TIMEOUT must be positive, got {config.ws_handshake_timeout}")

    # Kraken drops idle sockets after 60 seconds
    if not (0 < config.ws_keepalive_interval < 60):
        raise ValueError(
            f"WS_KEEPALIVE_INTERVAL must be between 0 and 60 seconds, got {config.ws_keepalive_interval}"
        )

    if config.mexc_ws_keepalive_interval <= 0:
        raise ValueError(f"MEXC_WS_KEEPALIVE_INTERVAL must be positive, got {config.mexc_ws_keepalive_interval}")

    if config.ws_reconnect_base_delay <= 0 or config.ws_reconnect_base_delay > config.ws_reconnect_max_delay:
        raise ValueError(
            "WS_RECONNECT_BASE_DELAY must be positive and not exceed WS_RECONNECT_MAX_DELAY"
        )

    if config.ws_max_reconnect_attempts < 1:
        raise ValueError("WS_MAX_RECONNECT_ATTEMPTS must be at least 1")

    if not (1 <= config.app_port <= 65535):
        raise ValueError(f"Invalid port number: {config.app_port}. Must be between 1 and 65535")

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if config.log_level.upper() not in valid_log_levels:
        raise ValueError(
            f"Invalid LOG_LEVEL: '{config.log_level}'. "
            f"Must be one of: {', '.join(valid_log_levels)}"
        )

    logger.info("Configuration validated successfully")
    logger.info(f"Aster: {config.aster_base_url} | Hyperliquid: {config.hyperliquid_base_url}")
    logger.info(f"Kraken Futures: {config.kraken_futures_base_url} | MEXC: {config.mexc_base_url}")
    logger.info(f"Hyperliquid dex markers: {', '.join(config.dex_markers_list) or '-'}")
    logger.info(f"Log level: {config.log_level.upper()}")
