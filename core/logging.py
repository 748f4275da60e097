"""
Unified Logging Configuration

This module sets up a centralized logging system for the connector framework.
All modules import their logger from here instead of using print().

Usage:
    from core.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Fetching positions")

Log Levels:
    DEBUG    - Request/response traces, raw shape decisions
    INFO     - Connection lifecycle, per-exchange fetch summaries
    WARNING  - Normalization gaps, optional category failures
    ERROR    - Required category failures, WebSocket errors

Secrets:
    API secrets are never logged. Helpers in this module only accept
    endpoints, parameters that carry no key material, and status codes.

Configuration:
    Log level is controlled by the LOG_LEVEL setting in .env file.
"""

import logging
import sys
from typing import Optional

ROOT_LOGGER_NAME = "perpsconnector"


def setup_logging(
    log_level: str = "INFO",
    log_format: Optional[str] = None,
    include_timestamp: bool = True,
    include_module: bool = True
) -> logging.Logger:
    """
    Configure and return the application logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Custom log format string (uses default if None)
        include_timestamp: Include timestamp in log messages
        include_module: Include logger name in log messages

    Returns:
        logging.Logger: Configured root application logger

    Example:
        >>> logger = setup_logging(log_level="DEBUG")
        >>> logger.info("Connector started")
        2024-01-01 12:00:00 [INFO] perpsconnector Connector started
    """
    if log_format is None:
        format_parts = []

        if include_timestamp:
            format_parts.append("%(asctime)s")

        format_parts.append("[%(levelname)s]")

        if include_module:
            format_parts.append("%(name)s")

        format_parts.append("%(message)s")

        log_format = " ".join(format_parts)

    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format=log_format,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True
    )

    app_logger = logging.getLogger(ROOT_LOGGER_NAME)
    app_logger.setLevel(level)

    return app_logger


# ============================================
# Initialize Logger with Settings
# ============================================

from core.config import settings  # noqa: E402

logger = setup_logging(log_level=settings.log_level)


# ============================================
# Convenience Functions
# ============================================

def get_logger(name: str) -> logging.Logger:
    """
    Get a child logger for a module.

    Example:
        # In exchanges/kraken/ws_client.py:
        logger = get_logger(__name__)  # "perpsconnector.exchanges.kraken.ws_client"
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


# ============================================
# Log Helper Functions
# ============================================

def log_api_request(exchange: str, method: str, endpoint: str, params: dict = None) -> None:
    """
    Log an outgoing signed request.

    Only pass the public parameters here. Signatures and keys stay out of logs.

    Example:
        >>> log_api_request("aster", "GET", "/fapi/v2/positionRisk")
        [DEBUG] API Request: aster GET /fapi/v2/positionRisk
    """
    if params:
        logger.debug(f"API Request: {exchange} {method} {endpoint} | Params: {params}")
    else:
        logger.debug(f"API Request: {exchange} {method} {endpoint}")


def log_api_response(exchange: str, endpoint: str, status: int, response_time: float = None) -> None:
    """
    Log an API response with status and timing information.

    Example:
        >>> log_api_response("mexc", "/api/v1/private/position/open_positions", 200, 0.342)
        [DEBUG] API Response: mexc /api/v1/private/position/open_positions | Status: 200 | Time: 0.342s
    """
    time_str = f" | Time: {response_time:.3f}s" if response_time else ""
    level = logging.DEBUG if 200 <= status < 300 else logging.WARNING
    logger.log(level, f"API Response: {exchange} {endpoint} | Status: {status}{time_str}")


def log_websocket_event(exchange: str, event: str, details: str = None) -> None:
    """
    Log a WebSocket lifecycle event.

    Example:
        >>> log_websocket_event("kraken", "challenged")
        [INFO] WebSocket: kraken challenged

        >>> log_websocket_event("kraken", "error", details="Handshake timeout")
        [ERROR] WebSocket: kraken error | Handshake timeout
    """
    details_str = f" | {details}" if details else ""

    level = logging.ERROR if event == "error" else logging.INFO
    logger.log(level, f"WebSocket: {exchange} {event}{details_str}")


def log_normalization_gap(exchange: str, category: str, details: str = None) -> None:
    """
    Log a payload that matched none of the known shapes.

    A gap is not an error: the caller continues with an empty list.

    Example:
        >>> log_normalization_gap("kraken", "positions", "top-level keys: ['foo']")
        [WARNING] Normalization gap: kraken positions | top-level keys: ['foo']
    """
    details_str = f" | {details}" if details else ""
    logger.warning(f"Normalization gap: {exchange} {category}{details_str}")


logger.debug("Logging system initialized")
