"""
Connector Error Types

Every failure a connector can surface to its caller is one of these.

    ConnectorError
    ├── InvalidSecretEncoding    fatal, the secret cannot be base64-decoded
    ├── MissingCredentialsError  a required credential field is empty
    ├── UnsupportedExchangeError unknown exchange name
    ├── ExchangeApiError         non-2xx or unparseable body from the exchange
    └── TransportError           DNS, TLS, connection reset or timeout

A response that parses but matches no known shape is NOT an error. It is
logged as a normalization gap and yields an empty list.
"""

from typing import Optional


class ConnectorError(Exception):
    """Base class for all connector errors."""

    kind = "connector_error"

    def __init__(self, message: str, exchange: Optional[str] = None):
        super().__init__(message)
        self.exchange = exchange


class InvalidSecretEncoding(ConnectorError):
    """Raised when a secret that must be base64 does not decode."""

    kind = "invalid_secret_encoding"

    def __init__(self, exchange: str, reason: str = "secret is not valid base64"):
        super().__init__(f"{exchange}: {reason}", exchange=exchange)
        self.reason = reason


class MissingCredentialsError(ConnectorError):
    """Raised when a connector needs a credential field that was not supplied."""

    kind = "missing_credentials"

    def __init__(self, exchange: str, field: str):
        super().__init__(f"{exchange}: missing credential field '{field}'", exchange=exchange)
        self.field = field


class UnsupportedExchangeError(ConnectorError):
    """Raised when an exchange name is not registered."""

    kind = "unsupported_exchange"

    def __init__(self, name: str, available=None):
        available_str = ", ".join(available) if available else ""
        super().__init__(
            f"Exchange '{name}' is not supported. Available exchanges: {available_str}",
            exchange=name
        )


class ExchangeApiError(ConnectorError):
    """
    The exchange answered, but not with a usable payload.

    Attributes:
        status: HTTP status code (the real status, even for a 200 with a bad body)
        body: Raw response text as received
    """

    kind = "exchange_api_error"

    def __init__(self, exchange: str, status: int, body: str, message: Optional[str] = None):
        super().__init__(message or f"{exchange}: HTTP {status}: {body[:200]}", exchange=exchange)
        self.status = status
        self.body = body


class TransportError(ConnectorError):
    """The request never produced an HTTP response. Callers may retry."""

    kind = "transport_error"

    def __init__(self, exchange: str, message: str):
        super().__init__(f"{exchange}: {message}", exchange=exchange)
