"""
Connector Interface - Abstract Contract for All Exchange Pipelines

Every exchange package exposes one Connector subclass. The aggregator and
the HTTP surface only talk to this interface, never to an exchange client.

Pipeline shape (per exchange):
    1. check credentials
    2. discovery calls that later calls depend on (sequenced)
    3. data categories fetched concurrently via run_categories()
    4. raw payloads normalized and assembled into a PerpetualsSnapshot

Partial failure policy:
    - required category fails  -> the error propagates (this exchange only)
    - optional category fails  -> empty list + ExchangeFailure in category_errors
    - InvalidSecretEncoding    -> always propagates, the credentials are unusable

Example:
    class AsterConnector(Connector):
        name = "aster"

        async def fetch_snapshot(self, credentials, session=None):
            ...
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Dict, List, Optional, Tuple

import aiohttp

from core.errors import InvalidSecretEncoding, MissingCredentialsError
from core.logging import get_logger
from core.schemas import ExchangeCredentials, ExchangeFailure, PerpetualsSnapshot
from core.utils.time import Clock, now_ms

logger = get_logger(__name__)


async def run_categories(
    exchange: str,
    required: Dict[str, Awaitable[Any]],
    optional: Optional[Dict[str, Awaitable[Any]]] = None
) -> Tuple[Dict[str, Any], List[ExchangeFailure]]:
    """
    Await all categories concurrently and apply the partial failure policy.

    Args:
        exchange: Exchange name for failure records
        required: Category name -> awaitable whose failure fails the exchange
        optional: Category name -> awaitable whose failure is recorded

    Returns:
        (values by category, failures). A failed optional category maps to None.

    Raises:
        The first required category's exception, or InvalidSecretEncoding from any category
    """
    optional = optional or {}
    names = list(required) + list(optional)
    results = await asyncio.gather(
        *required.values(),
        *optional.values(),
        return_exceptions=True
    )

    values: Dict[str, Any] = {}
    failures: List[ExchangeFailure] = []
    fatal: Optional[BaseException] = None

    for name, result in zip(names, results):
        if not isinstance(result, BaseException):
            values[name] = result
            continue

        if not isinstance(result, Exception) or isinstance(result, InvalidSecretEncoding) or name in required:
            fatal = fatal or result
            continue

        logger.warning(f"{exchange}: optional category '{name}' failed: {result}")
        failures.append(ExchangeFailure.from_exception(exchange, result, category=name))
        values[name] = None

    if fatal is not None:
        raise fatal

    return values, failures


class Connector(ABC):
    """
    Abstract base class for exchange connectors.

    Class Attributes:
        name: Unique exchange identifier (lowercase)
        required_credentials: ExchangeCredentials fields that must be non-empty
        capabilities: Which optional features this connector supports

    Attributes:
        clock: Millisecond clock handed to signers (pinned in tests)
    """

    name: str

    required_credentials: Tuple[str, ...] = ("api_key", "api_secret")

    capabilities: Dict[str, bool] = {
        "positions": True,
        "open_orders": True,
        "margin": True,
        "equity": True,
        "performance": False,
        "live_stream": False
    }

    def __init__(self, clock: Clock = now_ms):
        self.clock = clock
        self.logger = get_logger(f"exchanges.{self.name}")

    def check_credentials(self, credentials: ExchangeCredentials) -> None:
        """Raise MissingCredentialsError for the first empty required field."""
        for field in self.required_credentials:
            if not getattr(credentials, field, None):
                raise MissingCredentialsError(self.name, field)

    @abstractmethod
    async def fetch_snapshot(
        self,
        credentials: ExchangeCredentials,
        session: Optional[aiohttp.ClientSession] = None
    ) -> PerpetualsSnapshot:
        """
        Fetch and normalize this exchange's account state.

        Args:
            credentials: Borrowed for this call only
            session: Shared aiohttp session; the client opens its own when None

        Raises:
            ExchangeApiError / TransportError: required category failed
            InvalidSecretEncoding: secret cannot be decoded
            MissingCredentialsError: a required credential is empty
        """
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name='{self.name}')>"
