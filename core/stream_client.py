"""
Live Stream Client Base

Socket lifecycle shared by every exchange stream: connect, handshake,
listen, keep-alive, reconnect with backoff, and state publication. An
exchange stream subclasses StreamClient and supplies:

    _open()       send the opening message(s) on a fresh socket
    _reduce()     the exchange's pure reducer (see core.stream_state)
    _subscribe()  perform Effect.SUBSCRIBE, when the reducer requests it
    _keepalive()  one keep-alive (a protocol ping frame by default)

Lifecycle:
    DISCONNECTED -> CONNECTING -> [CHALLENGED] -> SUBSCRIBED
    ERROR is reachable from any state.

Reconnection Strategy:
    - A socket closed by the server, or dropped, publishes DISCONNECTED and
      schedules a reconnect
    - Attempt N waits min(base * 2^(N-1), max) seconds: 1, 2, 4, 8, 16, ...
    - The attempt counter resets once a session reaches SUBSCRIBED
    - After ws_max_reconnect_attempts the client holds ERROR until connect()
      is called again
    - An unusable secret (InvalidSecretEncoding) stops the client without
      reconnecting

Usage:
    client = SomeStreamClient(...)
    unsubscribe = client.on_state(lambda state: print(state.status))
    await client.connect()
    ...
    await client.disconnect()
"""

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from core.config import settings
from core.errors import InvalidSecretEncoding, TransportError
from core.logging import get_logger, log_websocket_event
from core.schemas import ConnectionState, ConnectionStatus
from core.stream_state import Effect, StreamSession
from core.utils.time import Clock, now_ms

StateCallback = Callable[[ConnectionState], Any]
ConnectFactory = Callable[[str], Awaitable[Any]]


def reconnect_delay(attempt: int, base_delay: float = 1.0, max_delay: float = 60.0) -> float:
    """
    Backoff before reconnect attempt N (1-based).

    Example:
        >>> [reconnect_delay(n) for n in range(1, 6)]
        [1.0, 2.0, 4.0, 8.0, 16.0]
    """
    return min(base_delay * 2 ** (attempt - 1), max_delay)


def _default_connect(url: str) -> Awaitable[Any]:
    return websockets.connect(url)


class StreamClient(ABC):
    """
    Async WebSocket session with reducer-driven state.

    State changes come from the subclass reducer and are published to
    subscribers as deep copies.

    Attributes:
        exchange: Exchange identifier used in log lines
        url: WebSocket endpoint
        state: Latest ConnectionState
    """

    exchange: str = ""

    def __init__(
        self,
        url: str,
        clock: Clock = now_ms,
        connect_factory: Optional[ConnectFactory] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        handshake_timeout: Optional[float] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        max_attempts: Optional[int] = None,
        keepalive_interval: Optional[float] = None
    ):
        """
        Args:
            url: WebSocket endpoint
            clock: Millisecond clock for last_update_ts and signatures
            connect_factory: url -> awaitable socket (tests pass a fake)
            sleep: Awaitable used between reconnect attempts

        Timing arguments left as None fall back to the ws_* settings.
        """
        self.url = url
        self.clock = clock
        self._connect_factory = connect_factory or _default_connect
        self._sleep = sleep

        self.handshake_timeout = handshake_timeout if handshake_timeout is not None else settings.ws_handshake_timeout
        self.base_delay = base_delay if base_delay is not None else settings.ws_reconnect_base_delay
        self.max_delay = max_delay if max_delay is not None else settings.ws_reconnect_max_delay
        self.max_attempts = max_attempts if max_attempts is not None else settings.ws_max_reconnect_attempts
        self.keepalive_interval = (
            keepalive_interval if keepalive_interval is not None else settings.ws_keepalive_interval
        )

        self.logger = get_logger(f"exchanges.{self.exchange}.stream")
        self._session = StreamSession()
        self._subscribers: List[StateCallback] = []
        self._ws: Any = None
        self._task: Optional[asyncio.Task] = None
        self._keepalive_task: Optional[asyncio.Task] = None
        self._closing = False
        self._reconnect_attempt = 0

    @property
    def state(self) -> ConnectionState:
        return self._session.state

    # ============================================
    # Exchange Hooks
    # ============================================

    @abstractmethod
    async def _open(self) -> None:
        """Send the opening message(s) on a freshly connected socket."""

    @abstractmethod
    def _reduce(
        self,
        session: StreamSession,
        message: Dict[str, Any],
        now: int
    ) -> Tuple[StreamSession, List[Effect]]:
        """Fold one decoded message into the session."""

    async def _subscribe(self) -> None:
        """Perform Effect.SUBSCRIBE. Streams whose reducer never requests it keep this."""

    async def _keepalive(self) -> None:
        await self._ws.ping()

    async def _after_message(self) -> None:
        """Called after every decoded message once the reducer has run."""

    # ============================================
    # Subscribers
    # ============================================

    def on_state(self, callback: StateCallback) -> Callable[[], None]:
        """
        Register a state callback. Returns a function that unregisters it.

        Example:
            >>> unsubscribe = client.on_state(print)
            >>> unsubscribe()
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self) -> None:
        for callback in list(self._subscribers):
            try:
                callback(self._session.state.model_copy(deep=True))
            except Exception as e:
                self.logger.error(f"State subscriber {callback!r} raised: {e}")

    def _set_state(self, **update: Any) -> None:
        state = self._session.state.model_copy(update=update)
        self._session = self._session.model_copy(update={"state": state})
        self._publish()

    def _reset_handshake(self) -> None:
        self._session = self._session.model_copy(update={"challenge": None, "subscribed_feeds": frozenset()})

    # ============================================
    # Public API
    # ============================================

    async def connect(self) -> None:
        """
        Start the session and return once the handshake has begun.

        Calling connect() while a session task is running is a no-op.
        """
        if self._task is not None and not self._task.done():
            self.logger.debug("connect() ignored, session already running")
            return

        self._closing = False
        self._reconnect_attempt = 0
        self._reset_handshake()
        self._set_state(status=ConnectionStatus.CONNECTING, error=None)
        self._task = asyncio.create_task(self._run())

    async def disconnect(self) -> None:
        """
        Cancel timers and the session task, close the socket, then publish a
        fresh DISCONNECTED state (positions and balances are discarded).
        """
        self._closing = True

        pending = [task for task in (self._keepalive_task, self._task) if task is not None and not task.done()]
        for task in pending:
            task.cancel()
        self._keepalive_task = None
        self._task = None

        if pending:
            await asyncio.wait(pending)

        await self._close_socket()
        self._session = StreamSession()
        self._set_state(status=ConnectionStatus.DISCONNECTED)
        log_websocket_event(self.exchange, "disconnected")

    # ============================================
    # Session Loop
    # ============================================

    async def _run(self) -> None:
        while not self._closing:
            try:
                await self._run_session()
                if not self._closing:
                    log_websocket_event(self.exchange, "closed", "socket closed by server")
                    self._set_state(status=ConnectionStatus.DISCONNECTED)
            except InvalidSecretEncoding as e:
                log_websocket_event(self.exchange, "error", str(e))
                self._set_state(status=ConnectionStatus.ERROR, error=str(e))
                await self._close_socket()
                return
            except asyncio.TimeoutError:
                message = f"handshake timeout after {self.handshake_timeout}s"
                log_websocket_event(self.exchange, "error", message)
                self._set_state(status=ConnectionStatus.ERROR, error=message)
            except ConnectionClosed as e:
                log_websocket_event(self.exchange, "closed", str(e))
                self._set_state(status=ConnectionStatus.DISCONNECTED)
            except (OSError, TransportError, WebSocketException) as e:
                log_websocket_event(self.exchange, "error", f"{type(e).__name__}: {e}")
                self._set_state(status=ConnectionStatus.ERROR, error=str(e) or type(e).__name__)

            self._stop_keepalive()
            await self._close_socket()

            if self._closing:
                return

            self._reconnect_attempt += 1
            if self._reconnect_attempt > self.max_attempts:
                self.logger.error(f"Max reconnect attempts ({self.max_attempts}) reached")
                self._set_state(status=ConnectionStatus.ERROR, error="Max reconnect attempts reached")
                return

            delay = reconnect_delay(self._reconnect_attempt, self.base_delay, self.max_delay)
            self.logger.info(f"Reconnecting in {delay}s (attempt {self._reconnect_attempt}/{self.max_attempts})")
            await self._sleep(delay)

            if not self._closing:
                self._reset_handshake()
                self._set_state(status=ConnectionStatus.CONNECTING, error=None)

    async def _run_session(self) -> None:
        """One socket lifetime: connect, handshake, then listen until close."""
        self._ws = await asyncio.wait_for(self._connect_factory(self.url), self.handshake_timeout)
        log_websocket_event(self.exchange, "connected", self.url)

        await asyncio.wait_for(self._handshake(), self.handshake_timeout)

        async for raw in self._ws:
            await self._handle_raw(raw)

    async def _handshake(self) -> None:
        await self._open()

        while self.state.status != ConnectionStatus.SUBSCRIBED:
            raw = await self._ws.recv()
            await self._handle_raw(raw)
            if self.state.status == ConnectionStatus.ERROR:
                raise TransportError(self.exchange, self.state.error or "handshake rejected")

    # ============================================
    # Message Handling
    # ============================================

    async def _handle_raw(self, raw: Any) -> None:
        try:
            message = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            self.logger.error(f"Failed to parse JSON: {str(raw)[:100]}... Error: {e}")
            return

        previous = self._session.state
        self._session, effects = self._reduce(self._session, message, self.clock())

        for effect in effects:
            if effect == Effect.SUBSCRIBE:
                await self._subscribe()
            elif effect == Effect.START_KEEPALIVE:
                self._reconnect_attempt = 0
                log_websocket_event(self.exchange, "subscribed")
                self._start_keepalive()

        if self._session.state != previous:
            self._publish()

        await self._after_message()

    async def _send(self, payload: dict) -> None:
        await self._ws.send(json.dumps(payload))

    # ============================================
    # Keep-alive and Teardown
    # ============================================

    def _start_keepalive(self) -> None:
        self._stop_keepalive()
        self._keepalive_task = asyncio.create_task(self._keepalive_loop())

    def _stop_keepalive(self) -> None:
        if self._keepalive_task is not None and not self._keepalive_task.done():
            self._keepalive_task.cancel()
        self._keepalive_task = None

    async def _keepalive_loop(self) -> None:
        while True:
            await asyncio.sleep(self.keepalive_interval)
            if self._ws is None:
                return
            try:
                await self._keepalive()
            except ConnectionClosed:
                return
            self.logger.debug("Keep-alive sent")

    async def _close_socket(self) -> None:
        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await ws.close()
            except (OSError, WebSocketException) as e:
                self.logger.warning(f"Error closing WebSocket: {e}")

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(url='{self.url}', status='{self.state.status.value}')>"
