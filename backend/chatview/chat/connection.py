"""WebSocket connection lifecycle for the live conversation view.

The ConnectionManager keeps at most one socket open to the message server and
recovers from losses on its own:

    disconnected --connect()--> connecting --(open)--> connected
    connected --(close/error)--> disconnected [--backoff--> connecting]

Key behaviours:
    - A "get_messages" request goes out right after every successful open, so
      the cache is resynced after any gap (including first load)
    - Reconnect delay is attempt x step seconds, capped at max_delay, no jitter
    - After max_reconnect_attempts consecutive failures automatic recovery
      stops; a visibility regain can still start a new cycle
    - The reconnect timer is a single slot, cleared whenever a new connect
      cycle begins or the manager is closed
    - Sends are fire-and-forget: dropped with a warning when not connected
    - Malformed inbound frames are logged and dropped

Thread Safety:
    Designed for a single asyncio event loop. All callbacks (status, envelope)
    run on that loop; there is no locking.
"""
import asyncio
import contextlib
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import websockets
from pydantic import BaseModel

from . import protocol
from .models import ConnectionState
from .protocol import GetMessagesRequest, ProtocolError

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

DEFAULT_MAX_RECONNECT_ATTEMPTS = 5

# Delay grows by this many seconds per failed attempt
DEFAULT_RECONNECT_STEP = 1.0

DEFAULT_MAX_RECONNECT_DELAY = 30.0

# Failures the transport may raise while opening, reading or writing
TRANSPORT_ERRORS = (OSError, asyncio.TimeoutError, websockets.WebSocketException)

ConnectFactory = Callable[[str], Awaitable[Any]]
Scheduler = Callable[[float, Callable[[], Any]], Any]
StatusListener = Callable[[ConnectionState], None]
EnvelopeHandler = Callable[[Dict[str, Any]], None]


def backoff_delay(
    attempt: int,
    step: float = DEFAULT_RECONNECT_STEP,
    max_delay: float = DEFAULT_MAX_RECONNECT_DELAY,
) -> float:
    """Seconds to wait before reconnect attempt number ``attempt`` (1-based)."""
    return min(attempt * step, max_delay)


def _default_scheduler(delay: float, callback: Callable[[], Any]) -> asyncio.TimerHandle:
    return asyncio.get_running_loop().call_later(delay, callback)


# =============================================================================
# Connection Manager
# =============================================================================


class ConnectionManager:
    """Owns the socket to the message server and its recovery.

    Args:
        url: WebSocket endpoint of the message server.
        on_envelope: Called with every decoded inbound envelope.
        on_status: Called on every state report.
        max_reconnect_attempts: Automatic reconnects allowed after a loss.
        reconnect_step: Seconds added to the delay per failed attempt.
        max_reconnect_delay: Upper bound on a single reconnect delay.
        connect_factory: Coroutine function opening a socket for a URL.
            Defaults to ``websockets.connect``.
        scheduler: ``(delay, callback) -> handle`` used for reconnect timers.
            Defaults to ``loop.call_later``.
    """

    def __init__(
        self,
        url: str,
        *,
        on_envelope: Optional[EnvelopeHandler] = None,
        on_status: Optional[StatusListener] = None,
        max_reconnect_attempts: int = DEFAULT_MAX_RECONNECT_ATTEMPTS,
        reconnect_step: float = DEFAULT_RECONNECT_STEP,
        max_reconnect_delay: float = DEFAULT_MAX_RECONNECT_DELAY,
        connect_factory: Optional[ConnectFactory] = None,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        self.url = url
        self.on_envelope = on_envelope
        self.on_status = on_status
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_step = reconnect_step
        self.max_reconnect_delay = max_reconnect_delay
        self._connect_factory = connect_factory or websockets.connect
        self._scheduler = scheduler or _default_scheduler

        self._state = ConnectionState.DISCONNECTED
        self._socket: Optional[Any] = None
        self._attempts = 0
        self._open_task: Optional[asyncio.Task] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._reconnect_handle: Optional[Any] = None
        self._closed = False

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def reconnect_attempts(self) -> int:
        """Consecutive failed cycles since the last successful open."""
        return self._attempts

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    def _set_state(self, state: ConnectionState) -> None:
        self._state = state
        if self.on_status is None:
            return
        try:
            self.on_status(state)
        except Exception:
            logger.exception("Status listener failed for state %s", state.value)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def connect(self) -> Optional[asyncio.Task]:
        """Start a connect cycle.

        Any pending reconnect timer is cleared first. While a cycle is already
        in flight, or the socket is open, no second socket is created.

        Returns:
            The task performing the open handshake, or None once closed.
        """
        if self._closed:
            logger.debug("connect() ignored: connection manager is closed")
            return None

        self._cancel_reconnect()

        if self._open_task is not None and not self._open_task.done():
            return self._open_task
        if self._state is ConnectionState.CONNECTED:
            return self._open_task

        self._set_state(ConnectionState.CONNECTING)
        self._open_task = asyncio.ensure_future(self._open())
        return self._open_task

    async def _open(self) -> None:
        logger.info("Connecting to %s", self.url)
        try:
            socket = await self._connect_factory(self.url)
        except TRANSPORT_ERRORS as e:
            logger.warning("Connection to %s failed: %s", self.url, e)
            self._handle_loss()
            return

        if self._closed:
            await self._close_socket(socket)
            return

        self._socket = socket
        self._attempts = 0
        self._set_state(ConnectionState.CONNECTED)
        logger.info("Connected to %s", self.url)

        self._reader_task = asyncio.ensure_future(self._read(socket))
        await self.send(GetMessagesRequest())

    async def _read(self, socket: Any) -> None:
        try:
            async for raw in socket:
                self._dispatch(raw)
            logger.info("Connection to %s closed", self.url)
        except TRANSPORT_ERRORS as e:
            logger.warning("Connection to %s lost: %s", self.url, e)

        if self._detach(socket):
            self._handle_loss()

    def _dispatch(self, raw: Union[str, bytes]) -> None:
        try:
            envelope = protocol.decode(raw)
        except ProtocolError as e:
            logger.error("Dropping malformed frame: %s", e)
            return

        if self.on_envelope is None:
            return
        try:
            self.on_envelope(envelope)
        except Exception:
            logger.exception("Envelope handler failed for %r frame", envelope.get("type"))

    def _detach(self, socket: Any) -> bool:
        """Forget ``socket`` if it is the current one. True if it was."""
        if socket is None or socket is not self._socket:
            return False
        self._socket = None
        reader = self._reader_task
        self._reader_task = None
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
        return True

    def _handle_loss(self) -> None:
        self._set_state(ConnectionState.DISCONNECTED)
        if self._closed:
            return

        if self._attempts >= self.max_reconnect_attempts:
            logger.warning(
                "Giving up on %s after %d reconnect attempts",
                self.url, self._attempts,
            )
            return

        self._attempts += 1
        delay = backoff_delay(self._attempts, self.reconnect_step, self.max_reconnect_delay)
        logger.info(
            "Reconnecting to %s in %.1fs (attempt %d/%d)",
            self.url, delay, self._attempts, self.max_reconnect_attempts,
        )
        self._reconnect_handle = self._scheduler(delay, self._reconnect)

    def _reconnect(self) -> Optional[asyncio.Task]:
        self._reconnect_handle = None
        return self.connect()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def on_visibility_change(self, visible: bool) -> Optional[asyncio.Task]:
        """Reconnect when the view comes back to the foreground while not connected.

        The failed-attempt counter is left alone; only a successful open resets it.
        """
        if not visible or self._closed or self.connected:
            return None
        logger.info("View visible while %s; reconnecting", self._state.value)
        return self.connect()

    async def close(self) -> None:
        """Tear down the socket and stop all recovery. Idempotent."""
        self._closed = True
        self._cancel_reconnect()

        open_task = self._open_task
        if open_task is not None and not open_task.done():
            open_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await open_task

        socket = self._socket
        reader = self._reader_task
        self._socket = None
        self._reader_task = None
        if socket is not None:
            await self._close_socket(socket)
        if reader is not None and not reader.done():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader

        if self._state is not ConnectionState.DISCONNECTED:
            self._set_state(ConnectionState.DISCONNECTED)

    async def _close_socket(self, socket: Any) -> None:
        try:
            await socket.close()
        except TRANSPORT_ERRORS as e:
            logger.debug("Error while closing socket: %s", e)

    # =========================================================================
    # Sending
    # =========================================================================

    async def send(self, envelope: Union[BaseModel, Dict[str, Any]]) -> bool:
        """Transmit an envelope if connected; otherwise drop it.

        There is no send queue and no retry. A dropped send reports the
        disconnected status (unless a connect cycle is in flight).

        Returns:
            True if the frame was handed to the transport.
        """
        socket = self._socket
        if self._state is not ConnectionState.CONNECTED or socket is None:
            logger.warning("WebSocket not connected; dropping outbound frame")
            if self._state is not ConnectionState.CONNECTING:
                self._set_state(ConnectionState.DISCONNECTED)
            return False

        try:
            await socket.send(protocol.encode(envelope))
        except TRANSPORT_ERRORS as e:
            logger.warning("Send to %s failed: %s", self.url, e)
            if self._detach(socket):
                self._handle_loss()
            return False
        return True
