"""
Event channel client with automatic reconnection.

Keeps a single logical connection to the server's event stream.  Callers
only see ``connected`` / ``disconnected`` transitions (via
:class:`ConnectionState`) and a stream of named events delivered to
registered handlers.

Reconnection:
    Any close or connect error that was not caused by :meth:`disconnect`
    schedules a retry after ``reconnect_delay * 2 ** (attempt - 1)``
    seconds.  Once ``reconnect_attempts`` retries have failed, the state
    carries an :class:`ExhaustedRetriesError` and nothing more is scheduled
    until the caller invokes :meth:`connect` again.

Everything runs on one asyncio loop; the only suspension points are the
transport's ``open`` / ``recv`` / ``send`` calls.

Usage::

    client = EventChannelClient(ChannelOptions(url=url), token_provider=get_token)
    client.on("training:progress", store_handler)
    client.connect()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, Set

from legalai_engine.core.constants import (
    DEFAULT_RECONNECT_ATTEMPTS,
    DEFAULT_RECONNECT_DELAY,
    DEFAULT_SERVER_URL,
    EVENT_AUTH_FAILED,
    WS_CLOSE_UNAUTHORIZED,
)
from legalai_engine.core.errors import (
    ChannelAuthError,
    ChannelConnectionError,
    ExhaustedRetriesError,
)
from legalai_engine.core.events import decode_frame, encode_frame
from legalai_engine.core.types import ConnectionState
from legalai_engine.channel.transport import (
    ChannelClosed,
    ChannelConnection,
    ChannelTransport,
)

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]
TimerHandle = Any  # anything with .cancel(); asyncio.TimerHandle in production
CallLater = Callable[[float, Callable[[], None]], TimerHandle]


@dataclass
class ChannelOptions:
    url: str = DEFAULT_SERVER_URL
    reconnect_attempts: int = DEFAULT_RECONNECT_ATTEMPTS
    reconnect_delay: float = DEFAULT_RECONNECT_DELAY
    """Base backoff delay in seconds."""
    on_connect: Optional[Callable[[], None]] = None
    on_disconnect: Optional[Callable[[], None]] = None
    on_error: Optional[Callable[[Exception], None]] = None
    on_reconnect: Optional[Callable[[int], None]] = None
    """Called with the attempt number just before each retry."""
    on_state_change: Optional[Callable[[ConnectionState], None]] = None


def backoff_delay(base_delay: float, attempt: int) -> float:
    """Delay before retry number *attempt* (1-based)."""
    return base_delay * 2 ** (attempt - 1)


class EventChannelClient:
    """Single persistent connection with handlers, backoff and environment hooks.

    Args:
        options:        URL, retry budget and lifecycle callbacks.
        transport:      Connection factory (defaults to websockets).
        token_provider: Returns the opaque bearer token, or ``None``.
        call_later:     Timer scheduler, ``loop.call_later`` by default.
    """

    def __init__(
        self,
        options: Optional[ChannelOptions] = None,
        transport: Optional[ChannelTransport] = None,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        call_later: Optional[CallLater] = None,
    ) -> None:
        if transport is None:
            from legalai_engine.channel.transport import WebSocketTransport
            transport = WebSocketTransport()
        self._options = options or ChannelOptions()
        self._transport = transport
        self._token_provider = token_provider
        self._call_later = call_later

        self._state = ConnectionState()
        self._handlers: Dict[str, List[Handler]] = {}
        self._state_listeners: List[Callable[[ConnectionState], None]] = []
        self._conn: Optional[ChannelConnection] = None
        self._connect_task: Optional[asyncio.Task] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._reconnect_handle: Optional[TimerHandle] = None
        self._background: Set[asyncio.Task] = set()
        self._attempts = 0
        self._online = True
        self._hidden = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state.connected

    @property
    def connecting(self) -> bool:
        return self._state.connecting

    @property
    def error(self) -> Optional[Exception]:
        return self._state.error

    @property
    def reconnect_attempt(self) -> int:
        return self._state.reconnect_attempt

    @property
    def has_pending_reconnect(self) -> bool:
        return self._reconnect_handle is not None

    def on_state(self, listener: Callable[[ConnectionState], None]) -> Callable[[], None]:
        """Call *listener* on every state transition; returns an unsubscribe closure."""
        self._state_listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._state_listeners:
                self._state_listeners.remove(listener)

        return _unsubscribe

    def _set_state(self, state: ConnectionState) -> None:
        self._state = state
        self._notify(self._options.on_state_change, state)
        for listener in list(self._state_listeners):
            self._notify(listener, state)

    # ------------------------------------------------------------------
    # Connect / disconnect
    # ------------------------------------------------------------------

    def connect(self) -> Optional[asyncio.Task]:
        """Open the connection unless one is open or being opened.

        Returns the in-flight connect task (await it to wait for the
        outcome), or ``None`` when already connected.  Must be called with
        a running event loop.
        """
        if self._state.connected:
            return None
        if isinstance(self._state.error, ExhaustedRetriesError):
            self._attempts = 0
        self._cancel_reconnect()
        return self._start_connect()

    def _start_connect(self) -> Optional[asyncio.Task]:
        if self._state.connected:
            return None
        if self._connect_task is not None and not self._connect_task.done():
            return self._connect_task
        self._set_state(replace(self._state, connecting=True, error=None))
        self._connect_task = asyncio.get_running_loop().create_task(self._open())
        return self._connect_task

    async def _open(self) -> None:
        try:
            token = self._token_provider() if self._token_provider else None
            headers = {"Authorization": f"Bearer {token}"} if token else {}
            conn = await self._transport.open(self._options.url, headers)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._connect_task = None
            self._on_connect_error(exc)
            return

        self._connect_task = None
        self._conn = conn
        self._attempts = 0
        self._set_state(ConnectionState(connected=True))
        logger.info("[Channel] Connected to %s", self._options.url)
        self._notify(self._options.on_connect)
        self._reader_task = asyncio.get_running_loop().create_task(self._read_loop(conn))

    def disconnect(self) -> None:
        """Close the connection, cancel any pending retry, reset state.

        Safe to call when never connected.
        """
        was_connected = self._state.connected
        self._cancel_reconnect()
        if self._connect_task is not None:
            self._connect_task.cancel()
            self._connect_task = None
        if self._reader_task is not None:
            self._reader_task.cancel()
            self._reader_task = None
        conn, self._conn = self._conn, None
        if conn is not None:
            self._spawn(self._close_quietly(conn))
        self._attempts = 0
        self._set_state(ConnectionState())
        if was_connected:
            logger.info("[Channel] Disconnected")
            self._notify(self._options.on_disconnect)

    async def _close_quietly(self, conn: ChannelConnection) -> None:
        try:
            await conn.close()
        except Exception as exc:
            logger.debug("[Channel] Error while closing connection: %s", exc)

    # ------------------------------------------------------------------
    # Failure handling and backoff
    # ------------------------------------------------------------------

    def _on_connect_error(self, exc: Exception) -> None:
        if isinstance(exc, ChannelAuthError):
            logger.error("[Channel] Authentication failed: %s", exc)
            self._on_auth_failed({"error": str(exc)}, exc)
            return
        error = exc if isinstance(exc, ChannelConnectionError) else ChannelConnectionError(str(exc))
        logger.warning("[Channel] Connection error: %s", error)
        self._set_state(replace(self._state, connected=False, connecting=False, error=error))
        self._notify(self._options.on_error, error)
        self._schedule_reconnect()

    def _on_connection_lost(self, reason: Exception) -> None:
        self._conn = None
        self._reader_task = None
        self._set_state(replace(self._state, connected=False, connecting=False))
        logger.info("[Channel] Connection lost: %s", reason)
        self._notify(self._options.on_disconnect)
        if isinstance(reason, ChannelClosed) and reason.code == WS_CLOSE_UNAUTHORIZED:
            self._on_auth_failed(
                {"error": reason.reason or "Unauthorized"},
                ChannelAuthError(reason.reason or "Unauthorized"),
            )
            return
        self._schedule_reconnect()

    def _on_auth_failed(self, data: Any, error: Exception) -> None:
        """Credential rejected: tell handlers, drop the connection, stop retrying."""
        self._dispatch(EVENT_AUTH_FAILED, data)
        self.disconnect()
        self._set_state(replace(self._state, error=error))
        self._notify(self._options.on_error, error)

    def _schedule_reconnect(self) -> None:
        if not self._online:
            logger.info("[Channel] Offline, not scheduling a reconnect")
            return
        limit = self._options.reconnect_attempts
        if self._attempts >= limit:
            error = ExhaustedRetriesError(self._attempts)
            logger.error("[Channel] Max reconnection attempts reached (%d)", limit)
            self._set_state(replace(self._state, error=error))
            self._notify(self._options.on_error, error)
            return

        self._attempts += 1
        delay = backoff_delay(self._options.reconnect_delay, self._attempts)
        logger.info(
            "[Channel] Reconnecting in %.2fs (attempt %d/%d)", delay, self._attempts, limit,
        )
        self._set_state(replace(self._state, reconnect_attempt=self._attempts))
        call_later = self._call_later or asyncio.get_running_loop().call_later
        self._reconnect_handle = call_later(delay, self._on_reconnect_timer)

    def _on_reconnect_timer(self) -> None:
        self._reconnect_handle = None
        if self._hidden:
            # set_visibility(False) reconnects once the host is shown again
            logger.info("[Channel] Host hidden, skipping reconnect")
            return
        self._notify(self._options.on_reconnect, self._attempts)
        self._start_connect()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    # ------------------------------------------------------------------
    # Environment reactions
    # ------------------------------------------------------------------

    def set_visibility(self, hidden: bool) -> None:
        """Hidden host: release the connection.  Visible again: reconnect."""
        self._hidden = hidden
        if hidden:
            if self._state.connected:
                logger.info("[Channel] Host hidden, disconnecting")
                self.disconnect()
        elif not self._state.connected and not self._state.connecting:
            logger.info("[Channel] Host visible, reconnecting")
            self.connect()

    def set_online(self, online: bool) -> None:
        """Offline: surface an error, no retries.  Online: reconnect now."""
        self._online = online
        if not online:
            logger.info("[Channel] Network offline")
            self._cancel_reconnect()
            error = ChannelConnectionError("Network offline")
            self._set_state(replace(self._state, error=error))
            self._notify(self._options.on_error, error)
            return
        logger.info("[Channel] Network online")
        if not self._state.connected:
            self.connect()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def emit(self, event: str, payload: Any = None) -> bool:
        """Send *event* if connected.  Returns ``False`` (nothing queued) otherwise."""
        conn = self._conn
        if not self._state.connected or conn is None:
            logger.warning("[Channel] Not connected, dropping event: %s", event)
            return False
        try:
            frame = encode_frame(event, payload)
        except (TypeError, ValueError) as exc:
            logger.warning("[Channel] Cannot encode %s: %s", event, exc)
            return False
        self._spawn(self._send(conn, event, frame))
        return True

    async def _send(self, conn: ChannelConnection, event: str, frame: str) -> None:
        try:
            await conn.send(frame)
        except Exception as exc:
            # The reader observes the closed connection and drives reconnection.
            logger.warning("[Channel] Failed to send %s: %s", event, exc)

    def on(self, event: str, handler: Handler) -> Callable[[], None]:
        """Register *handler* for *event*; returns a closure that unregisters it."""
        handlers = self._handlers.setdefault(event, [])
        if handler not in handlers:
            handlers.append(handler)

        def _unsubscribe() -> None:
            self.off(event, handler)

        return _unsubscribe

    def off(self, event: str, handler: Optional[Handler] = None) -> None:
        """Remove one handler, or every handler for *event* when none is given."""
        if handler is None:
            self._handlers.pop(event, None)
            return
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)
            if not handlers:
                del self._handlers[event]

    def handler_count(self, event: str) -> int:
        return len(self._handlers.get(event, ()))

    async def _read_loop(self, conn: ChannelConnection) -> None:
        try:
            while True:
                text = await conn.recv()
                self._handle_frame(text)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if self._conn is conn:
                self._on_connection_lost(exc)

    def _handle_frame(self, text: str) -> None:
        try:
            event, data = decode_frame(text)
        except ValueError as exc:
            logger.warning("[Channel] Dropping malformed frame: %s", exc)
            return
        if event == EVENT_AUTH_FAILED:
            logger.error("[Channel] Authentication failed: %s", data)
            message = data.get("error") if isinstance(data, dict) else None
            self._on_auth_failed(data, ChannelAuthError(message or "Authentication failed"))
            return
        self._dispatch(event, data)

    def _dispatch(self, event: str, data: Any) -> None:
        for handler in list(self._handlers.get(event, ())):
            try:
                handler(data)
            except Exception:
                logger.exception("[Channel] Handler for %s raised", event)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    @staticmethod
    def _notify(callback: Optional[Callable[..., Any]], *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("[Channel] Lifecycle callback raised")
