"""
Connection transport for the event channel.

The client talks to a :class:`ChannelTransport`; the default one opens a
websocket with the ``websockets`` asyncio client.  Tests substitute an
in-memory transport with the same three-method connection surface.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional, Protocol

from legalai_engine.core.errors import ChannelAuthError, ChannelConnectionError

logger = logging.getLogger(__name__)


class ChannelClosed(Exception):
    """The remote end (or the network) closed the connection."""

    def __init__(self, code: Optional[int] = None, reason: str = "") -> None:
        super().__init__(f"Connection closed (code={code}, reason={reason!r})")
        self.code = code
        self.reason = reason


class ChannelConnection(Protocol):
    async def send(self, text: str) -> None: ...

    async def recv(self) -> str:
        """Return the next text frame; raise :class:`ChannelClosed` at end of stream."""
        ...

    async def close(self) -> None: ...


class ChannelTransport(Protocol):
    async def open(self, url: str, headers: Dict[str, str]) -> ChannelConnection: ...


class WebSocketConnection:
    """Adapts a ``websockets`` client connection to :class:`ChannelConnection`."""

    def __init__(self, ws) -> None:
        self._ws = ws

    async def send(self, text: str) -> None:
        from websockets.exceptions import ConnectionClosed

        try:
            await self._ws.send(text)
        except ConnectionClosed as exc:
            raise ChannelClosed(_close_code(exc), _close_reason(exc)) from exc

    async def recv(self) -> str:
        from websockets.exceptions import ConnectionClosed

        try:
            message = await self._ws.recv()
        except ConnectionClosed as exc:
            raise ChannelClosed(_close_code(exc), _close_reason(exc)) from exc
        if isinstance(message, bytes):
            return message.decode("utf-8", errors="replace")
        return message

    async def close(self) -> None:
        await self._ws.close()


class WebSocketTransport:
    """Opens websocket connections with the ``websockets`` asyncio client."""

    def __init__(self, open_timeout: float = 10.0) -> None:
        self._open_timeout = open_timeout

    async def open(self, url: str, headers: Dict[str, str]) -> ChannelConnection:
        from websockets.asyncio.client import connect
        from websockets.exceptions import InvalidHandshake, InvalidStatus, InvalidURI

        try:
            ws = await connect(
                url,
                additional_headers=headers or None,
                open_timeout=self._open_timeout,
            )
        except InvalidStatus as exc:
            status = getattr(exc.response, "status_code", None)
            if status in (401, 403):
                raise ChannelAuthError(f"Channel rejected credentials (HTTP {status})") from exc
            raise ChannelConnectionError(f"Could not connect to {url}: {exc}") from exc
        except InvalidURI as exc:
            raise ChannelConnectionError(f"Invalid channel URL: {url}") from exc
        except (InvalidHandshake, OSError, asyncio.TimeoutError) as exc:
            raise ChannelConnectionError(f"Could not connect to {url}: {exc}") from exc
        logger.debug("[Transport] Opened %s", url)
        return WebSocketConnection(ws)


def _close_code(exc) -> Optional[int]:
    frame = getattr(exc, "rcvd", None)
    return getattr(frame, "code", None)


def _close_reason(exc) -> str:
    frame = getattr(exc, "rcvd", None)
    return getattr(frame, "reason", "") or ""
