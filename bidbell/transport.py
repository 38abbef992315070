"""
WebSocket transport for the notification push channel.

A thin wrapper around one persistent WebSocket connection. It knows
nothing about notifications: it opens, sends, receives raw text frames and
closes, reporting lifecycle events to a TransportListener. Parsing and
retry decisions belong to the owner (the delivery coordinator).

Design Pattern: Observer - the owner implements TransportListener and
receives on_open / on_message / on_close / on_error for each handle.
"""

import asyncio
import itertools
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidStatus, InvalidURI

from bidbell.exceptions import AuthError, TransportError


logger = logging.getLogger("bidbell.transport")


# ============================================================================
# Constants
# ============================================================================

NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006

DEFAULT_OPEN_TIMEOUT = 10.0  # seconds
DEFAULT_CLOSE_TIMEOUT = 5.0  # seconds
DEFAULT_PING_INTERVAL = 30.0  # seconds
DEFAULT_PING_TIMEOUT = 10.0  # seconds

_handle_ids = itertools.count(1)


def build_connect_url(url: str, auth_token: str) -> str:
    """
    Append the auth token to the WebSocket URL as ``?token=...``.

    Existing query parameters are kept; an existing ``token`` is replaced.
    """
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query) if k != "token"]
    query.append(("token", auth_token))
    return urlunsplit(parts._replace(query=urlencode(query)))


def redact_url(url: str) -> str:
    """URL without its query string, for logging."""
    return urlunsplit(urlsplit(url)._replace(query=""))


# ============================================================================
# Listener Interface
# ============================================================================


class TransportListener(ABC):
    """
    Receives transport lifecycle events.

    Every event carries the handle it belongs to, so the owner can ignore
    late events from a connection it has already replaced or closed.
    """

    @abstractmethod
    def on_open(self, handle: "TransportHandle") -> None:
        """The connection is established."""

    @abstractmethod
    def on_message(self, handle: "TransportHandle", raw: str) -> None:
        """A text frame arrived."""

    @abstractmethod
    def on_close(self, handle: "TransportHandle", code: int, was_clean: bool) -> None:
        """The connection is closed (or never opened). Always the last event."""

    @abstractmethod
    def on_error(self, handle: "TransportHandle", error: Exception) -> None:
        """A connect or receive error occurred. Followed by on_close."""


# ============================================================================
# Handle
# ============================================================================


class TransportHandle:
    """
    One physical connection attempt.

    Attributes:
        id: Monotonic handle number (for logs)
        url: Target URL without the token
    """

    def __init__(self, url: str):
        self.id = next(_handle_ids)
        self.url = redact_url(url)
        self._ws: Any = None
        self._task: Optional[asyncio.Task] = None
        self._closing = False
        self._closed = False

    @property
    def is_open(self) -> bool:
        """True once connected and until closed."""
        return self._ws is not None and not self._closed and not self._closing

    @property
    def is_live(self) -> bool:
        """True from open() until the connection has fully closed."""
        return not self._closed

    def __repr__(self) -> str:
        state = "open" if self.is_open else ("closed" if self._closed else "pending")
        return f"<TransportHandle #{self.id} {self.url} {state}>"


# ============================================================================
# WebSocketTransport Class
# ============================================================================


class WebSocketTransport:
    """
    WebSocket transport holding at most one live connection.

    Opening a new handle closes the previous one first, so one logical
    session never holds two connections.
    """

    def __init__(
        self,
        listener: TransportListener,
        open_timeout: float = DEFAULT_OPEN_TIMEOUT,
        close_timeout: float = DEFAULT_CLOSE_TIMEOUT,
        ping_interval: Optional[float] = DEFAULT_PING_INTERVAL,
        ping_timeout: Optional[float] = DEFAULT_PING_TIMEOUT,
    ):
        self._listener = listener
        self._open_timeout = open_timeout
        self._close_timeout = close_timeout
        self._ping_interval = ping_interval
        self._ping_timeout = ping_timeout
        self._current: Optional[TransportHandle] = None

    @property
    def current(self) -> Optional[TransportHandle]:
        """The most recently opened handle, if any."""
        return self._current

    async def open(self, url: str, auth_token: str) -> TransportHandle:
        """
        Start one connection attempt.

        Returns immediately with the new handle; the outcome is reported
        through the listener (on_open, or on_error followed by on_close).

        Args:
            url: WebSocket URL (ws:// or wss://)
            auth_token: Bearer token sent as the ``token`` query parameter
        """
        previous = self._current
        if previous is not None and previous.is_live:
            logger.debug(f"Closing {previous!r} before opening a new connection")
            try:
                await self.close(previous, NORMAL_CLOSURE, "superseded")
            except TransportError as e:
                logger.warning(f"Failed to close previous connection: {e}")

        handle = TransportHandle(url)
        self._current = handle
        logger.info(f"Connecting to {handle.url} (handle #{handle.id})")
        handle._task = asyncio.create_task(self._run(handle, build_connect_url(url, auth_token)))
        return handle

    async def send(self, handle: TransportHandle, payload: Union[str, Mapping[str, Any]]) -> None:
        """
        Send a text frame.

        Raises:
            TransportError: If the handle is not open or the send fails
        """
        if not handle.is_open:
            raise TransportError(f"Connection #{handle.id} is not open")

        text = payload if isinstance(payload, str) else json.dumps(payload)
        try:
            await handle._ws.send(text)
        except ConnectionClosed as e:
            raise TransportError(f"Connection #{handle.id} closed during send: {e}")

    async def close(self, handle: TransportHandle, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        """
        Close a handle. Safe to call repeatedly.

        For a connected handle the reader reports on_close once the close
        handshake finishes. For a handle still connecting, the attempt is
        cancelled and on_close is reported here.

        Raises:
            TransportError: If the close handshake fails
        """
        if handle._closed or handle._closing:
            return
        handle._closing = True
        task = handle._task
        in_reader = task is not None and task is asyncio.current_task()

        if handle._ws is None:
            if task is not None and not task.done() and not in_reader:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
            if not handle._closed:
                handle._closed = True
                self._emit("on_close", handle, code, True)
            return

        try:
            await handle._ws.close(code, reason)
        except Exception as e:
            raise TransportError(f"Failed to close connection #{handle.id}: {e}")

        if task is not None and not task.done() and not in_reader:
            done, _ = await asyncio.wait([task], timeout=self._close_timeout)
            if not done:
                logger.warning(f"Reader for connection #{handle.id} did not stop, cancelling")
                task.cancel()
                handle._closed = True
                self._emit("on_close", handle, code, False)

    # -------------------------------------------------------------------------
    # Reader
    # -------------------------------------------------------------------------

    async def _run(self, handle: TransportHandle, target: str) -> None:
        """Connect, pump frames to the listener, then report the close."""
        try:
            ws = await websockets.connect(
                target,
                open_timeout=self._open_timeout,
                ping_interval=self._ping_interval,
                ping_timeout=self._ping_timeout,
            )
        except InvalidStatus as e:
            status = e.response.status_code
            if status in (401, 403):
                error: Exception = AuthError(f"Server rejected token (HTTP {status})", status_code=status)
            else:
                error = TransportError(f"Server rejected connection (HTTP {status})")
            self._fail(handle, error)
            return
        except (InvalidURI, InvalidHandshake, OSError, asyncio.TimeoutError) as e:
            self._fail(handle, TransportError(f"Failed to connect: {e}"))
            return

        handle._ws = ws

        if handle._closing:
            await ws.close(NORMAL_CLOSURE, "closed while connecting")
        else:
            logger.info(f"Connected to {handle.url} (handle #{handle.id})")
            self._emit("on_open", handle)

        try:
            async for frame in ws:
                if isinstance(frame, bytes):
                    frame = frame.decode("utf-8", errors="replace")
                self._emit("on_message", handle, frame)
        except ConnectionClosed:
            pass
        except Exception as e:
            self._emit("on_error", handle, TransportError(f"Receive failed: {e}"))

        code = ws.close_code if ws.close_code is not None else ABNORMAL_CLOSURE
        handle._closed = True
        logger.info(f"Connection #{handle.id} closed (code {code})")
        self._emit("on_close", handle, code, code != ABNORMAL_CLOSURE)

    def _fail(self, handle: TransportHandle, error: Exception) -> None:
        logger.warning(f"Connection #{handle.id} to {handle.url} failed: {error}")
        handle._closed = True
        self._emit("on_error", handle, error)
        self._emit("on_close", handle, ABNORMAL_CLOSURE, False)

    def _emit(self, event: str, handle: TransportHandle, *args: Any) -> None:
        try:
            getattr(self._listener, event)(handle, *args)
        except Exception as e:
            logger.error(f"Transport listener {event} failed: {e}", exc_info=True)
