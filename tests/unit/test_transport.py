"""
Unit tests for the WebSocket transport.

The websockets module is replaced with a mock whose connect() returns an
in-memory connection, so no network is used.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from websockets.exceptions import InvalidStatus

from bidbell.exceptions import AuthError, TransportError
from bidbell.transport import (
    ABNORMAL_CLOSURE,
    NORMAL_CLOSURE,
    TransportHandle,
    TransportListener,
    WebSocketTransport,
    build_connect_url,
    redact_url,
)


class FakeWebSocket:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self, frames=(), close_code=NORMAL_CLOSURE, hold_open=False):
        self._frames = list(frames)
        self._final_close_code = close_code
        self._hold_open = hold_open
        self._closed = asyncio.Event()
        self.close_code = None
        self.sent = []
        self.closed_with = None

    async def send(self, text):
        self.sent.append(text)

    async def close(self, code=NORMAL_CLOSURE, reason=""):
        self.closed_with = (code, reason)
        self.close_code = code
        self._closed.set()

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for frame in self._frames:
            yield frame
        if self._hold_open:
            await self._closed.wait()
        else:
            self.close_code = self._final_close_code


class RecordingListener(TransportListener):
    """Listener recording every event in order."""

    def __init__(self):
        self.events = []

    def on_open(self, handle):
        self.events.append(("open", handle))

    def on_message(self, handle, raw):
        self.events.append(("message", handle, raw))

    def on_close(self, handle, code, was_clean):
        self.events.append(("close", handle, code, was_clean))

    def on_error(self, handle, error):
        self.events.append(("error", handle, error))

    def kinds(self):
        return [event[0] for event in self.events]


async def wait_until(predicate, timeout=1.0):
    """Poll the event loop until predicate() is true."""
    async def poll():
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(poll(), timeout=timeout)


@pytest.fixture
def listener():
    return RecordingListener()


@pytest.fixture
def transport(listener):
    return WebSocketTransport(listener, close_timeout=0.5)


@pytest.fixture
def mock_websockets():
    """Patch the websockets module used by the transport."""
    with patch("bidbell.transport.websockets") as mock_module:
        mock_module.connect = AsyncMock()
        yield mock_module


class TestConnectUrl:
    """Tests for URL helpers."""

    def test_token_appended(self):
        url = build_connect_url("ws://localhost:5000", "abc")
        assert url == "ws://localhost:5000?token=abc"

    def test_existing_query_kept_and_token_replaced(self):
        url = build_connect_url("wss://example.com/ws?v=2&token=old", "new")
        assert url == "wss://example.com/ws?v=2&token=new"

    def test_token_is_url_encoded(self):
        url = build_connect_url("ws://localhost:5000", "a b+c/d")
        assert url == "ws://localhost:5000?token=a+b%2Bc%2Fd"

    def test_redact_url_drops_query(self):
        assert redact_url("wss://example.com/ws?token=secret") == "wss://example.com/ws"


class TestOpen:
    """Tests for connecting and receiving frames."""

    @pytest.mark.asyncio
    async def test_frames_delivered_then_close(self, transport, listener, mock_websockets, mock_ws_url):
        """Frames are reported in order and the close is always last."""
        mock_websockets.connect.return_value = FakeWebSocket(frames=["one", b"two"])

        handle = await transport.open(mock_ws_url, "tok")
        await handle._task

        assert listener.events == [
            ("open", handle),
            ("message", handle, "one"),
            ("message", handle, "two"),
            ("close", handle, NORMAL_CLOSURE, True),
        ]
        assert not handle.is_live
        target = mock_websockets.connect.call_args.args[0]
        assert target == f"{mock_ws_url}?token=tok"

    @pytest.mark.asyncio
    async def test_handle_url_hides_token(self, transport, mock_websockets, mock_ws_url):
        mock_websockets.connect.return_value = FakeWebSocket()

        handle = await transport.open(mock_ws_url, "secret")
        await handle._task

        assert "secret" not in handle.url
        assert "secret" not in repr(handle)

    @pytest.mark.asyncio
    async def test_server_drop_is_abnormal(self, transport, listener, mock_websockets, mock_ws_url):
        mock_websockets.connect.return_value = FakeWebSocket(frames=["one"], close_code=None)

        handle = await transport.open(mock_ws_url, "tok")
        await handle._task

        assert listener.events[-1] == ("close", handle, ABNORMAL_CLOSURE, False)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [401, 403])
    async def test_rejected_token_reports_auth_error(
        self, transport, listener, mock_websockets, mock_ws_url, status_code
    ):
        mock_websockets.connect.side_effect = InvalidStatus(MagicMock(status_code=status_code))

        handle = await transport.open(mock_ws_url, "bad")
        await handle._task

        assert listener.kinds() == ["error", "close"]
        error = listener.events[0][2]
        assert isinstance(error, AuthError)
        assert error.status_code == status_code
        assert listener.events[1] == ("close", handle, ABNORMAL_CLOSURE, False)

    @pytest.mark.asyncio
    async def test_other_http_status_is_transport_error(self, transport, listener, mock_websockets, mock_ws_url):
        mock_websockets.connect.side_effect = InvalidStatus(MagicMock(status_code=502))

        handle = await transport.open(mock_ws_url, "tok")
        await handle._task

        error = listener.events[0][2]
        assert isinstance(error, TransportError)
        assert not isinstance(error, AuthError)

    @pytest.mark.asyncio
    async def test_connection_refused(self, transport, listener, mock_websockets, mock_ws_url):
        mock_websockets.connect.side_effect = OSError("Connection refused")

        handle = await transport.open(mock_ws_url, "tok")
        await handle._task

        assert listener.kinds() == ["error", "close"]
        assert isinstance(listener.events[0][2], TransportError)
        assert listener.events[1][2:] == (ABNORMAL_CLOSURE, False)

    @pytest.mark.asyncio
    async def test_listener_errors_are_contained(self, mock_websockets, mock_ws_url):
        listener = MagicMock(spec=TransportListener)
        listener.on_message.side_effect = RuntimeError("boom")
        transport = WebSocketTransport(listener)
        mock_websockets.connect.return_value = FakeWebSocket(frames=["one", "two"])

        handle = await transport.open(mock_ws_url, "tok")
        await handle._task

        assert listener.on_message.call_count == 2
        listener.on_close.assert_called_once_with(handle, NORMAL_CLOSURE, True)


class TestSendAndClose:
    """Tests for send and close."""

    @pytest.mark.asyncio
    async def test_send_serializes_mappings(self, transport, mock_websockets, mock_ws_url):
        ws = FakeWebSocket(hold_open=True)
        mock_websockets.connect.return_value = ws

        handle = await transport.open(mock_ws_url, "tok")
        await wait_until(lambda: handle.is_open)
        await transport.send(handle, {"type": "ping"})
        await transport.send(handle, "raw")

        assert [json.loads(ws.sent[0]), ws.sent[1]] == [{"type": "ping"}, "raw"]
        await transport.close(handle)

    @pytest.mark.asyncio
    async def test_send_on_unopened_handle_raises(self, transport):
        with pytest.raises(TransportError):
            await transport.send(TransportHandle("ws://localhost:5000"), "hello")

    @pytest.mark.asyncio
    async def test_close_open_handle(self, transport, listener, mock_websockets, mock_ws_url):
        ws = FakeWebSocket(hold_open=True)
        mock_websockets.connect.return_value = ws

        handle = await transport.open(mock_ws_url, "tok")
        await wait_until(lambda: handle.is_open)
        await transport.close(handle, NORMAL_CLOSURE, "bye")

        assert ws.closed_with == (NORMAL_CLOSURE, "bye")
        assert listener.events[-1] == ("close", handle, NORMAL_CLOSURE, True)
        assert not handle.is_live

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, transport, listener, mock_websockets, mock_ws_url):
        mock_websockets.connect.return_value = FakeWebSocket(hold_open=True)

        handle = await transport.open(mock_ws_url, "tok")
        await wait_until(lambda: handle.is_open)
        await transport.close(handle)
        await transport.close(handle)

        assert listener.kinds().count("close") == 1

    @pytest.mark.asyncio
    async def test_close_while_connecting(self, transport, listener, mock_websockets, mock_ws_url):
        """A pending connect is cancelled and reported as a clean close."""
        never = asyncio.Event()

        async def slow_connect(*args, **kwargs):
            await never.wait()

        mock_websockets.connect.side_effect = slow_connect

        handle = await transport.open(mock_ws_url, "tok")
        await asyncio.sleep(0.01)
        await transport.close(handle)

        assert listener.events == [("close", handle, NORMAL_CLOSURE, True)]
        assert not handle.is_live

    @pytest.mark.asyncio
    async def test_open_supersedes_previous_handle(self, transport, listener, mock_websockets, mock_ws_url):
        """Only one connection is live at a time."""
        first_ws = FakeWebSocket(hold_open=True)
        second_ws = FakeWebSocket(hold_open=True)
        mock_websockets.connect.side_effect = [first_ws, second_ws]

        first = await transport.open(mock_ws_url, "tok")
        await wait_until(lambda: first.is_open)
        second = await transport.open(mock_ws_url, "tok")

        assert first_ws.closed_with == (NORMAL_CLOSURE, "superseded")
        assert not first.is_live
        assert transport.current is second

        await wait_until(lambda: second.is_open)
        await transport.close(second)
