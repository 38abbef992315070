"""
Unit tests for the notification REST client.

Tests snapshot fetches, confirmations and error mapping.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

import httpx

from bidbell.api_client import NotificationApiClient, resolve_token
from bidbell.exceptions import AuthError, SyncError


def make_response(status_code=200, body=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body if body is not None else {"success": True}
    return response


class TestNotificationApiClient:
    """Tests for NotificationApiClient class."""

    @pytest.fixture
    def api_client(self, mock_api_url, token_provider):
        """Create an API client instance for testing."""
        return NotificationApiClient(api_url=mock_api_url, token_provider=token_provider)

    def test_requires_api_url(self, token_provider):
        with pytest.raises(ValueError):
            NotificationApiClient(api_url="", token_provider=token_provider)

    def test_strips_trailing_slash(self, token_provider):
        client = NotificationApiClient(api_url="http://localhost:5000/api/", token_provider=token_provider)
        assert client.api_url == "http://localhost:5000/api"


class TestGetNotifications(TestNotificationApiClient):
    """Tests for snapshot fetches."""

    @pytest.mark.asyncio
    async def test_get_notifications_success(self, api_client, sample_snapshot_body, mock_token):
        """Test successful snapshot fetch."""
        with patch.object(api_client, "_client") as mock_client:
            mock_client.request = AsyncMock(return_value=make_response(200, sample_snapshot_body))

            snapshot = await api_client.get_notifications(limit=20)

        assert [n.id for n in snapshot.notifications] == ["ntf_001", "ntf_000"]
        assert snapshot.unread_count == 1
        assert snapshot.pagination.total_count == 2

        method, path = mock_client.request.call_args.args
        kwargs = mock_client.request.call_args.kwargs
        assert (method, path) == ("GET", "/notifications")
        assert kwargs["params"] == {"limit": 20}
        assert kwargs["headers"]["Authorization"] == f"Bearer {mock_token}"

    @pytest.mark.asyncio
    async def test_get_notifications_query_params(self, api_client, sample_snapshot_body):
        """Page and unread-only filters are sent as query parameters."""
        with patch.object(api_client, "_client") as mock_client:
            mock_client.request = AsyncMock(return_value=make_response(200, sample_snapshot_body))

            await api_client.get_notifications(limit=5, page=2, unread_only=True)

        assert mock_client.request.call_args.kwargs["params"] == {
            "limit": 5,
            "page": 2,
            "unreadOnly": "true",
        }

    @pytest.mark.asyncio
    async def test_get_notifications_without_data(self, api_client):
        with patch.object(api_client, "_client") as mock_client:
            mock_client.request = AsyncMock(return_value=make_response(200, {"success": True}))

            with pytest.raises(SyncError):
                await api_client.get_notifications()

    @pytest.mark.asyncio
    async def test_get_notifications_malformed_data(self, api_client):
        body = {"success": True, "data": {"notifications": [{"title": "missing id"}], "unreadCount": 1}}
        with patch.object(api_client, "_client") as mock_client:
            mock_client.request = AsyncMock(return_value=make_response(200, body))

            with pytest.raises(SyncError):
                await api_client.get_notifications()

    @pytest.mark.asyncio
    async def test_unparseable_timestamp_does_not_drop_snapshot(self, api_client, sample_notification_data):
        broken = {"id": "ntf_002", "title": "Auction ending", "createdAt": "not-a-date"}
        body = {
            "success": True,
            "data": {"notifications": [sample_notification_data, broken], "unreadCount": 2},
        }
        with patch.object(api_client, "_client") as mock_client:
            mock_client.request = AsyncMock(return_value=make_response(200, body))

            snapshot = await api_client.get_notifications()

        assert [n.id for n in snapshot.notifications] == ["ntf_001", "ntf_002"]
        assert snapshot.notifications[0].created_at is not None
        assert snapshot.notifications[1].created_at is None
        assert snapshot.unread_count == 2


class TestErrorMapping(TestNotificationApiClient):
    """Tests for transport and status error mapping."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [401, 403])
    async def test_rejected_token_raises_auth_error(self, api_client, status_code):
        with patch.object(api_client, "_client") as mock_client:
            mock_client.request = AsyncMock(return_value=make_response(status_code, {"success": False}))

            with pytest.raises(AuthError) as exc_info:
                await api_client.get_notifications()

        assert exc_info.value.status_code == status_code

    @pytest.mark.asyncio
    async def test_server_error_raises_sync_error(self, api_client):
        with patch.object(api_client, "_client") as mock_client:
            mock_client.request = AsyncMock(return_value=make_response(500, {"success": False}))

            with pytest.raises(SyncError) as exc_info:
                await api_client.mark_read("ntf_001")

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_success_false_raises_sync_error(self, api_client):
        with patch.object(api_client, "_client") as mock_client:
            mock_client.request = AsyncMock(return_value=make_response(
                200, {"success": False, "message": "Notification not found"}
            ))

            with pytest.raises(SyncError) as exc_info:
                await api_client.mark_read("ntf_001")

        assert "Notification not found" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_invalid_json_raises_sync_error(self, api_client):
        response = make_response(200)
        response.json.side_effect = ValueError("Expecting value")
        with patch.object(api_client, "_client") as mock_client:
            mock_client.request = AsyncMock(return_value=response)

            with pytest.raises(SyncError):
                await api_client.mark_all_read()

    @pytest.mark.asyncio
    async def test_network_error_raises_sync_error(self, api_client):
        with patch.object(api_client, "_client") as mock_client:
            mock_client.request = AsyncMock(side_effect=httpx.ConnectError("Connection refused"))

            with pytest.raises(SyncError):
                await api_client.get_notifications()

    @pytest.mark.asyncio
    async def test_timeout_raises_sync_error(self, api_client):
        with patch.object(api_client, "_client") as mock_client:
            mock_client.request = AsyncMock(side_effect=httpx.ReadTimeout("timed out"))

            with pytest.raises(SyncError):
                await api_client.get_notifications()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        httpx.RemoteProtocolError("Server disconnected without sending a response."),
        httpx.UnsupportedProtocol("Request URL is missing a protocol"),
    ])
    async def test_other_transport_errors_raise_sync_error(self, api_client, error):
        with patch.object(api_client, "_client") as mock_client:
            mock_client.request = AsyncMock(side_effect=error)

            with pytest.raises(SyncError):
                await api_client.get_notifications()

            with pytest.raises(SyncError):
                await api_client.delete_notification("ntf_001")

    @pytest.mark.asyncio
    async def test_missing_token_raises_auth_error_without_request(self, mock_api_url):
        api_client = NotificationApiClient(api_url=mock_api_url, token_provider=lambda: None)
        with patch.object(api_client, "_client") as mock_client:
            mock_client.request = AsyncMock()

            with pytest.raises(AuthError):
                await api_client.get_notifications()

        mock_client.request.assert_not_called()


class TestConfirmations(TestNotificationApiClient):
    """Tests for read/delete confirmations."""

    @pytest.mark.asyncio
    async def test_mark_read_path(self, api_client):
        with patch.object(api_client, "_client") as mock_client:
            mock_client.request = AsyncMock(return_value=make_response())

            await api_client.mark_read("ntf/001")

        assert mock_client.request.call_args.args == ("PUT", "/notifications/ntf%2F001/read")

    @pytest.mark.asyncio
    async def test_mark_all_read_path(self, api_client):
        with patch.object(api_client, "_client") as mock_client:
            mock_client.request = AsyncMock(return_value=make_response())

            await api_client.mark_all_read()

        assert mock_client.request.call_args.args == ("PUT", "/notifications/read-all")

    @pytest.mark.asyncio
    async def test_delete_path(self, api_client):
        with patch.object(api_client, "_client") as mock_client:
            mock_client.request = AsyncMock(return_value=make_response())

            await api_client.delete_notification("ntf_001")

        assert mock_client.request.call_args.args == ("DELETE", "/notifications/ntf_001")

    @pytest.mark.asyncio
    async def test_context_manager_closes_client(self, api_client):
        with patch.object(api_client, "_client") as mock_client:
            mock_client.aclose = AsyncMock()

            async with api_client:
                pass

        mock_client.aclose.assert_awaited_once()


class TestResolveToken:
    """Tests for resolve_token."""

    @pytest.mark.asyncio
    async def test_sync_provider(self):
        assert await resolve_token(lambda: "abc") == "abc"

    @pytest.mark.asyncio
    async def test_async_provider(self):
        async def provider():
            return "abc"

        assert await resolve_token(provider) == "abc"

    @pytest.mark.asyncio
    async def test_empty_token_raises(self):
        with pytest.raises(AuthError):
            await resolve_token(lambda: "")


class TestMockTransport:
    """End-to-end request through an httpx mock transport."""

    @pytest.mark.asyncio
    async def test_request_over_mock_transport(self, mock_api_url, token_provider, sample_snapshot_body):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json=sample_snapshot_body)

        async with NotificationApiClient(
            api_url=mock_api_url,
            token_provider=token_provider,
            transport=httpx.MockTransport(handler),
        ) as api_client:
            snapshot = await api_client.get_notifications(limit=3, unread_only=True)

        assert seen["url"] == f"{mock_api_url}/notifications?limit=3&unreadOnly=true"
        assert seen["auth"].startswith("Bearer ")
        assert snapshot.unread_count == 1

    @pytest.mark.asyncio
    async def test_dropped_connection_over_mock_transport(self, mock_api_url, token_provider):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.RemoteProtocolError("Server disconnected without sending a response.", request=request)

        async with NotificationApiClient(
            api_url=mock_api_url,
            token_provider=token_provider,
            transport=httpx.MockTransport(handler),
        ) as api_client:
            with pytest.raises(SyncError) as exc_info:
                await api_client.get_notifications()

        assert "Server disconnected" in str(exc_info.value)
