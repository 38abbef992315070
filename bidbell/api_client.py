"""
Notification REST API client.

Provides the authenticated request/response calls used next to the push
channel: snapshot fetches and the confirmations for optimistic read/delete
actions. Every response is an envelope ``{"success": bool, "data": ...}``.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union
from urllib.parse import quote

import httpx

from bidbell import __version__
from bidbell.exceptions import AuthError, SyncError
from bidbell.models import Snapshot


logger = logging.getLogger("bidbell.api")


# ============================================================================
# Constants
# ============================================================================

DEFAULT_TIMEOUT = 30.0  # seconds
DEFAULT_SNAPSHOT_LIMIT = 20
USER_AGENT = f"bidbell/{__version__}"

TokenProvider = Callable[[], Union[Optional[str], Awaitable[Optional[str]]]]


async def resolve_token(token_provider: TokenProvider) -> str:
    """
    Ask the auth collaborator for the current bearer token.

    The provider may be a plain function or a coroutine function.

    Raises:
        AuthError: If no token is available
    """
    token = token_provider()
    if inspect.isawaitable(token):
        token = await token
    if not token:
        raise AuthError("No authentication token available")
    return token


# ============================================================================
# NotificationApiClient Class
# ============================================================================


class NotificationApiClient:
    """
    HTTP client for the notification endpoints.

    The bearer token is requested from the token provider on every call, so
    a refreshed token is picked up without rebuilding the client.

    Attributes:
        api_url: Base URL of the REST API (e.g. https://auctions.example.com/api)
    """

    def __init__(
        self,
        api_url: str,
        token_provider: TokenProvider,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the API client.

        Args:
            api_url: Base URL of the REST API
            token_provider: Callable returning the current bearer token
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)

        Raises:
            ValueError: If api_url is empty
        """
        if not api_url:
            raise ValueError("api_url is required")

        self._api_url = api_url.rstrip("/")
        self._token_provider = token_provider

        self._client = httpx.AsyncClient(
            base_url=self._api_url,
            headers={
                "User-Agent": USER_AGENT,
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @property
    def api_url(self) -> str:
        """Get the API base URL."""
        return self._api_url

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "NotificationApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Snapshot
    # -------------------------------------------------------------------------

    async def get_notifications(
        self,
        limit: int = DEFAULT_SNAPSHOT_LIMIT,
        page: Optional[int] = None,
        unread_only: bool = False,
    ) -> Snapshot:
        """
        Fetch the user's notifications and unread count.

        Args:
            limit: Maximum number of notifications to return
            page: Optional page number (1-based)
            unread_only: Only return unread notifications

        Returns:
            Snapshot with notifications (most recent first) and unread count

        Raises:
            AuthError: If the token is missing or rejected
            SyncError: If the request fails or the body is malformed
        """
        params: dict[str, Any] = {"limit": limit}
        if page is not None:
            params["page"] = page
        if unread_only:
            params["unreadOnly"] = "true"

        body = await self._send("GET", "/notifications", "Fetch notifications", params=params)

        data = body.get("data")
        if not isinstance(data, dict):
            raise SyncError("Fetch notifications returned no data")

        try:
            return Snapshot.model_validate(data)
        except ValueError as e:
            raise SyncError(f"Fetch notifications returned malformed data: {e}")

    # -------------------------------------------------------------------------
    # Confirmations
    # -------------------------------------------------------------------------

    async def mark_read(self, notification_id: str) -> None:
        """
        Mark a notification as read on the server.

        Raises:
            AuthError: If the token is missing or rejected
            SyncError: If the server did not confirm the change
        """
        await self._send(
            "PUT",
            f"/notifications/{quote(notification_id, safe='')}/read",
            "Mark notification read",
        )

    async def mark_all_read(self) -> None:
        """
        Mark all notifications as read on the server.

        Raises:
            AuthError: If the token is missing or rejected
            SyncError: If the server did not confirm the change
        """
        await self._send("PUT", "/notifications/read-all", "Mark all notifications read")

    async def delete_notification(self, notification_id: str) -> None:
        """
        Delete a notification on the server.

        Raises:
            AuthError: If the token is missing or rejected
            SyncError: If the server did not confirm the change
        """
        await self._send(
            "DELETE",
            f"/notifications/{quote(notification_id, safe='')}",
            "Delete notification",
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _send(
        self,
        method: str,
        path: str,
        action: str,
        params: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """Send an authenticated request and unwrap the success envelope."""
        token = await resolve_token(self._token_provider)

        try:
            response = await self._client.request(
                method,
                path,
                params=params,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.TimeoutException as e:
            raise SyncError(f"{action} timed out: {e}")
        except httpx.NetworkError as e:
            raise SyncError(f"Failed to connect to server: {e}")
        except httpx.HTTPError as e:
            raise SyncError(f"{action} failed: {e}")

        if response.status_code in (401, 403):
            raise AuthError(
                f"{action} rejected: invalid or expired token",
                status_code=response.status_code,
            )
        if not 200 <= response.status_code < 300:
            raise SyncError(
                f"{action} failed with status {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            raise SyncError(f"{action} returned invalid JSON", status_code=response.status_code)

        if not isinstance(body, dict) or not body.get("success"):
            message = body.get("message") if isinstance(body, dict) else None
            raise SyncError(
                f"{action} was not confirmed by the server"
                + (f": {message}" if message else ""),
                status_code=response.status_code,
            )

        logger.debug(f"{action}: {response.status_code}")
        return body
