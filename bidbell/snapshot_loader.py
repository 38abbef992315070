"""
Snapshot loader.

Pulls the authoritative notification list and unread count over REST.
Used once when a session starts, so the UI has data before the push
channel is up, and again after a reconnect to cover events missed while
offline.
"""

import logging
from typing import Optional

from bidbell.api_client import DEFAULT_SNAPSHOT_LIMIT, NotificationApiClient
from bidbell.models import Snapshot


logger = logging.getLogger("bidbell.snapshot")


class SnapshotLoader:
    """
    Fetches notification snapshots.

    Attributes:
        api_client: REST client used for the fetch
        default_limit: Page size used when ``fetch`` is called without a limit
    """

    def __init__(
        self,
        api_client: NotificationApiClient,
        default_limit: int = DEFAULT_SNAPSHOT_LIMIT,
    ):
        if default_limit <= 0:
            raise ValueError(f"default_limit must be positive, got: {default_limit}")
        self._api_client = api_client
        self._default_limit = default_limit

    @property
    def default_limit(self) -> int:
        return self._default_limit

    async def fetch(
        self,
        limit: Optional[int] = None,
        page: Optional[int] = None,
        unread_only: bool = False,
    ) -> Snapshot:
        """
        Fetch one snapshot.

        Raises:
            AuthError: If the token is missing or rejected
            SyncError: On network failure, non-2xx status or malformed body
        """
        limit = limit or self._default_limit
        snapshot = await self._api_client.get_notifications(
            limit=limit,
            page=page,
            unread_only=unread_only,
        )
        logger.info(
            f"Loaded snapshot: {len(snapshot.notifications)} notifications, "
            f"{snapshot.unread_count} unread"
        )
        return snapshot
