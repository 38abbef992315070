"""
Push message router.

Turns raw frames from the transport into store mutations. A bad frame is
logged and dropped; it never raises to the transport and never closes
the connection.
"""

import logging
from typing import Callable, Optional, Union

from bidbell.exceptions import ProtocolError
from bidbell.messages import (
    ConnectionConfirmedMessage,
    NotificationMessage,
    NotificationReadMessage,
    PushMessage,
    UnknownMessage,
    UnreadCountMessage,
    parse_message,
)
from bidbell.store import NotificationStore


logger = logging.getLogger("bidbell.router")


class MessageRouter:
    """
    Dispatches push messages to the notification store.

    Attributes:
        store: Store receiving notification mutations
        on_connection_confirmed: Called when the server confirms the
            connection (used by the coordinator to reset reconnect state)
    """

    def __init__(
        self,
        store: NotificationStore,
        on_connection_confirmed: Optional[Callable[[], None]] = None,
    ):
        self._store = store
        self._on_connection_confirmed = on_connection_confirmed
        self._routed = 0
        self._dropped = 0
        self._ignored = 0

    @property
    def stats(self) -> dict:
        """Frame counters: routed, dropped (malformed) and ignored (unknown type)."""
        return {
            "routed": self._routed,
            "dropped": self._dropped,
            "ignored": self._ignored,
        }

    def route(self, raw: Union[str, bytes]) -> Optional[PushMessage]:
        """
        Parse and dispatch one frame.

        Returns:
            The dispatched message, or None if the frame was dropped or its
            type is unknown
        """
        try:
            message = parse_message(raw)
        except ProtocolError as e:
            self._dropped += 1
            logger.warning(f"Dropping malformed frame: {e} (frame: {e.raw})")
            return None

        if isinstance(message, UnknownMessage):
            self._ignored += 1
            logger.info(f"Ignoring unknown message type: {message.type}")
            return None

        try:
            self._dispatch(message)
        except Exception as e:
            self._dropped += 1
            logger.error(f"Error handling {message.type} message: {e}", exc_info=True)
            return None

        self._routed += 1
        return message

    def _dispatch(self, message: PushMessage) -> None:
        if isinstance(message, ConnectionConfirmedMessage):
            logger.info("Connection confirmed by server")
            if self._on_connection_confirmed is not None:
                self._on_connection_confirmed()

        elif isinstance(message, NotificationMessage):
            logger.debug(f"Notification received: {message.notification.id} ({message.notification.type})")
            self._store.add_or_update(message.notification)

        elif isinstance(message, NotificationReadMessage):
            logger.debug(f"Notification read remotely: {message.notification_id}")
            self._store.mark_read(message.notification_id)

        elif isinstance(message, UnreadCountMessage):
            logger.debug(f"Unread count update: {message.count}")
            self._store.set_authoritative_unread_count(message.count)
