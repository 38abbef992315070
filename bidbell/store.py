"""
Authoritative in-memory notification store.

Holds the ordered notification list (most recent first) and the unread
counter, and publishes every state change to subscribers. Mutations are
idempotent and tolerate duplicate or out-of-order delivery:

- A pushed notification whose id is already known is updated in place.
- New pushed notifications always go to the head of the list; arrival
  order is the only ordering signal a live feed provides.
- A snapshot replaces everything and keeps the server's order.
- ``unread_count`` is derived locally between snapshots, but a server
  ``unread_count`` push overwrites it.

The store is single-writer: only the delivery coordinator mutates it, on
the event loop thread, so no locking is done here.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional, Tuple

from bidbell.models import Notification


logger = logging.getLogger("bidbell.store")


class ChangeKind(str, Enum):
    """Kind of mutation that produced a StoreChange."""

    SNAPSHOT = "snapshot"
    ADDED = "added"
    UPDATED = "updated"
    READ = "read"
    ALL_READ = "all_read"
    REMOVED = "removed"
    UNREAD_COUNT = "unread_count"
    RESET = "reset"


@dataclass(frozen=True)
class StoreChange:
    """
    A single store mutation, delivered to subscribers.

    Attributes:
        kind: What happened
        notification_id: Affected notification, for single-item changes
        notifications: Full list after the change, most recent first
        unread_count: Unread counter after the change
    """

    kind: ChangeKind
    notification_id: Optional[str]
    notifications: Tuple[Notification, ...]
    unread_count: int

    @property
    def is_new(self) -> bool:
        """True when a previously unknown notification arrived."""
        return self.kind == ChangeKind.ADDED


StoreCallback = Callable[[StoreChange], None]


class NotificationStore:
    """
    Ordered notification list plus unread counter.

    Usage:
        >>> store = NotificationStore()
        >>> unsubscribe = store.subscribe(lambda change: print(change.unread_count))
        >>> store.load_snapshot([Notification(id="1")], unread_count=1)
        >>> store.mark_read("1")
    """

    def __init__(self):
        self._items: List[Notification] = []
        self._unread_count = 0
        self._subscribers: List[StoreCallback] = []

    # -------------------------------------------------------------------------
    # Read Access
    # -------------------------------------------------------------------------

    @property
    def notifications(self) -> Tuple[Notification, ...]:
        """All notifications, most recent first."""
        return tuple(self._items)

    @property
    def unread_count(self) -> int:
        """Current unread counter."""
        return self._unread_count

    def get(self, notification_id: str) -> Optional[Notification]:
        """Get a notification by id, or None if it is not held locally."""
        index = self._index_of(notification_id)
        return self._items[index] if index is not None else None

    def recent(self, limit: int = 5) -> Tuple[Notification, ...]:
        """The ``limit`` most recent notifications."""
        return tuple(self._items[:max(0, limit)])

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, notification_id: object) -> bool:
        return any(item.id == notification_id for item in self._items)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def load_snapshot(
        self,
        notifications: Iterable[Notification],
        unread_count: int,
    ) -> None:
        """
        Replace the whole state with an authoritative snapshot.

        Any optimistic local change not reflected in the snapshot is dropped.
        Duplicate ids in the input keep their first occurrence.

        Args:
            notifications: Notifications in server order (most recent first)
            unread_count: Server unread count
        """
        items: List[Notification] = []
        seen = set()
        for notification in notifications:
            if notification.id in seen:
                logger.debug(f"Dropping duplicate id {notification.id} from snapshot")
                continue
            seen.add(notification.id)
            items.append(notification)

        self._items = items
        self._unread_count = max(0, int(unread_count))
        self._publish(ChangeKind.SNAPSHOT)

    def add_or_update(self, notification: Notification) -> None:
        """
        Insert a pushed notification, or update it in place if already known.

        A new unread notification increments the counter. Re-delivery of a
        known id only moves the counter by its read-flag change.
        """
        index = self._index_of(notification.id)

        if index is None:
            self._items.insert(0, notification)
            if not notification.is_read:
                self._unread_count += 1
            self._publish(ChangeKind.ADDED, notification.id)
            return

        previous = self._items[index]
        self._items[index] = notification
        if previous.is_read and not notification.is_read:
            self._unread_count += 1
        elif not previous.is_read and notification.is_read:
            self._decrement_unread()
        self._publish(ChangeKind.UPDATED, notification.id)

    def mark_read(self, notification_id: str) -> bool:
        """
        Mark one notification as read.

        Returns:
            True if the notification flipped from unread to read, False if it
            is unknown or was already read (no-op)
        """
        index = self._index_of(notification_id)
        if index is None or self._items[index].is_read:
            return False

        self._items[index] = self._items[index].as_read()
        self._decrement_unread()
        self._publish(ChangeKind.READ, notification_id)
        return True

    def mark_all_read(self) -> None:
        """Mark every notification as read and zero the counter."""
        self._items = [item.as_read() for item in self._items]
        self._unread_count = 0
        self._publish(ChangeKind.ALL_READ)

    def remove(self, notification_id: str) -> bool:
        """
        Remove a notification from the local store.

        Returns:
            True if something was removed, False if the id is unknown
        """
        index = self._index_of(notification_id)
        if index is None:
            return False

        removed = self._items.pop(index)
        if not removed.is_read:
            self._decrement_unread()
        self._publish(ChangeKind.REMOVED, notification_id)
        return True

    def set_authoritative_unread_count(self, count: int) -> None:
        """Overwrite the unread counter with the server value (clamped to >= 0)."""
        self._unread_count = max(0, int(count))
        self._publish(ChangeKind.UNREAD_COUNT)

    def reset(self) -> None:
        """Drop all state, e.g. when the session ends."""
        self._items = []
        self._unread_count = 0
        self._publish(ChangeKind.RESET)

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def subscribe(self, callback: StoreCallback) -> Callable[[], None]:
        """
        Register a callback invoked synchronously after every state change.

        Returns:
            A function that removes the subscription (safe to call twice)
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _index_of(self, notification_id: str) -> Optional[int]:
        for index, item in enumerate(self._items):
            if item.id == notification_id:
                return index
        return None

    def _decrement_unread(self) -> None:
        self._unread_count = max(0, self._unread_count - 1)

    def _publish(self, kind: ChangeKind, notification_id: Optional[str] = None) -> None:
        change = StoreChange(
            kind=kind,
            notification_id=notification_id,
            notifications=tuple(self._items),
            unread_count=self._unread_count,
        )
        for callback in list(self._subscribers):
            try:
                callback(change)
            except Exception as e:
                logger.warning(f"Store subscriber error: {e}", exc_info=True)
