"""
Delivery coordinator.

Owns one notification session: loads the initial snapshot, opens the push
channel, feeds frames into the store, reconnects with linear backoff and
resynchronises after gaps. UI consumers only see the store and the
connection status through their subscribe interfaces.

State machine:

    IDLE -> STARTING -> CONNECTED <-> RECONNECTING -> STOPPED

Any active state moves to STOPPED on stop(), on an auth failure, on a
clean server close, or when the reconnect budget runs out.

Every awaited completion (snapshot fetch, REST confirmation, transport
open) is tagged with the session generation; completions from a session
that has since been stopped or restarted are discarded.
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Set

from bidbell.api_client import NotificationApiClient, TokenProvider, resolve_token
from bidbell.exceptions import AuthError, SyncError, TransportError
from bidbell.message_router import MessageRouter
from bidbell.models import ConnectionState, ConnectionStatus
from bidbell.reconnect import ReconnectPolicy, ReconnectTimer
from bidbell.snapshot_loader import SnapshotLoader
from bidbell.store import NotificationStore, StoreCallback
from bidbell.transport import (
    NORMAL_CLOSURE,
    TransportHandle,
    TransportListener,
    WebSocketTransport,
)


logger = logging.getLogger("bidbell.coordinator")

# Close code used by stop(); a close with this code never triggers a reconnect
CLEAN_CLOSE_CODE = NORMAL_CLOSURE

# Permanent disconnect reasons published in ConnectionStatus.error
ERROR_AUTH = "authentication failed"
ERROR_RECONNECT_EXHAUSTED = "reconnect budget exhausted"

StatusCallback = Callable[[ConnectionStatus], None]
TransportFactory = Callable[[TransportListener], WebSocketTransport]


class CoordinatorState(str, Enum):
    """Session lifecycle states."""

    IDLE = "idle"
    STARTING = "starting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    STOPPED = "stopped"


ACTIVE_STATES = frozenset({
    CoordinatorState.STARTING,
    CoordinatorState.CONNECTED,
    CoordinatorState.RECONNECTING,
})


class DeliveryCoordinator(TransportListener):
    """
    Orchestrates notification delivery for one authenticated user.

    Collaborators are injected; the transport is built by
    ``transport_factory(self)`` so the coordinator receives its events.
    Transports must report events asynchronously (never from inside
    ``open()``).

    Attributes:
        store: The authoritative notification store
        state: Current CoordinatorState
        connection_status: Last published ConnectionStatus
    """

    def __init__(
        self,
        ws_url: str,
        snapshot_loader: SnapshotLoader,
        api_client: NotificationApiClient,
        transport_factory: TransportFactory = WebSocketTransport,
        policy: Optional[ReconnectPolicy] = None,
        store: Optional[NotificationStore] = None,
    ):
        """
        Initialize the coordinator.

        Args:
            ws_url: Push channel URL (ws:// or wss://)
            snapshot_loader: Loader for authoritative snapshots
            api_client: REST client used to confirm read/delete actions
            transport_factory: Builds the transport given its listener
            policy: Reconnect policy (defaults to 5 attempts, 1s linear)
            store: Notification store (a new one by default)
        """
        if not ws_url:
            raise ValueError("ws_url is required")

        self._ws_url = ws_url
        self._snapshot_loader = snapshot_loader
        self._api_client = api_client
        self._policy = policy or ReconnectPolicy()
        self._store = store or NotificationStore()
        self._router = MessageRouter(
            self._store,
            on_connection_confirmed=self._handle_connection_confirmed,
        )
        self._transport = transport_factory(self)
        self._timer = ReconnectTimer()

        self._state = CoordinatorState.IDLE
        self._status = ConnectionStatus()
        self._status_subscribers: List[StatusCallback] = []
        self._token_provider: Optional[TokenProvider] = None
        self._handle: Optional[TransportHandle] = None
        self._attempt = 0
        self._generation = 0
        self._has_connected = False
        self._needs_resync = False
        self._resync_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def store(self) -> NotificationStore:
        return self._store

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def connection_status(self) -> ConnectionStatus:
        return self._status

    @property
    def attempt(self) -> int:
        """Reconnect attempts made since the last successful connection."""
        return self._attempt

    @property
    def is_active(self) -> bool:
        """True between start() and stop() (or a permanent failure)."""
        return self._state in ACTIVE_STATES

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def subscribe(self, callback: StoreCallback) -> Callable[[], None]:
        """Subscribe to store changes. Returns an unsubscribe function."""
        return self._store.subscribe(callback)

    def subscribe_connection(self, callback: StatusCallback) -> Callable[[], None]:
        """Subscribe to connection status changes. Returns an unsubscribe function."""
        self._status_subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._status_subscribers:
                self._status_subscribers.remove(callback)

        return unsubscribe

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self, token_provider: TokenProvider) -> None:
        """
        Start a session: load the initial snapshot, then open the push channel.

        A failed snapshot is logged and the connection is opened anyway
        (the snapshot is retried once connected). A missing or rejected
        token stops the session with a permanent auth error.

        Args:
            token_provider: Callable returning the current bearer token
        """
        if self.is_active:
            logger.warning(f"start() ignored: session already {self._state.value}")
            return

        self._token_provider = token_provider
        self._generation += 1
        generation = self._generation
        self._attempt = 0
        self._has_connected = False
        self._needs_resync = True
        self._state = CoordinatorState.STARTING
        self._publish_status(ConnectionStatus(ConnectionState.CONNECTING))
        logger.info("Starting notification session")

        await self._load_snapshot(generation)
        if not self._is_current(generation):
            return

        await self._connect(generation)

    async def stop(self) -> None:
        """
        End the session. Safe to call from any state, any number of times.

        Cancels any pending reconnect, closes the live connection with the
        clean close code and empties the store. REST confirmations still in
        flight may complete, but their results are ignored.
        """
        was_active = self.is_active
        self._generation += 1
        self._timer.cancel()
        handle, self._handle = self._handle, None
        self._state = CoordinatorState.STOPPED

        if len(self._store) or self._store.unread_count:
            self._store.reset()
        self._publish_status(ConnectionStatus(ConnectionState.DISCONNECTED))

        if handle is not None:
            try:
                await self._transport.close(handle, CLEAN_CLOSE_CODE, "client stop")
            except TransportError as e:
                logger.warning(f"Error closing notification channel: {e}")

        if was_active:
            logger.info("Notification session stopped")

    async def resync(self) -> bool:
        """
        Reload the authoritative snapshot.

        Concurrent calls share one fetch.

        Returns:
            True if the store was refreshed
        """
        if not self.is_active:
            return False
        if self._resync_task is None or self._resync_task.done():
            self._resync_task = asyncio.create_task(self._load_snapshot(self._generation))
        return await asyncio.shield(self._resync_task)

    async def wait_for_pending(self, timeout: Optional[float] = None) -> None:
        """Wait for outstanding background work (confirmations, resyncs, reconnects)."""
        pending = [task for task in self._tasks if not task.done()]
        if self._resync_task is not None and not self._resync_task.done():
            pending.append(self._resync_task)
        if pending:
            await asyncio.wait(pending, timeout=timeout)

    # -------------------------------------------------------------------------
    # User Actions (optimistic)
    # -------------------------------------------------------------------------

    def mark_read(self, notification_id: str) -> Optional[asyncio.Task]:
        """
        Mark a notification read locally and confirm with the server.

        Returns:
            The confirmation task (resolves to True when confirmed), or None
            if nothing changed locally or no session is active
        """
        if not self._require_active("mark_read"):
            return None
        if not self._store.mark_read(notification_id):
            return None
        return self._spawn(self._confirm(
            self._generation,
            f"Mark read {notification_id}",
            lambda: self._api_client.mark_read(notification_id),
        ))

    def mark_all_read(self) -> Optional[asyncio.Task]:
        """Mark everything read locally and confirm with the server."""
        if not self._require_active("mark_all_read"):
            return None
        self._store.mark_all_read()
        return self._spawn(self._confirm(
            self._generation,
            "Mark all read",
            self._api_client.mark_all_read,
        ))

    def remove(self, notification_id: str) -> Optional[asyncio.Task]:
        """Remove a notification locally and delete it on the server."""
        if not self._require_active("remove"):
            return None
        if not self._store.remove(notification_id):
            return None
        return self._spawn(self._confirm(
            self._generation,
            f"Delete {notification_id}",
            lambda: self._api_client.delete_notification(notification_id),
        ))

    # -------------------------------------------------------------------------
    # TransportListener
    # -------------------------------------------------------------------------

    def on_open(self, handle: TransportHandle) -> None:
        if not self._owns(handle):
            return
        needs_resync = self._needs_resync or self._has_connected
        self._mark_connected()
        if needs_resync:
            self._spawn(self.resync())

    def on_message(self, handle: TransportHandle, raw: str) -> None:
        if not self._owns(handle):
            return
        self._router.route(raw)

    def on_error(self, handle: TransportHandle, error: Exception) -> None:
        if not self._owns(handle):
            return
        if isinstance(error, AuthError):
            self._fail_auth(error)
        else:
            logger.warning(f"Notification channel error: {error}")

    def on_close(self, handle: TransportHandle, code: int, was_clean: bool) -> None:
        if not self._owns(handle):
            return
        self._handle = None

        if code == CLEAN_CLOSE_CODE:
            logger.info("Notification channel closed cleanly by server")
            self._timer.cancel()
            self._state = CoordinatorState.STOPPED
            self._publish_status(ConnectionStatus(ConnectionState.DISCONNECTED))
            return

        logger.warning(f"Notification channel lost (code {code}, clean={was_clean})")
        self._needs_resync = True
        self._schedule_reconnect()

    # -------------------------------------------------------------------------
    # Connection Management
    # -------------------------------------------------------------------------

    async def _connect(self, generation: int) -> None:
        """Open the transport for the given session generation."""
        try:
            token = await resolve_token(self._token_provider)
        except AuthError as e:
            if self._is_current(generation):
                self._fail_auth(e)
            return
        if not self._is_current(generation):
            return

        try:
            handle = await self._transport.open(self._ws_url, token)
        except TransportError as e:
            if self._is_current(generation):
                logger.warning(f"Failed to open notification channel: {e}")
                self._schedule_reconnect()
            return

        if not self._is_current(generation):
            try:
                await self._transport.close(handle, CLEAN_CLOSE_CODE, "session ended")
            except TransportError as e:
                logger.debug(f"Error closing stale connection: {e}")
            return

        self._handle = handle

    async def _reconnect(self, generation: int) -> None:
        if not self._is_current(generation) or self._state != CoordinatorState.RECONNECTING:
            return
        logger.info(f"Reconnect attempt {self._attempt}/{self._policy.max_attempts}")
        await self._connect(generation)

    def _schedule_reconnect(self) -> None:
        if not self._policy.should_retry(self._attempt):
            logger.error(
                f"Giving up after {self._attempt} reconnect attempts"
            )
            self._stop_with_error(ERROR_RECONNECT_EXHAUSTED)
            return

        self._attempt += 1
        delay = self._policy.next_delay(self._attempt)
        self._state = CoordinatorState.RECONNECTING
        self._publish_status(ConnectionStatus(ConnectionState.RECONNECTING, attempt=self._attempt))
        logger.info(
            f"Reconnecting in {delay:.1f}s "
            f"(attempt {self._attempt}/{self._policy.max_attempts})"
        )

        generation = self._generation
        self._timer.schedule(delay, lambda: self._spawn(self._reconnect(generation)))

    def _handle_connection_confirmed(self) -> None:
        if self.is_active:
            self._mark_connected()

    def _mark_connected(self) -> None:
        self._timer.cancel()
        self._attempt = 0
        self._has_connected = True
        if self._state != CoordinatorState.CONNECTED:
            logger.info("Notification channel connected")
        self._state = CoordinatorState.CONNECTED
        self._publish_status(ConnectionStatus(ConnectionState.OPEN))

    def _fail_auth(self, error: Exception) -> None:
        logger.error(f"Authentication failed, stopping notification session: {error}")
        self._stop_with_error(ERROR_AUTH)

    def _stop_with_error(self, reason: str) -> None:
        """Stop without a clean teardown; the store is kept for display."""
        self._timer.cancel()
        self._state = CoordinatorState.STOPPED
        handle, self._handle = self._handle, None
        if handle is not None and handle.is_live:
            self._spawn(self._close_quietly(handle))
        self._publish_status(ConnectionStatus(ConnectionState.DISCONNECTED, error=reason))

    async def _close_quietly(self, handle: TransportHandle) -> None:
        try:
            await self._transport.close(handle, CLEAN_CLOSE_CODE, "session failed")
        except TransportError as e:
            logger.debug(f"Error closing connection: {e}")

    # -------------------------------------------------------------------------
    # Snapshot and Confirmation
    # -------------------------------------------------------------------------

    async def _load_snapshot(self, generation: int) -> bool:
        try:
            snapshot = await self._snapshot_loader.fetch()
        except AuthError as e:
            if self._is_current(generation):
                self._fail_auth(e)
            return False
        except SyncError as e:
            if self._is_current(generation):
                logger.warning(f"Snapshot load failed: {e}")
            return False

        if not self._is_current(generation):
            logger.debug("Discarding snapshot from an ended session")
            return False

        self._store.load_snapshot(snapshot.notifications, snapshot.unread_count)
        self._needs_resync = False
        return True

    async def _confirm(
        self,
        generation: int,
        action: str,
        call: Callable[[], Awaitable[None]],
    ) -> bool:
        """Run a server confirmation; on failure resync instead of rolling back."""
        try:
            await call()
        except AuthError as e:
            if self._is_current(generation):
                self._fail_auth(e)
            return False
        except SyncError as e:
            if not self._is_current(generation):
                return False
            logger.warning(f"{action} not confirmed, resyncing: {e}")
            await self.resync()
            return False

        logger.debug(f"{action} confirmed")
        return True

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _owns(self, handle: TransportHandle) -> bool:
        return handle is not None and handle is self._handle and self.is_active

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self.is_active

    def _require_active(self, action: str) -> bool:
        if self.is_active:
            return True
        logger.warning(f"{action} ignored: no active notification session")
        return False

    def _publish_status(self, status: ConnectionStatus) -> None:
        if status == self._status:
            return
        self._status = status
        for callback in list(self._status_subscribers):
            try:
                callback(status)
            except Exception as e:
                logger.warning(f"Connection status subscriber error: {e}", exc_info=True)

    def _spawn(self, coro: Awaitable) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background task failed: {exc}", exc_info=exc)
