"""
Notification watcher main loop.

Runs one delivery session in the foreground and prints new notifications
and connection changes until interrupted or permanently disconnected.
"""

import asyncio
import logging
import signal
import sys
from typing import Callable, Optional

from bidbell import __version__
from bidbell.api_client import NotificationApiClient, TokenProvider
from bidbell.config import ClientConfig, ConfigError
from bidbell.coordinator import (
    ERROR_AUTH,
    ERROR_RECONNECT_EXHAUSTED,
    DeliveryCoordinator,
)
from bidbell.credential_store import CredentialStore
from bidbell.display import format_badge, format_notification
from bidbell.models import ConnectionState, ConnectionStatus
from bidbell.snapshot_loader import SnapshotLoader
from bidbell.store import ChangeKind, StoreChange


# Exit codes
EXIT_OK = 0
EXIT_NOT_CONFIGURED = 1
EXIT_AUTH_FAILED = 3
EXIT_RECONNECT_EXHAUSTED = 4


# ============================================================================
# Logging Setup
# ============================================================================


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Setup logging for the client.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured logger
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return logging.getLogger("bidbell")


# ============================================================================
# Console Renderer
# ============================================================================


class ConsoleRenderer:
    """
    Minimal text UI driven by the coordinator's subscribe interfaces.

    Prints each newly arrived notification, snapshot loads, unread badge
    changes and connection status changes.
    """

    def __init__(self, echo: Callable[[str], None] = print):
        self._echo = echo
        self._last_badge: Optional[str] = None

    def on_store_change(self, change: StoreChange) -> None:
        if change.kind == ChangeKind.SNAPSHOT:
            self._echo(f"Loaded {len(change.notifications)} notifications")
            for notification in change.notifications[:5]:
                self._echo(f"  {format_notification(notification)}")
        elif change.is_new:
            notification = change.notifications[0]
            self._echo(f"New: {format_notification(notification)}")

        badge = format_badge(change.unread_count) or "0"
        if badge != self._last_badge:
            self._last_badge = badge
            self._echo(f"Unread: {badge}")

    def on_status(self, status: ConnectionStatus) -> None:
        if status.state == ConnectionState.OPEN:
            self._echo("Connected")
        elif status.state == ConnectionState.CONNECTING:
            self._echo("Connecting...")
        elif status.state == ConnectionState.RECONNECTING:
            self._echo(f"Disconnected, reconnecting (attempt {status.attempt})...")
        elif status.error:
            self._echo(f"Disconnected: {status.error}")
        else:
            self._echo("Disconnected")


# ============================================================================
# Watch Runner
# ============================================================================


class WatchRunner:
    """
    Foreground notification session.

    Builds the REST client, snapshot loader and coordinator from the
    configuration, then waits for SIGINT/SIGTERM or a permanent disconnect.

    Attributes:
        config: Client configuration
        logger: Logger instance
    """

    def __init__(
        self,
        config: ClientConfig,
        token_provider: Optional[TokenProvider] = None,
        renderer: Optional[ConsoleRenderer] = None,
    ):
        self.config = config
        self.logger = setup_logging(config.log_level)
        self._token_provider = token_provider or CredentialStore().token_provider()
        self._renderer = renderer or ConsoleRenderer()
        self._shutdown_event = asyncio.Event()
        self._coordinator: Optional[DeliveryCoordinator] = None

    @property
    def coordinator(self) -> Optional[DeliveryCoordinator]:
        return self._coordinator

    async def run(self) -> int:
        """
        Run the session until shutdown.

        Returns:
            Exit code (0 for success, non-zero for error)
        """
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self.request_shutdown)

        if not self.config.is_configured:
            self.logger.error("Client is not configured. Set api_url and ws_url first.")
            return EXIT_NOT_CONFIGURED

        try:
            self.config.validate()
        except ConfigError as e:
            self.logger.error(f"Invalid configuration: {e}")
            return EXIT_NOT_CONFIGURED

        self.logger.info(f"Starting bidbell v{__version__}")
        self.logger.info(f"API: {self.config.api_url}")
        self.logger.info(f"Push channel: {self.config.ws_url}")

        api_client = NotificationApiClient(
            api_url=self.config.api_url,
            token_provider=self._token_provider,
            timeout=self.config.request_timeout_seconds,
        )
        self._coordinator = DeliveryCoordinator(
            ws_url=self.config.ws_url,
            snapshot_loader=SnapshotLoader(api_client, self.config.snapshot_limit),
            api_client=api_client,
            policy=self.config.reconnect_policy(),
        )
        self._coordinator.subscribe(self._renderer.on_store_change)
        self._coordinator.subscribe_connection(self._renderer.on_status)
        self._coordinator.subscribe_connection(self._on_status)

        final_status = ConnectionStatus()
        try:
            await self._coordinator.start(self._token_provider)
            if self._coordinator.is_active:
                await self._shutdown_event.wait()
        except asyncio.CancelledError:
            self.logger.info("Shutdown requested")
        finally:
            final_status = self._coordinator.connection_status
            await self._coordinator.stop()
            await self._coordinator.wait_for_pending(timeout=5.0)
            await api_client.close()

        self.logger.info("Notification watcher stopped")
        return exit_code_for(final_status)

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()

    def _on_status(self, status: ConnectionStatus) -> None:
        if status.state == ConnectionState.DISCONNECTED:
            self._shutdown_event.set()


def exit_code_for(status: ConnectionStatus) -> int:
    """Map the final connection status to a process exit code."""
    if status.error == ERROR_AUTH:
        return EXIT_AUTH_FAILED
    if status.error == ERROR_RECONNECT_EXHAUSTED:
        return EXIT_RECONNECT_EXHAUSTED
    return EXIT_OK


# ============================================================================
# Main Entry Point
# ============================================================================


def run_watch(config: Optional[ClientConfig] = None, renderer: Optional[ConsoleRenderer] = None) -> int:
    """
    Run the notification watcher.

    Returns:
        Exit code
    """
    config = config or ClientConfig()
    runner = WatchRunner(config, renderer=renderer)
    return asyncio.run(runner.run())


if __name__ == "__main__":
    sys.exit(run_watch())
