"""
Pytest configuration and fixtures for bidbell tests.

This module provides shared fixtures for testing the notification client,
including sample payloads, temporary configuration files, mock REST
collaborators and an in-memory transport.
"""

import tempfile
from pathlib import Path
from typing import Generator, List, Tuple
from unittest.mock import AsyncMock, MagicMock

import pytest
import yaml

from bidbell.models import Notification, Snapshot
from bidbell.transport import TransportHandle, TransportListener


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def temp_config_dir() -> Generator[Path, None, None]:
    """
    Create a temporary directory for client configuration files.

    Yields:
        Path to temporary configuration directory
    """
    with tempfile.TemporaryDirectory(prefix="bidbell_test_") as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def client_config() -> dict:
    """
    Create a sample client configuration.

    Returns:
        Dictionary with client configuration
    """
    return {
        "api_url": "http://localhost:5000/api",
        "ws_url": "ws://localhost:5000",
        "snapshot_limit": 10,
        "max_reconnect_attempts": 3,
        "reconnect_base_delay_seconds": 0.5,
        "request_timeout_seconds": 15.0,
        "log_level": "DEBUG",
    }


@pytest.fixture
def client_config_file(temp_config_dir: Path, client_config: dict) -> Path:
    """
    Create a temporary client configuration file.

    Returns:
        Path to the configuration file
    """
    config_path = temp_config_dir / "config.yaml"
    with open(config_path, "w") as f:
        yaml.dump(client_config, f)
    return config_path


# ============================================================================
# Server Fixtures
# ============================================================================


@pytest.fixture
def mock_api_url() -> str:
    """REST API base URL used by tests."""
    return "http://localhost:5000/api"


@pytest.fixture
def mock_ws_url() -> str:
    """Push channel URL used by tests."""
    return "ws://localhost:5000"


@pytest.fixture
def mock_token() -> str:
    """Bearer token used by tests."""
    return "eyJhbGciOiJIUzI1NiJ9.test-token"


@pytest.fixture
def token_provider(mock_token):
    """Token provider returning the test token."""
    return lambda: mock_token


# ============================================================================
# Notification Fixtures
# ============================================================================


@pytest.fixture
def sample_notification_data() -> dict:
    """
    A notification as the server sends it (camelCase keys).

    Returns:
        Dictionary representing a notification
    """
    return {
        "id": "ntf_001",
        "type": "BID_OUTBID",
        "title": "You've been outbid",
        "message": "Someone placed a higher bid of $120",
        "auction": {"id": "auc_42", "title": "Vintage Camera", "image": "/img/42.jpg"},
        "createdAt": "2024-03-01T12:00:00Z",
        "isRead": False,
    }


@pytest.fixture
def sample_snapshot_body(sample_notification_data: dict) -> dict:
    """
    A successful GET /notifications response body.

    Returns:
        Dictionary representing the response envelope
    """
    read_notification = {
        "id": "ntf_000",
        "type": "AUCTION_WON",
        "title": "You won!",
        "message": "Congratulations",
        "createdAt": "2024-02-28T09:00:00Z",
        "isRead": True,
    }
    return {
        "success": True,
        "data": {
            "notifications": [sample_notification_data, read_notification],
            "unreadCount": 1,
            "pagination": {"currentPage": 1, "totalPages": 1, "totalCount": 2},
        },
    }


def make_notification(notification_id: str, is_read: bool = False, **kwargs) -> Notification:
    """Build a notification with sensible defaults."""
    return Notification(
        id=notification_id,
        type=kwargs.pop("type", "BID_PLACED"),
        title=kwargs.pop("title", f"Notification {notification_id}"),
        is_read=is_read,
        **kwargs,
    )


@pytest.fixture
def notification_factory():
    """Factory fixture building Notification models."""
    return make_notification


# ============================================================================
# Collaborator Fixtures
# ============================================================================


@pytest.fixture
def mock_api_client() -> MagicMock:
    """Create a mock NotificationApiClient."""
    client = MagicMock()
    client.get_notifications = AsyncMock(return_value=Snapshot())
    client.mark_read = AsyncMock(return_value=None)
    client.mark_all_read = AsyncMock(return_value=None)
    client.delete_notification = AsyncMock(return_value=None)
    client.close = AsyncMock()
    return client


@pytest.fixture
def mock_snapshot_loader() -> MagicMock:
    """Create a mock SnapshotLoader returning one unread notification."""
    loader = MagicMock()
    loader.fetch = AsyncMock(return_value=Snapshot(
        notifications=[make_notification("1")],
        unread_count=1,
    ))
    return loader


class FakeTransport:
    """
    In-memory transport recording open/close calls.

    Events are never emitted on its own; tests drive the listener directly
    with the handles this transport returns.
    """

    def __init__(self, listener: TransportListener):
        self.listener = listener
        self.opened: List[Tuple[str, str]] = []
        self.closed: List[Tuple[TransportHandle, int]] = []
        self.current = None

    async def open(self, url: str, auth_token: str) -> TransportHandle:
        handle = TransportHandle(url)
        self.opened.append((url, auth_token))
        self.current = handle
        return handle

    async def send(self, handle, payload) -> None:
        pass

    async def close(self, handle: TransportHandle, code: int = 1000, reason: str = "") -> None:
        self.closed.append((handle, code))


@pytest.fixture
def fake_transport_class():
    """The FakeTransport class, usable as a coordinator transport factory."""
    return FakeTransport


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch) -> None:
    """
    Clean environment variables that might affect tests.

    Removes bidbell-related environment variables to ensure test isolation.
    """
    env_vars_to_remove = [
        "BIDBELL_API_URL",
        "BIDBELL_WS_URL",
        "BIDBELL_LOG_LEVEL",
        "BIDBELL_CONFIG_PATH",
        "BIDBELL_TOKEN",
    ]
    for var in env_vars_to_remove:
        monkeypatch.delenv(var, raising=False)
