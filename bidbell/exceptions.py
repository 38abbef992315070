"""
Exception hierarchy for the notification client.

- TransportError: connect/send/close failures on the push channel.
  Recovered internally through the reconnect policy.
- ProtocolError: malformed or unusable push frame. Logged and dropped.
- SyncError: REST failure while fetching a snapshot or confirming a
  mutation. Triggers a corrective snapshot reload.
- AuthError: missing or rejected bearer token. Fatal for the session.
"""

from typing import Optional


class BidbellError(Exception):
    """Base exception for notification client errors."""

    pass


class TransportError(BidbellError):
    """Raised when the WebSocket transport fails to connect, send or close."""

    pass


class ProtocolError(BidbellError):
    """Raised when a push frame cannot be parsed into a known message."""

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw


class SyncError(BidbellError):
    """Raised when a REST call fails (network error, non-2xx, success=false)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthError(BidbellError):
    """Raised when no bearer token is available or the server rejects it."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
