"""
Reconnect policy and timer.

The policy is linear backoff: the n-th reconnect attempt waits
``base_delay * n`` seconds, and at most ``max_attempts`` reconnect attempts
are made before giving up.

The timer holds at most one pending reconnect; scheduling a new one
replaces the old one, and a cancelled timer never fires.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional


logger = logging.getLogger("bidbell.reconnect")

DEFAULT_BASE_DELAY = 1.0  # seconds
DEFAULT_MAX_ATTEMPTS = 5


@dataclass(frozen=True)
class ReconnectPolicy:
    """
    Linear backoff with a bounded attempt budget.

    Attributes:
        base_delay: Delay unit in seconds
        max_attempts: Maximum number of reconnect attempts
    """

    base_delay: float = DEFAULT_BASE_DELAY
    max_attempts: int = DEFAULT_MAX_ATTEMPTS

    def __post_init__(self):
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be non-negative, got: {self.base_delay}")
        if self.max_attempts < 0:
            raise ValueError(f"max_attempts must be non-negative, got: {self.max_attempts}")

    def next_delay(self, attempt: int) -> float:
        """
        Delay before the given reconnect attempt.

        Args:
            attempt: Attempt number, starting at 1

        Returns:
            Delay in seconds
        """
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got: {attempt}")
        return self.base_delay * attempt

    def should_retry(self, attempt: int) -> bool:
        """Whether another reconnect is allowed after ``attempt`` attempts."""
        return attempt < self.max_attempts


class ReconnectTimer:
    """
    Single-slot cancellable timer on the running event loop.

    Usage:
        >>> timer = ReconnectTimer()
        >>> timer.schedule(2.0, reconnect)
        >>> timer.cancel()  # reconnect will not run
    """

    def __init__(self):
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        """True while a scheduled callback has neither fired nor been cancelled."""
        return self._handle is not None

    def schedule(self, delay: float, callback: Callable[[], None]) -> None:
        """
        Run ``callback`` after ``delay`` seconds, replacing any pending timer.

        Must be called from a coroutine or callback running on the event loop.
        """
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(delay, self._fire, callback)

    def cancel(self) -> bool:
        """
        Cancel the pending callback, if any.

        Returns:
            True if a pending timer was cancelled
        """
        if self._handle is None:
            return False
        self._handle.cancel()
        self._handle = None
        return True

    def _fire(self, callback: Callable[[], None]) -> None:
        self._handle = None
        try:
            callback()
        except Exception as e:
            logger.error(f"Reconnect callback failed: {e}", exc_info=True)
