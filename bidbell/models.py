"""
Data models for notifications, snapshots and connection status.

Wire payloads use camelCase keys (``isRead``, ``createdAt``); the models
expose snake_case attributes and accept either form.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator


logger = logging.getLogger("bidbell.models")


# ============================================================================
# Notification
# ============================================================================


class NotificationType(str, Enum):
    """Notification kinds known to this client. The server may send others."""

    BID_PLACED = "BID_PLACED"
    BID_OUTBID = "BID_OUTBID"
    AUCTION_WON = "AUCTION_WON"
    AUCTION_ENDED = "AUCTION_ENDED"
    AUCTION_STARTING = "AUCTION_STARTING"
    GENERAL = "GENERAL"
    SYSTEM = "SYSTEM"
    ANNOUNCEMENT = "ANNOUNCEMENT"


class RelatedEntity(BaseModel):
    """
    Reference to the entity a notification is about (usually an auction).

    Carried for navigation only; any extra keys are preserved.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    id: Optional[str] = Field(None, description="Entity identifier")
    title: Optional[str] = Field(None, description="Entity display title")
    image: Optional[str] = Field(None, description="Entity image URL")


class Notification(BaseModel):
    """
    One event delivered to the user.

    Instances are immutable; the store replaces them with updated copies
    instead of mutating shared objects.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    id: str = Field(..., description="Server-assigned unique identifier")
    type: str = Field("", description="Notification kind (open-ended)")
    title: str = Field("", description="Display title")
    message: str = Field("", description="Display message")
    related_entity: Optional[RelatedEntity] = Field(
        None,
        validation_alias=AliasChoices("relatedEntity", "related_entity", "auction"),
        serialization_alias="relatedEntity",
        description="Optional reference used for navigation",
    )
    created_at: Optional[datetime] = Field(
        None, alias="createdAt", description="Server creation timestamp"
    )
    is_read: bool = Field(False, alias="isRead", description="Read flag")

    @field_validator("id", mode="before")
    @classmethod
    def id_must_be_present(cls, v):
        if isinstance(v, int) and not isinstance(v, bool):
            v = str(v)
        if not isinstance(v, str) or not v.strip():
            raise ValueError("notification id must be a non-empty string")
        return v

    @field_validator("type", mode="before")
    @classmethod
    def type_defaults_to_empty(cls, v):
        return "" if v is None else v

    @field_validator("created_at", mode="wrap")
    @classmethod
    def unparseable_timestamp_is_none(cls, v, handler):
        try:
            return handler(v)
        except ValidationError:
            logger.debug(f"Ignoring unparseable createdAt: {v!r}")
            return None

    @property
    def kind(self) -> Optional[NotificationType]:
        """Known notification kind, or None for types this client does not know."""
        try:
            return NotificationType(self.type)
        except ValueError:
            return None

    def as_read(self) -> "Notification":
        """Return a copy of this notification flagged as read."""
        if self.is_read:
            return self
        return self.model_copy(update={"is_read": True})


# ============================================================================
# Snapshot
# ============================================================================


class Pagination(BaseModel):
    """Paging metadata returned alongside a notification list."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    current_page: int = Field(1, alias="currentPage")
    total_pages: int = Field(1, alias="totalPages")
    total_count: int = Field(0, alias="totalCount")


class Snapshot(BaseModel):
    """
    Point-in-time authoritative read of the user's notification state.

    The server sorts ``notifications`` by creation time, most recent first.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    notifications: List[Notification] = Field(default_factory=list)
    unread_count: int = Field(0, alias="unreadCount")
    pagination: Optional[Pagination] = None

    @field_validator("notifications", mode="before")
    @classmethod
    def notifications_default_to_empty(cls, v):
        return [] if v is None else v

    @field_validator("unread_count", mode="before")
    @classmethod
    def unread_count_not_negative(cls, v):
        if v is None:
            return 0
        return max(0, int(v))


# ============================================================================
# Connection Status
# ============================================================================


class ConnectionState(str, Enum):
    """Lifecycle of the push channel as seen by UI consumers."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECTING = "reconnecting"


@dataclass(frozen=True)
class ConnectionStatus:
    """
    Connection status published to subscribers.

    Attributes:
        state: Current connection state
        attempt: Reconnect attempt number while RECONNECTING, else 0
        error: Reason for a permanent disconnect (auth failure or exhausted
            reconnect budget); None otherwise
    """

    state: ConnectionState = ConnectionState.DISCONNECTED
    attempt: int = 0
    error: Optional[str] = None

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.OPEN

    @property
    def is_permanently_disconnected(self) -> bool:
        return self.state == ConnectionState.DISCONNECTED and self.error is not None
