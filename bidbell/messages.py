"""
Push message protocol.

Every frame on the notification channel is a UTF-8 JSON object with a
mandatory ``type`` field:

    {"type": "connection_confirmed"}
    {"type": "notification", "notification": {...}}
    {"type": "notification_read", "notificationId": "..."}
    {"type": "unread_count", "count": 3}

Frames with a ``type`` this client does not know parse into
``UnknownMessage`` so newer servers never break older clients.
"""

import json
from typing import Any, Dict, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from bidbell.exceptions import ProtocolError
from bidbell.models import Notification


# ============================================================================
# Message Types
# ============================================================================

CONNECTION_CONFIRMED = "connection_confirmed"
NOTIFICATION = "notification"
NOTIFICATION_READ = "notification_read"
UNREAD_COUNT = "unread_count"


class ConnectionConfirmedMessage(BaseModel):
    """Server acknowledged the connection and authenticated the token."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["connection_confirmed"]


class NotificationMessage(BaseModel):
    """A new (or re-delivered) notification."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["notification"]
    notification: Notification


class NotificationReadMessage(BaseModel):
    """A notification was read elsewhere (another tab or device)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: Literal["notification_read"]
    notification_id: str = Field(..., alias="notificationId", min_length=1)


class UnreadCountMessage(BaseModel):
    """Authoritative unread count from the server."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["unread_count"]
    count: int


class UnknownMessage(BaseModel):
    """A well-formed frame with a type this client does not handle."""

    type: str
    payload: Dict[str, Any] = Field(default_factory=dict)


PushMessage = Union[
    ConnectionConfirmedMessage,
    NotificationMessage,
    NotificationReadMessage,
    UnreadCountMessage,
    UnknownMessage,
]

MESSAGE_MODELS = {
    CONNECTION_CONFIRMED: ConnectionConfirmedMessage,
    NOTIFICATION: NotificationMessage,
    NOTIFICATION_READ: NotificationReadMessage,
    UNREAD_COUNT: UnreadCountMessage,
}


# ============================================================================
# Parsing
# ============================================================================


def parse_message(raw: Union[str, bytes]) -> PushMessage:
    """
    Parse one raw frame into a typed message.

    Args:
        raw: Frame text (bytes are decoded as UTF-8)

    Returns:
        The parsed message; UnknownMessage for unrecognised types

    Raises:
        ProtocolError: If the frame is not a JSON object with a string
            ``type``, or a known type carries an invalid payload
    """
    text = raw
    try:
        if isinstance(raw, bytes):
            text = raw.decode("utf-8")
        data = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError, TypeError) as e:
        raise ProtocolError(f"Frame is not valid JSON: {e}", raw=_preview(text))

    if not isinstance(data, dict):
        raise ProtocolError("Frame is not a JSON object", raw=_preview(text))

    message_type = data.get("type")
    if not isinstance(message_type, str) or not message_type:
        raise ProtocolError("Frame has no type field", raw=_preview(text))

    model = MESSAGE_MODELS.get(message_type)
    if model is None:
        return UnknownMessage(type=message_type, payload=data)

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ProtocolError(
            f"Invalid {message_type} frame ({e.error_count()} errors)",
            raw=_preview(text),
        )


def _preview(text: Any, limit: int = 200) -> str:
    """Shorten a frame for log output."""
    text = str(text)
    return text if len(text) <= limit else text[:limit] + "..."
