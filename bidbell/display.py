"""
Plain-text formatting helpers for notification consumers (CLI, logs).
"""

from datetime import datetime, timezone
from typing import Optional

from bidbell.models import Notification, NotificationType

BADGE_MAX = 99

TYPE_LABELS = {
    NotificationType.BID_PLACED: "BID",
    NotificationType.BID_OUTBID: "OUTBID",
    NotificationType.AUCTION_WON: "WON",
    NotificationType.AUCTION_ENDED: "ENDED",
    NotificationType.AUCTION_STARTING: "STARTING",
    NotificationType.GENERAL: "INFO",
    NotificationType.SYSTEM: "SYSTEM",
    NotificationType.ANNOUNCEMENT: "NEWS",
}


def format_badge(count: int) -> str:
    """Unread badge text: empty for zero, capped at "99+"."""
    if count <= 0:
        return ""
    if count > BADGE_MAX:
        return f"{BADGE_MAX}+"
    return str(count)


def format_time_ago(created_at: Optional[datetime], now: Optional[datetime] = None) -> str:
    """
    Relative age of a timestamp ("Just now", "5m ago", "3h ago", "2d ago").

    Anything a week or older is shown as a date.
    """
    if created_at is None:
        return ""
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)

    minutes = int((now - created_at).total_seconds() // 60)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if minutes < 1440:
        return f"{minutes // 60}h ago"
    if minutes < 10080:
        return f"{minutes // 1440}d ago"
    return created_at.date().isoformat()


def format_notification(notification: Notification, now: Optional[datetime] = None) -> str:
    """One-line summary of a notification."""
    marker = " " if notification.is_read else "*"
    kind = notification.kind
    label = TYPE_LABELS[kind] if kind is not None else (notification.type or "NOTICE")

    line = f"{marker} [{label}] {notification.title}"
    if notification.message:
        line += f": {notification.message}"

    entity = notification.related_entity
    if entity is not None and entity.title:
        line += f" ({entity.title})"

    age = format_time_ago(notification.created_at, now=now)
    if age:
        line += f" - {age}"
    return f"{line}  [{notification.id}]"
