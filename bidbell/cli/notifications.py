"""
Notification CLI commands.

One-shot REST operations:
- List notifications and the unread count
- Mark one or all notifications as read
- Delete a notification
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

import click

from bidbell.api_client import NotificationApiClient
from bidbell.config import ClientConfig
from bidbell.credential_store import CredentialStore
from bidbell.display import format_badge, format_notification
from bidbell.exceptions import AuthError, SyncError

T = TypeVar("T")


def _get_api_client() -> Optional[NotificationApiClient]:
    """Get configured API client or None if the API URL is not set."""
    config = ClientConfig()
    if not config.api_url:
        return None
    return NotificationApiClient(
        api_url=config.api_url,
        token_provider=CredentialStore().token_provider(),
        timeout=config.request_timeout_seconds,
    )


def _run(ctx: click.Context, call: Callable[[NotificationApiClient], Awaitable[T]]) -> T:
    """Run one API call, reporting errors and exiting non-zero on failure."""
    client = _get_api_client()
    if client is None:
        click.echo(
            click.style("Error: ", fg="red", bold=True)
            + "API URL is not configured."
        )
        click.echo("Run 'bidbell config set api_url <url>' first.")
        ctx.exit(1)

    async def invoke() -> T:
        async with client:
            return await call(client)

    try:
        return asyncio.run(invoke())
    except AuthError as e:
        click.echo(click.style("Authentication failed: ", fg="red", bold=True) + str(e))
        click.echo("Run 'bidbell login' with a fresh token.")
        ctx.exit(3)
    except SyncError as e:
        click.echo(click.style("Error: ", fg="red", bold=True) + str(e))
        ctx.exit(2)


@click.command("list")
@click.option("--limit", "-n", type=int, default=None, help="Number of notifications to fetch")
@click.option("--page", type=int, default=None, help="Page number (1-based)")
@click.option("--unread-only", is_flag=True, help="Only show unread notifications")
@click.pass_context
def list_notifications(
    ctx: click.Context,
    limit: Optional[int],
    page: Optional[int],
    unread_only: bool,
) -> None:
    """
    List notifications, most recent first.

    Example:

        bidbell list --unread-only
    """
    limit = limit or ClientConfig().snapshot_limit
    snapshot = _run(
        ctx,
        lambda client: client.get_notifications(limit=limit, page=page, unread_only=unread_only),
    )

    badge = format_badge(snapshot.unread_count) or "0"
    click.echo(click.style(f"Unread: {badge}", bold=True))

    if not snapshot.notifications:
        click.echo("No notifications yet.")
        return

    for notification in snapshot.notifications:
        line = format_notification(notification)
        click.echo(line if notification.is_read else click.style(line, bold=True))

    if snapshot.pagination and snapshot.pagination.total_pages > 1:
        click.echo(
            f"Page {snapshot.pagination.current_page} of {snapshot.pagination.total_pages} "
            f"({snapshot.pagination.total_count} total)"
        )


@click.command()
@click.argument("notification_id")
@click.pass_context
def read(ctx: click.Context, notification_id: str) -> None:
    """Mark a notification as read."""
    _run(ctx, lambda client: client.mark_read(notification_id))
    click.echo(click.style("Notification marked as read.", fg="green"))


@click.command("read-all")
@click.pass_context
def read_all(ctx: click.Context) -> None:
    """Mark all notifications as read."""
    _run(ctx, lambda client: client.mark_all_read())
    click.echo(click.style("All notifications marked as read.", fg="green"))


@click.command()
@click.argument("notification_id")
@click.confirmation_option(prompt="Delete this notification?")
@click.pass_context
def delete(ctx: click.Context, notification_id: str) -> None:
    """Delete a notification."""
    _run(ctx, lambda client: client.delete_notification(notification_id))
    click.echo(click.style("Notification deleted.", fg="green"))
