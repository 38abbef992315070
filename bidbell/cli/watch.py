"""
Watch CLI command.

Runs a live notification session in the foreground.
"""

import sys

import click

from bidbell.config import ClientConfig, ConfigError
from bidbell.credential_store import CredentialStore
from bidbell.main import ConsoleRenderer, run_watch


@click.command()
@click.pass_context
def watch(ctx: click.Context) -> None:
    """
    Watch notifications in real time.

    Loads the latest notifications, then keeps a live connection open and
    prints new bids, outbids and auction results as they arrive. Lost
    connections are retried with increasing delays.

    Runs until stopped with Ctrl+C or SIGTERM.

    Example:

        bidbell watch
    """
    try:
        config = ClientConfig()
        config.validate()
    except ConfigError as e:
        click.echo(click.style("Error: ", fg="red", bold=True) + str(e))
        ctx.exit(1)

    if not config.is_configured:
        click.echo(
            click.style("Error: ", fg="red", bold=True)
            + "Client is not configured with api_url and ws_url."
        )
        click.echo("Run 'bidbell config set api_url <url>' and 'bidbell config set ws_url <url>'.")
        ctx.exit(1)

    if not CredentialStore().token_provider()():
        click.echo(
            click.style("Error: ", fg="red", bold=True)
            + "Not logged in."
        )
        click.echo("Run 'bidbell login' first.")
        ctx.exit(1)

    click.echo(f"Watching notifications from {config.api_url}")
    click.echo("Press Ctrl+C to stop")
    click.echo()

    exit_code = run_watch(config, renderer=ConsoleRenderer(echo=click.echo))
    sys.exit(exit_code)
