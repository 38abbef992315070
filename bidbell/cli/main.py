"""
CLI entry point.

Main command group for the bidbell CLI.
"""

import click

from bidbell import __version__


@click.group()
@click.version_option(version=__version__, prog_name="bidbell")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """
    bidbell - Real-time auction notifications in your terminal.

    Logs in with an access token from the auction site, keeps a live
    connection for new bids, outbids and auction results, and lets you
    read or delete notifications.

    Use 'bidbell COMMAND --help' for more information on a command.
    """
    ctx.ensure_object(dict)


# Import and register subcommands
from bidbell.cli.auth import login, logout  # noqa: E402
from bidbell.cli.config import config  # noqa: E402
from bidbell.cli.notifications import delete, list_notifications, read, read_all  # noqa: E402
from bidbell.cli.watch import watch  # noqa: E402

cli.add_command(login)
cli.add_command(logout)
cli.add_command(config)
cli.add_command(list_notifications)
cli.add_command(read)
cli.add_command(read_all)
cli.add_command(delete)
cli.add_command(watch)


def main() -> None:
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
