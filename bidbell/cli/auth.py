"""
Login and logout CLI commands.

The token itself is issued by the auction site; these commands only store
or forget it locally.
"""

from typing import Optional

import click

from bidbell.credential_store import CredentialStore


@click.command()
@click.option(
    "--token",
    prompt="Access token",
    hide_input=True,
    help="Access token issued by the auction site",
)
@click.option("--email", default=None, help="Account label shown by 'bidbell config show'")
@click.pass_context
def login(ctx: click.Context, token: str, email: Optional[str]) -> None:
    """
    Store an access token for notification requests.

    The token is encrypted on disk. The BIDBELL_TOKEN environment variable,
    when set, takes precedence over the stored token.

    Example:

        bidbell login --token eyJhbGciOi...
    """
    store = CredentialStore()
    try:
        store.store_token(token, user_email=email)
    except ValueError as e:
        click.echo(click.style("Error: ", fg="red", bold=True) + str(e))
        ctx.exit(1)

    click.echo(click.style("Logged in.", fg="green"))
    click.echo(f"  Token stored in: {store.base_dir}")


@click.command()
def logout() -> None:
    """Forget the stored access token."""
    store = CredentialStore()
    if store.clear_token():
        click.echo(click.style("Logged out.", fg="green"))
    else:
        click.echo("No stored token.")
