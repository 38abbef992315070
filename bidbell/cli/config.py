"""
Config CLI commands.

Shows and updates the client configuration file.
"""

import click

from bidbell.config import ClientConfig, ConfigError
from bidbell.credential_store import CredentialStore


# ============================================================================
# Config Command Group
# ============================================================================


@click.group()
@click.pass_context
def config(ctx: click.Context) -> None:
    """
    Manage client configuration.

    Configure the REST API and push channel endpoints, snapshot size,
    reconnect policy and log level.
    """
    ctx.ensure_object(dict)


@config.command("show")
@click.pass_context
def show(ctx: click.Context) -> None:
    """
    Show the effective configuration.

    Environment variables (BIDBELL_API_URL, BIDBELL_WS_URL,
    BIDBELL_LOG_LEVEL) override values from the file.
    """
    try:
        client_config = ClientConfig()
    except ConfigError as e:
        click.echo(click.style("Error: ", fg="red", bold=True) + str(e))
        ctx.exit(1)

    click.echo(f"Config file: {client_config.config_path}")
    for key, value in client_config.as_dict().items():
        click.echo(f"  {key}: {value if value != '' else '(not set)'}")

    store = CredentialStore()
    metadata = store.get_metadata()
    if metadata:
        account = metadata.get("user_email") or "unnamed account"
        click.echo(f"Logged in: {account} (since {metadata.get('stored_at')})")
    else:
        click.echo("Logged in: no")


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def set_value(ctx: click.Context, key: str, value: str) -> None:
    """
    Set a configuration value.

    Example:

        bidbell config set api_url https://auctions.example.com/api

        bidbell config set ws_url wss://auctions.example.com
    """
    try:
        client_config = ClientConfig()
        client_config.set_value(key, value)
        client_config.validate()
    except ConfigError as e:
        click.echo(click.style("Error: ", fg="red", bold=True) + str(e))
        ctx.exit(1)

    client_config.save()
    click.echo(click.style(f"{key} updated.", fg="green"))
