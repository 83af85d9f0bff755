"""User registration command for the ludiary CLI.

Commands:
- register: Create an account on a server and switch to online mode
"""

from __future__ import annotations

import sys

import click

from ludiary.client.cli.config import load_config, open_store, save_config


@click.command()
@click.option(
    "--server",
    required=True,
    help="Server URL (e.g., http://localhost:8000).",
)
@click.option(
    "--name",
    default=None,
    help="Display name shown to friends.",
)
def register(server: str, name: str | None) -> None:
    """Register a new user on a ludiary server.

    Saves the returned token and switches the client to online mode.
    Records written in local mode are handed over to the new user and
    uploaded by the next sync.
    """
    from ludiary.client.api import HTTPClient
    from ludiary.core.config import LOCAL_USER_ID, AppMode, ServerConfig
    from ludiary.core.errors import LudiaryError, TransientError

    config = load_config()
    if config.server_url and config.auth_token:
        click.echo("Warning: This client is already registered.", err=True)
        if not click.confirm("Do you want to register a new user?"):
            sys.exit(0)

    display_name = name or click.prompt("Display name", default="", show_default=False)

    click.echo("\nRegistering with server...")
    try:
        with HTTPClient(ServerConfig(server_url=server, token=None)) as client:
            user = client.register_user(display_name)
    except TransientError as e:
        click.echo(f"Error: Could not connect to server at {server}: {e.message}", err=True)
        click.echo("Make sure the server is running and accessible.")
        sys.exit(1)
    except LudiaryError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)

    previous_user_id = config.user_id
    config.mode = AppMode.ONLINE
    config.server_url = server.rstrip("/")
    config.auth_token = user.token
    config.user_id = user.uid
    config.friend_code = user.friend_code
    save_config(config)

    moved = 0
    if previous_user_id == LOCAL_USER_ID:
        store = open_store()
        try:
            moved = store.reassign_owner(LOCAL_USER_ID, user.uid)
        finally:
            store.close()

    click.echo("\nRegistered successfully!")
    click.echo(f"Server: {config.server_url}")
    click.echo(f"User id: {user.uid}")
    click.echo(f"Friend code: {user.friend_code}")
    if moved:
        click.echo(f"{moved} local records will be uploaded on the next sync.")
