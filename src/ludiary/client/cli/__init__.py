"""Command-line interface for ludiary.

This module provides the main CLI entry point and assembles all commands.

Commands:
- register: Register a user on a server
- config: Show or change client settings
- sync: Synchronize records with the server
- status: Show sync status
- games: Manage the game library
- sessions: Log play sessions
- friends: Manage friends
- groups: Manage groups
- server: Server administration commands
"""

from __future__ import annotations

import click

from ludiary.client.cli.config import (
    get_config_dir,
    get_config_file,
    get_store_path,
    load_config,
    save_config,
)
from ludiary.client.cli.games import games
from ludiary.client.cli.register import register
from ludiary.client.cli.server import server
from ludiary.client.cli.sessions import sessions
from ludiary.client.cli.settings import config_group
from ludiary.client.cli.social import friends, groups
from ludiary.client.cli.sync import status, sync


@click.group()
@click.version_option(package_name="ludiary")
def cli() -> None:
    """Ludiary - board game diary with offline sync."""


# Account and settings
cli.add_command(register)
cli.add_command(config_group)

# Sync commands
cli.add_command(sync)
cli.add_command(status)

# Data commands
cli.add_command(games)
cli.add_command(sessions)
cli.add_command(friends)
cli.add_command(groups)

# Server admin commands
cli.add_command(server)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    # Config utilities
    "get_config_dir",
    "get_config_file",
    "get_store_path",
    "load_config",
    "save_config",
]
