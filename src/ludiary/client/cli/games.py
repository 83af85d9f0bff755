"""Game library commands for the ludiary CLI.

Commands:
- games list: Show the local library
- games add: Add a game (pushed on the next sync)
- games remove: Remove a game
"""

from __future__ import annotations

import sys

import click

from ludiary.client.cli.config import open_components


@click.group()
def games() -> None:
    """Manage the game library."""


@games.command("list")
def list_games() -> None:
    """List games in the local library."""
    from ludiary.core.types import Domain

    with open_components() as components:
        coordinator = components.coordinator(Domain.GAMES)
        records = coordinator.list(components.user_id)
        if not records:
            click.echo("Library is empty.")
            return
        for record in records:
            marker = "*" if record.sync_status.is_pending else " "
            click.echo(f"{marker} {record.payload.get('title', '?')}  {record.id}")


@games.command("add")
@click.argument("title")
@click.option("--status", "game_status", default="owned", help="owned, wishlist, played...")
def add_game(title: str, game_status: str) -> None:
    """Add TITLE to the library."""
    from ludiary.core.types import Domain

    with open_components() as components:
        record = components.coordinator(Domain.GAMES).save(
            components.user_id, {"title": title, "status": game_status}
        )
        click.echo(f"Added {title} ({record.id}).")


@games.command("remove")
@click.argument("game_id")
def remove_game(game_id: str) -> None:
    """Remove GAME_ID from the library."""
    from ludiary.core.errors import LudiaryError
    from ludiary.core.types import Domain

    with open_components() as components:
        try:
            components.coordinator(Domain.GAMES).delete(components.user_id, game_id)
        except LudiaryError as e:
            click.echo(f"Error: {e.message}", err=True)
            sys.exit(1)
        click.echo("Removed.")
