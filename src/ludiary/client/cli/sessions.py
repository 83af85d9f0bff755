"""Play session commands for the ludiary CLI.

Commands:
- sessions list: Show logged sessions, personal or of a group
- sessions add: Log a session (pushed on the next sync)
- sessions remove: Remove a session
"""

from __future__ import annotations

import sys
from datetime import datetime

import click

from ludiary.client.cli.config import open_components

group_option = click.option(
    "--group", "group_id", default=None, help="Group id for shared sessions (default: your own)"
)


@click.group()
def sessions() -> None:
    """Log and review play sessions."""


@sessions.command("list")
@group_option
def list_sessions(group_id: str | None) -> None:
    """List sessions, newest first."""
    from ludiary.core.types import Domain

    with open_components() as components:
        owner_id = group_id or components.user_id
        records = components.coordinator(Domain.SESSIONS).list(owner_id)
        if not records:
            click.echo("No sessions logged.")
            return
        records.sort(key=lambda r: r.payload.get("date") or 0, reverse=True)
        for record in records:
            marker = "*" if record.sync_status.is_pending else " "
            played = record.payload.get("date")
            day = datetime.fromtimestamp(played / 1000).strftime("%Y-%m-%d") if played else "?"
            line = f"{marker} {day}  {record.payload.get('game', '?')}"
            if record.payload.get("winner"):
                line += f"  won by {record.payload['winner']}"
            click.echo(f"{line}  {record.id}")


@sessions.command("add")
@click.argument("game")
@click.option("--winner", default=None, help="Who won")
@click.option("--player", "players", multiple=True, help="Player name (repeatable)")
@click.option("--minutes", type=int, default=None, help="Duration in minutes")
@click.option("--notes", default=None)
@group_option
def add_session(
    game: str,
    winner: str | None,
    players: tuple[str, ...],
    minutes: int | None,
    notes: str | None,
    group_id: str | None,
) -> None:
    """Log a session of GAME played now."""
    from ludiary.core.types import Domain, now_millis

    payload: dict = {"game": game, "date": now_millis(), "players": list(players)}
    if winner:
        payload["winner"] = winner
    if minutes is not None:
        payload["durationMinutes"] = minutes
    if notes:
        payload["notes"] = notes

    with open_components() as components:
        owner_id = group_id or components.user_id
        record = components.coordinator(Domain.SESSIONS).save(owner_id, payload)
        click.echo(f"Logged {game} ({record.id}).")


@sessions.command("remove")
@click.argument("session_id")
@group_option
def remove_session(session_id: str, group_id: str | None) -> None:
    """Remove SESSION_ID."""
    from ludiary.core.errors import LudiaryError
    from ludiary.core.types import Domain

    with open_components() as components:
        try:
            components.coordinator(Domain.SESSIONS).delete(
                group_id or components.user_id, session_id
            )
        except LudiaryError as e:
            click.echo(f"Error: {e.message}", err=True)
            sys.exit(1)
        click.echo("Removed.")
