"""Server administration commands for the ludiary CLI.

Commands:
- server run: Start the API server
- server purge-tombstones: Purge old soft-deleted records
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import click


@click.group()
def server() -> None:
    """Server management commands.

    These commands are for administrators running a ludiary server.
    """


@server.command("run")
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address.")
@click.option("--port", default=8000, show_default=True, type=int, help="Bind port.")
def run_server(host: str, port: int) -> None:
    """Start the API server with uvicorn."""
    import uvicorn

    uvicorn.run("ludiary.server.app:app_factory", factory=True, host=host, port=port)


@server.command("purge-tombstones")
@click.option(
    "--older-than-days",
    "-d",
    type=int,
    default=None,
    help="Delete tombstones older than N days (default: use server config).",
)
@click.option(
    "--db-path",
    type=click.Path(),
    default=None,
    help="Path to database file (default: LUDIARY_DB_PATH or ./ludiary.db).",
)
def purge_tombstones_cmd(older_than_days: int | None, db_path: str | None) -> None:
    """Purge old soft-deleted records.

    Permanently deletes tombstones older than the retention period.
    Clients that have not synced for longer than that keep their copy
    of the deleted records.

    This command can be run manually or via cron for scheduled cleanup.

    Examples:

        # Purge using server defaults (30 days)
        ludiary server purge-tombstones

        # Purge tombstones older than 7 days
        ludiary server purge-tombstones --older-than-days 7
    """
    from ludiary.server.database import Database
    from ludiary.server.scheduler import purge_tombstones

    resolved_db_path = db_path or os.environ.get("LUDIARY_DB_PATH", "ludiary.db")
    default_days = int(os.environ.get("LUDIARY_TOMBSTONE_RETENTION_DAYS", "30"))
    days = older_than_days if older_than_days is not None else default_days

    db_file = Path(resolved_db_path)
    if not db_file.exists():
        click.echo(f"Error: Database not found: {db_file}", err=True)
        click.echo("Make sure the server has been run at least once.", err=True)
        sys.exit(1)

    click.echo(f"Database: {db_file}")
    click.echo(f"Purging tombstones older than {days} days...")

    db = Database(db_file)
    try:
        deleted = purge_tombstones(db, days)
        if deleted > 0:
            click.echo(f"Purged {deleted} tombstones.")
        else:
            click.echo("No tombstones to purge.")
    finally:
        db.close()
