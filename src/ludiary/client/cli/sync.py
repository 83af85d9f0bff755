"""Sync and status commands for the ludiary CLI.

Commands:
- sync: Run a sync pass (or keep syncing periodically with --watch)
- status: Show mode, pending writes and last sync time
"""

from __future__ import annotations

import logging
import sys
import time
from datetime import datetime

import click

from ludiary.client.cli.config import load_config, open_components, open_store


def _format_millis(value: int | None) -> str:
    if value is None:
        return "never"
    return datetime.fromtimestamp(value / 1000).strftime("%Y-%m-%d %H:%M:%S")


@click.command()
@click.option("--watch", "-w", is_flag=True, help="Keep syncing periodically.")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logs.")
def sync(watch: bool, verbose: bool) -> None:
    """Synchronize records with the server.

    Pulls remote changes, then pushes pending local writes for every
    domain. In local mode writes stay pending until the client goes online. Use --watch to keep running the periodic job.
    """
    from ludiary.core.errors import LudiaryError

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
    )

    with open_components() as components:
        if components.online:
            click.echo(f"Syncing as {components.user_id}...")
        else:
            click.echo("Local mode: records stay on this machine until you register.")
        try:
            report = components.scheduler.run_now()
        except LudiaryError as e:
            click.echo(f"Error: {e.message}", err=True)
            sys.exit(1)

        if report.skipped:
            click.echo(f"Sync skipped: {report.reason}")
        else:
            for domain_report in report.reports:
                if domain_report.error:
                    click.echo(
                        click.style(
                            f"  ✗ {domain_report.domain.value} ({domain_report.owner_id}): "
                            f"{domain_report.error}",
                            fg="red",
                        )
                    )
            for warning in report.warnings:
                click.echo(
                    click.style(f"  ! {warning.record_id}: {warning.reason}", fg="yellow")
                )
            click.echo(
                f"\nSync complete: {report.flushed} pushed, {report.applied} pulled, "
                f"{len(report.warnings)} rejected"
            )

        if watch:
            click.echo("\nSyncing periodically... (Ctrl+C to stop)\n")
            components.scheduler.start()
            try:
                while True:
                    time.sleep(1.0)
            except KeyboardInterrupt:
                click.echo("\nStopping...")

        if not report.ok:
            sys.exit(1)


@click.command()
def status() -> None:
    """Show sync status."""
    from ludiary.core.errors import LudiaryError

    config = load_config()
    click.echo(f"Mode: {config.mode.value}")
    click.echo(f"User: {config.user_id}")
    if config.friend_code:
        click.echo(f"Friend code: {config.friend_code}")
    if config.server_url:
        click.echo(f"Server: {config.server_url}")

    with open_components() as components:
        click.echo(f"Pending changes: {components.scheduler.count_pending()}")
        if components.http is not None:
            try:
                unread = components.http.get_unread_count()
                click.echo(f"Unread notifications: {unread}")
            except LudiaryError as e:
                click.echo(f"Unread notifications: unknown ({e.message})")

    store = open_store()
    try:
        click.echo(f"Last sync: {_format_millis(store.get_last_sync_at())}")
        click.echo(f"State: {store.get_state('state') or 'idle'}")
        click.echo(f"Auto-sync: {'on' if store.is_auto_sync_enabled() else 'off'}")
    finally:
        store.close()
