"""Configuration commands for the ludiary CLI.

Commands:
- config show: Print the current configuration
- config mode: Switch between local and online mode
- config interval: Set the periodic sync interval
- config auto-sync: Enable or disable the periodic sync job
"""

from __future__ import annotations

import sys

import click

from ludiary.client.cli.config import get_config_file, load_config, open_store, save_config


@click.group("config")
def config_group() -> None:
    """Show or change client settings."""


@config_group.command("show")
def show() -> None:
    """Print the current configuration."""
    config = load_config()
    click.echo(f"Config file: {get_config_file()}")
    for key, value in config.to_dict().items():
        if key == "auth_token" and value:
            value = "********"
        click.echo(f"  {key}: {value}")


@config_group.command("mode")
@click.argument("mode", type=click.Choice(["local", "online"]))
def set_mode(mode: str) -> None:
    """Switch between local-only and online mode.

    Takes effect on the next command.
    """
    from ludiary.core.config import AppMode

    config = load_config()
    new_mode = AppMode(mode)
    if new_mode is AppMode.ONLINE and config.server_config() is None:
        click.echo("Error: Not registered with a server. Run 'ludiary register' first.", err=True)
        sys.exit(1)
    config.mode = new_mode
    save_config(config)
    click.echo(f"Mode set to {mode}.")


@config_group.command("interval")
@click.argument("minutes", type=click.IntRange(min=1))
def set_interval(minutes: int) -> None:
    """Set the periodic sync interval in minutes."""
    config = load_config()
    config.sync_interval_minutes = minutes
    save_config(config)
    click.echo(f"Sync interval set to {minutes} minutes.")


@config_group.command("auto-sync")
@click.argument("state", type=click.Choice(["on", "off"]))
def set_auto_sync(state: str) -> None:
    """Enable or disable the periodic sync job."""
    enabled = state == "on"
    config = load_config()
    config.auto_sync = enabled
    save_config(config)
    store = open_store()
    try:
        store.set_auto_sync_enabled(enabled)
    finally:
        store.close()
    click.echo(f"Auto-sync {state}.")
