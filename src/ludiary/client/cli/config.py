"""Configuration utilities for the ludiary CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import json
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

import click

from ludiary.core.config import ClientConfig

if TYPE_CHECKING:
    from ludiary.client.mode import SyncComponents
    from ludiary.client.store import LocalRecordStore


def get_config_dir() -> Path:
    """Get the configuration directory for ludiary.

    Returns:
        Path to $LUDIARY_HOME, or ~/.ludiary by default.
    """
    override = os.environ.get("LUDIARY_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".ludiary"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def get_store_path() -> Path:
    """Get the path to the local record database."""
    return get_config_dir() / "records.db"


def load_config() -> ClientConfig:
    """Load configuration from config file (defaults when missing)."""
    config_file = get_config_file()
    if config_file.exists():
        return ClientConfig.from_dict(json.loads(config_file.read_text()))
    return ClientConfig()


def save_config(config: ClientConfig) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config.to_dict(), indent=2))


def open_store() -> LocalRecordStore:
    """Open the local record database."""
    from ludiary.client.store import LocalRecordStore

    return LocalRecordStore(get_store_path())


@contextmanager
def open_components() -> Iterator[SyncComponents]:
    """Build the sync components for the configured mode.

    Exits with an error message when online mode is configured but the
    client is not registered.
    """
    from ludiary.client.mode import build_sync_components
    from ludiary.core.errors import AuthError

    config = load_config()
    store = open_store()
    try:
        try:
            components = build_sync_components(config, store)
        except AuthError as e:
            click.echo(f"Error: {e.message}", err=True)
            sys.exit(1)
        try:
            yield components
        finally:
            components.close()
    finally:
        store.close()
