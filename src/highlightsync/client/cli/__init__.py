"""Command-line interface for highlightsync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- login: Connect to your account through the browser
- logout: Forget the stored access token
- sync: Run one sync cycle now
- run: Keep syncing in the background
- refresh: Send queued refresh requests
- reimport: Delete a synced file and import a fresh copy
- status: Show the sync state
- config: Show or change sync settings
"""

from __future__ import annotations

import click

from highlightsync.client.cli.auth import login, logout
from highlightsync.client.cli.config import (
    get_config_dir,
    get_settings_file,
    get_vault_path,
    load_store,
    setup_logging,
)
from highlightsync.client.cli.settings import config_cmd
from highlightsync.client.cli.sync import refresh, reimport, run, status, sync


@click.group()
@click.version_option(package_name="highlightsync")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
def cli(verbose: bool) -> None:
    """highlightsync - Keep a local vault in sync with your highlights."""
    setup_logging(verbose)


# Account commands
cli.add_command(login)
cli.add_command(logout)

# Sync commands
cli.add_command(sync)
cli.add_command(run)
cli.add_command(refresh)
cli.add_command(reimport)
cli.add_command(status)

# Settings
cli.add_command(config_cmd)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "cli",
    "get_config_dir",
    "get_settings_file",
    "get_vault_path",
    "load_store",
    "main",
]
