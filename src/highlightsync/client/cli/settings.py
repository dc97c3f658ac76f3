"""Settings command for highlightsync CLI.

Commands:
- config: Show or change sync settings
"""

from __future__ import annotations

from pathlib import Path

import click

from highlightsync.client.cli.config import build_agent, get_vault_path, load_store
from highlightsync.client.settings import normalize_base_directory


@click.command("config")
@click.option("--vault", type=click.Path(file_okay=False), help="Vault directory on disk.")
@click.option("--base-dir", help="Folder inside the vault that receives synced files.")
@click.option(
    "--interval",
    type=click.IntRange(min=0),
    help="Minutes between automatic syncs (0 = manual).",
)
@click.option("--auto-sync/--no-auto-sync", default=None, help="Sync when the agent starts.")
@click.option(
    "--auto-refresh/--no-auto-refresh",
    default=None,
    help="Re-export files deleted from the vault.",
)
@click.option(
    "--confirm-reimport/--no-confirm-reimport",
    default=None,
    help="Ask before deleting a file for reimport.",
)
def config_cmd(
    vault: str | None,
    base_dir: str | None,
    interval: int | None,
    auto_sync: bool | None,
    auto_refresh: bool | None,
    confirm_reimport: bool | None,
) -> None:
    """Show or change sync settings.

    Without options, prints the current settings.
    """
    store = load_store()
    settings = store.settings
    changed = False

    with store.lock:
        if vault is not None:
            settings.vault_path = str(Path(vault).expanduser().resolve())
            changed = True
        if base_dir is not None:
            settings.base_directory = normalize_base_directory(base_dir)
            changed = True
        if interval is not None:
            settings.interval_minutes = interval
            changed = True
        if auto_sync is not None:
            settings.auto_sync_on_start = auto_sync
            changed = True
        if auto_refresh is not None:
            settings.auto_refresh_deleted_files = auto_refresh
            changed = True
        if confirm_reimport is not None:
            settings.reimport_show_confirmation = confirm_reimport
            changed = True
        if changed:
            store.save()

    if auto_refresh and settings.pending_refresh_ids and settings.is_authenticated:
        with build_agent(store) as agent:
            agent.refresh_queue.flush()

    click.echo(f"vault               = {get_vault_path(store)}")
    click.echo(f"base_directory      = {settings.base_directory}")
    click.echo(f"interval_minutes    = {settings.interval_minutes}")
    click.echo(f"auto_sync_on_start  = {str(settings.auto_sync_on_start).lower()}")
    click.echo(f"auto_refresh        = {str(settings.auto_refresh_deleted_files).lower()}")
    click.echo(f"confirm_reimport    = {str(settings.reimport_show_confirmation).lower()}")
    if changed:
        click.echo("Settings saved. Restart 'highlightsync run' to apply a new interval.")
