"""Sync commands for highlightsync CLI.

Commands:
- sync: Run one sync cycle now
- run: Keep syncing in the background (scheduler + vault watcher)
- refresh: Send queued refresh requests
- reimport: Delete a synced file and export it again
- status: Show sync state
"""

from __future__ import annotations

import sys
import time

import click

from highlightsync.client.cli.config import build_agent, get_vault_path, load_store
from highlightsync.client.notices import Notice, NoticeLevel
from highlightsync.client.sync.types import SyncOutcome

_STYLES = {
    NoticeLevel.PROGRESS: {},
    NoticeLevel.INFO: {},
    NoticeLevel.SUCCESS: {"fg": "green"},
    NoticeLevel.ERROR: {"fg": "red"},
}


def echo_notice(notice: Notice) -> None:
    """Print a notice to the terminal."""
    click.echo(click.style(f"  {notice.message}", **_STYLES[notice.level]))


def _require_login(authenticated: bool) -> None:
    if not authenticated:
        click.echo("Error: Not connected. Run 'highlightsync login' first.", err=True)
        sys.exit(1)


def _report(outcome: SyncOutcome) -> None:
    if outcome.merge is not None and outcome.merge.failed:
        click.echo(click.style("\nFiles that could not be written:", fg="yellow"))
        for failure in outcome.merge.failed:
            click.echo(f"  ! {failure.path}: {failure.error}")
    if not outcome.ok:
        sys.exit(1)


@click.command()
def sync() -> None:
    """Run one sync cycle now.

    A cycle left behind by an interrupted run is resumed (or its stale
    lock cleared) first.
    """
    store = load_store()
    _require_login(store.settings.is_authenticated)

    with build_agent(store) as agent:
        agent.notifier.subscribe(echo_notice)
        agent.export_sync.recover()
        outcome = agent.export_sync.start_sync()

    if outcome.merge is not None and not outcome.merge.skipped:
        click.echo(f"\nWrote {len(outcome.merge.written)} file(s) from export {outcome.job_id}")
    _report(outcome)


@click.command()
def run() -> None:
    """Keep the vault in sync until interrupted.

    Syncs on the configured interval (and at startup when enabled) and
    watches the vault for deleted and renamed files.
    """
    store = load_store()
    _require_login(store.settings.is_authenticated)

    agent = build_agent(store)
    agent.notifier.subscribe(echo_notice)
    click.echo(f"Watching {agent.vault.root} (Ctrl+C to stop)")
    agent.start()
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        click.echo("\nStopping...")
    finally:
        agent.close()


@click.command()
def refresh() -> None:
    """Ask the server to regenerate queued records."""
    store = load_store()
    _require_login(store.settings.is_authenticated)

    with build_agent(store) as agent:
        pending = agent.refresh_queue.pending
        if not pending:
            click.echo("Nothing to refresh.")
            return
        if not agent.refresh_queue.flush():
            click.echo(f"Error: Refresh failed, {len(pending)} record(s) stay queued.", err=True)
            sys.exit(1)
    click.echo(f"Requested refresh of {len(pending)} record(s).")


@click.command()
@click.argument("path")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
def reimport(path: str, yes: bool) -> None:
    """Delete a synced file and import a fresh copy.

    PATH is relative to the vault root.
    """
    store = load_store()
    _require_login(store.settings.is_authenticated)

    if store.settings.reimport_show_confirmation and not yes:
        click.echo(
            "Warning: this deletes the file entirely (including any changes you made) "
            "and then reimports a new copy of your highlights."
        )
        if not click.confirm("Delete and reimport this document?"):
            return

    with build_agent(store) as agent:
        agent.notifier.subscribe(echo_notice)
        agent.export_sync.recover()
        try:
            outcome = agent.export_sync.reimport(path)
        except KeyError:
            click.echo(f"Error: {path} is not a synced file.", err=True)
            sys.exit(1)
    _report(outcome)


@click.command()
def status() -> None:
    """Show the sync state."""
    store = load_store()
    settings = store.settings

    click.echo(f"Vault:              {get_vault_path(store)}")
    click.echo(f"Base directory:     {settings.base_directory}")
    click.echo(f"Connected:          {'yes' if settings.is_authenticated else 'no'}")
    interval = f"every {settings.interval_minutes} min" if settings.interval_minutes else "manual"
    click.echo(f"Schedule:           {interval}")
    click.echo(f"Last export:        {settings.last_completed_job_id or '-'}")
    if settings.is_syncing:
        click.echo(f"Sync in progress:   export {settings.current_job_id or '?'}")
    click.echo(f"Tracked files:      {len(settings.path_to_record_id)}")
    click.echo(f"Pending refreshes:  {len(settings.pending_refresh_ids)}")
    if settings.last_sync_failed:
        click.echo(click.style("Last sync failed", fg="red"))
