"""Authentication commands for highlightsync CLI.

Commands:
- login: Connect this agent to your account through the browser
- logout: Forget the stored access token
"""

from __future__ import annotations

import sys

import click

from highlightsync.client.cli.config import build_agent, load_store


@click.command()
@click.option("--force", is_flag=True, help="Re-authenticate even if already connected.")
def login(force: bool) -> None:
    """Connect to your account.

    Opens the authorization page in your browser and waits for the
    service to issue an access token.
    """
    store = load_store()
    if store.settings.is_authenticated and not force:
        click.echo("Already connected. Use --force to re-authenticate.")
        return

    with build_agent(store) as agent:
        click.echo("Waiting for authorization in your browser...")
        if not agent.token_manager.authenticate():
            click.echo("Error: Authorization failed. Try again.", err=True)
            sys.exit(1)

    click.echo("Connected.")


@click.command()
def logout() -> None:
    """Forget the stored access token."""
    with build_agent() as agent:
        agent.token_manager.logout()
    click.echo("Disconnected.")
