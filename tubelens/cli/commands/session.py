"""Guest session commands for the TubeLens CLI."""

from __future__ import annotations

import click

from tubelens.app.dependencies import get_auth_api, get_token_store

from .common import cli_errors, console


@click.command()
def login() -> None:
    """Start a guest session."""
    with cli_errors():
        session = get_auth_api().login_as_guest()
    console.print("[green]Signed in as guest[/green]")
    console.print(f"Searches remaining: [cyan]{session.quota_remaining}[/cyan]")


@click.command()
def logout() -> None:
    """End the guest session and forget the token."""
    get_auth_api().logout()
    console.print("[green]Signed out[/green]")


@click.command()
@click.option("--refresh", is_flag=True, help="Extend the session by another 24 hours.")
def status(refresh: bool) -> None:
    """Show whether a guest session is active."""
    auth_api = get_auth_api()
    if refresh:
        with cli_errors():
            auth_api.refresh_session()
        console.print("[green]Session refreshed[/green]")

    session = auth_api.check_auth_status()
    if session is None:
        console.print("[yellow]Not signed in[/yellow] (run [cyan]tubelens login[/cyan])")
        return

    info = get_token_store().get_token_info()
    hours, remainder = divmod(info.time_remaining_ms // 1000, 3600)
    console.print("[bold]Guest session active[/bold]")
    if session.user.get("id"):
        console.print(f"  user: {session.user['id']}")
    console.print(f"  expires in: {hours}h {remainder // 60}m")
    console.print(f"  searches remaining: {session.quota_remaining}")
    if info.should_refresh:
        console.print("[yellow]Session expires soon; run `tubelens status --refresh`[/yellow]")
