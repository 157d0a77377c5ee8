"""CLI commands for session management."""

from __future__ import annotations

from typing import Annotated

import typer
from rich.console import Console

from community_client.client import build_client
from community_client.commands.common import run_with_client
from community_client.config import get_config
from community_client.exceptions import ApiError
from community_client.utils.errors import handle_error
from community_client.utils.output import OutputFormat, print_output

console = Console(stderr=True)
app = typer.Typer(name="auth", help="Log in, inspect and refresh the stored session.")


@app.command()
def login(
    email: Annotated[str, typer.Option("--email", "-e", prompt=True, help="Account email")],
    password: Annotated[str, typer.Option("--password", "-p", prompt=True, hide_input=True, help="Account password")],
    output: Annotated[OutputFormat, typer.Option("--output", "-o", help="Output format")] = OutputFormat.TABLE,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show request details")] = False,
) -> None:
    """Log in and store the session tokens."""
    client = build_client(get_config(), verbose=verbose)

    try:
        console.print(f"Logging in as [bold]{email}[/bold]...", style="yellow")
        run_with_client(client, lambda c: c.login({"email": email, "password": password}))
        status = client.session_status()
        result = {
            "status": "authenticated" if status.has_access_token else "no token issued",
            "has_refresh_token": status.has_refresh_token,
            "user": (status.user or {}).get("email", email),
        }
        print_output(result, output, title="Login")
    except ApiError as e:
        handle_error(e)
        raise typer.Exit(1)


@app.command()
def status(
    output: Annotated[OutputFormat, typer.Option("--output", "-o", help="Output format")] = OutputFormat.TABLE,
) -> None:
    """Show the stored session state."""
    client = build_client(get_config())

    session_status = client.session_status()
    result = {
        "has_access_token": session_status.has_access_token,
        "has_refresh_token": session_status.has_refresh_token,
        "refresh_state": session_status.refresh_state.value,
        "user": (session_status.user or {}).get("email", "N/A"),
    }
    print_output(result, output, title="Session Status")
    run_with_client(client, _noop)


@app.command()
def refresh(
    output: Annotated[OutputFormat, typer.Option("--output", "-o", help="Output format")] = OutputFormat.TABLE,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show request details")] = False,
) -> None:
    """Force a token refresh."""
    client = build_client(get_config(), verbose=verbose)

    console.print("Refreshing access token...", style="yellow")
    token = run_with_client(client, lambda c: c.refresh_session())
    if token is None:
        console.print("[red]Token refresh failed:[/red] session cleared, continuing as guest")
        raise typer.Exit(1)
    print_output({"status": "refreshed"}, output, title="Token Refreshed")


@app.command()
def logout(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show request details")] = False,
) -> None:
    """Revoke the refresh token and clear the stored session."""
    client = build_client(get_config(), verbose=verbose)
    run_with_client(client, lambda c: c.logout())
    console.print("Logged out.", style="green")


async def _noop(_client: object) -> None:
    return None
