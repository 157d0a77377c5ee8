"""Community API client: entry point.

Command-line access to the community services backend through the same
authenticated request pipeline the application uses.
"""

from __future__ import annotations

import logging

import typer

from community_client.commands.auth_cmd import app as auth_app
from community_client.commands.api_cmd import app as api_app

app = typer.Typer(
    name="community-api",
    help="CLI for the community services API with automatic session refresh.",
    no_args_is_help=True,
)

app.add_typer(auth_app, name="auth")
app.add_typer(api_app, name="api")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Community API CLI: sessions and raw API calls."""
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")


if __name__ == "__main__":
    app()
