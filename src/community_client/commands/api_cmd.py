"""CLI commands for raw API calls through the authenticated pipeline."""

from __future__ import annotations

import json
from typing import Annotated, Any, Optional

import typer

from community_client.client import build_client
from community_client.commands.common import parse_pairs, run_with_client
from community_client.config import get_config
from community_client.exceptions import ApiError
from community_client.utils.errors import handle_error
from community_client.utils.output import OutputFormat, print_output

app = typer.Typer(name="api", help="Call any API path with the stored session.")

OutputOpt = Annotated[OutputFormat, typer.Option("--output", "-o", help="Output format")]
VerboseOpt = Annotated[bool, typer.Option("--verbose", "-v", help="Show request details")]
DataOpt = Annotated[Optional[str], typer.Option("--data", "-d", help="JSON request body")]


def _call(method: str, path: str, output: OutputFormat, verbose: bool, **kwargs: Any) -> None:
    client = build_client(get_config(), verbose=verbose)
    try:
        result = run_with_client(client, lambda c: c.request(method, path, **kwargs))
    except ApiError as e:
        handle_error(e)
        raise typer.Exit(1)
    print_output(result, output, title=f"{method} {path}")


def _body(data: str | None) -> Any:
    if data is None:
        return {}
    try:
        return json.loads(data)
    except ValueError as e:
        raise typer.BadParameter(f"--data is not valid JSON: {e}")


@app.command()
def get(
    path: Annotated[str, typer.Argument(help="API path, e.g. /events/")],
    param: Annotated[Optional[list[str]], typer.Option("--param", "-p", help="Query parameter key=value")] = None,
    output: OutputOpt = OutputFormat.TABLE,
    verbose: VerboseOpt = False,
) -> None:
    """GET a path."""
    try:
        params = parse_pairs(param)
    except ValueError as e:
        raise typer.BadParameter(str(e))
    _call("GET", path, output, verbose, params=params)


@app.command()
def post(path: str, data: DataOpt = None, output: OutputOpt = OutputFormat.TABLE, verbose: VerboseOpt = False) -> None:
    """POST a JSON body to a path."""
    _call("POST", path, output, verbose, body=_body(data))


@app.command()
def put(path: str, data: DataOpt = None, output: OutputOpt = OutputFormat.TABLE, verbose: VerboseOpt = False) -> None:
    """PUT a JSON body to a path."""
    _call("PUT", path, output, verbose, body=_body(data))


@app.command()
def patch(path: str, data: DataOpt = None, output: OutputOpt = OutputFormat.TABLE, verbose: VerboseOpt = False) -> None:
    """PATCH a path with a JSON body."""
    _call("PATCH", path, output, verbose, body=_body(data))


@app.command()
def delete(path: str, output: OutputOpt = OutputFormat.TABLE, verbose: VerboseOpt = False) -> None:
    """DELETE a path."""
    _call("DELETE", path, output, verbose)
