"""Rendering of API results for the terminal."""

from __future__ import annotations

import json
import sys
from enum import Enum
from typing import Any

from rich.console import Console
from rich.table import Table

console = Console(stderr=True)


class OutputFormat(str, Enum):
    TABLE = "table"
    JSON = "json"


def rows_of(result: Any) -> list[dict[str, Any]]:
    """Extract table rows from an API result.

    Understands bare lists, paginated envelopes (``results`` / ``data``) and
    single objects. Scalars become a one-column ``value`` row.
    """
    if result is None:
        return []
    if isinstance(result, dict):
        for key in ("results", "data"):
            inner = result.get(key)
            if isinstance(inner, list):
                return rows_of(inner)
        return [result]
    if isinstance(result, list):
        return [item if isinstance(item, dict) else {"value": item} for item in result]
    return [{"value": result}]


def print_output(result: Any, fmt: OutputFormat = OutputFormat.TABLE, title: str | None = None) -> None:
    """Print an API result in the requested format."""
    if fmt == OutputFormat.JSON:
        print_json(result)
    else:
        print_table(rows_of(result), title)


def print_json(data: Any) -> None:
    """Print data as formatted JSON to stdout."""
    json.dump(data, sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")


def print_table(rows: list[dict[str, Any]], title: str | None = None) -> None:
    """Print rows as a Rich table; columns are the union of row keys in first-seen order."""
    if not rows:
        console.print("[dim]No content.[/dim]")
        return

    columns: list[str] = []
    for row in rows:
        columns.extend(k for k in row if k not in columns)

    table = Table(title=title, show_lines=False)
    for col in columns:
        table.add_column(col, overflow="fold")

    for row in rows:
        table.add_row(*[_cell(row.get(col, "")) for col in columns])

    console.print(table)


def _cell(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)
