"""Output format routing for swaplist.

Command summaries go to stdout as json or a Rich table; the retrieved
transactions themselves go to the output file (see filestore.py).

Design rules:
- JSON: 2-space indent, utf-8
- Table: Rich-formatted, one table per section

All functions return strings. The caller writes to stdout.
"""

from __future__ import annotations

import io
import json
from typing import Any

from rich.console import Console
from rich.table import Table

VALID_FORMATS = {"json", "table"}


def format_output(data: Any, fmt: str) -> str:
    """
    Format data for stdout output.

    Args:
        data: Result dict, list, or any JSON-serialisable value.
        fmt: "json" | "table"

    Raises:
        ValueError: If fmt is not a recognised format.
    """
    fmt = fmt.lower()
    if fmt not in VALID_FORMATS:
        raise ValueError(f"Unknown format {fmt!r}. Valid: {sorted(VALID_FORMATS)}")

    if fmt == "table":
        return format_table(data)
    return format_json(data)


# ── JSON ─────────────────────────────────────────────────────────────────────


def format_json(data: Any) -> str:
    """Pretty-print data as JSON (2-space indent)."""
    return json.dumps(data, indent=2, ensure_ascii=False)


# ── Table ────────────────────────────────────────────────────────────────────


def format_table(data: Any) -> str:
    """
    Format as a Rich terminal table.

    Handles:
    - Retrieval summaries (dict with 'status' and 'saved')
    - Config dumps (dict of section dicts)
    - Generic fallback: pretty JSON
    """
    buf = io.StringIO()
    console = Console(file=buf, highlight=False, markup=True, width=120)

    if isinstance(data, dict) and "status" in data and "saved" in data:
        _render_summary_table(console, data)
    elif isinstance(data, dict) and data and any(isinstance(v, dict) for v in data.values()):
        _render_sections_table(console, data)
    else:
        console.print_json(json.dumps(data))

    return buf.getvalue()


def _render_summary_table(console: Console, data: dict[str, Any]) -> None:
    table = Table(title="Retrieval", show_header=True, header_style="bold blue")
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value")
    for key, value in data.items():
        table.add_row(key, "—" if value is None else str(value))
    console.print(table)


def _render_sections_table(console: Console, data: dict[str, Any]) -> None:
    table = Table(title="Configuration", show_header=True, header_style="bold blue")
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Value")
    for section, values in data.items():
        if isinstance(values, dict):
            for key, value in values.items():
                table.add_row(f"{section}.{key}", str(value))
        else:
            table.add_row(section, str(values))
    console.print(table)


# ── Utility ──────────────────────────────────────────────────────────────────


def mask_api_key(key: str) -> str:
    """
    Mask an API key for safe display.

    'abcdefg123' → 'abcd****'
    '' → '****'
    """
    if not key:
        return "****"
    if len(key) <= 4:
        return "****"
    return key[:4] + "****"


def mask_endpoint(url: str) -> str:
    """
    Hide the path of a node URL, where hosted providers put the access token.

    'https://node.example/abc123/' → 'https://node.example/****'
    """
    scheme, sep, rest = url.partition("://")
    if not sep:
        return url
    host, slash, path = rest.partition("/")
    if not path.strip("/"):
        return url
    return f"{scheme}://{host}/****"
