"""
Rendering of flat records as rich tables, JSON or CSV.
"""

import csv
import dataclasses
import io
import json
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from rich.table import Table

from winops.util.files import write_text

OUTPUT_FORMATS = ("table", "json", "csv")


def to_dict(record: Any) -> dict[str, Any]:
    """Convert a dataclass record (or plain dict) to a dict."""
    if dataclasses.is_dataclass(record) and not isinstance(record, type):
        return dataclasses.asdict(record)
    return dict(record)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    return str(value)


def to_json(records: Sequence[Any] | Any) -> str:
    """Serialize a record or list of records as indented JSON."""
    if isinstance(records, (list, tuple)):
        data: Any = [to_dict(r) for r in records]
    else:
        data = to_dict(records)
    return json.dumps(data, indent=2, default=_json_default)


def _csv_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (list, tuple, set)):
        return ";".join(str(v) for v in value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, timedelta):
        return int(value.total_seconds())
    return value


def to_csv(records: Sequence[Any], fields: Sequence[str] | None = None) -> str:
    """
    Serialize records as CSV.

    Args:
        records: Dataclass records or dicts
        fields: Column order (defaults to the first record's keys)
    """
    rows = [to_dict(r) for r in records]
    if fields is None:
        fields = list(rows[0].keys()) if rows else []

    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(fields), extrasaction="ignore")
    writer.writeheader()
    for row in rows:
        writer.writerow({k: _csv_value(row.get(k)) for k in fields})
    return buffer.getvalue()


def record_fields(record_type: type) -> list[str]:
    """Field names of a dataclass type in declaration order."""
    return [f.name for f in dataclasses.fields(record_type)]


def build_table(
    title: str,
    columns: Sequence[str | tuple[str, dict[str, Any]]],
    rows: Sequence[Sequence[Any]],
) -> Table:
    """
    Build a rich Table.

    Columns are header strings or (header, column kwargs) tuples.
    """
    table = Table(title=title, title_style="bold blue", header_style="bold cyan")
    for column in columns:
        if isinstance(column, tuple):
            header, kwargs = column
            table.add_column(header, **kwargs)
        else:
            table.add_column(column)
    for row in rows:
        table.add_row(*["" if cell is None else str(cell) for cell in row])
    return table


def emit(
    console,
    records: Sequence[Any],
    fmt: str,
    table_builder: Callable[[Sequence[Any]], Table],
    fields: Sequence[str] | None = None,
    output: Path | None = None,
) -> None:
    """
    Print or write records in the requested format.

    Table output always goes to the console. JSON and CSV go to output
    when given, otherwise to stdout without rich markup processing.
    """
    if fmt == "table":
        console.print(table_builder(records))
        return

    if fmt == "json":
        text = to_json(list(records))
    elif fmt == "csv":
        text = to_csv(records, fields)
    else:
        raise ValueError(f"Unsupported format: {fmt}. Must be one of: {list(OUTPUT_FORMATS)}")

    if output is not None:
        write_text(output, text if text.endswith("\n") else text + "\n")
        console.print(f"[green]✓ Wrote {len(records)} record(s) to {output}[/green]")
    else:
        console.print(text, markup=False, highlight=False, soft_wrap=True)
