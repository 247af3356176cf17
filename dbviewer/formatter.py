"""Plain-text rendering of decoded worker results."""

from __future__ import annotations

import json
from typing import Any, Mapping, Sequence

from .models import AffectedRowsResult, ExecutionResult, OpaqueResult, RowSetResult

MIN_COLUMN_WIDTH = 10
MAX_COLUMN_WIDTH = 50
MAX_CELL_LENGTH = 100
SEPARATOR_INTERVAL = 20
SEPARATOR_THRESHOLD = 30

EMPTY_ROWS_MESSAGE = "Query returned 0 rows."
NO_COLUMNS_MESSAGE = "Query returned rows with no columns."


def render_result(result: ExecutionResult, sql: str = "") -> list[str]:
    """Render any result variant as display lines.

    ``sql`` is accepted for context only; the output never depends on it.
    """

    if isinstance(result, RowSetResult):
        return render_rows(result.rows, result.execution_time_ms)
    if isinstance(result, AffectedRowsResult):
        return [
            f"✔ Success: {result.rows_affected} row(s) affected, "
            f"execution time: {format_elapsed(result.execution_time_ms)} ms"
        ]
    return _render_opaque(result)


def render_rows(rows: Sequence[Mapping[str, Any]], execution_time_ms: float | None = None) -> list[str]:
    """Render a row set as a fixed-width table followed by a summary line."""

    if not rows:
        return [EMPTY_ROWS_MESSAGE]
    columns = [str(column) for column in rows[0].keys()]
    if not columns:
        return [NO_COLUMNS_MESSAGE]

    cells = [[format_cell(row.get(column)) for column in columns] for row in rows]
    widths = []
    for index, column in enumerate(columns):
        longest = max(len(line[index]) for line in cells)
        widths.append(min(MAX_COLUMN_WIDTH, max(MIN_COLUMN_WIDTH, len(column), longest)))

    separator = _table_line("-" * width for width in widths)
    lines = [_table_line(column.ljust(width) for column, width in zip(columns, widths)), separator]
    total = len(cells)
    for position, line in enumerate(cells, start=1):
        lines.append(_table_line(value.ljust(width) for value, width in zip(line, widths)))
        if total > SEPARATOR_THRESHOLD and position % SEPARATOR_INTERVAL == 0 and position < total:
            lines.append(separator)
    lines.append("")
    lines.append(f"✔ {total} row(s) returned, execution time: {format_elapsed(execution_time_ms)} ms")
    return lines


def format_cell(value: Any) -> str:
    """Return the display text for a single cell; never raises."""

    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list, tuple)):
        try:
            return json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError):
            return "[Object]"
    if isinstance(value, str):
        return value[:97] + "..." if len(value) > MAX_CELL_LENGTH else value
    try:
        return str(value)
    except Exception:
        return "[Object]"


def format_elapsed(value: float | None) -> str:
    if value is None:
        return "?"
    return f"{value:.2f}".rstrip("0").rstrip(".")


def _table_line(cells: Any) -> str:
    return "| " + " | ".join(cells) + " |"


def _render_opaque(result: OpaqueResult) -> list[str]:
    try:
        text = json.dumps(result.payload, indent=2, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        text = "[Object]"
    return ["Result:", *text.splitlines()]


__all__ = [
    "EMPTY_ROWS_MESSAGE",
    "NO_COLUMNS_MESSAGE",
    "format_cell",
    "format_elapsed",
    "render_result",
    "render_rows",
]
