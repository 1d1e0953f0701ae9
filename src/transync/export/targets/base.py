from __future__ import annotations


class ExportTargetError(Exception):
    """Base error for export target I/O failures."""


def trim_header_row(values: list[object]) -> list[str]:
    """Drop trailing empty cells and render the rest as text."""
    cells = ["" if value is None else str(value) for value in values]
    while cells and not cells[-1]:
        cells.pop()
    return cells
