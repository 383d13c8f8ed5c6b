"""Shared text formatting helpers for benchloop.

Provides functions for formatting durations, scaled numbers, byte counts
and aligned tables used by the reporters and the CLI.
"""

from __future__ import annotations


def format_duration(seconds: float) -> str:
    """Format seconds as human-readable duration.

    Examples: ``'8s'``, ``'1m 23s'``, ``'1h 12m 34s'``. Always whole seconds
    (truncated, not rounded).
    """
    total = int(seconds)
    if total >= 3600:
        h = total // 3600
        m = (total % 3600) // 60
        s = total % 60
        return f"{h}h {m:2d}m {s:2d}s"
    if total >= 60:
        m = total // 60
        s = total % 60
        return f"{m}m {s:2d}s"
    return f"{total}s"


# (lower bound, field width, precision).  The field width grows as the
# precision grows so the unit column stays aligned across rows.
_PRETTY_STEPS: list[tuple[float, int, int]] = [
    (999.95, 10, 0),
    (99.995, 12, 1),
    (9.9995, 13, 2),
    (0.99995, 14, 3),
    (0.099995, 15, 4),
    (0.0099995, 16, 5),
    (0.00099995, 17, 6),
]


def format_scaled(value: float, unit: str) -> str:
    """Format *value* with a precision that depends on its magnitude.

    Large values are printed without decimals, small values get up to
    seven decimals.  Zero is printed like a large value::

        format_scaled(1234.5, "ns/op")  -> '      1234 ns/op'
        format_scaled(12.5, "ns/op")    -> '        12.50 ns/op'
    """
    magnitude = abs(value)
    if magnitude == 0:
        return f"{value:10.0f} {unit}"
    for lower, width, precision in _PRETTY_STEPS:
        if magnitude >= lower:
            return f"{value:{width}.{precision}f} {unit}"
    return f"{value:18.7f} {unit}"


def format_bytes(num_bytes: float) -> str:
    """Format a signed byte delta: ``'+1.50MB'``, ``'+12.00KB'``, ``'-42B'``."""
    sign = "+" if num_bytes > 0 else ""
    if num_bytes > 2**20:
        return f"{sign}{num_bytes / 2**20:.2f}MB"
    if num_bytes > 2**10:
        return f"{sign}{num_bytes / 2**10:.2f}KB"
    return f"{sign}{int(num_bytes)}B"


def format_status_icon(status: str) -> str:
    """Return a visual status indicator for the given context state."""
    icons: dict[str, str] = {
        "passed": "✓ PASS",
        "failed": "✗ FAIL",
        "skipped": "⊘ SKIP",
        "timeout": "⏱ TIMEOUT",
        "running": "… RUNNING",
    }
    return icons.get(status, status.upper())


def format_table(
    headers: list[str],
    rows: list[list[str]],
    *,
    alignments: list[str] | None = None,
    max_col_width: dict[int, int] | None = None,
    indent: int = 2,
) -> str:
    """Format a list of rows as an aligned text table.

    Auto-calculates column widths from content. Truncates columns that
    exceed *max_col_width* (with ``'...'`` suffix). Right-aligns columns
    marked ``'r'`` in *alignments*.

    Args:
        headers: Column header strings.
        rows: List of rows, each a list of cell strings.
        alignments: Per-column alignment: ``'l'``, ``'r'``, or ``'c'``.
        max_col_width: Column index to max width mapping.
        indent: Number of leading spaces per line.

    Returns:
        The formatted table as a string.
    """
    if not headers:
        return ""

    ncols = len(headers)
    if alignments is None:
        alignments = ["l"] * ncols
    alignments = list(alignments) + ["l"] * (ncols - len(alignments))

    max_widths = max_col_width or {}

    proc_headers = list(headers)
    proc_rows: list[list[str]] = []
    for row in rows:
        padded = list(row) + [""] * (ncols - len(row))
        proc_rows.append(padded[:ncols])

    for ci, max_w in max_widths.items():
        if ci < ncols:
            proc_headers[ci] = truncate(proc_headers[ci], max_w)
            for row in proc_rows:
                row[ci] = truncate(row[ci], max_w)

    widths = [len(h) for h in proc_headers]
    for row in proc_rows:
        for ci, cell in enumerate(row):
            widths[ci] = max(widths[ci], len(cell))

    prefix = " " * indent

    def _format_cell(text: str, width: int, align: str) -> str:
        if align == "r":
            return text.rjust(width)
        if align == "c":
            return text.center(width)
        return text.ljust(width)

    lines: list[str] = []
    header_line = "  ".join(
        _format_cell(proc_headers[i], widths[i], alignments[i]) for i in range(ncols)
    )
    lines.append((prefix + header_line).rstrip())

    for row in proc_rows:
        row_line = "  ".join(_format_cell(row[i], widths[i], alignments[i]) for i in range(ncols))
        lines.append((prefix + row_line).rstrip())

    return "\n".join(lines)


def format_section_header(title: str, width: int = 80) -> str:
    """Format a section header: ``'─── Title ──...'``."""
    prefix = "─── "
    suffix_len = width - len(prefix) - len(title) - 1
    suffix = " " + "─" * max(0, suffix_len)
    return prefix + title + suffix


def truncate(text: str, max_len: int, suffix: str = "...") -> str:
    """Truncate text to *max_len*, adding *suffix* if truncated."""
    if len(text) <= max_len:
        return text
    if max_len <= len(suffix):
        return suffix[:max_len]
    return text[: max_len - len(suffix)] + suffix
