"""Append-only string tables rendered as box-drawn console tables or Markdown.

Usage:
    from backhub.table import Table

    table = Table(["Repository", "Result"])
    table.add_row(["github.com/org/repo", "cloned"])
    print(table.format_table(inner_dividers=True))
    table.write_markdown_table_to_file("report.md")
"""

from __future__ import annotations

import math
import os
import sys
from collections.abc import Sequence
from pathlib import Path

from rich.color import ColorSystem
from rich.style import Style

DEFAULT_WIDTH = 80
MIN_COLUMN_WIDTH = 3

BOX = {
    "top_left": "╭",
    "top_right": "╮",
    "bottom_left": "╰",
    "bottom_right": "╯",
    "horizontal": "─",
    "vertical": "│",
    "left_t": "├",
    "right_t": "┤",
    "top_t": "┬",
    "bottom_t": "┴",
    "cross": "┼",
}

_BOLD = Style(bold=True)


def terminal_width() -> int:
    """Width of the terminal attached to stdout, or 80 when unavailable."""
    try:
        width = os.get_terminal_size(sys.stdout.fileno()).columns
    except (AttributeError, OSError, ValueError):
        return DEFAULT_WIDTH
    return width if width > 0 else DEFAULT_WIDTH


def wrap_text(text: str, width: int) -> list[str]:
    """Greedy word wrap; words longer than ``width`` are hard-split."""
    if width <= 0 or len(text) <= width:
        return [text]

    lines: list[str] = []
    current = ""
    for word in text.split():
        if len(current) + len(word) + 1 <= width:
            current = f"{current} {word}" if current else word
            continue
        if current:
            lines.append(current)
        while len(word) > width:
            lines.append(word[:width])
            word = word[width:]
        current = word
    if current:
        lines.append(current)
    return lines or [""]


class Table:
    """A grid of string cells under fixed column headers.

    Rows are not validated against the header count: missing cells render
    empty and extra cells are ignored.
    """

    def __init__(self, headers: Sequence[str]):
        self.headers: tuple[str, ...] = tuple(headers)
        self.rows: list[list[str]] = []

    def add_row(self, cells: Sequence[str]) -> None:
        """Append one row."""
        self.rows.append([str(cell) for cell in cells])

    def __len__(self) -> int:
        return len(self.rows)

    def _column_widths(self) -> list[int]:
        widths = [len(header) for header in self.headers]
        for row in self.rows:
            for i, cell in enumerate(row[: len(widths)]):
                widths[i] = max(widths[i], len(cell))
        return widths

    def _fit_widths(self, widths: list[int], term_width: int) -> list[int]:
        """Shrink columns proportionally so the table fits ``term_width``.

        Columns never go below MIN_COLUMN_WIDTH; when the terminal is too
        narrow for even that, the natural widths are kept and the table
        overflows.
        """
        ncols = len(widths)
        border_chars = 1 + ncols
        padding_chars = 2 * ncols
        content_width = sum(widths)
        total = border_chars + padding_chars + content_width

        if total <= term_width or term_width <= border_chars + padding_chars + ncols:
            return widths
        if content_width == 0:
            return widths

        available = term_width - border_chars - padding_chars
        return [
            max(math.floor(width / content_width * available), MIN_COLUMN_WIDTH)
            for width in widths
        ]

    def _divider(self, widths: list[int], left: str, mid: str, right: str) -> str:
        segments = [BOX["horizontal"] * (width + 2) for width in widths]
        return left + mid.join(segments) + right + "\n"

    def _block(self, cells: Sequence[str], widths: list[int], bold: bool = False) -> str:
        wrapped = [
            wrap_text(cells[i] if i < len(cells) else "", width)
            for i, width in enumerate(widths)
        ]
        height = max((len(lines) for lines in wrapped), default=1)

        out = []
        for line_no in range(height):
            parts = []
            for lines, width in zip(wrapped, widths):
                text = lines[line_no] if line_no < len(lines) else ""
                padded = f" {text.ljust(width)} "
                if bold:
                    padded = _BOLD.render(padded, color_system=ColorSystem.STANDARD)
                parts.append(padded)
            out.append(BOX["vertical"] + BOX["vertical"].join(parts) + BOX["vertical"] + "\n")
        return "".join(out)

    def format_table(
        self,
        inner_dividers: bool = False,
        width: int | None = None,
        bold_headers: bool = False,
    ) -> str:
        """Render as a bordered table that fits the terminal width.

        Args:
            inner_dividers: Draw a divider line between data rows
            width: Terminal width to fit; detected from stdout when omitted
            bold_headers: Emit ANSI bold codes around header cells

        Returns:
            The table, every line terminated by a newline
        """
        term_width = width if width and width > 0 else terminal_width()
        widths = self._fit_widths(self._column_widths(), term_width)

        out = [self._divider(widths, BOX["top_left"], BOX["top_t"], BOX["top_right"])]
        out.append(self._block(self.headers, widths, bold=bold_headers))
        out.append(self._divider(widths, BOX["left_t"], BOX["cross"], BOX["right_t"]))

        for index, row in enumerate(self.rows):
            out.append(self._block(row, widths))
            if inner_dividers and index < len(self.rows) - 1:
                out.append(self._divider(widths, BOX["left_t"], BOX["cross"], BOX["right_t"]))

        out.append(self._divider(widths, BOX["bottom_left"], BOX["bottom_t"], BOX["bottom_right"]))
        return "".join(out)

    def format_markdown_table(self) -> str:
        """Render as a Markdown pipe table. Cells are padded, never wrapped."""
        widths = self._column_widths()

        header = "|" + "".join(f" {h.ljust(w)} |" for h, w in zip(self.headers, widths))
        divider = "|" + "".join(f" {'-' * w} |" for w in widths)
        lines = [header, divider]
        for row in self.rows:
            cells = [row[i] if i < len(row) else "" for i in range(len(widths))]
            lines.append("|" + "".join(f" {c.ljust(w)} |" for c, w in zip(cells, widths)))
        return "\n".join(lines) + "\n"

    def print_table(self, inner_dividers: bool = False) -> None:
        sys.stdout.write(self.format_table(inner_dividers))
        sys.stdout.flush()

    def print_markdown_table(self) -> None:
        sys.stdout.write(self.format_markdown_table())
        sys.stdout.flush()

    def write_markdown_table_to_file(self, path: str | Path) -> None:
        """Write the Markdown rendering to ``path``, replacing any existing file.

        Raises:
            OSError: If the file cannot be created or written
        """
        with open(path, "w", encoding="utf-8") as f:
            f.write(self.format_markdown_table())
