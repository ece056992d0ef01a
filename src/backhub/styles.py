"""Styling primitives shared by the table and output manager.

Colors and symbols are process-wide constants. Everything here is pure:
helpers return new `rich.text.Text` objects or plain strings and never
touch the terminal.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType

from rich.style import Style
from rich.text import Text

BASE_PADDING = 2

SYMBOLS = MappingProxyType(
    {
        "pass": "✓",
        "fail": "✗",
        "warning": "!",
        "pending": "○",
        "info": "ℹ",
        "arrow": "→",
        "bullet": "•",
        "dot": "·",
    }
)


@dataclass(frozen=True)
class Palette:
    """Named styles used across console output."""

    success: Style = Style(color="color(2)")  # muted green
    error: Style = Style(color="color(9)")
    warning: Style = Style(color="color(11)")
    pending: Style = Style(color="color(12)")  # blue
    info: Style = Style(color="color(14)")  # cyan
    debug: Style = Style(color="color(250)")  # light grey
    detail: Style = Style(color="color(13)")  # purple
    stream: Style = Style(color="color(240)")  # grey
    header: Style = Style(color="color(69)", bold=True)

    def for_status(self, status: str) -> Style:
        """Style for a task status; unknown statuses use the pending style."""
        return {
            "success": self.success,
            "pass": self.success,
            "error": self.error,
            "fail": self.error,
            "warning": self.warning,
        }.get(status, self.pending)


PALETTE = Palette()


def status_glyph(status: str) -> Text:
    """Return the colored indicator for a task status."""
    if status in ("success", "pass"):
        return Text(SYMBOLS["pass"], style=PALETTE.success)
    if status in ("error", "fail"):
        return Text(SYMBOLS["fail"], style=PALETTE.error)
    if status == "warning":
        return Text(SYMBOLS["warning"], style=PALETTE.warning)
    if status == "pending":
        return Text(SYMBOLS["pending"], style=PALETTE.pending)
    return Text(SYMBOLS["bullet"], style=PALETTE.info)


def success_message(msg: str) -> Text:
    return Text(msg, style=PALETTE.success)


def error_message(msg: str) -> Text:
    return Text(msg, style=PALETTE.error)


def warning_message(msg: str) -> Text:
    return Text(msg, style=PALETTE.warning)


def info_message(msg: str) -> Text:
    return Text(msg, style=PALETTE.info)


def debug_message(msg: str) -> Text:
    return Text(msg, style=PALETTE.debug)


def detail_message(msg: str) -> Text:
    return Text(msg, style=PALETTE.detail)


def progress_bar(current: float, total: float, width: int = 30) -> str:
    """Render a plain-text progress bar, e.g. ``[======>   ] 60.0% - ``."""
    if width <= 0:
        width = 30
    percent = current / total if total else 0.0
    percent = min(max(percent, 0.0), 1.0)
    filled = min(int(percent * width), width)
    bar = "[" + "=" * filled
    if filled < width:
        bar += ">" + " " * (width - filled - 1)
    bar += "]"
    return f"{bar} {percent * 100:.1f}% - "


def format_duration(seconds: float) -> str:
    """Format a duration compactly: ``850ms``, ``3.2s``, ``2m05s``."""
    if seconds < 0:
        seconds = 0.0
    millis = round(seconds * 1000)
    if millis < 1000:
        return f"{millis}ms"
    if round(seconds, 1) < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(round(seconds)), 60)
    if minutes < 60:
        return f"{minutes}m{secs:02d}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h{minutes:02d}m{secs:02d}s"
