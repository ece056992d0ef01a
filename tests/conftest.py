"""Shared fixtures for backhub tests."""

import io
import re

import pytest
from rich.console import Console

from backhub.config import reset_settings
from backhub.output import OutputManager


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep tests independent of the caller's environment and .env files."""
    for var in (
        "GH_TOKEN",
        "BACKHUB_CONCURRENCY",
        "BACKHUB_MAX_STREAM_LINES",
        "BACKHUB_UPDATE_INTERVAL",
        "BACKHUB_CLONE_FOLDER",
        "BACKHUB_LOG_LEVEL",
        "BACKHUB_LOG_FILE",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    reset_settings()
    yield
    reset_settings()


def make_console(terminal: bool = True, width: int = 80) -> Console:
    """Console writing to memory; cursor control codes are kept when ``terminal``."""
    return Console(
        file=io.StringIO(),
        force_terminal=terminal,
        color_system=None,
        width=width,
        highlight=False,
    )


def drain(console: Console) -> str:
    """Return everything written so far and reset the buffer."""
    value = console.file.getvalue()
    console.file.seek(0)
    console.file.truncate(0)
    return value


@pytest.fixture
def console():
    return make_console()


@pytest.fixture
def output(console):
    return OutputManager(max_stream_lines=3, update_interval=0.01, console=console)


_CONTROL = re.compile(r"\x1b\[(\d*)([A-Za-z])|\r|\n|[^\x1b\r\n]+")


def replay(text: str) -> list[str]:
    """Play console output through a minimal terminal and return the rows left on screen.

    Understands the codes the output manager writes: carriage return,
    newline, cursor up, erase line, cursor home and clear screen.
    """
    rows = [""]
    row = col = 0
    for match in _CONTROL.finditer(text):
        token = match.group(0)
        if token == "\n":
            row += 1
            col = 0
            if row == len(rows):
                rows.append("")
        elif token == "\r":
            col = 0
        elif match.group(2):
            count = int(match.group(1) or 0)
            code = match.group(2)
            if code == "A":
                row = max(row - max(count, 1), 0)
            elif code == "K":
                rows[row] = "" if count == 2 else rows[row][:col]
            elif code == "H":
                row = col = 0
            elif code == "J":
                rows = [""] * len(rows)
        else:
            line = rows[row].ljust(col)
            rows[row] = line[:col] + token + line[col + len(token) :]
            col += len(token)
    while rows and not rows[-1].strip():
        rows.pop()
    return [r.rstrip() for r in rows]
