"""Concurrent terminal output manager.

Tracks named tasks (one per unit of work) and renders their status,
headline message and most recent log lines to the terminal from a single
background thread. Worker threads only mutate task state; they never
write to the terminal themselves.

Usage:
    from backhub.output import OutputManager

    output = OutputManager(max_stream_lines=5)
    output.start_display()
    output.register("repo-a")
    output.set_message("repo-a", "Cloning")
    output.add_stream_line("repo-a", "Receiving objects: 42%")
    output.complete("repo-a")
    output.stop_display()  # final render, tables, summary

Task lifecycle:
    pending  -> registered, no message yet
    active   -> message or status set (``warning`` is an active overlay)
    success  -> terminal, via complete()
    error    -> terminal, via report_error()

Writes to a completed task are ignored so the final state cannot be
corrupted by late updates.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import NamedTuple

from rich.console import Console
from rich.control import Control
from rich.segment import ControlType
from rich.style import Style
from rich.text import Text

from backhub.styles import (
    BASE_PADDING,
    PALETTE,
    format_duration,
    progress_bar,
    status_glyph,
)
from backhub.table import Table

logger = logging.getLogger(__name__)

DEFAULT_MAX_STREAM_LINES = 15
DEFAULT_UPDATE_INTERVAL = 0.2  # seconds


class TaskStatus(str, Enum):
    """Well-known task statuses. Any other string is rendered as a custom active state."""

    PENDING = "pending"
    WARNING = "warning"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class TaskOutput:
    """State of one tracked task."""

    name: str
    index: int
    status: str = TaskStatus.PENDING.value
    message: str = ""
    stream_lines: list[str] = field(default_factory=list)
    complete: bool = False
    start_time: float = field(default_factory=time.monotonic)
    last_updated: float = field(default_factory=time.monotonic)
    error: BaseException | None = None
    tables: dict[str, Table] = field(default_factory=dict)

    @property
    def elapsed(self) -> float:
        """Seconds since registration, frozen once the task completes."""
        end = self.last_updated if self.complete else time.monotonic()
        return end - self.start_time

    @property
    def is_pending(self) -> bool:
        return not self.complete and self.status == TaskStatus.PENDING and not self.message

    def touch(self) -> None:
        self.last_updated = time.monotonic()


@dataclass(frozen=True)
class ErrorReport:
    """An error reported by a task, kept for the end-of-run dump."""

    task_name: str
    error: BaseException
    time: datetime


class Summary(NamedTuple):
    total: int
    succeeded: int
    failed: int


def _status_value(status: str | TaskStatus) -> str:
    return status.value if isinstance(status, TaskStatus) else str(status)


def _single_line(text: str) -> str:
    """Collapse embedded line breaks so one entry always uses one terminal row."""
    return " ".join(text.splitlines()) if ("\n" in text or "\r" in text) else text


def _erase_lines(count: int) -> Control:
    """Control codes that erase the ``count`` lines above the cursor."""
    return Control(
        ControlType.CARRIAGE_RETURN,
        (ControlType.ERASE_IN_LINE, 2),
        *(((ControlType.CURSOR_UP, 1), (ControlType.ERASE_IN_LINE, 2)) * count),
    )


class OutputManager:
    """Thread-safe registry of tasks with a live terminal display.

    All mutating methods may be called from any thread. State is guarded
    by one lock held only for the duration of each mutation. A second
    lock serializes terminal writes together with the count of lines
    drawn by the last render, which is what the next render erases.

    pause()/resume() follow a single-pausing-caller contract: they are
    not reentrant and must not be called concurrently with each other.

    When the console is not a terminal the loop skips periodic redraws
    and only the final render is written.
    """

    def __init__(
        self,
        max_stream_lines: int = DEFAULT_MAX_STREAM_LINES,
        update_interval: float = DEFAULT_UPDATE_INTERVAL,
        console: Console | None = None,
    ):
        if max_stream_lines <= 0:
            max_stream_lines = DEFAULT_MAX_STREAM_LINES
        self.max_stream_lines = max_stream_lines
        self.update_interval = update_interval
        self.console = console or Console(highlight=False)

        self._lock = threading.Lock()
        self._tasks: dict[str, TaskOutput] = {}
        self._tables: dict[str, Table] = {}
        self._errors: list[ErrorReport] = []
        self._task_count = 0
        self._unlimited = False
        self._tables_displayed = False

        self._render_lock = threading.Lock()
        self._num_lines = 0

        self._control = threading.Condition()
        self._thread: threading.Thread | None = None
        self._pause_requested = False
        self._paused = False
        self._stop_requested = False
        self._stopped = False

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_unlimited_output(self, unlimited: bool) -> None:
        """Keep every stream line and dump tables/errors in detail at the end."""
        with self._lock:
            self._unlimited = unlimited

    @property
    def unlimited_output(self) -> bool:
        return self._unlimited

    def set_update_interval(self, seconds: float) -> None:
        self.update_interval = seconds

    # ------------------------------------------------------------------
    # Task mutation
    # ------------------------------------------------------------------

    def register(self, name: str) -> None:
        """Start tracking ``name``, replacing any previous task of that name."""
        with self._lock:
            self._task_count += 1
            self._tasks[name] = TaskOutput(name=name, index=self._task_count)

    def _active(self, name: str) -> TaskOutput | None:
        # Caller holds self._lock.
        task = self._tasks.get(name)
        if task is None or task.complete:
            return None
        return task

    def set_message(self, name: str, message: str) -> None:
        with self._lock:
            task = self._active(name)
            if task:
                task.message = message
                task.touch()

    def set_status(self, name: str, status: str | TaskStatus) -> None:
        with self._lock:
            task = self._active(name)
            if task:
                task.status = _status_value(status)
                task.touch()

    def get_status(self, name: str) -> str:
        """Return the task's status, or ``"unknown"`` for unregistered names."""
        with self._lock:
            task = self._tasks.get(name)
            return task.status if task else "unknown"

    def complete(self, name: str) -> None:
        """Mark a task successful. Its stream lines are dropped unless output is unlimited."""
        with self._lock:
            task = self._active(name)
            if task:
                if not self._unlimited:
                    task.stream_lines = []
                task.complete = True
                task.status = TaskStatus.SUCCESS.value
                task.touch()

    def report_error(self, name: str, err: BaseException | str) -> None:
        """Mark a task failed. Stream lines are kept for context."""
        if not isinstance(err, BaseException):
            err = RuntimeError(err)
        with self._lock:
            task = self._active(name)
            if task:
                task.complete = True
                task.status = TaskStatus.ERROR.value
                task.message = f"Error: {err}"
                task.error = err
                task.touch()
                self._errors.append(ErrorReport(task_name=name, error=err, time=datetime.now()))

    def update_stream_output(self, name: str, lines: Iterable[str]) -> None:
        """Append lines to a task's log, evicting the oldest beyond the bound."""
        lines = list(lines)
        with self._lock:
            task = self._active(name)
            if task is None:
                return
            task.stream_lines.extend(lines)
            if not self._unlimited and len(task.stream_lines) > self.max_stream_lines:
                del task.stream_lines[: len(task.stream_lines) - self.max_stream_lines]
            task.touch()

    def add_stream_line(self, name: str, line: str) -> None:
        self.update_stream_output(name, [line])

    def add_progress_bar(self, name: str, percentage: float, text: str = "") -> None:
        """Replace a task's stream lines with a single progress bar line."""
        percentage = min(max(percentage, 0.0), 100.0)
        display = progress_bar(int(percentage), 100, 30) + text
        with self._lock:
            task = self._active(name)
            if task:
                task.stream_lines = [display]
                task.touch()

    def clear_task(self, name: str) -> None:
        """Drop an active task's message and stream lines, keeping its status."""
        with self._lock:
            task = self._active(name)
            if task:
                task.stream_lines = []
                task.message = ""
                task.touch()

    def clear_all(self) -> None:
        with self._lock:
            for task in self._tasks.values():
                if task.complete:
                    continue
                task.stream_lines = []
                task.message = ""
                task.touch()

    def remove(self, name: str) -> None:
        with self._lock:
            self._tasks.pop(name, None)

    def remove_completed(self) -> None:
        with self._lock:
            for name in [name for name, task in self._tasks.items() if task.complete]:
                del self._tasks[name]

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def get_task(self, name: str) -> TaskOutput | None:
        """Return a copy of the task's current state."""
        with self._lock:
            task = self._tasks.get(name)
            if task is None:
                return None
            return replace(task, stream_lines=list(task.stream_lines), tables=dict(task.tables))

    def task_names(self) -> list[str]:
        """Names of all tracked tasks in registration order."""
        with self._lock:
            return [task.name for task in sorted(self._tasks.values(), key=lambda t: t.index)]

    def errors(self) -> list[ErrorReport]:
        with self._lock:
            return list(self._errors)

    def buckets(self) -> tuple[list[str], list[str], list[str]]:
        """Task names grouped as (active, pending, completed), each in registration order."""
        with self._lock:
            active, pending, completed = self._grouped()
        return (
            [t.name for t in active],
            [t.name for t in pending],
            [t.name for t in completed],
        )

    def _grouped(self) -> tuple[list[TaskOutput], list[TaskOutput], list[TaskOutput]]:
        # Caller holds self._lock.
        active: list[TaskOutput] = []
        pending: list[TaskOutput] = []
        completed: list[TaskOutput] = []
        for task in sorted(self._tasks.values(), key=lambda t: t.index):
            if task.complete:
                completed.append(task)
            elif task.is_pending:
                pending.append(task)
            else:
                active.append(task)
        return active, pending, completed

    def summary(self) -> Summary:
        with self._lock:
            succeeded = sum(1 for t in self._tasks.values() if t.status == TaskStatus.SUCCESS)
            failed = sum(1 for t in self._tasks.values() if t.status == TaskStatus.ERROR)
            return Summary(total=len(self._tasks), succeeded=succeeded, failed=failed)

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def register_table(self, name: str, headers: list[str]) -> Table:
        """Create a global table shown in the end-of-run dump."""
        table = Table(headers)
        with self._lock:
            self._tables[name] = table
        return table

    def register_task_table(self, task_name: str, name: str, headers: list[str]) -> Table | None:
        """Create a table scoped to a task; returns None if the task is unknown."""
        with self._lock:
            task = self._tasks.get(task_name)
            if task is None:
                return None
            table = Table(headers)
            task.tables[name] = table
            return table

    def get_table(self, name: str) -> Table | None:
        with self._lock:
            return self._tables.get(name)

    def get_task_table(self, task_name: str, name: str) -> Table | None:
        with self._lock:
            task = self._tasks.get(task_name)
            return task.tables.get(name) if task else None

    def remove_table(self, name: str) -> None:
        with self._lock:
            self._tables.pop(name, None)

    def display_table(self, name: str, inner_dividers: bool = False) -> None:
        """Draw one table in place of the current live block.

        Pause the display loop first, otherwise the next tick redraws
        the task list over it.
        """
        with self._render_lock:
            with self._lock:
                table = self._tables.get(name)
                rendered = self._format(table, inner_dividers) if table else None
            if rendered is None:
                return
            self._erase_previous()
            self.console.print(Text.from_ansi(rendered), no_wrap=True, overflow="crop", crop=True)
            self._num_lines = rendered.count("\n")

    def _format(self, table: Table, inner_dividers: bool) -> str:
        return table.format_table(
            inner_dividers,
            width=self.console.width,
            bold_headers=self.console.is_terminal,
        )

    def display_tables(self) -> None:
        """Print every global table, then every task table, below the live block."""
        with self._render_lock:
            self._print_tables()

    def _print_tables(self) -> None:
        # Caller holds self._render_lock.
        with self._lock:
            self._tables_displayed = True
            global_tables = list(self._tables.items())
            task_tables = [
                (task.name, list(task.tables.items()))
                for task in sorted(self._tasks.values(), key=lambda t: t.index)
                if task.tables
            ]
            rendered_global = [(n, self._format(t, True)) for n, t in global_tables]
            rendered_tasks = [
                (task, [(n, self._format(t, True)) for n, t in tables])
                for task, tables in task_tables
            ]

        pad = " " * BASE_PADDING
        if rendered_global:
            self._print_line(Text(pad + "Global Tables:", style=PALETTE.header))
            for name, rendered in rendered_global:
                self._print_line(Text(pad + "  " + name, style=PALETTE.header))
                self._print_line(Text.from_ansi(rendered))
        if rendered_tasks:
            self._print_line(Text(pad + "Task Tables:", style=PALETTE.header))
            for task_name, tables in rendered_tasks:
                self._print_line(Text(pad + "  " + task_name, style=PALETTE.header))
                for name, rendered in tables:
                    self._print_line(Text(pad + "    " + name, style=PALETTE.info))
                    self._print_line(Text.from_ansi(rendered))
        self._num_lines = 0

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _print_line(self, text: Text) -> None:
        self.console.print(text, soft_wrap=True)

    def print_above(self, text: str | Text) -> None:
        """Print a line above the live block.

        The block is erased first and redrawn below the line on the next
        tick. While paused, whatever is on screen (such as a table shown
        with display_table) is kept and the line goes underneath it.
        """
        if isinstance(text, str):
            text = Text(text)
        keep_screen = self.paused
        with self._render_lock:
            if not keep_screen:
                self._erase_previous()
            self._print_line(text)
            self._num_lines = 0

    def _erase_previous(self) -> None:
        # Caller holds self._render_lock.
        if self._num_lines > 0:
            self.console.control(_erase_lines(self._num_lines))
        self._num_lines = 0

    def clear_output(self) -> None:
        """Clear the whole screen and forget the live block."""
        with self._render_lock:
            self.console.control(Control(ControlType.HOME, ControlType.CLEAR))
            self._num_lines = 0

    def clear_lines(self, count: int) -> None:
        """Erase ``count`` lines above the cursor."""
        if count <= 0:
            return
        with self._render_lock:
            self.console.control(_erase_lines(count))
            self._num_lines = max(self._num_lines - count, 0)

    def _render_lines(self) -> list[Text]:
        # Caller holds self._lock.
        active, pending, completed = self._grouped()
        pad = " " * BASE_PADDING
        indent = " " * (BASE_PADDING + 4)
        lines: list[Text] = []
        number = 0

        def stream(task: TaskOutput, limit: int | None) -> None:
            shown = task.stream_lines if limit is None else task.stream_lines[-limit:]
            for entry in shown:
                lines.append(Text(indent + _single_line(entry), style=PALETTE.stream))

        for task in active:
            number += 1
            style = PALETTE.for_status(task.status)
            lines.append(
                Text.assemble(
                    pad,
                    (f"{number}. ", style),
                    status_glyph(task.status),
                    " ",
                    (f"[{format_duration(task.elapsed)}]", PALETTE.debug),
                    " ",
                    (_single_line(task.message), style),
                )
            )
            stream(task, self.max_stream_lines)

        for task in pending:
            number += 1
            lines.append(
                Text.assemble(
                    pad,
                    (f"{number}. ", PALETTE.pending),
                    status_glyph(task.status),
                    " ",
                    ("Waiting...", PALETTE.pending),
                )
            )
            stream(task, self.max_stream_lines)

        for task in completed:
            number += 1
            style = PALETTE.error if task.status == TaskStatus.ERROR else PALETTE.success
            lines.append(
                Text.assemble(
                    pad,
                    (f"{number}. ", style),
                    status_glyph(task.status),
                    " ",
                    (f"[{format_duration(task.elapsed)}]", PALETTE.debug),
                    " ",
                    (_single_line(task.message), style),
                )
            )
            if self._unlimited:
                stream(task, None)

        return lines

    def update_display(self) -> None:
        """Erase the previous live block and redraw every task."""
        with self._render_lock:
            with self._lock:
                lines = self._render_lines()
            self._erase_previous()
            if lines:
                self.console.print(
                    Text("\n").join(lines),
                    no_wrap=True,
                    overflow="crop",
                    crop=True,
                )
            self._num_lines = len(lines)

    def display(self) -> None:
        """Render once, outside the background loop."""
        self.update_display()

    # ------------------------------------------------------------------
    # Background loop
    # ------------------------------------------------------------------

    def start_display(self) -> None:
        """Start the background render loop. No-op if it is already running."""
        with self._control:
            if self._thread is not None and self._thread.is_alive():
                return
            self._stop_requested = False
            self._stopped = False
            self._thread = threading.Thread(
                target=self._display_loop, name="backhub-display", daemon=True
            )
            self._thread.start()
        logger.debug("Started display loop (interval: %.3fs)", self.update_interval)

    def _has_signal(self) -> bool:
        return self._stop_requested or self._pause_requested != self._paused

    def _display_loop(self) -> None:
        while True:
            with self._control:
                self._control.wait_for(self._has_signal, timeout=self.update_interval)
                if self._paused != self._pause_requested:
                    self._paused = self._pause_requested
                    self._control.notify_all()
                if self._stop_requested:
                    break
                paused = self._paused
            # Redraws need cursor control; piped output only gets the final render.
            if not paused and self.console.is_terminal:
                try:
                    self.update_display()
                except Exception as e:
                    logger.debug("Display update failed: %s", e)
        self._finish()

    def _finish(self) -> None:
        """Final render followed by tables and the summary."""
        self.update_display()
        with self._render_lock:
            self._num_lines = 0
        with self._lock:
            tables_pending = not self._tables_displayed
        if tables_pending:
            self.display_tables()
        self.show_summary()

    def pause(self) -> None:
        """Suspend automatic rendering; returns once the loop has acknowledged."""
        with self._control:
            self._pause_requested = True
            if self._thread is None or not self._thread.is_alive():
                self._paused = True
                return
            self._control.notify_all()
            self._control.wait_for(
                lambda: self._paused or self._thread is None or not self._thread.is_alive()
            )

    def resume(self) -> None:
        """Resume automatic rendering after pause()."""
        with self._control:
            self._pause_requested = False
            if self._thread is None or not self._thread.is_alive():
                self._paused = False
                return
            self._control.notify_all()
            self._control.wait_for(
                lambda: not self._paused or self._thread is None or not self._thread.is_alive()
            )

    @property
    def paused(self) -> bool:
        with self._control:
            return self._paused

    def stop_display(self) -> None:
        """Stop the loop and block until the final output has been written.

        Safe to call more than once. Without a running loop the final
        render, tables and summary are written directly.
        """
        with self._control:
            if self._stopped:
                return
            self._stopped = True
            self._stop_requested = True
            thread = self._thread
            self._control.notify_all()

        if thread is not None and thread.is_alive():
            thread.join()
        else:
            self._finish()
        logger.debug("Stopped display loop")

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    def show_summary(self) -> Summary:
        """Print aggregate counts, any undisplayed tables and, in unlimited mode, every error."""
        summary = self.summary()
        with self._render_lock:
            pad = " " * BASE_PADDING
            self.console.print()
            self._print_line(
                Text.assemble(
                    pad,
                    (f"Total Operations: {summary.total}, Succeeded: ", PALETTE.info),
                    (str(summary.succeeded), PALETTE.success),
                    (", Failed: ", PALETTE.info),
                    (str(summary.failed), PALETTE.error),
                )
            )
            with self._lock:
                tables_pending = not self._tables_displayed
                unlimited = self._unlimited
                errors = list(self._errors)
            if tables_pending:
                self._print_tables()
            if unlimited and errors:
                self._print_errors(errors)
            self._num_lines = 0
        return summary

    def _print_errors(self, errors: list[ErrorReport]) -> None:
        pad = " " * BASE_PADDING
        self.console.print()
        self._print_line(Text(pad + "Errors:", style=PALETTE.error + Style(bold=True)))
        for number, report in enumerate(errors, start=1):
            self._print_line(
                Text.assemble(
                    pad + "  ",
                    (f"{number}.", PALETTE.error),
                    " ",
                    (f"[{report.time.strftime('%H:%M:%S')}]", PALETTE.debug),
                    " ",
                    (f"Task: {report.task_name}", PALETTE.error),
                )
            )
            self._print_line(Text(pad + "    " + f"Error: {report.error}", style=PALETTE.error))


class DisplayLogHandler(logging.Handler):
    """Logging handler that prints records above an OutputManager's live block."""

    def __init__(self, output: OutputManager, level: int = logging.NOTSET):
        super().__init__(level)
        self.output = output

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.output.print_above(self.format(record))
        except Exception:
            self.handleError(record)
