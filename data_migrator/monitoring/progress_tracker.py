"""
Progress Tracker - Row Progress Across All Table Copies

A single lock-guarded counter of attempted rows measured against the total
counted in the catalog phase. Every worker reports to the same tracker; the
tracker renders to one injected writer.

Rendering:
- Interactive writers (TTY): one line overwritten with '\\r' on every event
- Other writers: a new line every `line_interval` events and at the total
"""

import logging
import sys
import threading
from typing import Optional, TextIO

from ..config.migration_defaults import MigrationDefaults
from ..interfaces import ProgressTrackerInterface
from ..models import ProgressState


class ProgressTracker(ProgressTrackerInterface):
    """Thread-safe monotonic progress counter with a console renderer."""

    GLYPHS = ("|", "\\", "-", "/")
    INTERACTIVE_TEMPLATE = "\r|{bar}[{glyph}] {percent:3d}% ({count}/{total}) records"
    LINE_TEMPLATE = "({percent})% {count} of {total} records\n"

    def __init__(self, total_row_count: int, writer: Optional[TextIO] = None,
                 interactive: Optional[bool] = None,
                 bar_width: int = MigrationDefaults.PROGRESS_BAR_WIDTH,
                 line_interval: int = MigrationDefaults.PROGRESS_LINE_INTERVAL,
                 logger: logging.Logger = None):
        """
        Initialize the tracker.

        Args:
            total_row_count: Rows expected across all tables (fixed for the run)
            writer: Output sink; defaults to sys.stdout
            interactive: Overwrite a single line; defaults to writer.isatty()
            bar_width: Characters in the progress bar
            line_interval: Events between lines in non-interactive mode
            logger: Optional logger instance
        """
        if total_row_count < 0:
            raise ValueError("total_row_count cannot be negative")
        if bar_width <= 0 or line_interval <= 0:
            raise ValueError("bar_width and line_interval must be positive")

        self.logger = logger or logging.getLogger(__name__)
        self.writer = writer if writer is not None else sys.stdout
        if interactive is None:
            isatty = getattr(self.writer, "isatty", None)
            interactive = bool(isatty()) if callable(isatty) else False
        self.interactive = interactive
        self.bar_width = bar_width
        self.line_interval = line_interval

        self._lock = threading.Lock()
        self._total = total_row_count
        self._copied = 0
        self._overflow = 0
        self._events = 0
        self._tick = 0
        self._last_line_events = 0
        self._total_reported = False

    @property
    def total_row_count(self) -> int:
        return self._total

    @property
    def copied_row_count(self) -> int:
        with self._lock:
            return self._copied

    @property
    def overflow_count(self) -> int:
        """Rows reported beyond the total (tables that grew after counting)."""
        with self._lock:
            return self._overflow

    def record_row(self, count: int = 1) -> None:
        """Add attempted rows and render; the counter never passes the total."""
        if count <= 0:
            return
        with self._lock:
            room = self._total - self._copied
            added = min(count, room)
            self._copied += added
            if count > added:
                if self._overflow == 0:
                    self.logger.debug(f"Progress exceeded counted total of {self._total} rows")
                self._overflow += count - added
            self._events += count
            self._tick += 1
            self._render()

    def snapshot(self) -> ProgressState:
        with self._lock:
            return ProgressState(total_row_count=self._total, copied_row_count=self._copied)

    def render_line(self) -> str:
        """Current progress text in the writer's mode."""
        with self._lock:
            return self._format()

    def finish(self) -> None:
        """Terminate the interactive line so later output starts cleanly."""
        with self._lock:
            if self.interactive and self._tick:
                self.writer.write("\n")
                self.writer.flush()

    def _percent(self) -> int:
        if self._total <= 0:
            return 100
        return int(self._copied * 100 / self._total)

    def _format(self) -> str:
        percent = self._percent()
        if not self.interactive:
            return self.LINE_TEMPLATE.format(percent=percent, count=self._copied, total=self._total)
        filled = int(self.bar_width * percent / 100)
        bar = "=" * filled + " " * (self.bar_width - filled)
        return self.INTERACTIVE_TEMPLATE.format(
            bar=bar,
            glyph=self.GLYPHS[self._tick % len(self.GLYPHS)],
            percent=percent,
            count=self._copied,
            total=self._total
        )

    def _render(self) -> None:
        if not self.interactive:
            reached_total = self._copied == self._total and not self._total_reported
            if self._events - self._last_line_events < self.line_interval and not reached_total:
                return
            self._last_line_events = self._events
            if self._copied == self._total:
                self._total_reported = True
        self.writer.write(self._format())
        self.writer.flush()
