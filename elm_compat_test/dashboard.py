"""Live terminal view of the engine state.

Frames are built by pure functions returning styled text lines; only
``Dashboard`` touches curses.
"""

import curses
import logging
import time
import unicodedata
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from elm_compat_test.export import export_csv
from elm_compat_test.models.result import OUTCOME_SYMBOLS, CompletedEntry, RunOutcome
from elm_compat_test.state import EngineState
from elm_compat_test.triage import display_order

log = logging.getLogger(__name__)

type Style = Literal["border", "header", "text", "status"]
type Line = tuple[str, Style]

QUIT_KEY = ord("q")
EXPORT_KEY = ord("e")

COLUMN_WIDTH = 10
TIME_WIDTH = 10

DONE_HEADER = ("elm-test", "Elm", "Λ", "Λ ⚡", "Λ Next", "Λ Next ⚡", "Time")


@dataclass(frozen=True, kw_only=True)
class Summary:
    """Counts and progress derived from one snapshot of the engine state."""

    pending: int
    in_progress: int
    completed: int
    elapsed: float

    @property
    def ratio(self) -> float:
        total = self.pending + self.in_progress + self.completed
        return self.completed / total if total else 0.0

    @property
    def eta(self) -> float | None:
        """Linear estimate of the seconds left, None until something completed."""
        if self.ratio <= 0:
            return None
        return self.elapsed * (1 / self.ratio - 1)


def format_eta(eta: float | None) -> str:
    if eta is None:
        return "n/a"
    seconds = int(eta)
    return f"{seconds // 60}m {seconds % 60:2}s"


def gauge(ratio: float, width: int) -> str:
    label = f" {ratio:4.0%}"
    bar_width = max(width - len(label) - 2, 0)
    filled = round(bar_width * ratio)
    return f"[{'█' * filled}{' ' * (bar_width - filled)}]{label}"


def box(title: str, body: Sequence[Line], width: int) -> list[Line]:
    """Surround lines with a rounded border."""
    inner = max(width - 4, 0)
    top = f"╭─ {title} " + "─" * max(width - len(title) - 5, 0) + "╮"
    bottom = "╰" + "─" * max(width - 2, 0) + "╯"
    lines: list[Line] = [(top, "border")]
    lines.extend((f"│ {fit(text, inner)} │", style) for text, style in body)
    lines.append((bottom, "border"))
    return lines


def cell_width(text: str) -> int:
    """Terminal cells taken by ``text``. Wide glyphs such as ✅ take two."""
    return sum(2 if unicodedata.east_asian_width(c) in "WF" else 1 for c in text)


def fit(text: str, width: int) -> str:
    """Pad or cut text to exactly ``width`` terminal cells."""
    if cell_width(text) <= width:
        return text + " " * (width - cell_width(text))
    if width <= 0:
        return ""
    cut = ""
    for char in text:
        if cell_width(cut + char) > width - 1:
            break
        cut += char
    return cut + "…" + " " * (width - 1 - cell_width(cut))


def center(text: str, width: int) -> str:
    gap = max(width - cell_width(text), 0)
    return " " * (gap // 2) + text + " " * (gap - gap // 2)


def summary_lines(summary: Summary, width: int) -> list[Line]:
    inner = max(width - 4, 0)
    rows = [
        ("Pending", str(summary.pending)),
        ("In progress", str(summary.in_progress)),
        ("Expected time until end", format_eta(summary.eta)),
    ]
    body: list[Line] = [
        (f"{label.ljust(inner - TIME_WIDTH)}{value.rjust(TIME_WIDTH)}", "text")
        for label, value in rows
    ]
    body.append((gauge(summary.ratio, inner), "status"))
    return box("Summary", body, width)


def in_progress_lines(
    entries: Sequence[tuple[Path, float]], now: float, width: int
) -> list[Line]:
    if not entries:
        return []
    inner = max(width - 4, 0)
    body: list[Line] = [
        (
            fit(str(path), inner - TIME_WIDTH)
            + f"{int(now - start):>{TIME_WIDTH - 1}}s",
            "text",
        )
        for path, start in entries
    ]
    return box("In progress", body, width)


def cell(outcome: RunOutcome | None) -> str:
    return "" if outcome is None else OUTCOME_SYMBOLS[outcome]


def done_row(entry: CompletedEntry, package_width: int) -> str:
    results = entry.results
    cells = [str(results.version), *(cell(o) for o in results.outcomes)]
    return (
        fit(str(entry.path), package_width)
        + "".join(center(c, COLUMN_WIDTH) for c in cells)
        + f"{int(entry.elapsed)}s".rjust(TIME_WIDTH)
    )


def done_lines(
    entries: Sequence[CompletedEntry], width: int, height: int
) -> list[Line]:
    """The completed table, triaged, cut to ``height`` lines including borders."""
    inner = max(width - 4, 0)
    package_width = max(inner - COLUMN_WIDTH * (len(DONE_HEADER) - 1) - TIME_WIDTH, 0)
    header = fit("Package", package_width) + "".join(
        center(h, COLUMN_WIDTH) for h in DONE_HEADER[:-1]
    )
    header += DONE_HEADER[-1].rjust(TIME_WIDTH)
    body: list[Line] = [(header, "header")]
    visible = max(height - 3, 0)
    body.extend(
        (done_row(entry, package_width), "text")
        for entry in display_order(entries)[:visible]
    )
    return box("Done", body, width)


def render_frame(
    state: EngineState, now: float, width: int, height: int, status: str = ""
) -> list[Line]:
    """Build every line of one frame from a snapshot of the engine state."""
    running = state.in_progress.snapshot()
    completed = state.completed.snapshot()
    summary = Summary(
        pending=len(state.queue),
        in_progress=len(running),
        completed=len(completed),
        elapsed=now - state.started_at,
    )

    lines = summary_lines(summary, width)
    lines += in_progress_lines(running, now, width)
    remaining = height - len(lines) - 1
    if remaining >= 3:
        lines += done_lines(completed, width, remaining)
    footer = "q quit  e export" + (f"  |  {status}" if status else "")
    lines.append((footer, "status"))
    return lines[:height]


@dataclass(kw_only=True)
class Dashboard:
    """Redraws the engine state until the user quits or shutdown is requested."""

    export_path: Path
    frame_period: float = 0.05
    export: Callable[[Sequence[CompletedEntry], Path], int] = export_csv
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)
    status: str = ""

    def __call__(self, state: EngineState) -> None:
        # curses.wrapper restores the terminal however the loop exits.
        curses.wrapper(self.loop, state)

    def loop(self, screen: "curses.window", state: EngineState) -> None:
        styles = self.setup(screen)
        screen.timeout(int(self.frame_period * 1000))
        while not state.shutdown.requested:
            self.draw(screen, state, styles)
            if not self.handle_key(screen.getch(), state):
                return

    def setup(self, screen: "curses.window") -> dict[Style, int]:
        try:
            curses.curs_set(0)
        except curses.error:
            log.debug("Terminal cannot hide the cursor")
        styles: dict[Style, int] = dict.fromkeys(
            ("border", "header", "text", "status"), curses.A_NORMAL
        )
        if curses.has_colors():
            curses.start_color()
            curses.use_default_colors()
            curses.init_pair(1, curses.COLOR_BLUE, -1)
            curses.init_pair(2, curses.COLOR_YELLOW, -1)
            styles["border"] = curses.color_pair(1)
            styles["header"] = curses.color_pair(2)
            styles["status"] = curses.A_DIM
        return styles

    def draw(
        self, screen: "curses.window", state: EngineState, styles: dict[Style, int]
    ) -> None:
        height, width = screen.getmaxyx()
        # The last column is left free: curses cannot write the bottom-right cell.
        lines = render_frame(state, self.clock(), width - 1, height, self.status)
        screen.erase()
        for y, (text, style) in enumerate(lines):
            screen.addnstr(y, 0, text, max(width - 1, 0), styles[style])
        screen.refresh()

    def handle_key(self, key: int, state: EngineState) -> bool:
        """React to one key press. Returns False when the view should close."""
        if key == QUIT_KEY:
            state.shutdown.request("user quit")
            return False
        if key == EXPORT_KEY:
            written = self.export(state.completed.snapshot(), self.export_path)
            self.status = f"exported {written} row(s) to {self.export_path}"
        return True
