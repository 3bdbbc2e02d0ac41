"""Terminal progress helpers with Rich-based rendering."""

from __future__ import annotations

from dataclasses import dataclass

from rich.console import Console
from rich.errors import LiveError
from rich.progress import (
    BarColumn,
    Progress,
    ProgressColumn,
    SpinnerColumn,
    Task,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.text import Text

from ..engine.models import ResultRecord


@dataclass
class ProgressState:
    total: int
    collected: int = 0
    failed: int = 0
    current_url: str | None = None

    @property
    def done(self) -> int:
        return self.collected + self.failed


class RateColumn(ProgressColumn):
    """Items finished per second, rendered as ``X.X item/s``."""

    def render(self, task: Task) -> Text:
        speed = task.finished_speed or task.speed
        if speed is None:
            return Text("", style="progress.percentage")
        return Text(f"{speed:.1f} item/s", style="progress.percentage")


class ProgressReporter:
    """Render progress and maintain counters for CLI feedback.

    Outside an interactive terminal the reporter silently keeps counting
    without drawing anything.
    """

    def __init__(self, enabled: bool = True, console: Console | None = None) -> None:
        self.enabled = enabled
        self._console = console
        self._progress: Progress | None = None
        self._task_id: TaskID | None = None
        self.state: ProgressState | None = None
        self._label: str = "harvest"

    def set_label(self, label: str) -> None:
        self._label = label
        if self._progress is not None and self._task_id is not None:
            self._progress.update(self._task_id, label=label)

    def start(self, total: int) -> None:
        self.state = ProgressState(total=total)
        if not self.enabled:
            return
        if self._console is None:
            self._console = Console()
        if not self._console.is_terminal:
            self.enabled = False
            return
        self._progress = Progress(
            SpinnerColumn(style="cyan"),
            TextColumn("[bold blue]{task.fields[label]:<12}", justify="left"),
            BarColumn(bar_width=None, complete_style="green", finished_style="green"),
            TaskProgressColumn(show_speed=False),
            TimeElapsedColumn(),
            RateColumn(),
            TextColumn("[green]✓{task.fields[collected]:>3}", justify="right"),
            TextColumn("[red]✗{task.fields[failed]:>3}", justify="right"),
            TextColumn("[dim]{task.fields[current_url]}", justify="left"),
            refresh_per_second=12,
            expand=True,
            transient=True,
            console=self._console,
        )
        try:
            self._progress.__enter__()
        except LiveError:
            # Another live display owns the console
            self.enabled = False
            self._progress = None
            return
        self._task_id = self._progress.add_task(
            "harvest",
            total=total,
            label=self._label,
            collected=0,
            failed=0,
            current_url="waiting…",
        )

    def advance(self, failed: bool = False, current_url: str | None = None) -> None:
        if not self.state:
            raise RuntimeError("ProgressReporter.start must be called before advance")
        if current_url:
            self.state.current_url = current_url
        if failed:
            self.state.failed += 1
        else:
            self.state.collected += 1
        if self._progress is not None and self._task_id is not None:
            display_url = self.state.current_url or ""
            if len(display_url) > 60:
                display_url = display_url[:57] + "..."
            self._progress.update(
                self._task_id,
                advance=1,
                collected=self.state.collected,
                failed=self.state.failed,
                current_url=display_url,
            )

    def record(self, record: ResultRecord) -> None:
        """Pool callback: one finished item."""

        self.advance(failed=record.is_error, current_url=record.source_locator)

    def close(self) -> None:
        if self._progress is not None:
            if self._task_id is not None and self.state is not None:
                self._progress.update(self._task_id, completed=self.state.done, current_url="done")
            self._progress.stop()
            self._progress.__exit__(None, None, None)
            self._progress = None
        self._task_id = None

    def summary(self) -> dict[str, int]:
        if not self.state:
            return {"collected": 0, "failed": 0}
        return {"collected": self.state.collected, "failed": self.state.failed}


__all__ = ["ProgressReporter", "ProgressState", "RateColumn"]
