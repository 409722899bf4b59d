"""Live progress display using Rich.

``MigrationProgressDisplay`` is a progress-event listener: subscribe it to
the orchestrator and it renders one bar for the executing plan, labelled
with the current phase and message.
"""

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from provider_migration.reporting.progress import EventType, ProgressEvent


class MigrationColors:
    """Rich colour names used for console output."""

    INFO = "cyan"
    SUCCESS = "green"
    WARNING = "yellow"
    ERROR = "red"
    PROGRESS = "blue"
    PHASE = "magenta"
    SPINNER = "dark_slate_gray1"


class MigrationProgressDisplay:
    """Live progress bar for one plan execution.

    Example:
        >>> with MigrationProgressDisplay() as display:
        ...     unsubscribe = orchestrator.subscribe(display)
        ...     await orchestrator.execute_plan(plan_id)
    """

    def __init__(self, enabled: bool = True, console: Console | None = None):
        """Initialize progress display.

        Args:
            enabled: Whether to render anything (set False for CI/CD)
            console: Console to render on (stderr by default)
        """
        self.enabled = enabled
        self.console = console or Console(stderr=True)
        self.task_id: TaskID | None = None
        self.last_event: ProgressEvent | None = None

        self.progress = Progress(
            SpinnerColumn(style=MigrationColors.SPINNER),
            TextColumn("{task.description:<14}", style=MigrationColors.PHASE),
            BarColumn(bar_width=30, style=MigrationColors.PROGRESS),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            TextColumn("{task.fields[message]}"),
            console=self.console,
            disable=not enabled,
        )

    def start(self) -> None:
        self.progress.start()
        self.task_id = self.progress.add_task("starting", total=100, message="")

    def stop(self) -> None:
        self.progress.stop()

    def __call__(self, event: ProgressEvent) -> None:
        """Listener entry point."""
        self.last_event = event
        if self.task_id is None:
            return

        progress = event.progress
        if event.type is EventType.PROGRESS and progress is not None:
            self.progress.update(
                self.task_id,
                completed=progress.percent,
                description=progress.phase.value,
                message=progress.message,
            )
        elif event.type is EventType.COMPLETED:
            self.progress.update(
                self.task_id, completed=100, description="complete", message="[green]done"
            )
        elif event.type is EventType.FAILED:
            self.progress.update(
                self.task_id,
                description="failed",
                message=f"[{MigrationColors.ERROR}]{(event.payload or {}).get('error', 'failed')}",
            )
        elif event.type is EventType.ROLLED_BACK:
            self.progress.update(
                self.task_id, message=f"[{MigrationColors.WARNING}]rolled back"
            )

    def __enter__(self) -> "MigrationProgressDisplay":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
