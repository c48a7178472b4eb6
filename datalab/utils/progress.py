from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TaskProgressColumn, TimeRemainingColumn
from typing import Dict, Optional

from ..models import ProgressEvent


def create_progress(transient: bool = False) -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeRemainingColumn(),
        transient=transient,
    )


class RichProgressReporter:
    """
    Progress subscriber that renders one bar per engine stage.

    Use as a context manager and pass the instance to `engine.subscribe`.
    A total of 0 means the stage does not know its size yet (streaming import).
    """

    def __init__(self, progress: Optional[Progress] = None):
        self.progress = progress or create_progress()
        self._tasks: Dict[str, int] = {}

    def __enter__(self) -> "RichProgressReporter":
        self.progress.start()
        return self

    def __exit__(self, *exc):
        self.progress.stop()

    def __call__(self, event: ProgressEvent):
        description = event.message or event.stage
        total = event.total or None
        task_id = self._tasks.get(event.stage)
        if task_id is None:
            self._tasks[event.stage] = self.progress.add_task(
                description, total=total, completed=event.current
            )
        else:
            self.progress.update(task_id, description=description, total=total, completed=event.current)
