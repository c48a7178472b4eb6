"""
Single-worker task coordination.

Long-running engine operations run one at a time through a TaskCoordinator.
Operations receive a CancellationToken to check between batches and a
`report(current, total, message=None)` callable that publishes ProgressEvents
to every subscriber.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from typing import Any, Callable, List, Optional

from loguru import logger

from .exceptions import TaskBusyError, TaskCancelled
from .models import ProgressEvent

ProgressCallback = Callable[[int, int, Optional[str]], None]
Subscriber = Callable[[ProgressEvent], None]
TaskFunc = Callable[["CancellationToken", ProgressCallback], Any]


def no_progress(current: int, total: int, message: Optional[str] = None):
    pass


class TaskState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class CancellationToken:
    """Cooperative cancellation flag checked at batch boundaries."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise TaskCancelled("Task cancelled")


class TaskCoordinator:
    """Runs at most one task at a time and fans progress out to subscribers."""

    def __init__(self):
        self._lock = threading.Lock()
        self._state = TaskState.IDLE
        self._stage: Optional[str] = None
        self._token: Optional[CancellationToken] = None
        self._subscribers: List[Subscriber] = []
        self._executor: Optional[ThreadPoolExecutor] = None

        self.last_stage: Optional[str] = None
        self.last_state: Optional[TaskState] = None
        self.last_error: Optional[BaseException] = None

    @property
    def state(self) -> TaskState:
        return self._state

    @property
    def stage(self) -> Optional[str]:
        return self._stage

    @property
    def busy(self) -> bool:
        return self._state is TaskState.RUNNING

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a progress subscriber; returns a function that removes it."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: ProgressEvent):
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as e:
                logger.warning(f"Progress subscriber failed on {event.stage}: {e}")

    def run(self, stage: str, func: TaskFunc) -> Any:
        """Run `func` on the calling thread. Raises TaskBusyError if a task is running."""
        token = self._begin(stage)
        return self._execute(stage, token, func)

    def submit(self, stage: str, func: TaskFunc) -> Future:
        """Run `func` on the worker thread and return a Future for its result."""
        token = self._begin(stage)
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="datalab-task")
        return self._executor.submit(self._execute, stage, token, func)

    def cancel(self) -> bool:
        """Request cancellation of the running task. Returns False when idle."""
        with self._lock:
            if self._token is None:
                return False
            logger.info(f"Cancellation requested for {self._stage}")
            self._token.cancel()
            return True

    def shutdown(self):
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _begin(self, stage: str) -> CancellationToken:
        with self._lock:
            if self._state is TaskState.RUNNING:
                raise TaskBusyError(
                    f"Cannot start '{stage}' while '{self._stage}' is running"
                )
            self._state = TaskState.RUNNING
            self._stage = stage
            self._token = CancellationToken()
            return self._token

    def _finish(self, state: TaskState, error: Optional[BaseException] = None):
        with self._lock:
            self.last_stage = self._stage
            self.last_state = state
            self.last_error = error
            self._state = TaskState.IDLE
            self._stage = None
            self._token = None

    def _execute(self, stage: str, token: CancellationToken, func: TaskFunc) -> Any:
        def report(current: int, total: int, message: Optional[str] = None):
            self.publish(ProgressEvent(stage=stage, current=current, total=total, message=message))

        try:
            result = func(token, report)
        except TaskCancelled as e:
            self._finish(TaskState.CANCELLED, e)
            logger.warning(f"Task '{stage}' cancelled")
            raise
        except Exception as e:
            self._finish(TaskState.FAILED, e)
            logger.error(f"Task '{stage}' failed: {e}")
            raise
        except BaseException as e:
            # KeyboardInterrupt, SystemExit: still release the coordinator
            self._finish(TaskState.FAILED, e)
            logger.warning(f"Task '{stage}' interrupted: {e!r}")
            raise
        self._finish(TaskState.COMPLETED)
        return result
