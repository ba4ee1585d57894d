from __future__ import annotations

from typing import Any, Callable

from fastapi import BackgroundTasks

from marketplace.application.ports.task_dispatcher import TaskDispatcherPort
from marketplace.infrastructure.dispatch.inline import run_task


class BackgroundTasksDispatcher(TaskDispatcherPort):
    """Defers side effects until the FastAPI response has been sent."""

    def __init__(self, background_tasks: BackgroundTasks) -> None:
        self._background_tasks = background_tasks

    def dispatch(self, task_name: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        self._background_tasks.add_task(run_task, task_name, func, *args, **kwargs)
