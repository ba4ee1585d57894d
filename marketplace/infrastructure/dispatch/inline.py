from __future__ import annotations

import logging
from typing import Any, Callable

from marketplace.application.ports.task_dispatcher import TaskDispatcherPort


def run_task(task_name: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
    """Run a side effect, logging instead of raising when it fails."""
    logger = logging.getLogger(__name__)
    try:
        func(*args, **kwargs)
    except Exception as e:
        logger.error("Background task failed", extra={"task": task_name, "error": str(e)}, exc_info=True)


class InlineTaskDispatcher(TaskDispatcherPort):
    def dispatch(self, task_name: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        run_task(task_name, func, *args, **kwargs)
