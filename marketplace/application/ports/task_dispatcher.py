from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable


class TaskDispatcherPort(ABC):
    @abstractmethod
    def dispatch(self, task_name: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        """
        Run a fire-and-forget side effect. Failures of `func` are logged by the
        dispatcher and never propagate to the caller.
        """
        raise NotImplementedError
