from __future__ import annotations

import logging
from typing import Any

from marketplace.application.ports.notifier import NotificationKind, NotifierPort


class LoggingNotifier(NotifierPort):
    def __init__(self) -> None:
        self.sent: list[tuple[NotificationKind, dict[str, Any]]] = []
        self._logger = logging.getLogger(__name__)

    def notify(self, kind: NotificationKind, payload: dict[str, Any]) -> None:
        self.sent.append((kind, dict(payload)))
        self._logger.info(
            "Mock notification", extra={"kind": kind.value, "recipient": payload.get("recipient")}
        )

    def kinds(self) -> list[NotificationKind]:
        return [kind for kind, _ in self.sent]
