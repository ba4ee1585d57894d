from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from marketplace.domain.entities.slot import MeetingDetails


@dataclass(frozen=True)
class MeetingRequest:
    host_ref: str
    participant_email: str | None
    start_time: datetime
    end_time: datetime
    topic: str


class MeetingProviderPort(ABC):
    @abstractmethod
    def create_meeting(self, request: MeetingRequest) -> MeetingDetails:
        """Create a video meeting. Raises MeetingProviderError on failure or timeout."""
        raise NotImplementedError
