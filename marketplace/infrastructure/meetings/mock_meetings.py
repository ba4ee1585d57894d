from __future__ import annotations

import logging
from datetime import datetime, timezone

from marketplace.application.exceptions import MeetingProviderError
from marketplace.application.ports.meeting_provider import MeetingProviderPort, MeetingRequest
from marketplace.domain.entities.slot import MeetingDetails


class MockMeetingProvider(MeetingProviderPort):
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.requests: list[MeetingRequest] = []
        self._logger = logging.getLogger(__name__)

    def create_meeting(self, request: MeetingRequest) -> MeetingDetails:
        self.requests.append(request)
        if self.fail:
            raise MeetingProviderError("Mock meeting provider timed out", host_ref=request.host_ref)

        meeting_id = f"mock_meeting_{len(self.requests)}"
        self._logger.info(
            "Mock meeting created",
            extra={
                "meeting_id": meeting_id,
                "start": request.start_time.isoformat(),
                "end": request.end_time.isoformat(),
                "topic": request.topic,
            },
        )
        return MeetingDetails(
            meeting_id=meeting_id,
            join_url=f"https://meet.example.com/j/{meeting_id}",
            host_url=f"https://meet.example.com/s/{meeting_id}",
            created_at=datetime.now(timezone.utc),
        )
