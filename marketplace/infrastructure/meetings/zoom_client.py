from __future__ import annotations

import logging
from datetime import datetime, timezone

import httpx

from marketplace.application.exceptions import MeetingProviderError
from marketplace.application.ports.meeting_provider import MeetingProviderPort, MeetingRequest
from marketplace.core.config import settings
from marketplace.domain.entities.slot import MeetingDetails


class ZoomMeetingClient(MeetingProviderPort):
    def __init__(
        self,
        access_token: str | None = None,
        user_id: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._access_token = access_token or settings.ZOOM_ACCESS_TOKEN
        self._user_id = user_id or settings.ZOOM_USER_ID
        self._base_url = (base_url or settings.ZOOM_API_BASE).rstrip("/")
        self._client = client or httpx.Client(timeout=timeout or settings.EXTERNAL_TIMEOUT_SECONDS)
        self._logger = logging.getLogger(__name__)

        if not self._access_token:
            raise ValueError("ZOOM_ACCESS_TOKEN is required for Zoom meetings")

    def create_meeting(self, request: MeetingRequest) -> MeetingDetails:
        duration = int((request.end_time - request.start_time).total_seconds() // 60)
        payload = {
            "topic": request.topic,
            "type": 2,
            "start_time": request.start_time.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "duration": duration,
            "timezone": "UTC",
            "settings": {"join_before_host": False, "waiting_room": True},
        }
        if request.participant_email:
            payload["settings"]["meeting_invitees"] = [{"email": request.participant_email}]

        url = f"{self._base_url}/users/{self._user_id}/meetings"
        headers = {"Authorization": f"Bearer {self._access_token}", "Content-Type": "application/json"}
        try:
            response = self._client.post(url, json=payload, headers=headers)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            self._logger.error(
                "Error creating Zoom meeting",
                extra={"host_ref": request.host_ref, "error": str(e)},
            )
            raise MeetingProviderError(f"Zoom meeting creation failed: {e}", host_ref=request.host_ref) from e

        meeting_id = data.get("id")
        join_url = data.get("join_url")
        if not meeting_id or not join_url:
            raise MeetingProviderError("Zoom response is missing the meeting id or join url")

        self._logger.info("Zoom meeting created", extra={"meeting_id": meeting_id, "host_ref": request.host_ref})
        return MeetingDetails(
            meeting_id=str(meeting_id),
            join_url=join_url,
            host_url=data.get("start_url"),
            password=data.get("password"),
            created_at=datetime.now(timezone.utc),
        )
