from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum

from marketplace.domain.entities.commission import ServiceType


class OfferingStatus(str, Enum):
    published = "published"
    draft = "draft"


@dataclass(frozen=True)
class ExplicitSlotEntry:
    date: date
    start_time: str  # "HH:MM"
    duration_minutes: int | None = None
    capacity: int | None = None


@dataclass(frozen=True)
class WeeklyScheduleEntry:
    weekday: str
    start_time: str
    enabled: bool = True
    duration_minutes: int | None = None
    capacity: int | None = None


@dataclass(frozen=True)
class Offering:
    id: str
    specialist_id: str
    title: str
    service_type: ServiceType
    price: int  # minor units
    currency: str = "usd"
    status: OfferingStatus = OfferingStatus.draft
    specialist_email: str | None = None
    specialist_name: str | None = None
    duration_minutes: int = 60
    capacity: int = 1
    timezone: str = "UTC"
    event_dates: tuple[ExplicitSlotEntry, ...] = ()
    weekly_schedule: tuple[WeeklyScheduleEntry, ...] = ()

    @property
    def is_free(self) -> bool:
        return self.price <= 0

    @property
    def is_published(self) -> bool:
        return self.status == OfferingStatus.published
