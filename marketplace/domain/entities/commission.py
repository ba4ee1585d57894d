from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ServiceType(str, Enum):
    course = "course"
    consulting = "consulting"
    webinar = "webinar"


@dataclass(frozen=True)
class CommissionConfig:
    """One immutable version of the platform commission policy.

    `by_service_type` always carries a percentage for every ServiceType; missing
    entries are filled from `platform_percentage` by `build`, never at read time.
    """

    version: int
    platform_percentage: float
    by_service_type: dict[ServiceType, float] = field(default_factory=dict)
    minimum_charge_amount: int = 0  # minor units; below this no commission is charged
    is_active: bool = True
    effective_date: datetime | None = None
    previous_rate: float | None = None
    updated_by: str | None = None
    description: str = "Platform commission is charged on all paid services"
    created_at: datetime | None = None

    @classmethod
    def build(
        cls,
        version: int,
        platform_percentage: float,
        by_service_type: dict[ServiceType, float] | None = None,
        **kwargs,
    ) -> "CommissionConfig":
        rates = {service_type: platform_percentage for service_type in ServiceType}
        for key, value in (by_service_type or {}).items():
            if value is not None:
                rates[ServiceType(key)] = value
        return cls(
            version=version,
            platform_percentage=platform_percentage,
            by_service_type=rates,
            **kwargs,
        )

    def percentage_for(self, service_type: ServiceType) -> float:
        return self.by_service_type[service_type]


@dataclass(frozen=True)
class CommissionBreakdown:
    gross: int
    platform_commission: int
    specialist_earnings: int
    percentage: float
    service_type: ServiceType
