from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable

from marketplace.application.exceptions import InvalidCommissionError
from marketplace.application.ports.commission_store import CommissionStorePort
from marketplace.domain.entities.commission import CommissionBreakdown, CommissionConfig, ServiceType


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_commission(
    config: CommissionConfig | None,
    amount: int,
    service_type: ServiceType,
) -> CommissionBreakdown:
    """
    Split `amount` (minor units) between platform and specialist.

    No commission is charged when the config is missing or inactive, or when the
    amount is below the configured minimum charge. The specialist always gets
    the remainder, so the two shares add up to `amount`.
    """
    if amount < 0:
        raise InvalidCommissionError("Amount cannot be negative", amount=amount)

    service_type = ServiceType(service_type)
    if config is None or not config.is_active or amount < config.minimum_charge_amount:
        return CommissionBreakdown(
            gross=amount,
            platform_commission=0,
            specialist_earnings=amount,
            percentage=0.0,
            service_type=service_type,
        )

    percentage = config.percentage_for(service_type)
    commission = round_half_up(Decimal(amount) * Decimal(str(percentage)) / Decimal(100))
    return CommissionBreakdown(
        gross=amount,
        platform_commission=commission,
        specialist_earnings=amount - commission,
        percentage=percentage,
        service_type=service_type,
    )


def _check_percentage(percentage: float) -> None:
    if percentage < 0 or percentage > 100:
        raise InvalidCommissionError(
            f"Commission percentage must be between 0 and 100, got {percentage}", percentage=percentage
        )


class CommissionService:
    def __init__(
        self,
        store: CommissionStorePort,
        default_percentage: float = 15.0,
        default_by_service_type: dict[ServiceType, float] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._default_percentage = default_percentage
        self._default_by_service_type = default_by_service_type or {}
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._logger = logging.getLogger(__name__)

    def current(self) -> CommissionConfig:
        config = self._store.latest()
        if config is not None:
            return config

        now = self._clock()
        seeded = CommissionConfig.build(
            version=1,
            platform_percentage=self._default_percentage,
            by_service_type=self._default_by_service_type,
            effective_date=now,
            created_at=now,
            updated_by="system",
        )
        self._logger.info("Seeding default commission config", extra={"version": seeded.version})
        return self._store.append(seeded)

    def calculate(self, amount: int, service_type: ServiceType) -> CommissionBreakdown:
        return calculate_commission(self.current(), amount, service_type)

    def update_rate(
        self,
        percentage: float,
        service_type: ServiceType | None = None,
        updated_by: str | None = None,
    ) -> CommissionConfig:
        """
        Append a new version. Without a service type the platform rate and every
        per-type rate are set to `percentage`.
        """
        _check_percentage(percentage)
        current = self.current()

        if service_type is None:
            previous = current.platform_percentage
            rates = {kind: percentage for kind in ServiceType}
            platform = percentage
        else:
            service_type = ServiceType(service_type)
            previous = current.percentage_for(service_type)
            rates = dict(current.by_service_type)
            rates[service_type] = percentage
            platform = current.platform_percentage

        return self._append(
            current,
            updated_by,
            platform_percentage=platform,
            by_service_type=rates,
            previous_rate=previous,
        )

    def set_active(self, is_active: bool, updated_by: str | None = None) -> CommissionConfig:
        current = self.current()
        return self._append(current, updated_by, is_active=is_active)

    def set_minimum_charge(self, amount: int, updated_by: str | None = None) -> CommissionConfig:
        if amount < 0:
            raise InvalidCommissionError("Minimum charge amount cannot be negative", amount=amount)
        current = self.current()
        return self._append(current, updated_by, minimum_charge_amount=amount)

    def history(self) -> list[CommissionConfig]:
        return self._store.history()

    def _append(self, current: CommissionConfig, updated_by: str | None, **changes) -> CommissionConfig:
        now = self._clock()
        changes.setdefault("previous_rate", current.previous_rate)
        new_version = replace(
            current,
            version=current.version + 1,
            effective_date=now,
            created_at=now,
            updated_by=updated_by,
            **changes,
        )
        stored = self._store.append(new_version)
        self._logger.info(
            "Commission config updated",
            extra={
                "version": stored.version,
                "platform_percentage": stored.platform_percentage,
                "is_active": stored.is_active,
                "updated_by": updated_by,
            },
        )
        return stored
