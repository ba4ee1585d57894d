from datetime import date
from typing import Any

from pydantic import BaseModel, Field

from marketplace.domain.entities.availability import (
    AvailabilityWindow,
    BookingRules,
    BreakRule,
    DateException,
    DaySchedule,
    SlotConfig,
)
from marketplace.domain.entities.booking import Booking, CustomerInfo
from marketplace.domain.entities.commission import ServiceType
from marketplace.domain.entities.enrollment import Enrollment
from marketplace.domain.entities.offering import (
    ExplicitSlotEntry,
    Offering,
    OfferingStatus,
    WeeklyScheduleEntry,
)
from marketplace.domain.entities.payment import Payment
from marketplace.domain.entities.slot import Slot


class WindowSchema(BaseModel):
    start_time: str
    end_time: str
    is_available: bool = True

    def to_domain(self) -> AvailabilityWindow:
        return AvailabilityWindow(self.start_time, self.end_time, self.is_available)


class DayScheduleSchema(BaseModel):
    enabled: bool = True
    ranges: list[WindowSchema] = Field(default_factory=list)

    def to_domain(self) -> DaySchedule:
        return DaySchedule(enabled=self.enabled, ranges=tuple(r.to_domain() for r in self.ranges))


class DateExceptionSchema(BaseModel):
    date: date
    is_available: bool = False
    ranges: list[WindowSchema] = Field(default_factory=list)

    def to_domain(self) -> DateException:
        return DateException(
            date=self.date,
            is_available=self.is_available,
            ranges=tuple(r.to_domain() for r in self.ranges),
        )


class BreakRuleSchema(BaseModel):
    weekday: str
    start_time: str
    end_time: str
    recurring: bool = True
    on_date: date | None = None

    def to_domain(self) -> BreakRule:
        return BreakRule(self.weekday.lower(), self.start_time, self.end_time, self.recurring, self.on_date)


class SlotConfigSchema(BaseModel):
    default_duration_minutes: int = 60
    allowed_durations: list[int] = Field(default_factory=lambda: [30, 45, 60, 90])
    buffer_minutes: int = 0


class BookingRulesSchema(BaseModel):
    min_notice_hours: int = 24
    max_advance_days: int = 90
    cancellation_deadline_hours: int = 24


class TemplateRequestSchema(BaseModel):
    specialist_id: str
    weekly_pattern: dict[str, DayScheduleSchema] = Field(default_factory=dict)
    date_exceptions: list[DateExceptionSchema] = Field(default_factory=list)
    break_rules: list[BreakRuleSchema] = Field(default_factory=list)
    slot_config: SlotConfigSchema = Field(default_factory=SlotConfigSchema)
    booking_rules: BookingRulesSchema = Field(default_factory=BookingRulesSchema)
    timezone: str = "UTC"

    def to_domain_kwargs(self) -> dict[str, Any]:
        return {
            "specialist_id": self.specialist_id,
            "weekly_pattern": {day: schedule.to_domain() for day, schedule in self.weekly_pattern.items()},
            "date_exceptions": tuple(e.to_domain() for e in self.date_exceptions),
            "break_rules": tuple(b.to_domain() for b in self.break_rules),
            "slot_config": SlotConfig(
                default_duration_minutes=self.slot_config.default_duration_minutes,
                allowed_durations=tuple(self.slot_config.allowed_durations),
                buffer_minutes=self.slot_config.buffer_minutes,
            ),
            "booking_rules": BookingRules(**self.booking_rules.model_dump()),
            "timezone_name": self.timezone,
        }


class TimeRangeSchema(BaseModel):
    start_time: str
    end_time: str


class OpenRangesResponseSchema(BaseModel):
    specialist_id: str
    date: date
    ranges: list[TimeRangeSchema]


class GenerateSlotsRequestSchema(BaseModel):
    specialist_id: str
    start_date: date | None = None
    days: int | None = Field(default=None, ge=1, le=366)
    duration_minutes: int | None = None
    offering_id: str | None = None


class AppointmentSlotRequestSchema(BaseModel):
    specialist_id: str
    date: date
    start_time: str
    duration_minutes: int = 60
    timezone: str = "UTC"
    notes: str | None = None


class SkippedEntrySchema(BaseModel):
    weekday: str
    start_time: str
    reason: str


class MaterializationResponseSchema(BaseModel):
    inserted: int
    deleted: int = 0
    already_present: int = 0
    skipped: list[SkippedEntrySchema] = Field(default_factory=list)
    slots: list[Slot] = Field(default_factory=list)


class CustomerSchema(BaseModel):
    customer_id: str
    email: str
    name: str | None = None

    def to_domain(self) -> CustomerInfo:
        return CustomerInfo(self.customer_id, self.email, self.name)


class BookingRequestSchema(BaseModel):
    slot_id: str
    customer: CustomerSchema
    offering_id: str | None = None


class CancelRequestSchema(BaseModel):
    actor_id: str
    actor_role: str = Field(default="customer", pattern="^(customer|specialist|system)$")
    reason: str | None = None


class RescheduleRequestSchema(BaseModel):
    to_slot_id: str
    actor_id: str
    reason: str | None = None


class ActorRequestSchema(BaseModel):
    actor_id: str | None = None
    reason: str | None = None


class BookingResponseSchema(BaseModel):
    booking: Booking
    slot: Slot | None = None
    degraded: bool = False
    warnings: list[str] = Field(default_factory=list)


class CheckoutResponseSchema(BaseModel):
    booking: Booking
    requires_payment: bool
    payment: Payment | None = None
    client_secret: str | None = None
    enrollment: Enrollment | None = None
    reused: bool = False
    degraded: bool = False
    warnings: list[str] = Field(default_factory=list)


class IntentRequestSchema(BaseModel):
    customer: CustomerSchema
    offering_id: str
    booking_id: str | None = None


class IntentResponseSchema(BaseModel):
    payment: Payment | None = None
    client_secret: str | None = None
    enrollment: Enrollment | None = None
    reused: bool = False
    free: bool = False


class ConfirmPaymentSchema(BaseModel):
    intent_id: str
    customer_id: str


class ReconcileResponseSchema(BaseModel):
    status: str
    payment: Payment | None = None
    enrollment: Enrollment | None = None
    booking: Booking | None = None


class RefundRequestSchema(BaseModel):
    actor_id: str
    reason: str | None = None
    amount: int | None = Field(default=None, gt=0)


class CommissionUpdateSchema(BaseModel):
    percentage: float = Field(ge=0, le=100)
    service_type: ServiceType | None = None
    updated_by: str | None = None


class CommissionActiveSchema(BaseModel):
    is_active: bool
    updated_by: str | None = None


class MinimumChargeSchema(BaseModel):
    amount: int = Field(ge=0)
    updated_by: str | None = None


class ExplicitSlotSchema(BaseModel):
    date: date
    start_time: str
    duration_minutes: int | None = None
    capacity: int | None = Field(default=None, ge=1)


class WeeklyEntrySchema(BaseModel):
    weekday: str
    start_time: str
    enabled: bool = True
    duration_minutes: int | None = None
    capacity: int | None = Field(default=None, ge=1)


class OfferingRequestSchema(BaseModel):
    specialist_id: str
    title: str
    service_type: ServiceType
    price: int = Field(ge=0)
    currency: str = "usd"
    status: OfferingStatus = OfferingStatus.draft
    specialist_email: str | None = None
    specialist_name: str | None = None
    duration_minutes: int = Field(default=60, gt=0)
    capacity: int = Field(default=1, ge=1)
    timezone: str = "UTC"
    event_dates: list[ExplicitSlotSchema] = Field(default_factory=list)
    weekly_schedule: list[WeeklyEntrySchema] = Field(default_factory=list)

    def to_domain(self, offering_id: str) -> Offering:
        return Offering(
            id=offering_id,
            specialist_id=self.specialist_id,
            title=self.title,
            service_type=self.service_type,
            price=self.price,
            currency=self.currency.lower(),
            status=self.status,
            specialist_email=self.specialist_email,
            specialist_name=self.specialist_name,
            duration_minutes=self.duration_minutes,
            capacity=self.capacity,
            timezone=self.timezone,
            event_dates=tuple(ExplicitSlotEntry(**e.model_dump()) for e in self.event_dates),
            weekly_schedule=tuple(WeeklyScheduleEntry(**w.model_dump()) for w in self.weekly_schedule),
        )


class OfferingResponseSchema(BaseModel):
    offering: Offering
    slots: MaterializationResponseSchema | None = None
