from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, timezone

from marketplace.application.exceptions import (
    DuplicateIdempotencyKeyError,
    InvalidCommissionError,
    SlotConflictError,
)
from marketplace.application.ports.booking_store import BookingStorePort
from marketplace.application.ports.commission_store import CommissionStorePort
from marketplace.application.ports.enrollment_store import EnrollmentStorePort
from marketplace.application.ports.offering_catalog import OfferingCatalogPort
from marketplace.application.ports.payment_store import PaymentStorePort
from marketplace.application.ports.slot_store import SlotStorePort
from marketplace.application.ports.template_store import TemplateStorePort
from marketplace.domain.entities.availability import AvailabilityTemplate
from marketplace.domain.entities.booking import Booking
from marketplace.domain.entities.commission import CommissionConfig
from marketplace.domain.entities.enrollment import Enrollment
from marketplace.domain.entities.offering import Offering
from marketplace.domain.entities.payment import Payment, PaymentStatus
from marketplace.domain.entities.slot import Slot, SlotKind, SlotStatus
from marketplace.infrastructure.store.json_store import JsonCollection
from marketplace.infrastructure.store.memory_store import MemoryCollection


_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _created(item) -> datetime:
    return item.created_at or _EPOCH


def is_bookable(slot: Slot) -> bool:
    if slot.kind == SlotKind.appointment:
        return slot.status == SlotStatus.available
    return slot.status == SlotStatus.active and not slot.is_fully_booked


class SlotRepository(SlotStorePort):
    def __init__(self, collection: MemoryCollection[Slot]) -> None:
        self._collection = collection

    def get(self, slot_id: str) -> Slot | None:
        return self._collection.get(slot_id)

    def find_by_key(self, specialist_id: str, on_date: date, start_time: str) -> Slot | None:
        for slot in self._collection.values():
            if slot.key == (specialist_id, on_date, start_time):
                return slot
        return None

    def add_many(self, slots: list[Slot]) -> int:
        with self._collection.batch() as items:
            taken = {slot.key for slot in items.values()}
            for slot in slots:
                if slot.key in taken or slot.id in items:
                    raise SlotConflictError(
                        "A slot already exists at this time",
                        specialist_id=slot.specialist_id,
                        date=slot.date.isoformat(),
                        start_time=slot.start_time,
                    )
                taken.add(slot.key)
            for slot in slots:
                items[slot.id] = slot
        return len(slots)

    def list_for_specialist(
        self,
        specialist_id: str,
        start: date | None = None,
        end: date | None = None,
        bookable_only: bool = False,
    ) -> list[Slot]:
        found = [
            slot
            for slot in self._collection.values()
            if slot.specialist_id == specialist_id
            and (start is None or slot.date >= start)
            and (end is None or slot.date <= end)
            and (not bookable_only or is_bookable(slot))
        ]
        return sorted(found, key=lambda slot: (slot.date, slot.start_time))

    def list_for_offering(self, offering_id: str) -> list[Slot]:
        found = [slot for slot in self._collection.values() if slot.offering_id == offering_id]
        return sorted(found, key=lambda slot: (slot.date, slot.start_time))

    def compare_and_swap(self, slot_id: str, expected_version: int, updated: Slot) -> bool:
        with self._collection.batch() as items:
            current = items.get(slot_id)
            if current is None or current.version != expected_version:
                return False
            items[slot_id] = replace(updated, version=expected_version + 1)
            return True

    def replace_for_offering(self, offering_id: str, slots: list[Slot]) -> tuple[int, int]:
        with self._collection.batch() as items:
            stale = [key for key, slot in items.items() if slot.offering_id == offering_id]
            held = [key for key in stale if items[key].has_live_bookings]
            if held:
                raise SlotConflictError(
                    "Offering has slots with live bookings", offering_id=offering_id, slot_ids=held
                )
            remaining = {slot.key for key, slot in items.items() if key not in stale}
            for slot in slots:
                if slot.key in remaining:
                    raise SlotConflictError(
                        "A slot already exists at this time",
                        specialist_id=slot.specialist_id,
                        date=slot.date.isoformat(),
                        start_time=slot.start_time,
                    )
                remaining.add(slot.key)
            for key in stale:
                del items[key]
            for slot in slots:
                items[slot.id] = slot
        return len(stale), len(slots)

    def delete(self, slot_id: str) -> bool:
        return self._collection.delete(slot_id)


class BookingRepository(BookingStorePort):
    def __init__(self, collection: MemoryCollection[Booking]) -> None:
        self._collection = collection

    def add(self, booking: Booking) -> None:
        with self._collection.batch() as items:
            if booking.id in items:
                raise ValueError(f"Booking {booking.id} already exists")
            items[booking.id] = booking

    def get(self, booking_id: str) -> Booking | None:
        return self._collection.get(booking_id)

    def compare_and_swap(self, booking_id: str, expected_version: int, updated: Booking) -> bool:
        with self._collection.batch() as items:
            current = items.get(booking_id)
            if current is None or current.version != expected_version:
                return False
            items[booking_id] = replace(updated, version=expected_version + 1)
            return True

    def list_for_customer(self, customer_id: str) -> list[Booking]:
        return sorted(
            (b for b in self._collection.values() if b.customer_id == customer_id), key=_created
        )

    def list_for_slot(self, slot_id: str) -> list[Booking]:
        return sorted((b for b in self._collection.values() if b.slot_id == slot_id), key=_created)


class EnrollmentRepository(EnrollmentStorePort):
    def __init__(self, collection: MemoryCollection[Enrollment]) -> None:
        self._collection = collection

    def get(self, enrollment_id: str) -> Enrollment | None:
        return self._collection.get(enrollment_id)

    def find(self, customer_id: str, offering_id: str) -> Enrollment | None:
        for enrollment in self._collection.values():
            if enrollment.customer_id == customer_id and enrollment.offering_id == offering_id:
                return enrollment
        return None

    def find_by_payment(self, payment_id: str) -> Enrollment | None:
        for enrollment in self._collection.values():
            if enrollment.payment_id == payment_id:
                return enrollment
        return None

    def upsert(self, enrollment: Enrollment) -> Enrollment:
        with self._collection.batch() as items:
            existing = next(
                (
                    e
                    for e in items.values()
                    if e.customer_id == enrollment.customer_id and e.offering_id == enrollment.offering_id
                ),
                None,
            )
            if existing is not None:
                enrollment = replace(
                    enrollment, id=existing.id, created_at=existing.created_at or enrollment.created_at
                )
            items[enrollment.id] = enrollment
            return enrollment

    def list_for_customer(self, customer_id: str) -> list[Enrollment]:
        return sorted(
            (e for e in self._collection.values() if e.customer_id == customer_id), key=_created
        )


class PaymentRepository(PaymentStorePort):
    def __init__(self, collection: MemoryCollection[Payment]) -> None:
        self._collection = collection

    def add(self, payment: Payment) -> None:
        with self._collection.batch() as items:
            if any(p.idempotency_key == payment.idempotency_key for p in items.values()):
                raise DuplicateIdempotencyKeyError(
                    "Idempotency key already used", idempotency_key=payment.idempotency_key
                )
            items[payment.id] = payment

    def get(self, payment_id: str) -> Payment | None:
        return self._collection.get(payment_id)

    def find_by_intent_id(self, intent_id: str) -> Payment | None:
        for payment in self._collection.values():
            if payment.external_intent_id == intent_id:
                return payment
        return None

    def find_by_event_id(self, event_id: str) -> Payment | None:
        for payment in self._collection.values():
            if payment.external_event_id == event_id:
                return payment
        return None

    def find_recent(
        self,
        customer_id: str,
        offering_id: str,
        statuses: tuple[PaymentStatus, ...],
        since: datetime,
    ) -> Payment | None:
        candidates = [
            p
            for p in self._collection.values()
            if p.customer_id == customer_id
            and p.offering_id == offering_id
            and p.status in statuses
            and p.created_at is not None
            and p.created_at >= since
        ]
        return max(candidates, key=_created, default=None)

    def claim_event(self, payment_id: str, event_id: str, updated: Payment) -> bool:
        with self._collection.batch() as items:
            current = items.get(payment_id)
            if current is None or current.external_event_id is not None:
                return False
            if any(p.external_event_id == event_id for p in items.values()):
                return False
            items[payment_id] = replace(updated, external_event_id=event_id)
            return True

    def compare_and_swap(self, payment_id: str, expected_status: PaymentStatus, updated: Payment) -> bool:
        with self._collection.batch() as items:
            current = items.get(payment_id)
            if current is None or current.status != expected_status:
                return False
            items[payment_id] = updated
            return True

    def list_for_specialist(self, specialist_id: str, status: PaymentStatus | None = None) -> list[Payment]:
        found = [
            p
            for p in self._collection.values()
            if p.specialist_id == specialist_id and (status is None or p.status == status)
        ]
        return sorted(found, key=_created, reverse=True)


class TemplateRepository(TemplateStorePort):
    def __init__(self, collection: MemoryCollection[AvailabilityTemplate]) -> None:
        self._collection = collection

    def activate(self, template: AvailabilityTemplate) -> AvailabilityTemplate:
        now = template.created_at or datetime.now(timezone.utc)
        active = replace(template, is_active=True, deactivated_at=None)
        with self._collection.batch() as items:
            for key, existing in list(items.items()):
                if existing.specialist_id == template.specialist_id and existing.is_active:
                    items[key] = replace(existing, is_active=False, deactivated_at=now)
            items[active.id] = active
        return active

    def get(self, template_id: str) -> AvailabilityTemplate | None:
        return self._collection.get(template_id)

    def get_active(self, specialist_id: str) -> AvailabilityTemplate | None:
        for template in self._collection.values():
            if template.specialist_id == specialist_id and template.is_active:
                return template
        return None

    def deactivate(self, template_id: str) -> AvailabilityTemplate | None:
        with self._collection.batch() as items:
            current = items.get(template_id)
            if current is None:
                return None
            if current.is_active:
                current = replace(current, is_active=False, deactivated_at=datetime.now(timezone.utc))
                items[template_id] = current
            return current

    def list_for_specialist(self, specialist_id: str) -> list[AvailabilityTemplate]:
        return sorted(
            (t for t in self._collection.values() if t.specialist_id == specialist_id), key=_created
        )


class CommissionRepository(CommissionStorePort):
    def __init__(self, collection: MemoryCollection[CommissionConfig]) -> None:
        self._collection = collection

    def latest(self) -> CommissionConfig | None:
        return max(self._collection.values(), key=lambda config: config.version, default=None)

    def append(self, config: CommissionConfig) -> CommissionConfig:
        with self._collection.batch() as items:
            if str(config.version) in items:
                raise InvalidCommissionError(
                    f"Commission version {config.version} already exists", version=config.version
                )
            items[str(config.version)] = config
        return config

    def history(self) -> list[CommissionConfig]:
        return sorted(self._collection.values(), key=lambda config: config.version)


class OfferingRepository(OfferingCatalogPort):
    def __init__(self, collection: MemoryCollection[Offering]) -> None:
        self._collection = collection

    def get_offering(self, offering_id: str) -> Offering | None:
        return self._collection.get(offering_id)

    def save_offering(self, offering: Offering) -> Offering:
        self._collection.put(offering.id, offering)
        return offering

    def list_for_specialist(self, specialist_id: str) -> list[Offering]:
        return sorted(
            (o for o in self._collection.values() if o.specialist_id == specialist_id), key=lambda o: o.title
        )


@dataclass(frozen=True)
class Stores:
    slots: SlotRepository
    bookings: BookingRepository
    enrollments: EnrollmentRepository
    payments: PaymentRepository
    templates: TemplateRepository
    commission: CommissionRepository
    offerings: OfferingRepository


def memory_stores() -> Stores:
    return Stores(
        slots=SlotRepository(MemoryCollection("slots")),
        bookings=BookingRepository(MemoryCollection("bookings")),
        enrollments=EnrollmentRepository(MemoryCollection("enrollments")),
        payments=PaymentRepository(MemoryCollection("payments")),
        templates=TemplateRepository(MemoryCollection("templates")),
        commission=CommissionRepository(MemoryCollection("commission")),
        offerings=OfferingRepository(MemoryCollection("offerings")),
    )


def json_stores(data_dir: str) -> Stores:
    return Stores(
        slots=SlotRepository(JsonCollection("slots", Slot, data_dir)),
        bookings=BookingRepository(JsonCollection("bookings", Booking, data_dir)),
        enrollments=EnrollmentRepository(JsonCollection("enrollments", Enrollment, data_dir)),
        payments=PaymentRepository(JsonCollection("payments", Payment, data_dir)),
        templates=TemplateRepository(JsonCollection("templates", AvailabilityTemplate, data_dir)),
        commission=CommissionRepository(JsonCollection("commission", CommissionConfig, data_dir)),
        offerings=OfferingRepository(JsonCollection("offerings", Offering, data_dir)),
    )
