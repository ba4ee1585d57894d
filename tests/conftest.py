from __future__ import annotations

import pytest

from marketplace.application.use_cases.availability import AvailabilityService
from marketplace.application.use_cases.booking import BookingService
from marketplace.application.use_cases.checkout import CheckoutUseCase
from marketplace.application.use_cases.commission import CommissionService
from marketplace.application.use_cases.materialize_slots import SlotMaterializer
from marketplace.application.use_cases.payments import PaymentOrchestrator
from marketplace.domain.entities.availability import BookingRules
from marketplace.domain.entities.booking import CustomerInfo
from marketplace.domain.entities.commission import ServiceType
from marketplace.infrastructure.dispatch.inline import InlineTaskDispatcher
from marketplace.infrastructure.meetings.mock_meetings import MockMeetingProvider
from marketplace.infrastructure.notifications.logging_notifier import LoggingNotifier
from marketplace.infrastructure.payments.mock_gateway import MockPaymentGateway
from marketplace.infrastructure.store.repositories import memory_stores

from tests.factories import FakeClock, workday


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def stores():
    return memory_stores()


@pytest.fixture
def gateway() -> MockPaymentGateway:
    return MockPaymentGateway()


@pytest.fixture
def meetings() -> MockMeetingProvider:
    return MockMeetingProvider()


@pytest.fixture
def notifier() -> LoggingNotifier:
    return LoggingNotifier()


@pytest.fixture
def customer() -> CustomerInfo:
    return CustomerInfo(customer_id="cust-1", email="ana@example.com", name="Ana")


@pytest.fixture
def availability(stores, clock) -> AvailabilityService:
    return AvailabilityService(stores.templates, clock=clock)


@pytest.fixture
def materializer(stores, clock) -> SlotMaterializer:
    return SlotMaterializer(stores.slots, stores.templates, clock=clock)


@pytest.fixture
def booking_service(stores, meetings, notifier, clock) -> BookingService:
    return BookingService(
        slots=stores.slots,
        bookings=stores.bookings,
        templates=stores.templates,
        meetings=meetings,
        notifier=notifier,
        dispatcher=InlineTaskDispatcher(),
        clock=clock,
    )


@pytest.fixture
def commission_service(stores, clock) -> CommissionService:
    return CommissionService(
        stores.commission,
        default_percentage=15.0,
        default_by_service_type={ServiceType.consulting: 20.0},
        clock=clock,
    )


@pytest.fixture
def orchestrator(stores, gateway, commission_service, booking_service, notifier, clock) -> PaymentOrchestrator:
    return PaymentOrchestrator(
        payments=stores.payments,
        enrollments=stores.enrollments,
        catalog=stores.offerings,
        gateway=gateway,
        commission=commission_service,
        bookings=booking_service,
        notifier=notifier,
        dispatcher=InlineTaskDispatcher(),
        clock=clock,
    )


@pytest.fixture
def checkout(booking_service, orchestrator, stores) -> CheckoutUseCase:
    return CheckoutUseCase(booking_service, orchestrator, stores.offerings)


@pytest.fixture
def lenient_rules(availability):
    """Active template with no notice or deadline restrictions for spec-1."""
    return availability.create_template(
        "spec-1",
        {day: workday() for day in ("monday", "tuesday", "wednesday", "thursday", "friday")},
        booking_rules=BookingRules(min_notice_hours=0, max_advance_days=365, cancellation_deadline_hours=0),
    )

