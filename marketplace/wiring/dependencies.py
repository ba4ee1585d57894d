from functools import lru_cache
import logging

from fastapi import BackgroundTasks

from marketplace.core.config import settings
from marketplace.application.ports.meeting_provider import MeetingProviderPort
from marketplace.application.ports.notifier import NotifierPort
from marketplace.application.ports.payment_gateway import PaymentGatewayPort
from marketplace.application.ports.task_dispatcher import TaskDispatcherPort
from marketplace.application.use_cases.availability import AvailabilityService
from marketplace.application.use_cases.booking import BookingService
from marketplace.application.use_cases.checkout import CheckoutUseCase
from marketplace.application.use_cases.commission import CommissionService
from marketplace.application.use_cases.materialize_slots import SlotMaterializer
from marketplace.application.use_cases.payments import PaymentOrchestrator
from marketplace.domain.entities.commission import ServiceType
from marketplace.infrastructure.dispatch.background_tasks import BackgroundTasksDispatcher
from marketplace.infrastructure.dispatch.inline import InlineTaskDispatcher
from marketplace.infrastructure.meetings.mock_meetings import MockMeetingProvider
from marketplace.infrastructure.meetings.zoom_client import ZoomMeetingClient
from marketplace.infrastructure.notifications.http_notifier import HttpNotifier
from marketplace.infrastructure.notifications.logging_notifier import LoggingNotifier
from marketplace.infrastructure.payments.mock_gateway import MockPaymentGateway
from marketplace.infrastructure.payments.stripe_gateway import StripeGateway
from marketplace.infrastructure.store.repositories import Stores, json_stores, memory_stores


_stores: Stores | None = None


def _is_local() -> bool:
    return settings.ENV.lower() in {"dev", "local", "test"}


def get_stores() -> Stores:
    global _stores
    if _stores is None:
        if settings.STORE_PROVIDER.lower() == "json":
            _stores = json_stores(settings.DATA_DIR)
        else:
            _stores = memory_stores()
    return _stores


@lru_cache
def get_payment_gateway() -> PaymentGatewayPort:
    if not settings.STRIPE_SECRET_KEY or _is_local():
        return MockPaymentGateway()
    return StripeGateway()


@lru_cache
def get_meeting_provider() -> MeetingProviderPort:
    if not settings.ZOOM_ACCESS_TOKEN or _is_local():
        return MockMeetingProvider()
    return ZoomMeetingClient()


@lru_cache
def get_notifier() -> NotifierPort:
    if not settings.NOTIFY_ENDPOINT or _is_local():
        logging.getLogger(__name__).info("Using LoggingNotifier (relay not configured or ENV=dev/local)")
        return LoggingNotifier()
    return HttpNotifier()


def reset_dependencies() -> None:
    """Drop every cached collaborator so the next request builds fresh ones."""
    global _stores
    _stores = None
    get_payment_gateway.cache_clear()
    get_meeting_provider.cache_clear()
    get_notifier.cache_clear()


def get_dispatcher(background_tasks: BackgroundTasks) -> TaskDispatcherPort:
    return BackgroundTasksDispatcher(background_tasks)


def get_availability_service() -> AvailabilityService:
    return AvailabilityService(templates=get_stores().templates)


def get_slot_materializer() -> SlotMaterializer:
    stores = get_stores()
    return SlotMaterializer(
        slots=stores.slots,
        templates=stores.templates,
        horizon_days=settings.SLOT_HORIZON_DAYS,
        recurring_weeks=settings.RECURRING_HORIZON_WEEKS,
    )


def get_commission_service() -> CommissionService:
    return CommissionService(
        store=get_stores().commission,
        default_percentage=settings.DEFAULT_PLATFORM_COMMISSION,
        default_by_service_type={
            ServiceType.course: settings.DEFAULT_COURSE_COMMISSION,
            ServiceType.consulting: settings.DEFAULT_CONSULTING_COMMISSION,
            ServiceType.webinar: settings.DEFAULT_WEBINAR_COMMISSION,
        },
    )


def build_booking_service(dispatcher: TaskDispatcherPort | None = None) -> BookingService:
    stores = get_stores()
    return BookingService(
        slots=stores.slots,
        bookings=stores.bookings,
        templates=stores.templates,
        meetings=get_meeting_provider(),
        notifier=get_notifier(),
        dispatcher=dispatcher or InlineTaskDispatcher(),
    )


def build_payment_orchestrator(dispatcher: TaskDispatcherPort | None = None) -> PaymentOrchestrator:
    stores = get_stores()
    dispatcher = dispatcher or InlineTaskDispatcher()
    return PaymentOrchestrator(
        payments=stores.payments,
        enrollments=stores.enrollments,
        catalog=stores.offerings,
        gateway=get_payment_gateway(),
        commission=get_commission_service(),
        bookings=build_booking_service(dispatcher),
        notifier=get_notifier(),
        dispatcher=dispatcher,
        dedupe_window_minutes=settings.PAYMENT_DEDUPE_WINDOW_MINUTES,
    )


def get_booking_service(background_tasks: BackgroundTasks) -> BookingService:
    return build_booking_service(get_dispatcher(background_tasks))


def get_payment_orchestrator(background_tasks: BackgroundTasks) -> PaymentOrchestrator:
    return build_payment_orchestrator(get_dispatcher(background_tasks))


def get_checkout_use_case(background_tasks: BackgroundTasks) -> CheckoutUseCase:
    dispatcher = get_dispatcher(background_tasks)
    return CheckoutUseCase(
        bookings=build_booking_service(dispatcher),
        payments=build_payment_orchestrator(dispatcher),
        catalog=get_stores().offerings,
    )
