from datetime import date

from fastapi import APIRouter, Depends

from marketplace.api.v1.schemas import (
    AppointmentSlotRequestSchema,
    GenerateSlotsRequestSchema,
    MaterializationResponseSchema,
    SkippedEntrySchema,
)
from marketplace.application.exceptions import SlotNotFoundError
from marketplace.application.use_cases.materialize_slots import MaterializationReport, SlotMaterializer
from marketplace.domain.entities.slot import Slot
from marketplace.wiring.dependencies import get_slot_materializer, get_stores

router = APIRouter(prefix="/v1/slots")


def report_response(report: MaterializationReport) -> MaterializationResponseSchema:
    return MaterializationResponseSchema(
        inserted=report.inserted,
        deleted=report.deleted,
        already_present=report.already_present,
        skipped=[
            SkippedEntrySchema(weekday=s.weekday, start_time=s.start_time, reason=s.reason) for s in report.skipped
        ],
        slots=list(report.slots),
    )


@router.post("/generate", response_model=MaterializationResponseSchema, status_code=201)
def generate_slots(
    req: GenerateSlotsRequestSchema,
    materializer: SlotMaterializer = Depends(get_slot_materializer),
):
    report = materializer.persist_template_slots(
        req.specialist_id,
        start_date=req.start_date,
        days=req.days,
        duration=req.duration_minutes,
        offering_id=req.offering_id,
    )
    return report_response(report)


@router.post("", response_model=Slot, status_code=201)
def create_appointment_slot(
    req: AppointmentSlotRequestSchema,
    materializer: SlotMaterializer = Depends(get_slot_materializer),
):
    return materializer.create_appointment_slot(
        req.specialist_id,
        req.date,
        req.start_time,
        req.duration_minutes,
        timezone_name=req.timezone,
        notes=req.notes,
    )


@router.get("/specialists/{specialist_id}", response_model=list[Slot])
def list_slots(
    specialist_id: str,
    start: date | None = None,
    end: date | None = None,
    bookable_only: bool = False,
):
    return get_stores().slots.list_for_specialist(specialist_id, start, end, bookable_only)


@router.get("/{slot_id}", response_model=Slot)
def get_slot(slot_id: str):
    slot = get_stores().slots.get(slot_id)
    if slot is None:
        raise SlotNotFoundError(f"Slot {slot_id} not found", slot_id=slot_id)
    return slot
