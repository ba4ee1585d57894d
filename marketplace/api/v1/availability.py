from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query

from marketplace.api.v1.schemas import (
    DateExceptionSchema,
    OpenRangesResponseSchema,
    TemplateRequestSchema,
    TimeRangeSchema,
)
from marketplace.application.use_cases.availability import AvailabilityService
from marketplace.application.utils.time_ranges import format_time
from marketplace.domain.entities.availability import AvailabilityTemplate
from marketplace.wiring.dependencies import get_availability_service

router = APIRouter(prefix="/v1/availability")


@router.post("/templates", response_model=AvailabilityTemplate, status_code=201)
def create_template(
    req: TemplateRequestSchema,
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.create_template(**req.to_domain_kwargs())


@router.get("/specialists/{specialist_id}/template", response_model=AvailabilityTemplate)
def get_active_template(
    specialist_id: str,
    service: AvailabilityService = Depends(get_availability_service),
):
    template = service.get_active_template(specialist_id)
    if template is None:
        raise HTTPException(status_code=404, detail="No active availability template")
    return template


@router.post("/specialists/{specialist_id}/exceptions", response_model=AvailabilityTemplate)
def add_date_exception(
    specialist_id: str,
    req: DateExceptionSchema,
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.add_date_exception(specialist_id, req.to_domain())


@router.delete("/templates/{template_id}", response_model=AvailabilityTemplate)
def deactivate_template(
    template_id: str,
    service: AvailabilityService = Depends(get_availability_service),
):
    template = service.deactivate_template(template_id)
    if template is None:
        raise HTTPException(status_code=404, detail="Template not found")
    return template


@router.get("/specialists/{specialist_id}/open-ranges", response_model=OpenRangesResponseSchema)
def open_ranges(
    specialist_id: str,
    on_date: date = Query(..., alias="date"),
    service: AvailabilityService = Depends(get_availability_service),
):
    ranges = service.open_ranges_for(specialist_id, on_date)
    return OpenRangesResponseSchema(
        specialist_id=specialist_id,
        date=on_date,
        ranges=[TimeRangeSchema(start_time=format_time(r.start), end_time=format_time(r.end)) for r in ranges],
    )
