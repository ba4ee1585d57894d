import uuid

from fastapi import APIRouter, Depends

from marketplace.api.v1.schemas import OfferingRequestSchema, OfferingResponseSchema
from marketplace.api.v1.slots import report_response
from marketplace.application.exceptions import OfferingNotFoundError
from marketplace.application.use_cases.materialize_slots import SlotMaterializer
from marketplace.domain.entities.offering import Offering
from marketplace.wiring.dependencies import get_slot_materializer, get_stores

router = APIRouter(prefix="/v1/offerings")


def _require(offering_id: str) -> Offering:
    offering = get_stores().offerings.get_offering(offering_id)
    if offering is None:
        raise OfferingNotFoundError(f"Offering {offering_id} not found", offering_id=offering_id)
    return offering


@router.post("", response_model=OfferingResponseSchema, status_code=201)
def create_offering(
    req: OfferingRequestSchema,
    materializer: SlotMaterializer = Depends(get_slot_materializer),
):
    return _save_and_regenerate(req.to_domain(uuid.uuid4().hex), materializer)


@router.put("/{offering_id}", response_model=OfferingResponseSchema)
def update_offering(
    offering_id: str,
    req: OfferingRequestSchema,
    materializer: SlotMaterializer = Depends(get_slot_materializer),
):
    _require(offering_id)
    return _save_and_regenerate(req.to_domain(offering_id), materializer)


@router.get("/{offering_id}", response_model=Offering)
def get_offering(offering_id: str):
    return _require(offering_id)


@router.post("/{offering_id}/regenerate-slots", response_model=OfferingResponseSchema)
def regenerate_slots(
    offering_id: str,
    materializer: SlotMaterializer = Depends(get_slot_materializer),
):
    offering = _require(offering_id)
    report = materializer.regenerate_for_offering(offering)
    return OfferingResponseSchema(offering=offering, slots=report_response(report))


def _save_and_regenerate(offering: Offering, materializer: SlotMaterializer) -> OfferingResponseSchema:
    # Regenerate before saving so a refused regeneration leaves the stored offering untouched.
    report = materializer.regenerate_for_offering(offering)
    saved = get_stores().offerings.save_offering(offering)
    return OfferingResponseSchema(offering=saved, slots=report_response(report))
