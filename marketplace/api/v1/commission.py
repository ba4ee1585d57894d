from fastapi import APIRouter, Depends, Query

from marketplace.api.v1.schemas import CommissionActiveSchema, CommissionUpdateSchema, MinimumChargeSchema
from marketplace.application.use_cases.commission import CommissionService
from marketplace.domain.entities.commission import CommissionBreakdown, CommissionConfig, ServiceType
from marketplace.wiring.dependencies import get_commission_service

router = APIRouter(prefix="/v1/commission")


@router.get("", response_model=CommissionConfig)
def current(service: CommissionService = Depends(get_commission_service)):
    return service.current()


@router.get("/history", response_model=list[CommissionConfig])
def history(service: CommissionService = Depends(get_commission_service)):
    return service.history()


@router.get("/calculate", response_model=CommissionBreakdown)
def calculate(
    amount: int = Query(..., ge=0),
    service_type: ServiceType = Query(...),
    service: CommissionService = Depends(get_commission_service),
):
    return service.calculate(amount, service_type)


@router.put("", response_model=CommissionConfig)
def update_rate(req: CommissionUpdateSchema, service: CommissionService = Depends(get_commission_service)):
    return service.update_rate(req.percentage, req.service_type, req.updated_by)


@router.post("/active", response_model=CommissionConfig)
def set_active(req: CommissionActiveSchema, service: CommissionService = Depends(get_commission_service)):
    return service.set_active(req.is_active, req.updated_by)


@router.post("/minimum-charge", response_model=CommissionConfig)
def set_minimum_charge(req: MinimumChargeSchema, service: CommissionService = Depends(get_commission_service)):
    return service.set_minimum_charge(req.amount, req.updated_by)
