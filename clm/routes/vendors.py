"""
Contract vendors — /api/v1/contracts/{contract_id}/vendors

Vendor rows, appointment, pricing summary and per-step date overrides.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from clm.database import get_db
from clm.middleware.auth import RequestContext, get_current_user
from clm.models.vendor import ContractVendor, VendorStepDate
from clm.schemas.vendor import (
    AppointVendorsRequest,
    PriceDifference,
    StepDateResponse,
    StepDateUpdate,
    VendorCreate,
    VendorPricingSummary,
    VendorResponse,
    VendorUpdate,
)
from clm.services import vendor_service
from clm.services.lookups import get_contract

router = APIRouter()


def step_date_to_response(row: VendorStepDate) -> StepDateResponse:
    return StepDateResponse(
        agenda_step_id=str(row.agenda_step_id),
        start_date=row.start_date,
        end_date=row.end_date,
    )


def vendor_to_response(
    v: ContractVendor, step_dates: Optional[list[VendorStepDate]] = None
) -> VendorResponse:
    return VendorResponse(
        id=str(v.id),
        contract_id=str(v.contract_id),
        vendor_name=v.vendor_name,
        pic_name=v.pic_name,
        pic_phone=v.pic_phone,
        pic_email=v.pic_email,
        is_appointed=bool(v.is_appointed),
        kyc_result=v.kyc_result,
        kyc_note=v.kyc_note,
        tech_eval_score=float(v.tech_eval_score) if v.tech_eval_score is not None else None,
        tech_eval_note=v.tech_eval_note,
        tech_eval_remarks=v.tech_eval_remarks,
        price_note=v.price_note,
        revised_price_note=v.revised_price_note,
        step_dates=[step_date_to_response(r) for r in step_dates or []],
    )


@router.get("", response_model=list[VendorResponse])
async def list_vendors(
    contract_id: str,
    current_user: RequestContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_contract(db, contract_id)
    vendors = await vendor_service.list_vendors(db, contract_id)
    step_dates = await vendor_service.list_step_dates(db, [v.id for v in vendors])
    return [vendor_to_response(v, step_dates.get(str(v.id))) for v in vendors]


@router.post("", response_model=VendorResponse, status_code=status.HTTP_201_CREATED)
async def add_vendor(
    contract_id: str,
    body: VendorCreate,
    current_user: RequestContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    vendor = await vendor_service.add_vendor(db, contract_id, body.model_dump())
    return vendor_to_response(vendor)


@router.get("/summary", response_model=VendorPricingSummary)
async def pricing_summary(
    contract_id: str,
    current_user: RequestContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Contract amount and cost saving from appointed vendors, plus per-vendor price movement."""
    await get_contract(db, contract_id)
    vendors = await vendor_service.list_vendors(db, contract_id)
    rows = []
    for v in vendors:
        diff = vendor_service.calculate_price_difference(v.price_note, v.revised_price_note)
        rows.append(
            PriceDifference(
                vendor_id=str(v.id),
                vendor_name=v.vendor_name,
                difference=diff.difference,
                percentage=round(diff.percentage, 2),
                is_saving=diff.is_saving,
            )
        )
    return VendorPricingSummary(
        total_contract_amount=vendor_service.calculate_total_contract_amount(vendors),
        cost_saving=vendor_service.calculate_cost_saving(vendors),
        vendors=rows,
    )


@router.put("/appointed", response_model=list[VendorResponse])
async def set_appointed_vendors(
    contract_id: str,
    body: AppointVendorsRequest,
    current_user: RequestContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    vendors = await vendor_service.set_appointed_vendors(db, contract_id, body.vendor_ids)
    return [vendor_to_response(v) for v in vendors]


@router.patch("/{vendor_id}", response_model=VendorResponse)
async def update_vendor(
    contract_id: str,
    vendor_id: str,
    body: VendorUpdate,
    current_user: RequestContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    vendor = await vendor_service.update_vendor(
        db, contract_id, vendor_id, body.model_dump(exclude_unset=True)
    )
    return vendor_to_response(vendor)


@router.delete("/{vendor_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_vendor(
    contract_id: str,
    vendor_id: str,
    current_user: RequestContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await vendor_service.delete_vendor(db, contract_id, vendor_id)


@router.put("/{vendor_id}/step-dates/{step_id}", response_model=StepDateResponse)
async def set_vendor_step_dates(
    contract_id: str,
    vendor_id: str,
    step_id: str,
    body: StepDateUpdate,
    current_user: RequestContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await vendor_service.set_step_dates(
        db, contract_id, vendor_id, step_id, body.start_date, body.end_date
    )
    return step_date_to_response(row)
