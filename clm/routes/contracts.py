"""
Contract management — /api/v1/contracts

Stored status changes only through finalize, extend and the admin revert:
Draft / On Progress → Active → Completed, Active / Completed → On Progress. Every
response also carries display_status (adds Ready to Finalize and Expired),
derived on read.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from clm.database import get_db
from clm.middleware.auth import RequestContext, get_current_user
from clm.middleware.authorization import require_admin
from clm.models.contract import Contract, ContractAmendment, ContractLog
from clm.routes.agenda import agenda_to_response
from clm.routes.vendors import vendor_to_response
from clm.schemas.amendment import (
    AmendmentCreate,
    AmendmentRecordResponse,
    AmendmentResultResponse,
    AmendmentWarning,
    LineageEntry,
)
from clm.schemas.common import PaginatedResponse, paginate
from clm.schemas.contract import (
    ContractCreate,
    ContractDetailResponse,
    ContractExtendRequest,
    ContractFinalizeRequest,
    ContractLogResponse,
    ContractResponse,
    ContractUpdate,
)
from clm.services import amendment_service, contract_service
from clm.services.contract_service import ContractView

router = APIRouter()


def _to_response(c: Contract, display_status: str, days_left: Optional[int]) -> ContractResponse:
    return ContractResponse(
        id=str(c.id),
        contract_number=c.contract_number,
        title=c.title,
        category=c.category,
        contract_type_id=c.contract_type_id,
        pt_id=c.pt_id,
        division=c.division,
        department=c.department,
        is_cr=bool(c.is_cr),
        is_on_hold=bool(c.is_on_hold),
        is_anticipated=bool(c.is_anticipated),
        status=c.status,
        display_status=display_status,
        current_step=c.current_step,
        version=c.version,
        parent_contract_id=str(c.parent_contract_id) if c.parent_contract_id else None,
        reference_contract_number=c.reference_contract_number,
        effective_date=c.effective_date,
        expiry_date=c.expiry_date,
        days_until_expiry=days_left,
        final_contract_amount=float(c.final_contract_amount) if c.final_contract_amount is not None else None,
        cost_saving=float(c.cost_saving) if c.cost_saving is not None else None,
        appointed_vendor=c.appointed_vendor,
        contract_summary=c.contract_summary,
        created_by=str(c.created_by) if c.created_by else None,
        created_at=c.created_at,
        updated_at=c.updated_at,
    )


def _view_to_response(view: ContractView) -> ContractResponse:
    return _to_response(view.contract, view.display_status.value, view.days_until_expiry)


def _view_to_detail(view: ContractView) -> ContractDetailResponse:
    base = _view_to_response(view)
    return ContractDetailResponse(
        **base.model_dump(),
        agenda=[agenda_to_response(s) for s in view.agenda],
        vendors=[vendor_to_response(v, view.step_dates.get(str(v.id))) for v in view.vendors],
    )


def _log_to_response(entry: ContractLog) -> ContractLogResponse:
    return ContractLogResponse(
        id=str(entry.id),
        contract_id=str(entry.contract_id),
        user_id=str(entry.user_id) if entry.user_id else None,
        action=entry.action,
        changes=entry.changes or {},
        created_at=entry.created_at,
    )


def _amendment_record_to_response(a: ContractAmendment) -> AmendmentRecordResponse:
    return AmendmentRecordResponse(
        id=str(a.id),
        contract_id=str(a.contract_id),
        parent_contract_id=str(a.parent_contract_id) if a.parent_contract_id else None,
        amendment_version=a.amendment_version,
        amendment_type=a.amendment_type,
        amendment_reason=a.amendment_reason,
        previous_expiry_date=a.previous_expiry_date,
        previous_amount=float(a.previous_amount) if a.previous_amount is not None else None,
        created_at=a.created_at,
    )


async def _detail(db: AsyncSession, contract_id) -> ContractDetailResponse:
    return _view_to_detail(await contract_service.get_contract_view(db, contract_id))


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("", response_model=PaginatedResponse[ContractResponse])
async def list_contracts(
    view: str = Query("all", pattern="^(all|ongoing|active|expiring|expired|completed)$"),
    category: Optional[str] = Query(None),
    pt_id: Optional[int] = Query(None),
    division: Optional[str] = Query(None),
    search: Optional[str] = Query(None, max_length=255),
    expiring_within_days: Optional[int] = Query(None, ge=1, le=365),
    page: int = Query(1, ge=1, le=1000),
    limit: int = Query(20, ge=1, le=100),
    current_user: RequestContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List contracts, newest first. `view` filters on the derived display status."""
    views = await contract_service.list_contracts(
        db,
        view=view,
        category=category,
        pt_id=pt_id,
        division=division,
        search=search,
        expiring_within_days=expiring_within_days,
    )
    items, pagination = paginate(views, page, limit)
    return PaginatedResponse(
        data=[_view_to_response(v) for v in items],
        pagination=pagination,
    )


@router.post("", response_model=ContractDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_contract(
    body: ContractCreate,
    current_user: RequestContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    data = body.model_dump(exclude={"vendors"})
    contract = await contract_service.create_contract(
        db, current_user, data, [v.model_dump() for v in body.vendors]
    )
    return await _detail(db, contract.id)


@router.get("/{contract_id}", response_model=ContractDetailResponse)
async def get_contract(
    contract_id: str,
    current_user: RequestContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await _detail(db, contract_id)


@router.patch("/{contract_id}", response_model=ContractDetailResponse)
async def update_contract(
    contract_id: str,
    body: ContractUpdate,
    current_user: RequestContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    contract = await contract_service.update_contract(
        db, current_user, contract_id, body.model_dump(exclude_unset=True)
    )
    return await _detail(db, contract.id)


@router.post("/{contract_id}/finalize", response_model=ContractDetailResponse)
async def finalize_contract(
    contract_id: str,
    body: ContractFinalizeRequest,
    current_user: RequestContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Activate a Ready to Finalize contract, or complete an Active one."""
    contract = await contract_service.finalize_contract(
        db,
        current_user,
        contract_id,
        contract_number=body.contract_number,
        effective_date=body.effective_date,
        expiry_date=body.expiry_date,
        contract_summary=body.contract_summary,
        reference_contract_number=body.reference_contract_number,
    )
    return await _detail(db, contract.id)


@router.post("/{contract_id}/extend", response_model=ContractResponse)
async def extend_contract(
    contract_id: str,
    body: ContractExtendRequest,
    current_user: RequestContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    contract = await contract_service.extend_contract(
        db, current_user, contract_id, body.expiry_date
    )
    view = await contract_service.get_contract_view(db, contract.id)
    return _view_to_response(view)


@router.post("/{contract_id}/revert", response_model=ContractDetailResponse)
async def revert_contract(
    contract_id: str,
    current_user: RequestContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Admin only: Active / Completed back to On Progress."""
    contract = await contract_service.revert_contract(db, current_user, contract_id)
    return await _detail(db, contract.id)


@router.delete("/{contract_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_contract(
    contract_id: str,
    current_user: RequestContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await contract_service.delete_contract(db, current_user, contract_id)


@router.get("/{contract_id}/logs", response_model=list[ContractLogResponse])
async def list_contract_logs(
    contract_id: str,
    current_user: RequestContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    entries = await contract_service.list_logs(db, contract_id)
    return [_log_to_response(e) for e in entries]


# ---------------------------------------------------------------------------
# Amendments
# ---------------------------------------------------------------------------


@router.post(
    "/{contract_id}/amendments",
    response_model=AmendmentResultResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_amendment(
    contract_id: str,
    body: AmendmentCreate,
    current_user: RequestContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Create the next version of the contract. The original is left as is;
    best-effort bookkeeping failures come back in `warnings`.
    """
    result = await amendment_service.create_amendment(
        db,
        current_user,
        contract_id,
        reason=body.reason,
        amendment_type=body.amendment_type,
        title=body.title,
    )
    return AmendmentResultResponse(
        contract_id=result.contract_id,
        parent_contract_id=result.parent_contract_id,
        version=result.version,
        vendors_copied=result.vendors_copied,
        warnings=[AmendmentWarning(**w.to_dict()) for w in result.warnings],
    )


@router.get("/{contract_id}/amendments", response_model=list[AmendmentRecordResponse])
async def list_amendments(
    contract_id: str,
    current_user: RequestContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    records = await amendment_service.list_amendment_records(db, contract_id)
    return [_amendment_record_to_response(a) for a in records]


@router.get("/{contract_id}/lineage", response_model=list[LineageEntry])
async def get_lineage(
    contract_id: str,
    current_user: RequestContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    chain = await amendment_service.get_lineage(db, contract_id)
    return [LineageEntry(**entry) for entry in chain]
