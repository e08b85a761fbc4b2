"""
Bid agenda — /api/v1/contracts/{contract_id}/agenda

Steps come from the canonical vocabulary (GET /api/v1/agenda/steps) and
are returned in canonical order with their phase.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from clm.database import get_db
from clm.middleware.auth import RequestContext, get_current_user
from clm.models.agenda import AgendaStep
from clm.schemas.agenda import (
    AgendaStepCreate,
    AgendaStepResponse,
    AgendaStepUpdate,
    AgendaVocabularyResponse,
)
from clm.services import agenda_service
from clm.services.lookups import get_contract
from clm.services.agenda_steps import (
    APPOINTED_VENDOR_STEP,
    INTERNAL_SIGNATURE_STEP,
    VENDOR_SIGNATURE_STEP,
    grouped_steps,
    is_known_step,
    phase_of,
)

router = APIRouter()
vocabulary_router = APIRouter()


def agenda_to_response(step: AgendaStep) -> AgendaStepResponse:
    return AgendaStepResponse(
        id=str(step.id),
        contract_id=str(step.contract_id),
        step_name=step.step_name,
        phase=phase_of(step.step_name).value if is_known_step(step.step_name) else None,
        status=step.status,
        start_date=step.start_date,
        end_date=step.end_date,
        remarks=step.remarks,
        updated_at=step.updated_at,
    )


@vocabulary_router.get("/steps", response_model=AgendaVocabularyResponse)
async def list_step_vocabulary(
    current_user: RequestContext = Depends(get_current_user),
):
    """Canonical step names grouped by phase, for the step picker."""
    return AgendaVocabularyResponse(
        phases=grouped_steps(),
        appointed_vendor_step=APPOINTED_VENDOR_STEP,
        signature_steps=[INTERNAL_SIGNATURE_STEP, VENDOR_SIGNATURE_STEP],
    )


@router.get("", response_model=list[AgendaStepResponse])
async def list_agenda(
    contract_id: str,
    current_user: RequestContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_contract(db, contract_id)
    steps = await agenda_service.list_agenda(db, contract_id)
    return [agenda_to_response(s) for s in steps]


@router.post("", response_model=AgendaStepResponse, status_code=status.HTTP_201_CREATED)
async def add_agenda_step(
    contract_id: str,
    body: AgendaStepCreate,
    current_user: RequestContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    step = await agenda_service.add_step(db, contract_id, body.model_dump())
    return agenda_to_response(step)


@router.patch("/{step_id}", response_model=AgendaStepResponse)
async def update_agenda_step(
    contract_id: str,
    step_id: str,
    body: AgendaStepUpdate,
    current_user: RequestContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    step = await agenda_service.update_step(
        db, contract_id, step_id, body.model_dump(exclude_unset=True)
    )
    return agenda_to_response(step)


@router.delete("/{step_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_agenda_step(
    contract_id: str,
    step_id: str,
    current_user: RequestContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await agenda_service.delete_step(db, contract_id, step_id)
