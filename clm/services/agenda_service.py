"""
Agenda progress — a contract's bid agenda steps.

Each step name comes from the canonical vocabulary and appears at most once
per contract. After every write the contract's current_step is re-derived
from the agenda.
"""

from datetime import date, datetime
from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from clm.exceptions import ConflictError, ValidationError, persistence_step
from clm.models.agenda import AgendaStep
from clm.models.contract import Contract
from clm.services.agenda_steps import (
    APPOINTED_VENDOR_STEP,
    BID_AGENDA_STEPS,
    require_known_step,
    step_index,
)
from clm.services.lifecycle import field_value
from clm.services.lookups import get_agenda_step, get_contract, parse_uuid

logger = structlog.get_logger()

UPDATABLE_STEP_FIELDS = {"start_date", "end_date", "status", "remarks"}


def _ordering_key(step: Any) -> tuple:
    index = step_index(field_value(step, "step_name") or "")
    created = field_value(step, "created_at") or datetime.min
    return (index if index is not None else len(BID_AGENDA_STEPS), created)


def sort_agenda(steps: Iterable[Any]) -> list:
    """Canonical order; unknown legacy names go last, oldest first."""
    return sorted(steps, key=_ordering_key)


def derive_current_step(steps: Iterable[Any]) -> Optional[str]:
    """
    The step most recently started: latest start_date wins, undated steps
    rank below dated ones, ties go to the most recently updated.
    """
    steps = list(steps)
    if not steps:
        return None

    def key(step):
        start = field_value(step, "start_date")
        updated = field_value(step, "updated_at") or datetime.min
        return (start is not None, start or date.min, updated)

    return field_value(max(steps, key=key), "step_name")


def appointed_vendor_from_agenda(steps: Iterable[Any]) -> Optional[str]:
    """Remarks of the "Appointed Vendor" step, where the winner is recorded."""
    for step in steps:
        if field_value(step, "step_name") == APPOINTED_VENDOR_STEP:
            return field_value(step, "remarks") or None
    return None


def _check_dates(start_date: Optional[date], end_date: Optional[date]) -> None:
    if start_date and end_date and end_date < start_date:
        raise ValidationError("End date cannot be before start date", code="INVALID_DATE_RANGE")


async def list_agenda(session: AsyncSession, contract_id) -> list[AgendaStep]:
    result = await session.execute(
        select(AgendaStep).where(AgendaStep.contract_id == parse_uuid(contract_id, "Contract"))
    )
    return sort_agenda(result.scalars().all())


async def list_agendas(session: AsyncSession, contract_ids: list) -> dict[str, list[AgendaStep]]:
    """Agendas for many contracts in one query, keyed by contract id."""
    if not contract_ids:
        return {}
    result = await session.execute(
        select(AgendaStep).where(AgendaStep.contract_id.in_(contract_ids))
    )
    by_contract: dict[str, list[AgendaStep]] = {}
    for step in result.scalars().all():
        by_contract.setdefault(str(step.contract_id), []).append(step)
    return {cid: sort_agenda(steps) for cid, steps in by_contract.items()}


async def _sync_current_step(session: AsyncSession, contract: Contract) -> None:
    steps = await list_agenda(session, contract.id)
    contract.current_step = derive_current_step(steps) or ""


async def add_step(session: AsyncSession, contract_id, data: dict) -> AgendaStep:
    step_name = require_known_step(data.get("step_name") or "")
    _check_dates(data.get("start_date"), data.get("end_date"))

    contract = await get_contract(session, contract_id)

    existing = await session.execute(
        select(AgendaStep.id).where(
            AgendaStep.contract_id == contract.id,
            AgendaStep.step_name == step_name,
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise ConflictError(
            f"Step '{step_name}' is already on this contract's agenda",
            code="DUPLICATE_AGENDA_STEP",
        )

    step = AgendaStep(
        contract_id=contract.id,
        step_name=step_name,
        status=data.get("status") or "Pending",
        start_date=data.get("start_date"),
        end_date=data.get("end_date"),
        remarks=data.get("remarks"),
    )
    session.add(step)
    async with persistence_step(
        "add agenda step",
        "insert_step",
        conflict_message=f"Step '{step_name}' is already on this contract's agenda",
    ):
        await session.flush()
        await _sync_current_step(session, contract)
        await session.flush()

    logger.info(
        "agenda_step_added",
        contract_id=str(contract.id),
        step_name=step_name,
    )
    return step


async def update_step(session: AsyncSession, contract_id, step_id, changes: dict) -> AgendaStep:
    unknown = set(changes) - UPDATABLE_STEP_FIELDS
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

    step = await get_agenda_step(session, contract_id, step_id)
    _check_dates(
        changes.get("start_date", step.start_date),
        changes.get("end_date", step.end_date),
    )

    for field, value in changes.items():
        setattr(step, field, value)

    contract = await get_contract(session, contract_id)
    async with persistence_step("update agenda step", "update_step"):
        await session.flush()
        await _sync_current_step(session, contract)
        await session.flush()

    logger.info("agenda_step_updated", step_id=str(step.id), fields=sorted(changes))
    return step


async def delete_step(session: AsyncSession, contract_id, step_id) -> None:
    step = await get_agenda_step(session, contract_id, step_id)
    contract = await get_contract(session, contract_id)
    async with persistence_step("delete agenda step", "delete_step"):
        await session.delete(step)
        await session.flush()
        await _sync_current_step(session, contract)
        await session.flush()
    logger.info("agenda_step_deleted", step_id=str(step_id), step_name=step.step_name)