"""Row fetchers shared by the services. Each raises NotFoundError."""

from typing import Optional
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clm.exceptions import NotFoundError
from clm.models.agenda import AgendaStep
from clm.models.contract import Contract
from clm.models.vendor import ContractVendor


def parse_uuid(value, what: str = "Resource") -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError):
        raise NotFoundError(f"{what} not found")


async def get_contract(
    session: AsyncSession, contract_id, for_update: bool = False
) -> Contract:
    q = select(Contract).where(Contract.id == parse_uuid(contract_id, "Contract"))
    if for_update:
        q = q.with_for_update()
    contract = (await session.execute(q)).scalar_one_or_none()
    if not contract:
        raise NotFoundError("Contract not found")
    return contract


async def get_vendor(session: AsyncSession, contract_id, vendor_id) -> ContractVendor:
    result = await session.execute(
        select(ContractVendor).where(
            ContractVendor.id == parse_uuid(vendor_id, "Vendor"),
            ContractVendor.contract_id == parse_uuid(contract_id, "Contract"),
        )
    )
    vendor = result.scalar_one_or_none()
    if not vendor:
        raise NotFoundError("Vendor not found")
    return vendor


async def get_agenda_step(
    session: AsyncSession, contract_id, step_id
) -> AgendaStep:
    result = await session.execute(
        select(AgendaStep).where(
            AgendaStep.id == parse_uuid(step_id, "Agenda step"),
            AgendaStep.contract_id == parse_uuid(contract_id, "Contract"),
        )
    )
    step = result.scalar_one_or_none()
    if not step:
        raise NotFoundError("Agenda step not found")
    return step


def optional_uuid(value: Optional[str]) -> Optional[uuid.UUID]:
    if value is None:
        return None
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError):
        return None
