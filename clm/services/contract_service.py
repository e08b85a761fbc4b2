"""
Contract service — create, read, update, finalize, extend, revert, delete.

All functions use the caller's session (no commit). get_db() auto-commits.
Every write that changes a contract leaves a row in contract_logs.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Optional
import uuid

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from clm.config import settings
from clm.exceptions import PermissionDeniedError, ValidationError, persistence_step
from clm.middleware.auth import RequestContext
from clm.models.agenda import AgendaStep
from clm.models.contract import Contract, ContractLog
from clm.models.vendor import ContractVendor, VendorStepDate
from clm.services import agenda_service, vendor_service
from clm.services.lifecycle import (
    ContractStatus,
    DisplayStatus,
    assert_transition,
    days_until_expiry,
    derive_display_status,
    is_expiring,
    next_status_on_finalize,
    validate_date_range,
)
from clm.services.lookups import get_contract, optional_uuid, parse_uuid

logger = structlog.get_logger()

# status moves through finalize/extend/revert; current_step follows the agenda.
UPDATABLE_CONTRACT_FIELDS = {
    "title",
    "effective_date",
    "expiry_date",
    "final_contract_amount",
    "cost_saving",
    "contract_summary",
    "category",
    "department",
    "division",
    "pt_id",
    "contract_type_id",
    "appointed_vendor",
    "is_cr",
    "is_on_hold",
    "is_anticipated",
}

LOGGED_FIELDS = (
    "contract_number",
    "title",
    "category",
    "contract_type_id",
    "pt_id",
    "division",
    "department",
    "is_cr",
    "is_on_hold",
    "is_anticipated",
    "status",
    "current_step",
    "version",
    "parent_contract_id",
    "reference_contract_number",
    "effective_date",
    "expiry_date",
    "final_contract_amount",
    "cost_saving",
    "appointed_vendor",
    "contract_summary",
)

CONTRACT_VIEWS = ("all", "ongoing", "active", "expiring", "expired", "completed")


@dataclass
class ContractView:
    """A contract with the labels derived for this read."""

    contract: Contract
    display_status: DisplayStatus
    days_until_expiry: Optional[int]
    agenda: list[AgendaStep] = field(default_factory=list)
    vendors: list[ContractVendor] = field(default_factory=list)
    step_dates: dict[str, list[VendorStepDate]] = field(default_factory=dict)


def _json_safe(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


def snapshot(contract: Any, fields: Iterable[str] = LOGGED_FIELDS) -> dict:
    return {f: _json_safe(getattr(contract, f, None)) for f in fields}


def compute_changes(old: dict, new: dict) -> dict:
    """{field: {"old": x, "new": y}} for every key of new whose value moved."""
    return {
        key: {"old": old.get(key), "new": value}
        for key, value in new.items()
        if key != "updated_at" and old.get(key) != value
    }


def _to_amount(value: float) -> Decimal:
    return Decimal(str(round(value, 2)))


async def log_change(
    session: AsyncSession,
    contract_id,
    user_id: Optional[str],
    action: str,
    new_state: dict,
    old_state: Optional[dict] = None,
) -> Optional[ContractLog]:
    """
    Record a change. CREATE-style actions store the full initial state,
    everything else stores a field diff. An empty diff writes nothing.
    """
    if action.startswith("CREATE"):
        changes = {"initial_state": new_state}
    else:
        changes = compute_changes(old_state or {}, new_state)
        if not changes:
            return None

    entry = ContractLog(
        contract_id=parse_uuid(contract_id, "Contract"),
        user_id=optional_uuid(user_id),
        action=action,
        changes=changes,
        created_at=datetime.utcnow(),
    )
    session.add(entry)
    await session.flush()

    logger.info(
        "contract_log_created",
        contract_id=str(contract_id),
        action=action,
        fields=sorted(changes),
    )
    return entry


async def create_contract(
    session: AsyncSession,
    ctx: RequestContext,
    data: dict,
    vendors: Iterable[dict] = (),
) -> Contract:
    if not (data.get("title") or "").strip():
        raise ValidationError("Title is required")
    status = data.get("status") or ContractStatus.ON_PROGRESS.value
    if status not in (ContractStatus.DRAFT.value, ContractStatus.ON_PROGRESS.value):
        raise ValidationError(
            "New contracts start as Draft or On Progress", code="INVALID_STATUS_TRANSITION"
        )
    validate_date_range(data.get("effective_date"), data.get("expiry_date"))
    contract_id = uuid.uuid4()
    vendor_rows = [vendor_service.build_vendor(contract_id, v) for v in vendors]

    contract = Contract(
        id=contract_id,
        title=data["title"].strip(),
        category=data.get("category"),
        contract_type_id=data.get("contract_type_id"),
        pt_id=data.get("pt_id"),
        division=data.get("division"),
        department=data.get("department"),
        is_cr=bool(data.get("is_cr", False)),
        is_on_hold=bool(data.get("is_on_hold", False)),
        is_anticipated=bool(data.get("is_anticipated", False)),
        status=status,
        current_step="",
        version=1,
        created_by=optional_uuid(ctx.user_id),
    )
    session.add(contract)
    async with persistence_step("create contract", "insert_contract"):
        await session.flush()
    if vendor_rows:
        session.add_all(vendor_rows)
        async with persistence_step("create contract", "insert_vendors"):
            await session.flush()

    async with persistence_step("create contract", "log_change"):
        await log_change(session, contract.id, ctx.user_id, "CREATE", snapshot(contract))

    logger.info("contract_created", contract_id=str(contract.id), vendors=len(vendor_rows))
    return contract


async def get_contract_view(
    session: AsyncSession, contract_id, today: Optional[date] = None
) -> ContractView:
    """Contract with its ordered agenda, vendors and derived labels."""
    contract = await get_contract(session, contract_id)
    agenda = await agenda_service.list_agenda(session, contract.id)
    vendors = await vendor_service.list_vendors(session, contract.id)
    step_dates = await vendor_service.list_step_dates(session, [v.id for v in vendors])
    return ContractView(
        contract=contract,
        display_status=derive_display_status(contract.status, contract.expiry_date, agenda, today),
        days_until_expiry=days_until_expiry(contract.expiry_date, today),
        agenda=agenda,
        vendors=vendors,
        step_dates=step_dates,
    )


def matches_view(
    view: str,
    display_status: DisplayStatus,
    expiry_date: Optional[date],
    expiring_within_days: int,
    today: Optional[date] = None,
) -> bool:
    if view == "all":
        return True
    if view == "ongoing":
        return display_status in (DisplayStatus.ON_PROGRESS, DisplayStatus.READY_TO_FINALIZE)
    if view == "active":
        return display_status == DisplayStatus.ACTIVE
    if view == "expiring":
        return display_status == DisplayStatus.ACTIVE and is_expiring(
            expiry_date, expiring_within_days, today
        )
    if view == "expired":
        return display_status == DisplayStatus.EXPIRED
    if view == "completed":
        return display_status == DisplayStatus.COMPLETED
    raise ValidationError(
        f"Unknown view '{view}'. Allowed: {', '.join(CONTRACT_VIEWS)}"
    )


async def list_contracts(
    session: AsyncSession,
    view: str = "all",
    category: Optional[str] = None,
    pt_id: Optional[int] = None,
    division: Optional[str] = None,
    search: Optional[str] = None,
    expiring_within_days: Optional[int] = None,
    today: Optional[date] = None,
) -> list[ContractView]:
    """
    Newest first. Views filter on the derived display status, so they are
    applied after the agendas are loaded.
    """
    if view not in CONTRACT_VIEWS:
        raise ValidationError(f"Unknown view '{view}'. Allowed: {', '.join(CONTRACT_VIEWS)}")
    window = expiring_within_days or settings.EXPIRING_WINDOW_DAYS

    q = select(Contract)
    if category:
        q = q.where(Contract.category == category)
    if pt_id is not None:
        q = q.where(Contract.pt_id == pt_id)
    if division:
        q = q.where(Contract.division == division)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.where(or_(Contract.title.ilike(pattern), Contract.contract_number.ilike(pattern)))

    result = await session.execute(q.order_by(Contract.created_at.desc()))
    contracts = list(result.scalars().all())
    agendas = await agenda_service.list_agendas(session, [c.id for c in contracts])

    views = []
    for c in contracts:
        display = derive_display_status(c.status, c.expiry_date, agendas.get(str(c.id), []), today)
        if not matches_view(view, display, c.expiry_date, window, today):
            continue
        views.append(
            ContractView(
                contract=c,
                display_status=display,
                days_until_expiry=days_until_expiry(c.expiry_date, today),
            )
        )
    return views


async def update_contract(
    session: AsyncSession, ctx: RequestContext, contract_id, changes: dict
) -> Contract:
    unknown = set(changes) - UPDATABLE_CONTRACT_FIELDS
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
    if "title" in changes and not (changes["title"] or "").strip():
        raise ValidationError("Title is required")

    contract = await get_contract(session, contract_id, for_update=True)

    validate_date_range(
        changes.get("effective_date", contract.effective_date),
        changes.get("expiry_date", contract.expiry_date),
    )

    before = snapshot(contract, changes.keys())
    for key, value in changes.items():
        setattr(contract, key, value)

    async with persistence_step("update contract", "update_contract"):
        await session.flush()
        await log_change(
            session, contract.id, ctx.user_id, "UPDATE",
            snapshot(contract, changes.keys()), before,
        )

    logger.info("contract_updated", contract_id=str(contract.id), fields=sorted(changes))
    return contract


async def finalize_contract(
    session: AsyncSession,
    ctx: RequestContext,
    contract_id,
    contract_number: str,
    effective_date: Optional[date] = None,
    expiry_date: Optional[date] = None,
    contract_summary: Optional[str] = None,
    reference_contract_number: Optional[str] = None,
    today: Optional[date] = None,
) -> Contract:
    """
    Activate a contract whose agenda is Ready to Finalize, or archive an
    Active one as Completed.

    Activation records the contract number and period, takes the appointed
    vendor from the agenda, and prices the contract from its appointed
    vendors.
    """
    if not (contract_number or "").strip():
        raise ValidationError("Contract number is required")

    contract = await get_contract(session, contract_id, for_update=True)
    agenda = await agenda_service.list_agenda(session, contract.id)
    target = next_status_on_finalize(contract.status)

    if target == ContractStatus.ACTIVE:
        display = derive_display_status(contract.status, contract.expiry_date, agenda, today)
        if display != DisplayStatus.READY_TO_FINALIZE:
            raise ValidationError(
                "Both contract signature steps must be completed before finalizing",
                code="NOT_READY_TO_FINALIZE",
            )

    new_effective = effective_date or contract.effective_date
    new_expiry = expiry_date or contract.expiry_date
    validate_date_range(new_effective, new_expiry)

    before = snapshot(contract)
    contract.contract_number = contract_number.strip()
    contract.effective_date = new_effective
    contract.expiry_date = new_expiry
    if contract_summary is not None:
        contract.contract_summary = contract_summary
    if reference_contract_number is not None:
        contract.reference_contract_number = reference_contract_number

    if target == ContractStatus.ACTIVE:
        vendors = await vendor_service.list_vendors(session, contract.id)
        contract.appointed_vendor = (
            agenda_service.appointed_vendor_from_agenda(agenda)
            or contract.appointed_vendor
            or ", ".join(vendor_service.appointed_vendor_names(vendors))
            or None
        )
        if any(v.is_appointed for v in vendors):
            contract.final_contract_amount = _to_amount(
                vendor_service.calculate_total_contract_amount(vendors)
            )
            contract.cost_saving = _to_amount(vendor_service.calculate_cost_saving(vendors))

    contract.status = target.value

    async with persistence_step("finalize contract", "update_contract"):
        await session.flush()
        await log_change(session, contract.id, ctx.user_id, "FINALIZE", snapshot(contract), before)

    logger.info(
        "contract_finalized",
        contract_id=str(contract.id),
        status=contract.status,
        contract_number=contract.contract_number,
    )
    return contract


async def extend_contract(
    session: AsyncSession, ctx: RequestContext, contract_id, expiry_date: date
) -> Contract:
    """Push an Active contract's expiry date later. Clears a derived Expired label."""
    contract = await get_contract(session, contract_id, for_update=True)
    if contract.status != ContractStatus.ACTIVE.value:
        raise ValidationError("Only active contracts can be extended", code="INVALID_STATUS_TRANSITION")
    if contract.expiry_date and expiry_date <= contract.expiry_date:
        raise ValidationError(
            "New expiry date must be after the current expiry date", code="INVALID_DATE_RANGE"
        )
    validate_date_range(contract.effective_date, expiry_date)

    before = snapshot(contract, ["expiry_date"])
    contract.expiry_date = expiry_date

    async with persistence_step("extend contract", "update_contract"):
        await session.flush()
        await log_change(
            session, contract.id, ctx.user_id, "EXTEND",
            snapshot(contract, ["expiry_date"]), before,
        )

    logger.info("contract_extended", contract_id=str(contract.id), expiry_date=str(expiry_date))
    return contract


async def revert_contract(session: AsyncSession, ctx: RequestContext, contract_id) -> Contract:
    """Admin only: put an Active or Completed contract back to On Progress so it is editable again."""
    if not ctx.is_admin:
        raise PermissionDeniedError("Only administrators can revert contracts")
    contract = await get_contract(session, contract_id, for_update=True)
    assert_transition(contract.status, ContractStatus.ON_PROGRESS.value)

    before = snapshot(contract, ["status"])
    contract.status = ContractStatus.ON_PROGRESS.value

    async with persistence_step("revert contract", "update_contract"):
        await session.flush()
        await log_change(
            session, contract.id, ctx.user_id, "REVERT",
            snapshot(contract, ["status"]), before,
        )

    logger.info("contract_reverted", contract_id=str(contract.id), previous_status=before["status"])
    return contract


async def delete_contract(session: AsyncSession, ctx: RequestContext, contract_id) -> None:
    """Hard delete; agenda, vendors, amendment records and logs cascade."""
    if not ctx.is_admin:
        raise PermissionDeniedError("Only administrators can delete contracts")
    contract = await get_contract(session, contract_id, for_update=True)
    async with persistence_step("delete contract", "delete_contract"):
        await session.delete(contract)
        await session.flush()
    logger.info("contract_deleted", contract_id=str(contract_id), actor=ctx.user_id)


async def list_logs(session: AsyncSession, contract_id) -> list[ContractLog]:
    contract = await get_contract(session, contract_id)
    result = await session.execute(
        select(ContractLog)
        .where(ContractLog.contract_id == contract.id)
        .order_by(ContractLog.created_at.desc())
    )
    return list(result.scalars().all())
