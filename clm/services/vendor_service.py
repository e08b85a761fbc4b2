"""
Vendor evaluation service — per-contract vendor rows, appointment and pricing.

All functions use the caller's session (no commit). get_db() auto-commits.
Prices are stored as entered (digit strings) and parsed on read.
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from clm.exceptions import NotFoundError, ValidationError, persistence_step
from clm.models.vendor import ContractVendor, VendorStepDate
from clm.services.lifecycle import field_value
from clm.services.lookups import get_agenda_step, get_contract, get_vendor, parse_uuid

logger = structlog.get_logger()

# Fields an amendment carries over. Evaluation and pricing start blank.
COPIED_VENDOR_FIELDS = ("vendor_name", "is_appointed", "pic_name", "pic_phone", "pic_email")

UPDATABLE_VENDOR_FIELDS = {
    "vendor_name",
    "pic_name",
    "pic_phone",
    "pic_email",
    "kyc_result",
    "kyc_note",
    "tech_eval_score",
    "tech_eval_note",
    "tech_eval_remarks",
    "price_note",
    "revised_price_note",
}


@dataclass
class PriceDifference:
    difference: float
    percentage: float
    is_saving: bool


def parse_price(value: Optional[str]) -> float:
    """Best-effort numeric read of a price note; blank or garbage is 0."""
    if value is None:
        return 0.0
    try:
        return float(str(value).replace(",", "").strip() or 0)
    except ValueError:
        return 0.0


def effective_price(vendor: Any) -> float:
    """The revised price when one was negotiated, otherwise the original."""
    return parse_price(field_value(vendor, "revised_price_note") or field_value(vendor, "price_note"))


def calculate_price_difference(
    price_note: Optional[str], revised_price_note: Optional[str]
) -> PriceDifference:
    original = parse_price(price_note)
    revised = parse_price(revised_price_note or price_note)
    difference = original - revised
    percentage = (difference / original) * 100 if original > 0 else 0.0
    return PriceDifference(
        difference=difference,
        percentage=percentage,
        is_saving=difference > 0,
    )


def calculate_total_contract_amount(vendors: Iterable[Any]) -> float:
    """Sum of effective prices over appointed vendors."""
    return sum(effective_price(v) for v in vendors if field_value(v, "is_appointed"))


def calculate_cost_saving(vendors: Iterable[Any]) -> float:
    total = 0.0
    for v in vendors:
        if not field_value(v, "is_appointed"):
            continue
        total += calculate_price_difference(
            field_value(v, "price_note"), field_value(v, "revised_price_note")
        ).difference
    return total


def appointed_vendor_names(vendors: Iterable[Any]) -> list[str]:
    return [field_value(v, "vendor_name") for v in vendors if field_value(v, "is_appointed")]


async def list_vendors(session: AsyncSession, contract_id) -> list[ContractVendor]:
    result = await session.execute(
        select(ContractVendor)
        .where(ContractVendor.contract_id == parse_uuid(contract_id, "Contract"))
        .order_by(ContractVendor.created_at.asc())
    )
    return list(result.scalars().all())


async def list_step_dates(
    session: AsyncSession, vendor_ids: list
) -> dict[str, list[VendorStepDate]]:
    """Step-date overrides keyed by vendor id."""
    if not vendor_ids:
        return {}
    result = await session.execute(
        select(VendorStepDate).where(VendorStepDate.vendor_id.in_(vendor_ids))
    )
    by_vendor: dict[str, list[VendorStepDate]] = {}
    for row in result.scalars().all():
        by_vendor.setdefault(str(row.vendor_id), []).append(row)
    return by_vendor


def build_vendor(contract_id, data: dict) -> ContractVendor:
    if not (data.get("vendor_name") or "").strip():
        raise ValidationError("Vendor name is required")
    return ContractVendor(
        contract_id=contract_id,
        vendor_name=data["vendor_name"].strip(),
        pic_name=data.get("pic_name"),
        pic_phone=data.get("pic_phone"),
        pic_email=data.get("pic_email"),
        is_appointed=bool(data.get("is_appointed", False)),
        price_note=data.get("price_note"),
    )


async def add_vendor(session: AsyncSession, contract_id, data: dict) -> ContractVendor:
    contract = await get_contract(session, contract_id)
    vendor = build_vendor(contract.id, data)
    session.add(vendor)
    async with persistence_step("add vendor", "insert_vendor"):
        await session.flush()

    logger.info("vendor_added", contract_id=str(contract.id), vendor_id=str(vendor.id))
    return vendor


async def update_vendor(
    session: AsyncSession, contract_id, vendor_id, changes: dict
) -> ContractVendor:
    vendor = await get_vendor(session, contract_id, vendor_id)

    unknown = set(changes) - UPDATABLE_VENDOR_FIELDS
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
    if "vendor_name" in changes and not (changes["vendor_name"] or "").strip():
        raise ValidationError("Vendor name is required")

    for field, value in changes.items():
        setattr(vendor, field, value)
    async with persistence_step("update vendor", "update_vendor"):
        await session.flush()

    logger.info("vendor_updated", vendor_id=str(vendor.id), fields=sorted(changes))
    return vendor


async def delete_vendor(session: AsyncSession, contract_id, vendor_id) -> None:
    vendor = await get_vendor(session, contract_id, vendor_id)
    async with persistence_step("delete vendor", "delete_vendor"):
        await session.delete(vendor)
        await session.flush()
    logger.info("vendor_deleted", vendor_id=str(vendor_id))


async def set_appointed_vendors(
    session: AsyncSession, contract_id, vendor_ids: list[str]
) -> list[ContractVendor]:
    """
    Make exactly vendor_ids the appointed set for the contract.

    Unknown ids (or ids of another contract's vendors) are rejected before
    anything is written.
    """
    contract = await get_contract(session, contract_id)
    vendors = await list_vendors(session, contract.id)
    wanted = {str(parse_uuid(v, "Vendor")) for v in vendor_ids}
    known = {str(v.id) for v in vendors}
    missing = wanted - known
    if missing:
        raise NotFoundError(f"Vendor not found: {', '.join(sorted(missing))}")

    async with persistence_step("appoint vendors", "reset_appointed"):
        await session.execute(
            update(ContractVendor)
            .where(ContractVendor.contract_id == contract.id)
            .values(is_appointed=False)
        )
        if wanted:
            await session.execute(
                update(ContractVendor)
                .where(
                    ContractVendor.contract_id == contract.id,
                    ContractVendor.id.in_([parse_uuid(v) for v in wanted]),
                )
                .values(is_appointed=True)
            )
        await session.flush()

    for v in vendors:
        v.is_appointed = str(v.id) in wanted

    logger.info("vendors_appointed", contract_id=str(contract.id), count=len(wanted))
    return vendors


async def set_step_dates(
    session: AsyncSession,
    contract_id,
    vendor_id,
    agenda_step_id,
    start_date: Optional[date],
    end_date: Optional[date],
) -> VendorStepDate:
    """Insert or replace one vendor's dates for one agenda step."""
    if start_date and end_date and end_date < start_date:
        raise ValidationError("End date cannot be before start date", code="INVALID_DATE_RANGE")

    vendor = await get_vendor(session, contract_id, vendor_id)
    step = await get_agenda_step(session, contract_id, agenda_step_id)

    result = await session.execute(
        select(VendorStepDate).where(
            VendorStepDate.vendor_id == vendor.id,
            VendorStepDate.agenda_step_id == step.id,
        )
    )
    row = result.scalar_one_or_none()
    if row is None:
        row = VendorStepDate(vendor_id=vendor.id, agenda_step_id=step.id)
        session.add(row)
    row.start_date = start_date
    row.end_date = end_date

    async with persistence_step(
        "save vendor step dates",
        "upsert_step_dates",
        conflict_message="Step dates were saved concurrently, retry",
    ):
        await session.flush()
    return row


async def copy_vendors_for_amendment(
    session: AsyncSession, source_contract_id, target_contract_id
) -> int:
    """
    Copy the source contract's vendors onto the target contract.

    Identity and appointment are kept; every evaluation and pricing field
    starts empty on the copy. Returns the number of rows inserted.
    """
    async with persistence_step("create amendment", "fetch_vendors"):
        result = await session.execute(
            select(ContractVendor)
            .where(ContractVendor.contract_id == source_contract_id)
            .order_by(ContractVendor.created_at.asc())
        )
        sources = list(result.scalars().all())

    if not sources:
        return 0

    copies = [
        ContractVendor(
            contract_id=target_contract_id,
            **{field: getattr(src, field) for field in COPIED_VENDOR_FIELDS},
            kyc_result=None,
            kyc_note=None,
            tech_eval_score=None,
            tech_eval_note=None,
            tech_eval_remarks=None,
            price_note=None,
            revised_price_note=None,
        )
        for src in sources
    ]
    session.add_all(copies)
    async with persistence_step("create amendment", "copy_vendors"):
        await session.flush()
    return len(copies)
