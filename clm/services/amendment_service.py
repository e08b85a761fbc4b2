"""
Amendment service — derive a new contract version from an existing one.

The new contract gets version + 1, points at the original through
parent_contract_id, inherits the original's classification and a copy of
its vendors (evaluation blanked), and starts with an empty agenda. The
original row is never modified.

Flow (one transaction, owned by get_db):
  1. lock the original (SELECT ... FOR UPDATE)
  2. refuse if the original already has an amendment
  3. insert the new contract
  4. copy vendors
  5. amendment metadata + log, best-effort inside a SAVEPOINT
"""

from dataclasses import dataclass, field
from typing import Optional
import uuid

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from clm.exceptions import (
    ConflictError,
    PartialFailure,
    ValidationError,
    describe_error,
    persistence_step,
)
from clm.middleware.auth import RequestContext
from clm.models.contract import Contract, ContractAmendment
from clm.services import vendor_service
from clm.services.contract_service import log_change, snapshot
from clm.services.lifecycle import CLOSED_STATUSES, ContractStatus, derive_display_status
from clm.services.lookups import get_contract, optional_uuid, parse_uuid

logger = structlog.get_logger()

AMENDMENT_TYPES = ("extension", "value_modification", "scope_change")

# Classification carried from the original onto the amendment.
INHERITED_FIELDS = (
    "category",
    "pt_id",
    "contract_type_id",
    "department",
    "division",
    "is_cr",
    "is_on_hold",
    "is_anticipated",
)


@dataclass
class AmendmentResult:
    contract_id: str
    version: int
    parent_contract_id: str
    vendors_copied: int
    warnings: list[PartialFailure] = field(default_factory=list)


def amendment_title(original_title: str, version: int) -> str:
    return f"{original_title} - Amendment {version}"


def validate_amendment_request(reason: Optional[str], amendment_type: str) -> str:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Amendment reason is required", code="AMENDMENT_REASON_REQUIRED")
    if amendment_type not in AMENDMENT_TYPES:
        raise ValidationError(
            f"Invalid amendment type '{amendment_type}'. Allowed: {', '.join(AMENDMENT_TYPES)}",
            code="INVALID_AMENDMENT_TYPE",
        )
    return reason


async def _ensure_not_amended(session: AsyncSession, original: Contract) -> None:
    result = await session.execute(
        select(Contract.id, Contract.status)
        .where(Contract.parent_contract_id == original.id)
        .order_by(Contract.version.desc())
        .limit(1)
    )
    child = result.first()
    if child is None:
        return
    if child.status in CLOSED_STATUSES:
        raise ConflictError(
            f"Contract has been superseded by {child.id}; amend the latest version instead",
            code="CONTRACT_SUPERSEDED",
        )
    raise ConflictError(
        f"An amendment of this contract is already in progress ({child.id})",
        code="AMENDMENT_IN_PROGRESS",
    )


async def _record_metadata(
    session: AsyncSession,
    ctx: RequestContext,
    original: Contract,
    amendment: Contract,
    reason: str,
    amendment_type: str,
) -> list[PartialFailure]:
    """Best-effort writes. Each runs in its own SAVEPOINT so a failure leaves
    the contract and its vendors in place."""
    warnings: list[PartialFailure] = []

    try:
        async with session.begin_nested():
            session.add(
                ContractAmendment(
                    contract_id=amendment.id,
                    parent_contract_id=original.id,
                    amendment_version=amendment.version,
                    amendment_type=amendment_type,
                    amendment_reason=reason,
                    previous_expiry_date=original.expiry_date,
                    previous_amount=original.final_contract_amount,
                )
            )
            await session.flush()
    except SQLAlchemyError as e:
        logger.warning(
            "amendment_metadata_failed",
            contract_id=str(amendment.id),
            error=describe_error(e),
        )
        warnings.append(PartialFailure("insert_amendment_record", describe_error(e)))

    try:
        async with session.begin_nested():
            await log_change(
                session, amendment.id, ctx.user_id, "CREATE_AMENDMENT", snapshot(amendment)
            )
    except SQLAlchemyError as e:
        logger.warning(
            "amendment_log_failed",
            contract_id=str(amendment.id),
            error=describe_error(e),
        )
        warnings.append(PartialFailure("log_change", describe_error(e)))

    return warnings


async def create_amendment(
    session: AsyncSession,
    ctx: RequestContext,
    original_id,
    reason: str,
    amendment_type: str = "extension",
    title: Optional[str] = None,
) -> AmendmentResult:
    """
    Create the next version of a contract.

    Raises ValidationError before any write, NotFoundError when the original
    is missing, ConflictError when it was already amended, and
    PersistenceError (naming the failed step) when a required write fails.
    """
    reason = validate_amendment_request(reason, amendment_type)
    if title is not None and not title.strip():
        raise ValidationError("Title cannot be blank")

    async with persistence_step("create amendment", "fetch_original"):
        original = await get_contract(session, original_id, for_update=True)
        await _ensure_not_amended(session, original)

    new_version = (original.version or 1) + 1
    amendment = Contract(
        id=uuid.uuid4(),
        **{f: getattr(original, f) for f in INHERITED_FIELDS},
        title=title.strip() if title else amendment_title(original.title, new_version),
        status=ContractStatus.ON_PROGRESS.value,
        current_step="",
        version=new_version,
        parent_contract_id=original.id,
        reference_contract_number=original.contract_number,
        created_by=optional_uuid(ctx.user_id),
    )
    session.add(amendment)
    async with persistence_step(
        "create amendment",
        "insert_contract",
        conflict_message=f"Version {new_version} of this contract already exists",
    ):
        await session.flush()

    vendors_copied = await vendor_service.copy_vendors_for_amendment(
        session, original.id, amendment.id
    )

    warnings = await _record_metadata(session, ctx, original, amendment, reason, amendment_type)

    logger.info(
        "amendment_created",
        contract_id=str(amendment.id),
        parent_contract_id=str(original.id),
        version=new_version,
        vendors_copied=vendors_copied,
        warnings=len(warnings),
    )
    return AmendmentResult(
        contract_id=str(amendment.id),
        version=new_version,
        parent_contract_id=str(original.id),
        vendors_copied=vendors_copied,
        warnings=warnings,
    )


async def get_lineage(session: AsyncSession, contract_id) -> list[dict]:
    """
    Version chain containing the contract, root first.

    Walks parent links up to the root, then child links down to the newest
    version.
    """
    contract = await get_contract(session, contract_id)

    chain = [contract]
    seen = {contract.id}
    current = contract
    while current.parent_contract_id and current.parent_contract_id not in seen:
        parent = (
            await session.execute(select(Contract).where(Contract.id == current.parent_contract_id))
        ).scalar_one_or_none()
        if parent is None:
            break
        chain.insert(0, parent)
        seen.add(parent.id)
        current = parent

    current = contract
    while True:
        child = (
            await session.execute(
                select(Contract)
                .where(Contract.parent_contract_id == current.id)
                .order_by(Contract.version.desc())
                .limit(1)
            )
        ).scalar_one_or_none()
        if child is None or child.id in seen:
            break
        chain.append(child)
        seen.add(child.id)
        current = child

    return [
        {
            "id": str(c.id),
            "version": c.version,
            "contract_number": c.contract_number,
            "title": c.title,
            "status": c.status,
            # Lineage rows skip the agenda lookup; Ready to Finalize is not shown here.
            "display_status": derive_display_status(c.status, c.expiry_date, []).value,
            "parent_contract_id": str(c.parent_contract_id) if c.parent_contract_id else None,
        }
        for c in chain
    ]


async def list_amendment_records(session: AsyncSession, contract_id) -> list[ContractAmendment]:
    """Metadata rows where the contract is either the amendment or its parent."""
    cid = parse_uuid(contract_id, "Contract")
    await get_contract(session, cid)
    result = await session.execute(
        select(ContractAmendment)
        .where(
            (ContractAmendment.contract_id == cid)
            | (ContractAmendment.parent_contract_id == cid)
        )
        .order_by(ContractAmendment.amendment_version.asc())
    )
    return list(result.scalars().all())
