"""
Unit tests for clm/services/amendment_service.py

Uses AsyncMock to isolate from database. execute() results are queued in
call order: original lookup, existing-amendment check, vendor fetch.
"""

import uuid
from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from clm.exceptions import (
    ConflictError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from clm.models.contract import Contract, ContractAmendment, ContractLog
from clm.services.amendment_service import (
    AMENDMENT_TYPES,
    amendment_title,
    create_amendment,
    get_lineage,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_original(
    version: int = 1,
    contract_number: Optional[str] = "C-001",
    status: str = "Active",
):
    return SimpleNamespace(
        id=uuid.uuid4(),
        contract_number=contract_number,
        title="Network Maintenance",
        category="Services",
        pt_id=3,
        contract_type_id=2,
        department="IT Infrastructure",
        division="Technology",
        is_cr=False,
        is_on_hold=False,
        is_anticipated=True,
        status=status,
        current_step="Contract Completed",
        version=version,
        parent_contract_id=None,
        reference_contract_number=None,
        effective_date=date(2025, 1, 1),
        expiry_date=date(2026, 1, 1),
        final_contract_amount=Decimal("150000.00"),
        appointed_vendor="PT Vendor A",
    )


def _make_vendor(name: str = "PT Vendor A", appointed: bool = True):
    return SimpleNamespace(
        id=uuid.uuid4(),
        vendor_name=name,
        is_appointed=appointed,
        pic_name="Budi",
        pic_phone="0812",
        pic_email="budi@vendor.co.id",
        kyc_result="Pass",
        kyc_note="clean",
        tech_eval_score=Decimal("87.50"),
        tech_eval_note="good",
        tech_eval_remarks="recommended",
        price_note="100000",
        revised_price_note="95000",
    )


def _scalar_result(value):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


def _first_result(row):
    result = MagicMock()
    result.first.return_value = row
    return result


def _scalars_result(rows):
    result = MagicMock()
    result.scalars.return_value.all.return_value = rows
    return result


def _nested_transaction():
    cm = MagicMock()
    cm.__aenter__ = AsyncMock(return_value=None)
    cm.__aexit__ = AsyncMock(return_value=False)
    return cm


def _session(original, vendors=(), child=None) -> AsyncMock:
    session = AsyncMock()
    session.flush = AsyncMock()
    session.add = MagicMock()
    session.add_all = MagicMock()
    session.begin_nested = MagicMock(side_effect=lambda: _nested_transaction())
    session.execute.side_effect = [
        _scalar_result(original),
        _first_result(child),
        _scalars_result(list(vendors)),
    ]
    return session


def _added(session, cls):
    return [c.args[0] for c in session.add.call_args_list if isinstance(c.args[0], cls)]


def _copied_vendors(session):
    return [v for c in session.add_all.call_args_list for v in c.args[0]]


# ---------------------------------------------------------------------------
# create_amendment — happy path
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_amendment_links_to_parent(user_ctx):
    """v1 'C-001' → v2 with parent id, reference number, and no number of its own."""
    original = _make_original(version=1, contract_number="C-001")
    session = _session(original)

    result = await create_amendment(session, user_ctx, str(original.id), reason="Extend 12 months")

    amendment = _added(session, Contract)[0]
    assert result.version == 2
    assert result.parent_contract_id == str(original.id)
    assert result.contract_id == str(amendment.id)
    assert amendment.version == 2
    assert amendment.parent_contract_id == original.id
    assert amendment.reference_contract_number == "C-001"
    assert amendment.contract_number is None
    assert amendment.effective_date is None
    assert amendment.expiry_date is None
    assert amendment.status == "On Progress"
    assert amendment.current_step == ""
    assert str(amendment.created_by) == user_ctx.user_id


@pytest.mark.asyncio
async def test_amendment_inherits_classification_and_default_title(user_ctx):
    original = _make_original(version=3)
    session = _session(original)

    await create_amendment(session, user_ctx, original.id, reason="Scope", amendment_type="scope_change")

    amendment = _added(session, Contract)[0]
    assert amendment.title == "Network Maintenance - Amendment 4"
    for field in ("category", "pt_id", "contract_type_id", "department", "division",
                  "is_cr", "is_on_hold", "is_anticipated"):
        assert getattr(amendment, field) == getattr(original, field)


@pytest.mark.asyncio
async def test_supplied_title_is_used(user_ctx):
    original = _make_original()
    session = _session(original)

    await create_amendment(session, user_ctx, original.id, reason="x", title="  Renewal 2027 ")

    assert _added(session, Contract)[0].title == "Renewal 2027"


@pytest.mark.asyncio
async def test_original_and_its_vendors_are_not_modified(user_ctx):
    original = _make_original()
    vendors = [_make_vendor("PT Vendor A"), _make_vendor("PT Vendor B", appointed=False)]
    before = dict(vars(original))
    vendors_before = [dict(vars(v)) for v in vendors]
    session = _session(original, vendors=vendors)

    result = await create_amendment(session, user_ctx, original.id, reason="Extend")

    assert result.vendors_copied == 2
    assert vars(original) == before
    assert [dict(vars(v)) for v in vendors] == vendors_before
    for v in vendors:
        assert v.kyc_result == "Pass"
        assert v.tech_eval_score == Decimal("87.50")
        assert v.price_note == "100000"
    assert not any(c in vendors for c in _copied_vendors(session))


@pytest.mark.asyncio
async def test_original_is_locked_for_update(user_ctx):
    original = _make_original()
    session = _session(original)

    await create_amendment(session, user_ctx, original.id, reason="Extend")

    first_stmt = session.execute.call_args_list[0].args[0]
    assert first_stmt._for_update_arg is not None


@pytest.mark.asyncio
async def test_vendors_copied_with_evaluation_cleared(user_ctx):
    vendors = [_make_vendor("PT A", True), _make_vendor("PT B", False)]
    original = _make_original()
    session = _session(original, vendors=vendors)

    result = await create_amendment(session, user_ctx, original.id, reason="Extend")

    copies = _copied_vendors(session)
    assert result.vendors_copied == 2
    assert [(c.vendor_name, c.is_appointed) for c in copies] == [("PT A", True), ("PT B", False)]
    amendment = _added(session, Contract)[0]
    for copy in copies:
        assert copy.contract_id == amendment.id
        assert copy.pic_email == "budi@vendor.co.id"
        for field in ("kyc_result", "kyc_note", "tech_eval_score", "tech_eval_note",
                      "tech_eval_remarks", "price_note", "revised_price_note"):
            assert getattr(copy, field) is None


@pytest.mark.asyncio
async def test_zero_vendors_is_valid(user_ctx):
    original = _make_original()
    session = _session(original, vendors=[])

    result = await create_amendment(session, user_ctx, original.id, reason="Extend")

    assert result.vendors_copied == 0
    assert result.warnings == []
    session.add_all.assert_not_called()


@pytest.mark.asyncio
async def test_agenda_is_not_copied(user_ctx):
    from clm.models.agenda import AgendaStep

    original = _make_original()
    session = _session(original, vendors=[_make_vendor()])

    await create_amendment(session, user_ctx, original.id, reason="Extend")

    assert _added(session, AgendaStep) == []
    assert session.execute.await_count == 3


@pytest.mark.asyncio
async def test_metadata_and_log_recorded(user_ctx):
    original = _make_original()
    session = _session(original)

    await create_amendment(session, user_ctx, original.id, reason="  Extend term ", amendment_type="extension")

    record = _added(session, ContractAmendment)[0]
    assert record.amendment_version == 2
    assert record.amendment_reason == "Extend term"
    assert record.previous_expiry_date == date(2026, 1, 1)
    assert record.previous_amount == Decimal("150000.00")
    log = _added(session, ContractLog)[0]
    assert log.action == "CREATE_AMENDMENT"
    assert "initial_state" in log.changes


# ---------------------------------------------------------------------------
# create_amendment — failures
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_metadata_failure_is_not_fatal(user_ctx):
    """Contract and vendors stay; the failure comes back as a warning."""
    original = _make_original()
    session = _session(original, vendors=[_make_vendor()])
    # insert contract, copy vendors, metadata (fails), log
    session.flush.side_effect = [
        None,
        None,
        OperationalError("INSERT", {}, Exception("relation does not exist")),
        None,
    ]

    result = await create_amendment(session, user_ctx, original.id, reason="Extend")

    assert result.version == 2
    assert result.vendors_copied == 1
    assert len(result.warnings) == 1
    assert result.warnings[0].step == "insert_amendment_record"
    assert "relation does not exist" in result.warnings[0].message


@pytest.mark.parametrize("reason", ["", "   ", None])
@pytest.mark.asyncio
async def test_blank_reason_rejected_before_any_query(user_ctx, reason):
    session = _session(_make_original())

    with pytest.raises(ValidationError) as exc:
        await create_amendment(session, user_ctx, uuid.uuid4(), reason=reason)

    assert exc.value.code == "AMENDMENT_REASON_REQUIRED"
    session.execute.assert_not_awaited()
    session.add.assert_not_called()


@pytest.mark.asyncio
async def test_unknown_amendment_type_rejected(user_ctx):
    session = _session(_make_original())

    with pytest.raises(ValidationError) as exc:
        await create_amendment(session, user_ctx, uuid.uuid4(), reason="x", amendment_type="renewal")

    assert exc.value.code == "INVALID_AMENDMENT_TYPE"
    session.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_missing_original_raises_not_found(user_ctx):
    session = _session(None)

    with pytest.raises(NotFoundError):
        await create_amendment(session, user_ctx, uuid.uuid4(), reason="Extend")

    session.add.assert_not_called()


@pytest.mark.asyncio
async def test_in_progress_amendment_blocks_another(user_ctx):
    original = _make_original()
    child = SimpleNamespace(id=uuid.uuid4(), status="On Progress")
    session = _session(original, child=child)

    with pytest.raises(ConflictError) as exc:
        await create_amendment(session, user_ctx, original.id, reason="Extend")

    assert exc.value.code == "AMENDMENT_IN_PROGRESS"
    session.add.assert_not_called()


@pytest.mark.asyncio
async def test_superseded_original_cannot_be_amended(user_ctx):
    original = _make_original()
    child = SimpleNamespace(id=uuid.uuid4(), status="Active")
    session = _session(original, child=child)

    with pytest.raises(ConflictError) as exc:
        await create_amendment(session, user_ctx, original.id, reason="Extend")

    assert exc.value.code == "CONTRACT_SUPERSEDED"


@pytest.mark.asyncio
async def test_duplicate_version_maps_to_conflict(user_ctx):
    original = _make_original()
    session = _session(original)
    session.flush.side_effect = IntegrityError(
        "INSERT", {}, Exception("duplicate key value violates unique constraint")
    )

    with pytest.raises(ConflictError) as exc:
        await create_amendment(session, user_ctx, original.id, reason="Extend")

    assert "Version 2" in exc.value.message


@pytest.mark.asyncio
async def test_vendor_fetch_failure_names_step(user_ctx):
    original = _make_original()
    session = _session(original)
    session.execute.side_effect = [
        _scalar_result(original),
        _first_result(None),
        OperationalError("SELECT", {}, Exception("connection reset")),
    ]

    with pytest.raises(PersistenceError) as exc:
        await create_amendment(session, user_ctx, original.id, reason="Extend")

    assert exc.value.step == "fetch_vendors"
    assert exc.value.message == "Failed to create amendment: connection reset"
    assert exc.value.to_dict()["code"] == "PERSISTENCE_ERROR"


@pytest.mark.asyncio
async def test_vendor_copy_failure_names_step(user_ctx):
    original = _make_original()
    session = _session(original, vendors=[_make_vendor()])
    session.flush.side_effect = [None, OperationalError("INSERT", {}, Exception("disk full"))]

    with pytest.raises(PersistenceError) as exc:
        await create_amendment(session, user_ctx, original.id, reason="Extend")

    assert exc.value.step == "copy_vendors"


def test_amendment_title_and_types():
    assert amendment_title("Cleaning", 2) == "Cleaning - Amendment 2"
    assert AMENDMENT_TYPES == ("extension", "value_modification", "scope_change")


# ---------------------------------------------------------------------------
# get_lineage
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_lineage_walks_up_and_down():
    root = _make_original(version=1, status="Completed")
    middle = _make_original(version=2, status="Active")
    middle.parent_contract_id = root.id
    latest = _make_original(version=3, status="On Progress", contract_number=None)
    latest.parent_contract_id = middle.id
    latest.expiry_date = None
    middle.expiry_date = date(2099, 1, 1)
    root.expiry_date = date(2099, 1, 1)

    session = AsyncMock()
    session.execute.side_effect = [
        _scalar_result(middle),  # requested contract
        _scalar_result(root),    # its parent
        _scalar_result(latest),  # newest child of middle
        _scalar_result(None),    # latest has no child
    ]

    chain = await get_lineage(session, str(middle.id))

    assert [c["version"] for c in chain] == [1, 2, 3]
    assert chain[2]["parent_contract_id"] == str(middle.id)
    assert chain[1]["display_status"] == "Active"
