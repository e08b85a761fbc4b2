"""
Unit tests for clm/services/contract_service.py

Uses AsyncMock to isolate from database.
Tests: create_contract, update_contract (diff log), finalize_contract,
       extend_contract, revert_contract, delete_contract, list_contracts views.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from clm.exceptions import PermissionDeniedError, ValidationError
from clm.models.contract import Contract, ContractLog
from clm.models.vendor import ContractVendor
from clm.services.agenda_steps import INTERNAL_SIGNATURE_STEP, VENDOR_SIGNATURE_STEP
from clm.services.contract_service import (
    compute_changes,
    create_contract,
    delete_contract,
    extend_contract,
    finalize_contract,
    list_contracts,
    matches_view,
    revert_contract,
    update_contract,
)
from clm.services.lifecycle import DisplayStatus

TODAY = date(2026, 3, 10)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_contract(status: str = "On Progress", **overrides):
    fields = dict(
        id=uuid.uuid4(),
        contract_number=None,
        title="Office Cleaning",
        category="Services",
        contract_type_id=1,
        pt_id=1,
        division="GA",
        department="General Affairs",
        is_cr=False,
        is_on_hold=False,
        is_anticipated=False,
        status=status,
        current_step="",
        version=1,
        parent_contract_id=None,
        reference_contract_number=None,
        effective_date=None,
        expiry_date=None,
        final_contract_amount=None,
        cost_saving=None,
        appointed_vendor=None,
        contract_summary=None,
        created_at=datetime(2026, 1, 5),
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


def _make_step(name: str, start=None, end=None, remarks=None):
    return SimpleNamespace(
        id=uuid.uuid4(),
        step_name=name,
        start_date=start,
        end_date=end,
        remarks=remarks,
        created_at=datetime(2026, 1, 1),
        updated_at=datetime(2026, 1, 1),
    )


def _signed_agenda():
    return [
        _make_step("Appointed Vendor", date(2026, 2, 1), date(2026, 2, 2), remarks="PT Bersih"),
        _make_step(INTERNAL_SIGNATURE_STEP, date(2026, 3, 1), date(2026, 3, 2)),
        _make_step(VENDOR_SIGNATURE_STEP, date(2026, 3, 3), date(2026, 3, 4)),
    ]


def _make_vendor(price="100000", revised="95000", appointed=True):
    return SimpleNamespace(
        id=uuid.uuid4(),
        vendor_name="PT Bersih",
        price_note=price,
        revised_price_note=revised,
        is_appointed=appointed,
    )


def _scalar_result(value):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


def _scalars_result(rows):
    result = MagicMock()
    result.scalars.return_value.all.return_value = rows
    return result


def _added(session, cls):
    return [c.args[0] for c in session.add.call_args_list if isinstance(c.args[0], cls)]


# ---------------------------------------------------------------------------
# create_contract
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_contract_starts_on_progress(mock_session, user_ctx):
    contract = await create_contract(
        mock_session,
        user_ctx,
        {"title": " Office Cleaning ", "division": "GA"},
        vendors=[{"vendor_name": "PT Bersih", "price_note": "1000"}],
    )

    assert contract.title == "Office Cleaning"
    assert contract.status == "On Progress"
    assert contract.current_step == ""
    assert contract.version == 1
    assert str(contract.created_by) == user_ctx.user_id

    vendors = mock_session.add_all.call_args.args[0]
    assert len(vendors) == 1
    assert isinstance(vendors[0], ContractVendor)
    assert vendors[0].contract_id == contract.id

    log = _added(mock_session, ContractLog)[0]
    assert log.action == "CREATE"
    assert log.changes["initial_state"]["title"] == "Office Cleaning"


@pytest.mark.asyncio
async def test_create_contract_allows_draft(mock_session, user_ctx):
    contract = await create_contract(mock_session, user_ctx, {"title": "X", "status": "Draft"})
    assert contract.status == "Draft"
    mock_session.add_all.assert_not_called()


@pytest.mark.asyncio
async def test_create_contract_rejects_active_status(mock_session, user_ctx):
    with pytest.raises(ValidationError):
        await create_contract(mock_session, user_ctx, {"title": "X", "status": "Active"})
    mock_session.add.assert_not_called()


@pytest.mark.asyncio
async def test_create_contract_rejects_blank_vendor_before_write(mock_session, user_ctx):
    with pytest.raises(ValidationError):
        await create_contract(mock_session, user_ctx, {"title": "X"}, vendors=[{"vendor_name": " "}])
    mock_session.add.assert_not_called()


# ---------------------------------------------------------------------------
# update_contract
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_update_logs_field_diff(mock_session, user_ctx):
    contract = _make_contract(title="Old title")
    mock_session.execute.return_value = _scalar_result(contract)

    await update_contract(mock_session, user_ctx, contract.id, {"title": "New title", "division": "GA"})

    assert contract.title == "New title"
    log = _added(mock_session, ContractLog)[0]
    assert log.action == "UPDATE"
    assert log.changes == {"title": {"old": "Old title", "new": "New title"}}


@pytest.mark.asyncio
async def test_update_without_changes_writes_no_log(mock_session, user_ctx):
    contract = _make_contract()
    mock_session.execute.return_value = _scalar_result(contract)

    await update_contract(mock_session, user_ctx, contract.id, {"division": "GA"})

    assert _added(mock_session, ContractLog) == []


@pytest.mark.parametrize(
    "changes",
    [{"status": "Active"}, {"status": "On Progress"}, {"current_step": "Negotiation"}],
)
@pytest.mark.asyncio
async def test_update_cannot_set_status_or_current_step(mock_session, user_ctx, changes):
    with pytest.raises(ValidationError):
        await update_contract(mock_session, user_ctx, uuid.uuid4(), changes)
    mock_session.execute.assert_not_awaited()
    mock_session.flush.assert_not_awaited()


@pytest.mark.asyncio
async def test_update_checks_dates_against_stored_values(mock_session, user_ctx):
    contract = _make_contract(effective_date=date(2026, 5, 1))
    mock_session.execute.return_value = _scalar_result(contract)

    with pytest.raises(ValidationError) as exc:
        await update_contract(mock_session, user_ctx, contract.id, {"expiry_date": date(2026, 4, 1)})

    assert exc.value.code == "INVALID_DATE_RANGE"
    mock_session.flush.assert_not_awaited()


@pytest.mark.asyncio
async def test_update_rejects_unknown_field(mock_session, user_ctx):
    with pytest.raises(ValidationError):
        await update_contract(mock_session, user_ctx, uuid.uuid4(), {"version": 7})
    mock_session.execute.assert_not_awaited()


# ---------------------------------------------------------------------------
# finalize_contract
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_finalize_ready_contract_activates_and_prices(mock_session, user_ctx):
    contract = _make_contract()
    vendors = [_make_vendor("100000", "95000"), _make_vendor("50000", None, appointed=False)]
    mock_session.execute.side_effect = [
        _scalar_result(contract),
        _scalars_result(_signed_agenda()),
        _scalars_result(vendors),
    ]

    await finalize_contract(
        mock_session,
        user_ctx,
        contract.id,
        contract_number="CTR/2026/001",
        effective_date=date(2026, 4, 1),
        expiry_date=date(2027, 4, 1),
        today=TODAY,
    )

    assert contract.status == "Active"
    assert contract.contract_number == "CTR/2026/001"
    assert contract.appointed_vendor == "PT Bersih"
    assert contract.final_contract_amount == Decimal("95000.0")
    assert contract.cost_saving == Decimal("5000.0")
    log = _added(mock_session, ContractLog)[0]
    assert log.action == "FINALIZE"
    assert log.changes["status"] == {"old": "On Progress", "new": "Active"}


@pytest.mark.asyncio
async def test_finalize_requires_signatures(mock_session, user_ctx):
    contract = _make_contract()
    mock_session.execute.side_effect = [
        _scalar_result(contract),
        _scalars_result([_make_step(INTERNAL_SIGNATURE_STEP, end=date(2026, 3, 1))]),
    ]

    with pytest.raises(ValidationError) as exc:
        await finalize_contract(mock_session, user_ctx, contract.id, "CTR-1", today=TODAY)

    assert exc.value.code == "NOT_READY_TO_FINALIZE"
    assert contract.status == "On Progress"


@pytest.mark.asyncio
async def test_finalize_rejects_inverted_period(mock_session, user_ctx):
    contract = _make_contract()
    mock_session.execute.side_effect = [
        _scalar_result(contract),
        _scalars_result(_signed_agenda()),
    ]

    with pytest.raises(ValidationError) as exc:
        await finalize_contract(
            mock_session, user_ctx, contract.id, "CTR-1",
            effective_date=date(2026, 4, 1), expiry_date=date(2026, 4, 1), today=TODAY,
        )

    assert exc.value.code == "INVALID_DATE_RANGE"
    assert contract.contract_number is None
    mock_session.flush.assert_not_awaited()


@pytest.mark.asyncio
async def test_finalize_active_contract_completes(mock_session, user_ctx):
    contract = _make_contract(
        status="Active",
        contract_number="CTR-1",
        effective_date=date(2025, 1, 1),
        expiry_date=date(2026, 1, 1),
    )
    mock_session.execute.side_effect = [
        _scalar_result(contract),
        _scalars_result([]),
    ]

    await finalize_contract(mock_session, user_ctx, contract.id, "CTR-1", today=TODAY)

    assert contract.status == "Completed"
    assert mock_session.execute.await_count == 2


@pytest.mark.asyncio
async def test_finalize_completed_contract_rejected(mock_session, user_ctx):
    contract = _make_contract(status="Completed")
    mock_session.execute.side_effect = [_scalar_result(contract), _scalars_result([])]

    with pytest.raises(ValidationError):
        await finalize_contract(mock_session, user_ctx, contract.id, "CTR-1", today=TODAY)


# ---------------------------------------------------------------------------
# extend_contract / revert_contract / delete_contract
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_extend_moves_expiry_later(mock_session, user_ctx):
    contract = _make_contract(
        status="Active", effective_date=date(2025, 1, 1), expiry_date=date(2026, 1, 1)
    )
    mock_session.execute.return_value = _scalar_result(contract)

    await extend_contract(mock_session, user_ctx, contract.id, date(2027, 1, 1))

    assert contract.expiry_date == date(2027, 1, 1)
    log = _added(mock_session, ContractLog)[0]
    assert log.changes == {"expiry_date": {"old": "2026-01-01", "new": "2027-01-01"}}


@pytest.mark.asyncio
async def test_extend_rejects_earlier_date(mock_session, user_ctx):
    contract = _make_contract(status="Active", expiry_date=date(2026, 1, 1))
    mock_session.execute.return_value = _scalar_result(contract)

    with pytest.raises(ValidationError):
        await extend_contract(mock_session, user_ctx, contract.id, date(2025, 12, 1))


@pytest.mark.asyncio
async def test_extend_requires_active_contract(mock_session, user_ctx):
    contract = _make_contract(status="On Progress")
    mock_session.execute.return_value = _scalar_result(contract)

    with pytest.raises(ValidationError):
        await extend_contract(mock_session, user_ctx, contract.id, date(2027, 1, 1))


@pytest.mark.asyncio
async def test_delete_requires_admin(mock_session, user_ctx):
    with pytest.raises(PermissionDeniedError):
        await delete_contract(mock_session, user_ctx, uuid.uuid4())
    mock_session.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_admin_can_delete(mock_session, admin_ctx):
    contract = _make_contract()
    mock_session.execute.return_value = _scalar_result(contract)

    await delete_contract(mock_session, admin_ctx, contract.id)

    mock_session.delete.assert_awaited_once_with(contract)


@pytest.mark.parametrize("status", ["Active", "Completed"])
@pytest.mark.asyncio
async def test_admin_reverts_to_on_progress(mock_session, admin_ctx, status):
    contract = _make_contract(status=status, contract_number="CTR-1")
    mock_session.execute.return_value = _scalar_result(contract)

    await revert_contract(mock_session, admin_ctx, contract.id)

    assert contract.status == "On Progress"
    assert contract.contract_number == "CTR-1"
    log = _added(mock_session, ContractLog)[0]
    assert log.action == "REVERT"
    assert log.changes == {"status": {"old": status, "new": "On Progress"}}


@pytest.mark.asyncio
async def test_revert_requires_admin(mock_session, user_ctx):
    with pytest.raises(PermissionDeniedError):
        await revert_contract(mock_session, user_ctx, uuid.uuid4())
    mock_session.execute.assert_not_awaited()


@pytest.mark.parametrize("status", ["On Progress", "Draft"])
@pytest.mark.asyncio
async def test_revert_rejects_open_contract(mock_session, admin_ctx, status):
    contract = _make_contract(status=status)
    mock_session.execute.return_value = _scalar_result(contract)

    with pytest.raises(ValidationError) as exc:
        await revert_contract(mock_session, admin_ctx, contract.id)

    assert exc.value.code == "INVALID_STATUS_TRANSITION"
    assert contract.status == status
    mock_session.flush.assert_not_awaited()


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


def test_matches_view():
    assert matches_view("ongoing", DisplayStatus.READY_TO_FINALIZE, None, 60)
    assert not matches_view("ongoing", DisplayStatus.EXPIRED, None, 60)
    assert matches_view("expiring", DisplayStatus.ACTIVE, date(2026, 4, 1), 60, today=TODAY)
    assert not matches_view("expiring", DisplayStatus.ACTIVE, date(2027, 4, 1), 60, today=TODAY)
    assert matches_view("expired", DisplayStatus.EXPIRED, date(2026, 1, 1), 60)
    with pytest.raises(ValidationError):
        matches_view("archived", DisplayStatus.ACTIVE, None, 60)


@pytest.mark.asyncio
async def test_list_contracts_filters_on_display_status(mock_session):
    ready = _make_contract()
    expired = _make_contract(status="Active", expiry_date=date(2026, 1, 1))
    active = _make_contract(status="Active", expiry_date=date(2027, 1, 1))
    agenda = _signed_agenda()
    for step in agenda:
        step.contract_id = ready.id
    mock_session.execute.side_effect = [
        _scalars_result([ready, expired, active]),
        _scalars_result(agenda),
    ]

    views = await list_contracts(mock_session, view="ongoing", today=TODAY)

    assert [v.contract for v in views] == [ready]
    assert views[0].display_status == DisplayStatus.READY_TO_FINALIZE


@pytest.mark.asyncio
async def test_list_contracts_unknown_view(mock_session):
    with pytest.raises(ValidationError):
        await list_contracts(mock_session, view="archived")


def test_compute_changes_skips_equal_values():
    changes = compute_changes({"a": 1, "b": 2}, {"a": 1, "b": 3, "updated_at": "x"})
    assert changes == {"b": {"old": 2, "new": 3}}
