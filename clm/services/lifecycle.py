"""
Contract lifecycle state model.

Stored status moves Draft / On Progress → Active → Completed, and an admin
can revert Active or Completed back to On Progress. Two further
labels are derived on every read and never persisted:

  Expired            expiry_date is in the past (checked first, even for
                     Active/Completed contracts)
  Ready to Finalize  both signature steps of the agenda have an end date
"""

from collections.abc import Mapping
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable, Optional, Union

from clm.exceptions import ValidationError
from clm.services.agenda_steps import (
    INTERNAL_SIGNATURE_STEP,
    VENDOR_SIGNATURE_STEP,
)


class ContractStatus(str, Enum):
    DRAFT = "Draft"
    ON_PROGRESS = "On Progress"
    ACTIVE = "Active"
    COMPLETED = "Completed"


class DisplayStatus(str, Enum):
    ON_PROGRESS = "On Progress"
    READY_TO_FINALIZE = "Ready to Finalize"
    ACTIVE = "Active"
    COMPLETED = "Completed"
    EXPIRED = "Expired"


# Statuses that mean the contract has left the bid/approval pipeline.
# "Finished" and "Expired" are legacy values that may still exist in old rows.
CLOSED_STATUSES = frozenset({"Active", "Finished", "Completed", "Expired"})

# Moves into Active go through finalize; moves back to On Progress are the
# admin revert.
ALLOWED_TRANSITIONS: dict[ContractStatus, frozenset[ContractStatus]] = {
    ContractStatus.DRAFT: frozenset({ContractStatus.ACTIVE}),
    ContractStatus.ON_PROGRESS: frozenset({ContractStatus.ACTIVE}),
    ContractStatus.ACTIVE: frozenset({ContractStatus.COMPLETED, ContractStatus.ON_PROGRESS}),
    ContractStatus.COMPLETED: frozenset({ContractStatus.ON_PROGRESS}),
}

DateLike = Union[date, str, None]


def _as_date(value: DateLike) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def field_value(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def _today() -> date:
    return datetime.utcnow().date()


def parse_status(value: str) -> ContractStatus:
    try:
        return ContractStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in ContractStatus)
        raise ValidationError(f"Invalid contract status '{value}'. Allowed: {allowed}")


def signature_steps_completed(agenda: Iterable[Any]) -> bool:
    """True when both signature steps exist and carry a non-empty end date."""
    ends: dict[str, Any] = {}
    for item in agenda:
        name = field_value(item, "step_name")
        if name in (INTERNAL_SIGNATURE_STEP, VENDOR_SIGNATURE_STEP):
            ends[name] = field_value(item, "end_date")
    return bool(ends.get(INTERNAL_SIGNATURE_STEP)) and bool(ends.get(VENDOR_SIGNATURE_STEP))


def derive_display_status(
    status: str,
    expiry_date: DateLike,
    agenda: Iterable[Any],
    today: Optional[date] = None,
) -> DisplayStatus:
    """Compute the human-facing status. First match wins."""
    today = today or _today()

    expiry = _as_date(expiry_date)
    if expiry is not None and expiry < today:
        return DisplayStatus.EXPIRED

    if status == ContractStatus.ACTIVE.value:
        return DisplayStatus.ACTIVE
    if status == ContractStatus.COMPLETED.value:
        return DisplayStatus.COMPLETED

    if signature_steps_completed(agenda):
        return DisplayStatus.READY_TO_FINALIZE

    return DisplayStatus.ON_PROGRESS


def is_ongoing(status: Optional[str]) -> bool:
    return status not in CLOSED_STATUSES


def assert_transition(current: str, target: str) -> None:
    """Raise ValidationError unless current → target is an allowed move."""
    src = parse_status(current)
    dst = parse_status(target)
    if dst not in ALLOWED_TRANSITIONS[src]:
        raise ValidationError(
            f"Cannot move contract from '{src.value}' to '{dst.value}'",
            code="INVALID_STATUS_TRANSITION",
        )


def next_status_on_finalize(status: str) -> ContractStatus:
    """
    Draft / On Progress contracts are activated; an Active contract
    (expired or not) is archived as Completed.
    """
    current = parse_status(status)
    if current in (ContractStatus.DRAFT, ContractStatus.ON_PROGRESS):
        return ContractStatus.ACTIVE
    if current == ContractStatus.ACTIVE:
        return ContractStatus.COMPLETED
    raise ValidationError(
        "Contract is already completed", code="INVALID_STATUS_TRANSITION"
    )


def validate_date_range(effective_date: DateLike, expiry_date: DateLike) -> None:
    effective = _as_date(effective_date)
    expiry = _as_date(expiry_date)
    if effective and expiry and expiry <= effective:
        raise ValidationError(
            "Expiry Date must be AFTER the Effective Date", code="INVALID_DATE_RANGE"
        )


def days_until_expiry(expiry_date: DateLike, today: Optional[date] = None) -> Optional[int]:
    """Days left until expiry; negative once expired, None without an expiry date."""
    expiry = _as_date(expiry_date)
    if expiry is None:
        return None
    return (expiry - (today or _today())).days


def is_expiring(expiry_date: DateLike, within_days: int, today: Optional[date] = None) -> bool:
    days = days_until_expiry(expiry_date, today)
    return days is not None and 0 <= days <= within_days
