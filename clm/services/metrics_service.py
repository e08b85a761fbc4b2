"""
Dashboard and performance metrics.

Everything here is a read-only projection recomputed per request. The pure
functions take rows (ORM objects or dicts) plus an explicit `now`; the two
async loaders fetch the rows and assemble the reports.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
import math
from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from clm.config import settings
from clm.models.agenda import AgendaStep
from clm.models.contract import Contract
from clm.models.reference import Profile
from clm.services.lifecycle import ContractStatus, field_value, is_ongoing

logger = structlog.get_logger()

UNKNOWN_PIC = "Unknown User"
UNASSIGNED_DIVISION = "Unassigned"


@dataclass
class WeeklyLoad:
    week_start: datetime
    week_end: datetime
    label: str
    label_week: str
    label_month: str
    total: int


@dataclass
class PicStats:
    name: str
    user_id: Optional[str] = None
    total: int = 0
    active: int = 0
    on_progress: int = 0
    completed: int = 0
    divisions: set = field(default_factory=set)
    lead_time_sum: int = 0
    lead_time_count: int = 0

    @property
    def completion_rate(self) -> int:
        return round(self.completed / self.total * 100) if self.total else 0

    @property
    def avg_lead_time_days(self) -> int:
        return round(self.lead_time_sum / self.lead_time_count) if self.lead_time_count else 0


def _as_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return datetime.fromisoformat(str(value).replace("Z", "+00:00")).replace(tzinfo=None)


def _as_date(value: Any) -> Optional[date]:
    dt = _as_datetime(value)
    return dt.date() if dt else None


def start_of_week(moment: datetime) -> datetime:
    """Monday 00:00 of the week containing moment."""
    monday = moment.date() - timedelta(days=moment.weekday())
    return datetime(monday.year, monday.month, monday.day)


def end_of_week(moment: datetime) -> datetime:
    """Sunday 23:59:59.999999 of the week containing moment."""
    return start_of_week(moment) + timedelta(days=7) - timedelta(microseconds=1)


def total_ongoing(contracts: Iterable[Any]) -> int:
    return sum(1 for c in contracts if is_ongoing(field_value(c, "status")))


def avg_lead_time_days(contracts: Iterable[Any], now: datetime) -> float:
    """Mean age in days of ongoing contracts with a created_at, one decimal; 0.0 when none."""
    ages = []
    for c in contracts:
        created = _as_datetime(field_value(c, "created_at"))
        if created is not None and is_ongoing(field_value(c, "status")):
            ages.append(now - created)
    if not ages:
        return 0.0
    return round(sum(ages, timedelta()).total_seconds() / len(ages) / 86400, 1)


def new_this_week(contracts: Iterable[Any], now: datetime) -> int:
    start, end = start_of_week(now), end_of_week(now)
    count = 0
    for c in contracts:
        created = _as_datetime(field_value(c, "created_at"))
        if created is not None and start <= created <= end:
            count += 1
    return count


def weekly_load(contracts: Iterable[Any], now: datetime, weeks: Optional[int] = None) -> list[WeeklyLoad]:
    """
    Trailing Monday-start week windows, oldest first. A contract loads a
    week when it was created by the week's end and was still ongoing at
    the week's start (its updated_at stands in for when it left the pipeline).
    """
    weeks = weeks or settings.WEEKLY_LOAD_WEEKS
    rows = []
    for c in contracts:
        created = _as_datetime(field_value(c, "created_at"))
        if created is None:
            continue
        if is_ongoing(field_value(c, "status")):
            ended = now
        else:
            ended = _as_datetime(field_value(c, "updated_at")) or now
        rows.append((created, ended))

    buckets = []
    for i in range(weeks - 1, -1, -1):
        anchor = now - timedelta(weeks=i)
        week_start, week_end = start_of_week(anchor), end_of_week(anchor)
        month = week_start.strftime("%b").lower()
        week_num = str(math.ceil(week_start.day / 7))
        buckets.append(
            WeeklyLoad(
                week_start=week_start,
                week_end=week_end,
                label=f"{month} {week_num}",
                label_week=week_num,
                label_month=month,
                total=sum(1 for created, ended in rows if created <= week_end and ended >= week_start),
            )
        )
    return buckets


def agenda_span_days(agenda: Iterable[Any]) -> Optional[int]:
    """Earliest step start to latest step end, in whole days; None if unknown or negative."""
    starts = [d for d in (_as_date(field_value(s, "start_date")) for s in agenda) if d]
    ends = [d for d in (_as_date(field_value(s, "end_date")) for s in agenda) if d]
    if not starts or not ends:
        return None
    days = (max(ends) - min(starts)).days
    return days if days >= 0 else None


def _counts_for_lead_time(status: Optional[str]) -> bool:
    return status in (ContractStatus.ACTIVE.value, ContractStatus.COMPLETED.value)


def _creator_id(contract: Any) -> Optional[str]:
    created_by = field_value(contract, "created_by")
    return str(created_by) if created_by else None


def pic_workload(
    contracts: Iterable[Any],
    pic_names: dict[str, str],
    agendas: dict[str, list],
) -> list[PicStats]:
    """Per-creator counts and agenda lead time, busiest first."""
    stats: dict[Optional[str], PicStats] = {}
    for c in contracts:
        user_id = _creator_id(c)
        pic = stats.get(user_id)
        if pic is None:
            pic = stats[user_id] = PicStats(
                name=pic_names.get(user_id or "") or UNKNOWN_PIC, user_id=user_id
            )
        status = field_value(c, "status")

        pic.total += 1
        if field_value(c, "division"):
            pic.divisions.add(field_value(c, "division"))
        if status in (ContractStatus.ACTIVE.value, ContractStatus.ON_PROGRESS.value):
            pic.active += 1
        if status == ContractStatus.ON_PROGRESS.value:
            pic.on_progress += 1
        if status == ContractStatus.COMPLETED.value:
            pic.completed += 1

        if _counts_for_lead_time(status):
            span = agenda_span_days(agendas.get(str(field_value(c, "id")), []))
            if span is not None:
                pic.lead_time_sum += span
                pic.lead_time_count += 1

    return sorted(stats.values(), key=lambda p: p.total, reverse=True)


def division_breakdown(contracts: Iterable[Any]) -> list[dict]:
    groups: dict[str, dict] = {}
    for c in contracts:
        division = field_value(c, "division") or UNASSIGNED_DIVISION
        row = groups.setdefault(division, {"division": division, "total": 0, "completed": 0})
        row["total"] += 1
        if field_value(c, "status") == ContractStatus.COMPLETED.value:
            row["completed"] += 1
    for row in groups.values():
        row["completion_rate"] = round(row["completed"] / row["total"] * 100)
    return sorted(groups.values(), key=lambda r: r["total"], reverse=True)


def status_breakdown(contracts: Iterable[Any]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for c in contracts:
        status = field_value(c, "status") or "Unknown"
        counts[status] = counts.get(status, 0) + 1
    return counts


def step_durations(
    contracts: Iterable[Any],
    pic_names: dict[str, str],
    agendas: dict[str, list],
) -> list[dict]:
    """Average whole days per agenda step, one row per creator."""
    totals: dict[Optional[str], dict[str, list[int]]] = {}
    for c in contracts:
        agenda = agendas.get(str(field_value(c, "id")), [])
        if not agenda:
            continue
        per_step = totals.setdefault(_creator_id(c), {})
        for step in agenda:
            start = _as_date(field_value(step, "start_date"))
            end = _as_date(field_value(step, "end_date"))
            step_name = field_value(step, "step_name")
            if not (start and end and step_name):
                continue
            days = (end - start).days
            if days < 0:
                continue
            acc = per_step.setdefault(step_name, [0, 0])
            acc[0] += days
            acc[1] += 1

    return [
        {
            "user_id": user_id,
            "name": pic_names.get(user_id or "") or UNKNOWN_PIC,
            "steps": {step: round(days / count) for step, (days, count) in steps.items()},
        }
        for user_id, steps in totals.items()
    ]


def overall_agenda_lead_time(contracts: Iterable[Any], agendas: dict[str, list]) -> int:
    spans = []
    for c in contracts:
        if not _counts_for_lead_time(field_value(c, "status")):
            continue
        span = agenda_span_days(agendas.get(str(field_value(c, "id")), []))
        if span is not None:
            spans.append(span)
    return round(sum(spans) / len(spans)) if spans else 0


async def _load_contracts(session: AsyncSession) -> list[Contract]:
    result = await session.execute(select(Contract))
    return list(result.scalars().all())


async def dashboard_summary(session: AsyncSession, now: Optional[datetime] = None) -> dict:
    now = now or datetime.utcnow()
    contracts = await _load_contracts(session)
    logger.info("dashboard_summary_computed", contracts=len(contracts))
    return {
        "total_ongoing": total_ongoing(contracts),
        "avg_lead_time_days": avg_lead_time_days(contracts, now),
        "new_this_week": new_this_week(contracts, now),
        "weekly_load": weekly_load(contracts, now),
    }


async def performance_report(session: AsyncSession) -> dict:
    contracts = await _load_contracts(session)

    creator_ids = {c.created_by for c in contracts if c.created_by}
    pic_names: dict[str, str] = {}
    if creator_ids:
        rows = await session.execute(
            select(Profile.id, Profile.full_name).where(Profile.id.in_(creator_ids))
        )
        pic_names = {str(pid): name for pid, name in rows.all() if name}

    agendas: dict[str, list] = {}
    if contracts:
        steps = await session.execute(
            select(AgendaStep).where(AgendaStep.contract_id.in_([c.id for c in contracts]))
        )
        for step in steps.scalars().all():
            agendas.setdefault(str(step.contract_id), []).append(step)

    statuses = status_breakdown(contracts)
    return {
        "total_active": statuses.get(ContractStatus.ACTIVE.value, 0),
        "total_on_progress": statuses.get(ContractStatus.ON_PROGRESS.value, 0),
        "avg_agenda_lead_time_days": overall_agenda_lead_time(contracts, agendas),
        "status_breakdown": statuses,
        "divisions": division_breakdown(contracts),
        "pic_workload": pic_workload(contracts, pic_names, agendas),
        "step_durations": step_durations(contracts, pic_names, agendas),
    }
