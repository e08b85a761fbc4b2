from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from clm.database import get_db
from clm.middleware.auth import RequestContext, get_current_user
from clm.schemas.metrics import (
    DashboardSummary,
    DivisionBreakdown,
    PerformanceReport,
    PicStepDurations,
    PicWorkload,
    WeeklyLoadBucket,
)
from clm.services import metrics_service

router = APIRouter()


@router.get("/summary", response_model=DashboardSummary)
async def get_dashboard_summary(
    current_user: RequestContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    summary = await metrics_service.dashboard_summary(db)
    return DashboardSummary(
        total_ongoing=summary["total_ongoing"],
        avg_lead_time_days=summary["avg_lead_time_days"],
        new_this_week=summary["new_this_week"],
        weekly_load=[
            WeeklyLoadBucket(
                week_start=w.week_start,
                week_end=w.week_end,
                label=w.label,
                label_week=w.label_week,
                label_month=w.label_month,
                total=w.total,
            )
            for w in summary["weekly_load"]
        ],
    )


@router.get("/performance", response_model=PerformanceReport)
async def get_performance(
    current_user: RequestContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    report = await metrics_service.performance_report(db)
    return PerformanceReport(
        total_active=report["total_active"],
        total_on_progress=report["total_on_progress"],
        avg_agenda_lead_time_days=report["avg_agenda_lead_time_days"],
        status_breakdown=report["status_breakdown"],
        divisions=[DivisionBreakdown(**d) for d in report["divisions"]],
        pic_workload=[
            PicWorkload(
                user_id=p.user_id,
                name=p.name,
                total=p.total,
                active=p.active,
                on_progress=p.on_progress,
                completed=p.completed,
                divisions=sorted(p.divisions),
                completion_rate=p.completion_rate,
                avg_lead_time_days=p.avg_lead_time_days,
            )
            for p in report["pic_workload"]
        ],
        step_durations=[PicStepDurations(**row) for row in report["step_durations"]],
    )
