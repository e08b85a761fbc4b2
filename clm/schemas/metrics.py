from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class WeeklyLoadBucket(BaseModel):
    week_start: datetime
    week_end: datetime
    label: str
    label_week: str
    label_month: str
    total: int


class DashboardSummary(BaseModel):
    total_ongoing: int
    avg_lead_time_days: float
    new_this_week: int
    weekly_load: list[WeeklyLoadBucket]


class PicWorkload(BaseModel):
    user_id: Optional[str] = None
    name: str
    total: int
    active: int
    on_progress: int
    completed: int
    divisions: list[str]
    completion_rate: int
    avg_lead_time_days: int


class DivisionBreakdown(BaseModel):
    division: str
    total: int
    completed: int
    completion_rate: int


class PicStepDurations(BaseModel):
    user_id: Optional[str] = None
    name: str
    steps: dict[str, int]


class PerformanceReport(BaseModel):
    total_active: int
    total_on_progress: int
    avg_agenda_lead_time_days: int
    status_breakdown: dict[str, int]
    divisions: list[DivisionBreakdown]
    pic_workload: list[PicWorkload]
    step_durations: list[PicStepDurations]
