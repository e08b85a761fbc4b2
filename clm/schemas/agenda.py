from datetime import date, datetime
from typing import Optional
from pydantic import BaseModel, Field


class AgendaStepCreate(BaseModel):
    step_name: str = Field(..., min_length=1, max_length=255)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[str] = Field(None, max_length=50)
    remarks: Optional[str] = None


class AgendaStepUpdate(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[str] = Field(None, max_length=50)
    remarks: Optional[str] = None


class AgendaStepResponse(BaseModel):
    id: str
    contract_id: str
    step_name: str
    phase: Optional[str] = None
    status: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    remarks: Optional[str] = None
    updated_at: Optional[datetime] = None


class AgendaVocabularyResponse(BaseModel):
    phases: dict[str, list[str]]
    appointed_vendor_step: str
    signature_steps: list[str]
