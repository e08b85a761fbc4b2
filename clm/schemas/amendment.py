from datetime import date, datetime
from typing import Optional
from pydantic import BaseModel, Field


class AmendmentCreate(BaseModel):
    # Emptiness is checked by the service so the rule holds for every caller.
    reason: str = Field(..., max_length=2000)
    amendment_type: str = "extension"
    title: Optional[str] = Field(None, max_length=255)


class AmendmentWarning(BaseModel):
    step: str
    message: str


class AmendmentResultResponse(BaseModel):
    contract_id: str
    parent_contract_id: str
    version: int
    vendors_copied: int
    warnings: list[AmendmentWarning] = []


class AmendmentRecordResponse(BaseModel):
    id: str
    contract_id: str
    parent_contract_id: Optional[str] = None
    amendment_version: int
    amendment_type: str
    amendment_reason: str
    previous_expiry_date: Optional[date] = None
    previous_amount: Optional[float] = None
    created_at: Optional[datetime] = None


class LineageEntry(BaseModel):
    id: str
    version: int
    contract_number: Optional[str] = None
    title: str
    status: str
    display_status: str
    parent_contract_id: Optional[str] = None
