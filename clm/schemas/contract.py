from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

from clm.schemas.agenda import AgendaStepResponse
from clm.schemas.vendor import VendorCreate, VendorResponse


class ContractCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    category: Optional[str] = Field(None, max_length=100)
    contract_type_id: Optional[int] = None
    pt_id: Optional[int] = None
    division: Optional[str] = Field(None, max_length=50)
    department: Optional[str] = Field(None, max_length=100)
    is_cr: bool = False
    is_on_hold: bool = False
    is_anticipated: bool = False
    status: Literal["Draft", "On Progress"] = "On Progress"
    vendors: list[VendorCreate] = Field(default_factory=list)


class ContractUpdate(BaseModel):
    # status and current_step are not editable here; unknown keys are a 422.
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    category: Optional[str] = None
    contract_type_id: Optional[int] = None
    pt_id: Optional[int] = None
    division: Optional[str] = None
    department: Optional[str] = None
    is_cr: Optional[bool] = None
    is_on_hold: Optional[bool] = None
    is_anticipated: Optional[bool] = None
    effective_date: Optional[date] = None
    expiry_date: Optional[date] = None
    final_contract_amount: Optional[Decimal] = Field(None, ge=0)
    contract_summary: Optional[str] = None
    appointed_vendor: Optional[str] = None


class ContractFinalizeRequest(BaseModel):
    contract_number: str = Field(..., min_length=1, max_length=100)
    effective_date: Optional[date] = None
    expiry_date: Optional[date] = None
    contract_summary: Optional[str] = None
    reference_contract_number: Optional[str] = Field(None, max_length=100)


class ContractExtendRequest(BaseModel):
    expiry_date: date


class ContractResponse(BaseModel):
    id: str
    contract_number: Optional[str] = None
    title: str
    category: Optional[str] = None
    contract_type_id: Optional[int] = None
    pt_id: Optional[int] = None
    division: Optional[str] = None
    department: Optional[str] = None
    is_cr: bool = False
    is_on_hold: bool = False
    is_anticipated: bool = False
    status: str
    display_status: str
    current_step: Optional[str] = None
    version: int
    parent_contract_id: Optional[str] = None
    reference_contract_number: Optional[str] = None
    effective_date: Optional[date] = None
    expiry_date: Optional[date] = None
    days_until_expiry: Optional[int] = None
    final_contract_amount: Optional[float] = None
    cost_saving: Optional[float] = None
    appointed_vendor: Optional[str] = None
    contract_summary: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ContractDetailResponse(ContractResponse):
    agenda: list[AgendaStepResponse] = []
    vendors: list[VendorResponse] = []


class ContractLogResponse(BaseModel):
    id: str
    contract_id: str
    user_id: Optional[str] = None
    action: str
    changes: dict
    created_at: Optional[datetime] = None
