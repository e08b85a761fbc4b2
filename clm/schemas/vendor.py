from datetime import date
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field


class VendorCreate(BaseModel):
    vendor_name: str = Field(..., min_length=1, max_length=255)
    pic_name: Optional[str] = Field(None, max_length=255)
    pic_phone: Optional[str] = Field(None, max_length=50)
    pic_email: Optional[str] = Field(None, max_length=255)
    is_appointed: bool = False
    price_note: Optional[str] = Field(None, pattern=r"^\d*(\.\d+)?$")


class VendorUpdate(BaseModel):
    vendor_name: Optional[str] = Field(None, min_length=1, max_length=255)
    pic_name: Optional[str] = None
    pic_phone: Optional[str] = None
    pic_email: Optional[str] = None
    kyc_result: Optional[str] = Field(None, max_length=50)
    kyc_note: Optional[str] = None
    tech_eval_score: Optional[Decimal] = Field(None, ge=0, le=100)
    tech_eval_note: Optional[str] = None
    tech_eval_remarks: Optional[str] = None
    price_note: Optional[str] = Field(None, pattern=r"^\d*(\.\d+)?$")
    revised_price_note: Optional[str] = Field(None, pattern=r"^\d*(\.\d+)?$")


class StepDateUpdate(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class StepDateResponse(BaseModel):
    agenda_step_id: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class VendorResponse(BaseModel):
    id: str
    contract_id: str
    vendor_name: str
    pic_name: Optional[str] = None
    pic_phone: Optional[str] = None
    pic_email: Optional[str] = None
    is_appointed: bool
    kyc_result: Optional[str] = None
    kyc_note: Optional[str] = None
    tech_eval_score: Optional[float] = None
    tech_eval_note: Optional[str] = None
    tech_eval_remarks: Optional[str] = None
    price_note: Optional[str] = None
    revised_price_note: Optional[str] = None
    step_dates: list[StepDateResponse] = []


class AppointVendorsRequest(BaseModel):
    vendor_ids: list[str] = Field(default_factory=list)


class PriceDifference(BaseModel):
    vendor_id: str
    vendor_name: str
    difference: float
    percentage: float
    is_saving: bool


class VendorPricingSummary(BaseModel):
    total_contract_amount: float
    cost_saving: float
    vendors: list[PriceDifference]
