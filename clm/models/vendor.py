import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from clm.database import Base


class ContractVendor(Base):
    """
    A vendor bidding on one contract, with its evaluation and pricing.

    Rows are per-contract: an amendment gets its own copies.
    """
    __tablename__ = "contract_vendors"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    contract_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False
    )
    vendor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    pic_name: Mapped[Optional[str]] = mapped_column(String(255))
    pic_phone: Mapped[Optional[str]] = mapped_column(String(50))
    pic_email: Mapped[Optional[str]] = mapped_column(String(255))
    is_appointed: Mapped[bool] = mapped_column(Boolean, default=False)
    # Evaluation
    kyc_result: Mapped[Optional[str]] = mapped_column(String(50))
    kyc_note: Mapped[Optional[str]] = mapped_column(Text)
    tech_eval_score: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2))
    tech_eval_note: Mapped[Optional[str]] = mapped_column(Text)
    tech_eval_remarks: Mapped[Optional[str]] = mapped_column(Text)
    # Pricing, stored as entered (plain digit strings)
    price_note: Mapped[Optional[str]] = mapped_column(String(50))
    revised_price_note: Mapped[Optional[str]] = mapped_column(String(50))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_contract_vendors_contract", "contract_id"),
    )


class VendorStepDate(Base):
    """Per-vendor override of an agenda step's dates."""

    __tablename__ = "vendor_step_dates"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    vendor_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("contract_vendors.id", ondelete="CASCADE"), nullable=False
    )
    agenda_step_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("contract_bid_agenda.id", ondelete="CASCADE"), nullable=False
    )
    start_date: Mapped[Optional[date]] = mapped_column(Date)
    end_date: Mapped[Optional[date]] = mapped_column(Date)

    __table_args__ = (
        UniqueConstraint("vendor_id", "agenda_step_id", name="uq_vendor_step_dates"),
        Index("idx_vendor_step_dates_vendor", "vendor_id"),
    )
