"""
Contract model — procurement contracts and their amendment lineage.

Stored status: Draft → On Progress → Active → Completed.
"Expired" and "Ready to Finalize" are derived on read, never stored
(see clm.services.lifecycle).
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from clm.database import Base


class Contract(Base):
    __tablename__ = "contracts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    # Assigned by a human at finalization; amendments start without one.
    contract_number: Mapped[Optional[str]] = mapped_column(String(100))
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    # Classification
    category: Mapped[Optional[str]] = mapped_column(String(100))
    contract_type_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("contract_types.id")
    )
    pt_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("pt.id"))
    division: Mapped[Optional[str]] = mapped_column(String(50))
    department: Mapped[Optional[str]] = mapped_column(String(100))
    is_cr: Mapped[bool] = mapped_column(Boolean, default=False)
    is_on_hold: Mapped[bool] = mapped_column(Boolean, default=False)
    is_anticipated: Mapped[bool] = mapped_column(Boolean, default=False)
    # Lifecycle
    status: Mapped[str] = mapped_column(String(50), default="Draft")
    current_step: Mapped[Optional[str]] = mapped_column(String(255))
    version: Mapped[int] = mapped_column(Integer, default=1)
    # Lineage
    parent_contract_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("contracts.id", ondelete="SET NULL")
    )
    reference_contract_number: Mapped[Optional[str]] = mapped_column(String(100))
    # Contract period
    effective_date: Mapped[Optional[date]] = mapped_column(Date)
    expiry_date: Mapped[Optional[date]] = mapped_column(Date)
    # Outcome
    final_contract_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 2))
    cost_saving: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 2))
    appointed_vendor: Mapped[Optional[str]] = mapped_column(String(255))
    contract_summary: Mapped[Optional[str]] = mapped_column(Text)
    # Person in charge
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("profiles.id")
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        UniqueConstraint("parent_contract_id", "version", name="uq_contracts_parent_version"),
        CheckConstraint("version >= 1", name="chk_contracts_version"),
        CheckConstraint(
            "status IN ('Draft','On Progress','Active','Completed')",
            name="chk_contracts_status",
        ),
        Index("idx_contracts_status", "status"),
        Index("idx_contracts_parent", "parent_contract_id"),
        Index("idx_contracts_created_by", "created_by"),
        Index("idx_contracts_expiry_date", "expiry_date"),
    )


class ContractAmendment(Base):
    """Why and how an amendment was made. Written best-effort."""

    __tablename__ = "contract_amendments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    contract_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False
    )
    parent_contract_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("contracts.id", ondelete="SET NULL")
    )
    amendment_version: Mapped[int] = mapped_column(Integer, nullable=False)
    amendment_type: Mapped[str] = mapped_column(String(50), nullable=False)
    amendment_reason: Mapped[str] = mapped_column(Text, nullable=False)
    previous_expiry_date: Mapped[Optional[date]] = mapped_column(Date)
    previous_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 2))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_contract_amendments_contract", "contract_id"),
        Index("idx_contract_amendments_parent", "parent_contract_id"),
    )


class ContractLog(Base):
    __tablename__ = "contract_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    contract_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("profiles.id")
    )
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    changes: Mapped[dict] = mapped_column(JSONB, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_contract_logs_contract", "contract_id"),
    )
