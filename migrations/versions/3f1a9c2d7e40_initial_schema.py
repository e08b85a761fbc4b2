"""initial contract lifecycle schema

Revision ID: 3f1a9c2d7e40
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "3f1a9c2d7e40"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # --- Reference data ---
    op.create_table(
        "profiles",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("position", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "pt",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("abbreviation", sa.String(50), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "contract_types",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    # --- Contracts ---
    op.create_table(
        "contracts",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False,
                  server_default=sa.text("gen_random_uuid()")),
        sa.Column("contract_number", sa.String(100), nullable=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("contract_type_id", sa.Integer(), nullable=True),
        sa.Column("pt_id", sa.Integer(), nullable=True),
        sa.Column("division", sa.String(50), nullable=True),
        sa.Column("department", sa.String(100), nullable=True),
        sa.Column("is_cr", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("is_on_hold", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("is_anticipated", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("status", sa.String(50), nullable=False, server_default="Draft"),
        sa.Column("current_step", sa.String(255), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("parent_contract_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("reference_contract_number", sa.String(100), nullable=True),
        sa.Column("effective_date", sa.Date(), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("final_contract_amount", sa.Numeric(18, 2), nullable=True),
        sa.Column("cost_saving", sa.Numeric(18, 2), nullable=True),
        sa.Column("appointed_vendor", sa.String(255), nullable=True),
        sa.Column("contract_summary", sa.Text(), nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["contract_type_id"], ["contract_types.id"]),
        sa.ForeignKeyConstraint(["pt_id"], ["pt.id"]),
        sa.ForeignKeyConstraint(["parent_contract_id"], ["contracts.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["created_by"], ["profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("parent_contract_id", "version", name="uq_contracts_parent_version"),
        sa.CheckConstraint("version >= 1", name="chk_contracts_version"),
        sa.CheckConstraint(
            "status IN ('Draft','On Progress','Active','Completed')",
            name="chk_contracts_status",
        ),
    )
    op.create_index("idx_contracts_status", "contracts", ["status"])
    op.create_index("idx_contracts_parent", "contracts", ["parent_contract_id"])
    op.create_index("idx_contracts_created_by", "contracts", ["created_by"])
    op.create_index("idx_contracts_expiry_date", "contracts", ["expiry_date"])

    # --- Bid agenda ---
    op.create_table(
        "contract_bid_agenda",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False,
                  server_default=sa.text("gen_random_uuid()")),
        sa.Column("contract_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("step_name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(50), nullable=True, server_default="Pending"),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["contract_id"], ["contracts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("contract_id", "step_name", name="uq_agenda_contract_step"),
    )
    op.create_index("idx_agenda_contract", "contract_bid_agenda", ["contract_id"])

    # --- Vendors ---
    op.create_table(
        "contract_vendors",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False,
                  server_default=sa.text("gen_random_uuid()")),
        sa.Column("contract_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("vendor_name", sa.String(255), nullable=False),
        sa.Column("pic_name", sa.String(255), nullable=True),
        sa.Column("pic_phone", sa.String(50), nullable=True),
        sa.Column("pic_email", sa.String(255), nullable=True),
        sa.Column("is_appointed", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("kyc_result", sa.String(50), nullable=True),
        sa.Column("kyc_note", sa.Text(), nullable=True),
        sa.Column("tech_eval_score", sa.Numeric(5, 2), nullable=True),
        sa.Column("tech_eval_note", sa.Text(), nullable=True),
        sa.Column("tech_eval_remarks", sa.Text(), nullable=True),
        sa.Column("price_note", sa.String(50), nullable=True),
        sa.Column("revised_price_note", sa.String(50), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["contract_id"], ["contracts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_contract_vendors_contract", "contract_vendors", ["contract_id"])

    op.create_table(
        "vendor_step_dates",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False,
                  server_default=sa.text("gen_random_uuid()")),
        sa.Column("vendor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("agenda_step_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.ForeignKeyConstraint(["vendor_id"], ["contract_vendors.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["agenda_step_id"], ["contract_bid_agenda.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("vendor_id", "agenda_step_id", name="uq_vendor_step_dates"),
    )
    op.create_index("idx_vendor_step_dates_vendor", "vendor_step_dates", ["vendor_id"])

    # --- Amendments and change log ---
    op.create_table(
        "contract_amendments",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False,
                  server_default=sa.text("gen_random_uuid()")),
        sa.Column("contract_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("parent_contract_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("amendment_version", sa.Integer(), nullable=False),
        sa.Column("amendment_type", sa.String(50), nullable=False),
        sa.Column("amendment_reason", sa.Text(), nullable=False),
        sa.Column("previous_expiry_date", sa.Date(), nullable=True),
        sa.Column("previous_amount", sa.Numeric(18, 2), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["contract_id"], ["contracts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["parent_contract_id"], ["contracts.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_contract_amendments_contract", "contract_amendments", ["contract_id"])
    op.create_index("idx_contract_amendments_parent", "contract_amendments", ["parent_contract_id"])

    op.create_table(
        "contract_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False,
                  server_default=sa.text("gen_random_uuid()")),
        sa.Column("contract_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("changes", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["contract_id"], ["contracts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_contract_logs_contract", "contract_logs", ["contract_id"])


def downgrade() -> None:
    op.drop_table("contract_logs")
    op.drop_table("contract_amendments")
    op.drop_table("vendor_step_dates")
    op.drop_table("contract_vendors")
    op.drop_table("contract_bid_agenda")
    op.drop_table("contracts")
    op.drop_table("contract_types")
    op.drop_table("pt")
    op.drop_table("profiles")
