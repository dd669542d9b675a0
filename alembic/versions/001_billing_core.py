"""Create billing core tables

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid_pk():
    return sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()"))


def upgrade() -> None:
    op.create_table(
        "plans",
        _uuid_pk(),
        sa.Column("name", sa.String, nullable=False, unique=True),
        sa.Column("net_price", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("max_advisors", sa.Integer, nullable=False, server_default="1"),
        sa.Column("extra_advisor_price", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("cycle_days", sa.Integer, nullable=False, server_default="30"),
        sa.Column("is_trial", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=True),
    )

    op.create_table(
        "companies",
        _uuid_pk(),
        sa.Column("trade_name", sa.String, nullable=True),
        sa.Column("legal_name", sa.String, nullable=True),
        sa.Column("tax_id", sa.String, nullable=True, index=True),
        sa.Column("owner_user_id", UUID(as_uuid=True), nullable=True, index=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )

    op.create_table(
        "advisors",
        _uuid_pk(),
        sa.Column("company_id", UUID(as_uuid=True), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("name", sa.String, nullable=True),
        sa.Column("email", sa.String, nullable=True),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )

    op.create_table(
        "users",
        _uuid_pk(),
        sa.Column("email", sa.String, nullable=False, unique=True, index=True),
        sa.Column("hashed_password", sa.String, nullable=False),
        sa.Column("full_name", sa.String, nullable=True),
        sa.Column("role", sa.String, nullable=False, server_default="empresa"),
        sa.Column("company_id", UUID(as_uuid=True), sa.ForeignKey("companies.id", ondelete="SET NULL"), nullable=True, index=True),
        sa.Column("is_active", sa.Boolean, server_default=sa.text("true")),
        sa.Column("last_login_at", sa.DateTime, nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )

    op.create_table(
        "company_plans",
        _uuid_pk(),
        sa.Column("company_id", UUID(as_uuid=True), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("plan_id", UUID(as_uuid=True), sa.ForeignKey("plans.id", ondelete="RESTRICT"), nullable=False, index=True),
        sa.Column("start_date", sa.Date, nullable=False),
        sa.Column("end_date", sa.Date, nullable=True),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("max_advisors_override", sa.Integer, nullable=True),
        sa.Column("net_price_override", sa.Numeric(12, 2), nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=True),
    )
    op.create_index(
        "uq_company_plans_one_active",
        "company_plans",
        ["company_id"],
        unique=True,
        postgresql_where=sa.text("active"),
    )

    op.create_table(
        "subscriptions",
        _uuid_pk(),
        sa.Column("company_id", UUID(as_uuid=True), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("plan_id", UUID(as_uuid=True), sa.ForeignKey("plans.id"), nullable=False, index=True),
        sa.Column("status", sa.String, nullable=False, server_default="pending", index=True),
        sa.Column("started_at", sa.DateTime, nullable=True),
        sa.Column("ended_at", sa.DateTime, nullable=True),
        sa.Column("external_customer_id", sa.String, nullable=True),
        sa.Column("external_subscription_id", sa.String, nullable=True, index=True),
        sa.Column("next_plan_id", UUID(as_uuid=True), sa.ForeignKey("plans.id"), nullable=True),
        sa.Column("next_plan_effective_date", sa.Date, nullable=True),
        sa.Column("metadata", JSONB, nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )

    op.create_table(
        "financial_movements",
        _uuid_pk(),
        sa.Column("company_id", UUID(as_uuid=True), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("date", sa.DateTime, nullable=False, server_default=sa.func.now(), index=True),
        sa.Column("type", sa.String, nullable=False, index=True),
        sa.Column("state", sa.String, nullable=False, server_default="pending", index=True),
        sa.Column("currency", sa.String, nullable=False, server_default="ARS"),
        sa.Column("net_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("tax", sa.Numeric(12, 2), nullable=True),
        sa.Column("total", sa.Numeric(12, 2), nullable=True),
        sa.Column("gateway", sa.String, nullable=False, server_default="simulada"),
        sa.Column("gateway_reference", sa.String, nullable=True),
        sa.Column("description", sa.String, nullable=True),
        sa.Column("origin", sa.String, nullable=True),
        sa.Column("period", sa.String(7), nullable=True, index=True),
        sa.Column("subtype", sa.String, nullable=True),
        sa.Column("cycle_start", sa.Date, nullable=True),
        sa.Column("metadata", JSONB, nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
        sa.CheckConstraint("type in ('subscription', 'extra_asesor', 'ajuste')", name="ck_movements_type"),
        sa.CheckConstraint("state in ('pending', 'paid', 'failed', 'refunded')", name="ck_movements_state"),
        sa.UniqueConstraint("company_id", "period", "type", "gateway", name="uq_movements_company_period_type"),
    )
    op.create_index(
        "uq_movements_pending_upgrade_per_cycle",
        "financial_movements",
        ["company_id", "cycle_start"],
        unique=True,
        postgresql_where=sa.text("state = 'pending' AND subtype = 'upgrade_prorrateo'"),
    )

    op.create_table(
        "webhook_events",
        _uuid_pk(),
        sa.Column("provider", sa.String, nullable=False, index=True),
        sa.Column("external_event_id", sa.String, nullable=False),
        sa.Column("event_type", sa.String, nullable=False, index=True),
        sa.Column("payload", JSONB, nullable=True),
        sa.Column("received_at", sa.DateTime, server_default=sa.func.now(), index=True),
        sa.Column("processed_at", sa.DateTime, nullable=True),
        sa.UniqueConstraint("provider", "external_event_id", name="uq_webhook_events_provider_event"),
    )

    op.create_table(
        "plan_audit_log",
        _uuid_pk(),
        sa.Column("actor_id", UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("actor_role", sa.String, nullable=True),
        sa.Column("action", sa.String, nullable=False),
        sa.Column("plan_id", UUID(as_uuid=True), nullable=True, index=True),
        sa.Column("values_before", JSONB, nullable=True),
        sa.Column("values_after", JSONB, nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("plan_audit_log")
    op.drop_table("webhook_events")
    op.drop_index("uq_movements_pending_upgrade_per_cycle", table_name="financial_movements")
    op.drop_table("financial_movements")
    op.drop_table("subscriptions")
    op.drop_index("uq_company_plans_one_active", table_name="company_plans")
    op.drop_table("company_plans")
    op.drop_table("users")
    op.drop_table("advisors")
    op.drop_table("companies")
    op.drop_table("plans")
