"""Initial schema - tenants, tax_rules, tax_rates, taxes, tax_rule_applications.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SCOPE_COLUMNS = (
    "countries",
    "states",
    "cities",
    "postal_codes",
    "product_ids",
    "category_ids",
    "customer_ids",
    "customer_groups",
)


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("tenant_id", sa.UUID(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("api_key_hash", sa.String(255), unique=True, nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )

    op.create_table(
        "tax_rules",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("tenant_id", sa.UUID(), sa.ForeignKey("tenants.tenant_id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("tax_type", sa.String(20), nullable=False, server_default="percentage"),
        sa.Column("rate", sa.Numeric(12, 4), nullable=False),
        sa.Column("method", sa.String(20), nullable=False, server_default="exclusive"),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_compound", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_inclusive", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("valid_from", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("valid_to", sa.TIMESTAMP(timezone=True), nullable=True),
        *[sa.Column(name, postgresql.JSONB(), nullable=True) for name in SCOPE_COLUMNS],
        sa.Column("min_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("max_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("deleted_at", sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index("ix_tax_rules_tenant_id", "tax_rules", ["tenant_id"])
    op.create_index("ix_tax_rules_deleted_at", "tax_rules", ["deleted_at"])
    op.create_index(
        "ix_tax_rules_tenant_status_priority", "tax_rules", ["tenant_id", "status", "priority"]
    )
    # Codes are unique per tenant among live rules
    op.create_index(
        "uq_tax_rules_tenant_code",
        "tax_rules",
        ["tenant_id", "code"],
        unique=True,
        postgresql_where=sa.text("deleted_at IS NULL"),
    )

    op.create_table(
        "tax_rates",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("tenant_id", sa.UUID(), sa.ForeignKey("tenants.tenant_id"), nullable=False),
        sa.Column("rule_id", sa.UUID(), sa.ForeignKey("tax_rules.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("rate", sa.Numeric(12, 4), nullable=False),
        sa.Column("tax_type", sa.String(20), nullable=False, server_default="percentage"),
        sa.Column("country", sa.String(2), nullable=False),
        sa.Column("state", sa.String(100), nullable=False, server_default=""),
        sa.Column("city", sa.String(100), nullable=False, server_default=""),
        sa.Column("postal_code", sa.String(20), nullable=False, server_default=""),
        sa.Column("valid_from", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("valid_to", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("deleted_at", sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index("ix_tax_rates_tenant_id", "tax_rates", ["tenant_id"])
    op.create_index("ix_tax_rates_rule_id", "tax_rates", ["rule_id"])
    op.create_index("ix_tax_rates_deleted_at", "tax_rates", ["deleted_at"])

    op.create_table(
        "taxes",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("tenant_id", sa.UUID(), sa.ForeignKey("tenants.tenant_id"), nullable=False),
        sa.Column("order_id", sa.UUID(), nullable=True),
        sa.Column("product_id", sa.UUID(), nullable=True),
        sa.Column("customer_id", sa.UUID(), nullable=True),
        sa.Column("taxable_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("tax_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("tax_rate", sa.Numeric(12, 2), nullable=False),
        sa.Column("tax_type", sa.String(20), nullable=False),
        sa.Column("method", sa.String(20), nullable=False),
        sa.Column("country", sa.String(2), nullable=False),
        sa.Column("state", sa.String(100), nullable=False, server_default=""),
        sa.Column("city", sa.String(100), nullable=False, server_default=""),
        sa.Column("postal_code", sa.String(20), nullable=False, server_default=""),
        sa.Column("location", sa.Text(), nullable=False, server_default=""),
        sa.Column("idempotency_key", sa.Text(), nullable=True),
        sa.Column("request_hash", sa.Text(), nullable=True),
        sa.Column("calculated_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )
    for column in ("tenant_id", "order_id", "product_id", "customer_id"):
        op.create_index(f"ix_taxes_{column}", "taxes", [column])
    # Partial unique: only when idempotency_key is provided
    op.create_index(
        "uq_taxes_tenant_idempotency",
        "taxes",
        ["tenant_id", "idempotency_key"],
        unique=True,
        postgresql_where=sa.text("idempotency_key IS NOT NULL"),
    )

    op.create_table(
        "tax_rule_applications",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("tenant_id", sa.UUID(), sa.ForeignKey("tenants.tenant_id"), nullable=False),
        sa.Column("tax_id", sa.UUID(), sa.ForeignKey("taxes.id"), nullable=False),
        sa.Column("rule_id", sa.UUID(), nullable=False),
        sa.Column("rule_name", sa.String(255), nullable=False),
        sa.Column("rule_code", sa.String(50), nullable=False),
        sa.Column("applied_rate", sa.Numeric(12, 4), nullable=False),
        sa.Column("taxable_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("tax_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )
    for column in ("tenant_id", "tax_id", "rule_id"):
        op.create_index(f"ix_tax_rule_applications_{column}", "tax_rule_applications", [column])


def downgrade() -> None:
    op.drop_table("tax_rule_applications")
    op.drop_index("uq_taxes_tenant_idempotency", table_name="taxes")
    op.drop_table("taxes")
    op.drop_table("tax_rates")
    op.drop_index("uq_tax_rules_tenant_code", table_name="tax_rules")
    op.drop_table("tax_rules")
    op.drop_table("tenants")
