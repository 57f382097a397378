"""Tax rule and tax rate models."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from taxrules.database import Base

# Tax calculation types
TAX_TYPE_PERCENTAGE = "percentage"
TAX_TYPE_FIXED = "fixed"
TAX_TYPE_COMPOUND = "compound"
TAX_TYPES = (TAX_TYPE_PERCENTAGE, TAX_TYPE_FIXED, TAX_TYPE_COMPOUND)

# Rule types
RULE_TYPES = ("product", "category", "location", "customer", "global")

# Rule statuses
STATUS_ACTIVE = "active"
STATUS_INACTIVE = "inactive"
STATUS_ARCHIVED = "archived"
STATUSES = (STATUS_ACTIVE, STATUS_INACTIVE, STATUS_ARCHIVED)

# Calculation methods
METHOD_INCLUSIVE = "inclusive"  # tax included in price
METHOD_EXCLUSIVE = "exclusive"  # tax added to price
METHODS = (METHOD_INCLUSIVE, METHOD_EXCLUSIVE)

# JSONB on Postgres, plain JSON elsewhere (tests run on SQLite)
JSONList = JSON().with_variant(JSONB(), "postgresql")


class TaxRule(Base):
    """Tenant-scoped tax rule: a rate plus the conditions it applies under."""

    __tablename__ = "tax_rules"
    __table_args__ = (
        Index("ix_tax_rules_tenant_status_priority", "tenant_id", "status", "priority"),
        # Codes are unique per tenant among live rules
        Index(
            "uq_tax_rules_tenant_code",
            "tenant_id",
            "code",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("tenants.tenant_id"), nullable=False, index=True
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=STATUS_ACTIVE)

    tax_type: Mapped[str] = mapped_column(String(20), nullable=False, default=TAX_TYPE_PERCENTAGE)
    rate: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False, default=METHOD_EXCLUSIVE)

    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_compound: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_inclusive: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    valid_from: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    valid_to: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Scope lists: empty means unrestricted
    countries: Mapped[list | None] = mapped_column(JSONList, nullable=True)
    states: Mapped[list | None] = mapped_column(JSONList, nullable=True)
    cities: Mapped[list | None] = mapped_column(JSONList, nullable=True)
    postal_codes: Mapped[list | None] = mapped_column(JSONList, nullable=True)
    product_ids: Mapped[list | None] = mapped_column(JSONList, nullable=True)
    category_ids: Mapped[list | None] = mapped_column(JSONList, nullable=True)
    customer_ids: Mapped[list | None] = mapped_column(JSONList, nullable=True)
    customer_groups: Mapped[list | None] = mapped_column(JSONList, nullable=True)

    min_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    max_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )


class TaxRate(Base):
    """Location/time-scoped rate attached to a rule."""

    __tablename__ = "tax_rates"

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("tenants.tenant_id"), nullable=False, index=True
    )
    rule_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("tax_rules.id"), nullable=False, index=True
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    rate: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    tax_type: Mapped[str] = mapped_column(String(20), nullable=False, default=TAX_TYPE_PERCENTAGE)

    country: Mapped[str] = mapped_column(String(2), nullable=False)
    state: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    city: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    postal_code: Mapped[str] = mapped_column(String(20), nullable=False, default="")

    valid_from: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    valid_to: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )

