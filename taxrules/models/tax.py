"""Tax calculation and rule application audit models."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taxrules.database import Base


class Tax(Base):
    """Committed tax calculation - append-only."""

    __tablename__ = "taxes"
    __table_args__ = (
        Index(
            "uq_taxes_tenant_idempotency",
            "tenant_id",
            "idempotency_key",
            unique=True,
            postgresql_where=text("idempotency_key IS NOT NULL"),
            sqlite_where=text("idempotency_key IS NOT NULL"),
        ),
    )

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("tenants.tenant_id"), nullable=False, index=True
    )
    order_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), nullable=True, index=True)
    product_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), nullable=True, index=True)
    customer_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), nullable=True, index=True)

    taxable_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)  # effective, percent
    tax_type: Mapped[str] = mapped_column(String(20), nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False)

    country: Mapped[str] = mapped_column(String(2), nullable=False)
    state: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    city: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    postal_code: Mapped[str] = mapped_column(String(20), nullable=False, default="")
    location: Mapped[str] = mapped_column(Text, nullable=False, default="")

    idempotency_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    request_hash: Mapped[str | None] = mapped_column(Text, nullable=True)

    calculated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    applied_rules: Mapped[list["TaxRuleApplication"]] = relationship(
        order_by="TaxRuleApplication.sequence",
        lazy="selectin",
    )


class TaxRuleApplication(Base):
    """One rule's contribution to one calculation.

    ``rule_id`` is a weak reference: rule name, code and rate are copied at
    calculation time so later rule edits leave the history untouched.
    """

    __tablename__ = "tax_rule_applications"

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("tenants.tenant_id"), nullable=False, index=True
    )
    tax_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("taxes.id"), nullable=False, index=True
    )
    rule_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), nullable=False, index=True)

    rule_name: Mapped[str] = mapped_column(String(255), nullable=False)
    rule_code: Mapped[str] = mapped_column(String(50), nullable=False)
    applied_rate: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    taxable_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
