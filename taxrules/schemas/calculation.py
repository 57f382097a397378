"""Tax calculation request/response schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class TaxCalculationRequest(BaseModel):
    """POST /tax/calculate request.

    Amount, country and method are checked by the engine rather than by
    pydantic so that bad values surface as 400 tax errors, not 422s.
    """

    amount: float
    country: str
    state: str = ""
    city: str = ""
    postal_code: str = ""
    product_id: str | None = None
    customer_id: str | None = None
    category_ids: list[str] = Field(default_factory=list)
    customer_groups: list[str] = Field(default_factory=list)
    order_id: str | None = None
    method: str | None = None
    date: datetime | None = None
    idempotency_key: str | None = None


class AppliedTaxRuleResponse(BaseModel):
    """One rule's contribution to a calculation."""

    rule_id: str
    rule_name: str
    rule_code: str
    applied_rate: float
    taxable_amount: float
    tax_amount: float
    priority: int


class TaxCalculationResponse(BaseModel):
    """Result of a tax calculation."""

    calculation_id: str | None = None
    taxable_amount: float
    tax_amount: float
    total_amount: float
    effective_rate: float
    method: str
    location: str
    applied_rules: list[AppliedTaxRuleResponse] = Field(default_factory=list)
    calculated_at: datetime


class LocationValidationRequest(BaseModel):
    """POST /tax/validate/location request."""

    country: str
    state: str = ""
    city: str = ""
    zip_code: str = ""
