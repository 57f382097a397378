"""Tax rule and tax rate admin schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

_SCOPE_FIELDS = (
    "countries",
    "states",
    "cities",
    "postal_codes",
    "product_ids",
    "category_ids",
    "customer_ids",
    "customer_groups",
)


class CreateTaxRuleRequest(BaseModel):
    """POST /tax/rules request."""

    name: str
    description: str = ""
    code: str
    type: str
    tax_type: str
    rate: float
    method: str = ""
    priority: int = 0
    is_compound: bool = False
    is_inclusive: bool = False
    valid_from: datetime | None = None
    valid_to: datetime | None = None

    # Location targeting
    countries: list[str] = Field(default_factory=list)
    states: list[str] = Field(default_factory=list)
    cities: list[str] = Field(default_factory=list)
    postal_codes: list[str] = Field(default_factory=list)

    # Product/category targeting
    product_ids: list[str] = Field(default_factory=list)
    category_ids: list[str] = Field(default_factory=list)

    # Customer targeting
    customer_ids: list[str] = Field(default_factory=list)
    customer_groups: list[str] = Field(default_factory=list)

    min_amount: float | None = None
    max_amount: float | None = None


class UpdateTaxRuleRequest(BaseModel):
    """PUT /tax/rules/{rule_id} request - omitted fields stay unchanged."""

    name: str | None = None
    description: str | None = None
    status: str | None = None
    tax_type: str | None = None
    rate: float | None = None
    method: str | None = None
    priority: int | None = None
    is_compound: bool | None = None
    is_inclusive: bool | None = None
    valid_from: datetime | None = None
    valid_to: datetime | None = None

    countries: list[str] | None = None
    states: list[str] | None = None
    cities: list[str] | None = None
    postal_codes: list[str] | None = None
    product_ids: list[str] | None = None
    category_ids: list[str] | None = None
    customer_ids: list[str] | None = None
    customer_groups: list[str] | None = None

    min_amount: float | None = None
    max_amount: float | None = None


class TaxRuleResponse(BaseModel):
    """Tax rule as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str = ""
    code: str
    type: str
    status: str
    tax_type: str
    rate: float
    method: str
    priority: int
    is_compound: bool
    is_inclusive: bool
    valid_from: datetime | None = None
    valid_to: datetime | None = None

    countries: list[str] = Field(default_factory=list)
    states: list[str] = Field(default_factory=list)
    cities: list[str] = Field(default_factory=list)
    postal_codes: list[str] = Field(default_factory=list)
    product_ids: list[str] = Field(default_factory=list)
    category_ids: list[str] = Field(default_factory=list)
    customer_ids: list[str] = Field(default_factory=list)
    customer_groups: list[str] = Field(default_factory=list)

    min_amount: float | None = None
    max_amount: float | None = None
    created_at: datetime
    updated_at: datetime

    @field_validator(*_SCOPE_FIELDS, mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return v or []


class BulkCreateTaxRulesRequest(BaseModel):
    """POST /tax/rules/bulk request."""

    rules: list[CreateTaxRuleRequest]


class BulkRuleStatusRequest(BaseModel):
    """POST /tax/rules/bulk/status request."""

    rule_ids: list[str]
    status: str


class BulkRuleDeleteRequest(BaseModel):
    """POST /tax/rules/bulk/delete request."""

    rule_ids: list[str]


class CreateTaxRateRequest(BaseModel):
    """POST /tax/rates request."""

    rule_id: str
    name: str
    rate: float
    tax_type: str
    description: str = ""
    country: str
    state: str = ""
    city: str = ""
    postal_code: str = ""
    valid_from: datetime | None = None
    valid_to: datetime | None = None


class UpdateTaxRateRequest(BaseModel):
    """PUT /tax/rates/{rate_id} request."""

    name: str | None = None
    rate: float | None = None
    tax_type: str | None = None
    description: str | None = None
    state: str | None = None
    city: str | None = None
    postal_code: str | None = None
    valid_from: datetime | None = None
    valid_to: datetime | None = None
    is_active: bool | None = None


class TaxRateResponse(BaseModel):
    """Tax rate as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    rule_id: str
    name: str
    rate: float
    tax_type: str
    description: str = ""
    country: str
    state: str = ""
    city: str = ""
    postal_code: str = ""
    valid_from: datetime | None = None
    valid_to: datetime | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class BulkRateStatusRequest(BaseModel):
    """POST /tax/rates/bulk/status request."""

    rate_ids: list[str]
    is_active: bool


class BulkCreateTaxRatesRequest(BaseModel):
    """POST /tax/rates/bulk request."""

    rates: list[CreateTaxRateRequest]
