"""Tax statistics schemas."""

from pydantic import BaseModel


class TaxStats(BaseModel):
    total_rules: int = 0
    active_rules: int = 0
    inactive_rules: int = 0
    total_rates: int = 0
    active_rates: int = 0
    total_calculations: int = 0
    total_tax_amount: float = 0.0
    average_tax_rate: float = 0.0


class TaxByLocation(BaseModel):
    country: str
    state: str = ""
    city: str = ""
    calculations: int
    total_tax: float
    average_rate: float


class TaxByType(BaseModel):
    tax_type: str
    calculations: int
    total_tax: float
    average_rate: float


class CleanupResponse(BaseModel):
    message: str
    count: int
