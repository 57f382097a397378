"""Database models."""

from taxrules.models.tenant import Tenant
from taxrules.models.tax_rule import TaxRate, TaxRule
from taxrules.models.tax import Tax, TaxRuleApplication

__all__ = ["Tenant", "TaxRule", "TaxRate", "Tax", "TaxRuleApplication"]
