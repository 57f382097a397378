"""Builders for unsaved model objects used by the engine tests."""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from taxrules.models import TaxRule
from taxrules.schemas.calculation import TaxCalculationRequest

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_rule(code="R1", rate=10, tax_type="percentage", priority=0, **overrides) -> TaxRule:
    fields = {
        "id": str(uuid4()),
        "tenant_id": str(uuid4()),
        "name": f"Rule {code}",
        "description": "",
        "code": code,
        "type": "global",
        "status": "active",
        "tax_type": tax_type,
        "rate": Decimal(str(rate)),
        "method": "exclusive",
        "priority": priority,
        "is_compound": False,
        "is_inclusive": False,
        "valid_from": None,
        "valid_to": None,
        "countries": [],
        "states": [],
        "cities": [],
        "postal_codes": [],
        "product_ids": [],
        "category_ids": [],
        "customer_ids": [],
        "customer_groups": [],
        "min_amount": None,
        "max_amount": None,
        "created_at": NOW,
        "updated_at": NOW,
    }
    fields.update(overrides)
    return TaxRule(**fields)


def make_request(amount=100, country="US", **kwargs) -> TaxCalculationRequest:
    return TaxCalculationRequest(amount=amount, country=country, **kwargs)
