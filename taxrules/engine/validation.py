"""Validation of tax rule, tax rate and location payloads."""

from uuid import UUID

from taxrules.engine.matching import as_utc
from taxrules.errors import (
    InvalidAmountRange,
    InvalidDateRange,
    InvalidLocation,
    InvalidMethod,
    InvalidRate,
    InvalidRuleType,
    InvalidStatus,
    InvalidTaxType,
    ValidationFailed,
)
from taxrules.models.tax_rule import METHODS, RULE_TYPES, STATUSES, TAX_TYPES


def parse_id(value: str, label: str = "id") -> str:
    """Return ``value`` as a canonical UUID string or raise ValidationFailed."""
    try:
        return str(UUID(str(value)))
    except ValueError:
        raise ValidationFailed(f"invalid {label}: {value}") from None


def _check_date_range(valid_from, valid_to) -> None:
    if valid_from is not None and valid_to is not None and as_utc(valid_from) > as_utc(valid_to):
        raise InvalidDateRange()


def _check_amount_range(min_amount, max_amount) -> None:
    if min_amount is not None and max_amount is not None and min_amount > max_amount:
        raise InvalidAmountRange()


def validate_tax_rule(req) -> None:
    """Checks a create request; raises the first problem found."""
    if not req.name.strip():
        raise ValidationFailed("name is required")
    if not req.code.strip():
        raise ValidationFailed("code is required")
    if len(req.code) > 50:
        raise ValidationFailed("code must be at most 50 characters")
    if req.type not in RULE_TYPES:
        raise InvalidRuleType(f"invalid rule type: {req.type}")
    if req.tax_type not in TAX_TYPES:
        raise InvalidTaxType(f"invalid tax type: {req.tax_type}")
    if req.rate < 0:
        raise InvalidRate()
    if req.method and req.method not in METHODS:
        raise InvalidMethod(f"invalid method: {req.method}")
    _check_date_range(req.valid_from, req.valid_to)
    _check_amount_range(req.min_amount, req.max_amount)


def validate_tax_rule_update(req, rule) -> None:
    """Checks an update request against the rule it will be applied to."""
    if req.name is not None and not req.name.strip():
        raise ValidationFailed("name is required")
    if req.status is not None and req.status not in STATUSES:
        raise InvalidStatus(f"invalid status: {req.status}")
    if req.tax_type is not None and req.tax_type not in TAX_TYPES:
        raise InvalidTaxType(f"invalid tax type: {req.tax_type}")
    if req.rate is not None and req.rate < 0:
        raise InvalidRate()
    if req.method is not None and req.method not in METHODS:
        raise InvalidMethod(f"invalid method: {req.method}")

    valid_from = req.valid_from if req.valid_from is not None else rule.valid_from
    valid_to = req.valid_to if req.valid_to is not None else rule.valid_to
    _check_date_range(valid_from, valid_to)

    min_amount = req.min_amount if req.min_amount is not None else rule.min_amount
    max_amount = req.max_amount if req.max_amount is not None else rule.max_amount
    if min_amount is not None and max_amount is not None:
        _check_amount_range(float(min_amount), float(max_amount))


def validate_tax_rate(req) -> None:
    if not req.name.strip():
        raise ValidationFailed("name is required")
    if req.rate < 0:
        raise InvalidRate()
    if req.tax_type not in TAX_TYPES:
        raise InvalidTaxType(f"invalid tax type: {req.tax_type}")
    if len(req.country) != 2:
        raise InvalidLocation("country must be a 2-letter code")
    _check_date_range(req.valid_from, req.valid_to)


def validate_tax_rate_update(req, rate) -> None:
    if req.name is not None and not req.name.strip():
        raise ValidationFailed("name is required")
    if req.rate is not None and req.rate < 0:
        raise InvalidRate()
    if req.tax_type is not None and req.tax_type not in TAX_TYPES:
        raise InvalidTaxType(f"invalid tax type: {req.tax_type}")
    valid_from = req.valid_from if req.valid_from is not None else rate.valid_from
    valid_to = req.valid_to if req.valid_to is not None else rate.valid_to
    _check_date_range(valid_from, valid_to)


def validate_location(country: str, state: str = "", city: str = "", postal_code: str = "") -> None:
    if len(country) != 2:
        raise InvalidLocation("country must be a 2-letter code")
