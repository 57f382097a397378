"""Tax rule applicability predicates.

Each predicate looks at one dimension of a rule. A scope list that is empty
(or unset) places no restriction on that dimension.
"""

from datetime import datetime, timezone
from decimal import Decimal

from taxrules.models.tax_rule import STATUS_ACTIVE
from taxrules.schemas.calculation import TaxCalculationRequest


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _matches_any(scope: list | None, value: str | None) -> bool:
    """Case-insensitive membership; an empty scope matches everything."""
    if not scope:
        return True
    if value is None:
        return False
    needle = value.casefold()
    return any(str(item).casefold() == needle for item in scope)


def _intersects(scope: list | None, values: list[str]) -> bool:
    wanted = {str(v).casefold() for v in values}
    return any(str(item).casefold() in wanted for item in scope or [])


def is_active(rule) -> bool:
    return rule.status == STATUS_ACTIVE


def can_delete(rule) -> bool:
    """Active rules must be deactivated before they can be deleted."""
    return rule.status != STATUS_ACTIVE


def is_valid_for_date(rule, date: datetime) -> bool:
    """Validity window is inclusive on both ends."""
    date = as_utc(date)
    if rule.valid_from is not None and date < as_utc(rule.valid_from):
        return False
    if rule.valid_to is not None and date > as_utc(rule.valid_to):
        return False
    return True


def is_valid_for_amount(rule, amount) -> bool:
    amount = to_decimal(amount)
    if rule.min_amount is not None and amount < to_decimal(rule.min_amount):
        return False
    if rule.max_amount is not None and amount > to_decimal(rule.max_amount):
        return False
    return True


def is_valid_for_location(
    rule, country: str, state: str = "", city: str = "", postal_code: str = ""
) -> bool:
    return (
        _matches_any(rule.countries, country)
        and _matches_any(rule.states, state)
        and _matches_any(rule.cities, city)
        and _matches_any(rule.postal_codes, postal_code)
    )


def is_valid_for_product(
    rule, product_id: str | None, category_ids: list[str] | None = None
) -> bool:
    """Product list wins over category list when both are set.

    Category scopes are only checked when the caller supplies categories.
    """
    if rule.product_ids:
        return _matches_any(rule.product_ids, product_id)
    if rule.category_ids and category_ids:
        return _intersects(rule.category_ids, category_ids)
    return True


def is_valid_for_customer(
    rule, customer_id: str | None, customer_groups: list[str] | None = None
) -> bool:
    """Customer list wins over group list; groups compare case-insensitively."""
    if rule.customer_ids:
        return _matches_any(rule.customer_ids, customer_id)
    if rule.customer_groups and customer_groups:
        return _intersects(rule.customer_groups, customer_groups)
    return True


def is_applicable(rule, request: TaxCalculationRequest, date: datetime) -> bool:
    """Full applicability check for one rule against a calculation request."""
    return (
        is_active(rule)
        and is_valid_for_date(rule, date)
        and is_valid_for_amount(rule, request.amount)
        and is_valid_for_location(
            rule, request.country, request.state, request.city, request.postal_code
        )
        and is_valid_for_product(rule, request.product_id, request.category_ids)
        and is_valid_for_customer(rule, request.customer_id, request.customer_groups)
    )
