"""Tax calculation engine - prioritized, auditable rule application."""

import logging
import math
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from taxrules.engine.matching import as_utc, is_applicable, to_decimal
from taxrules.errors import InvalidAmount, InvalidLocation, InvalidMethod, NoApplicableRules
from taxrules.models.tax_rule import (
    METHOD_EXCLUSIVE,
    METHOD_INCLUSIVE,
    METHODS,
    TAX_TYPE_FIXED,
    TAX_TYPE_PERCENTAGE,
)
from taxrules.schemas.calculation import (
    AppliedTaxRuleResponse,
    TaxCalculationRequest,
    TaxCalculationResponse,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0")


def round2(value: Decimal) -> Decimal:
    """Round half-up to 2 decimal places."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_location(country: str, state: str = "", city: str = "", postal_code: str = "") -> str:
    """e.g. ``US, CA, Los Angeles 90001``."""
    location = country
    if state:
        location += ", " + state
    if city:
        location += ", " + city
    if postal_code:
        location += " " + postal_code
    return location


def validate_calculation_request(request: TaxCalculationRequest) -> None:
    if not math.isfinite(request.amount) or request.amount < 0:
        raise InvalidAmount()
    if len(request.country) != 2:
        raise InvalidLocation()
    if request.method and request.method not in METHODS:
        raise InvalidMethod(f"invalid method: {request.method}")


def select_applicable_rules(rules: list, request: TaxCalculationRequest, date: datetime) -> list:
    """Keep the rules that apply to the request, preserving input order."""
    return [rule for rule in rules if is_applicable(rule, request, date)]


def sort_by_priority(rules: list) -> list:
    """Highest priority first; ties keep their incoming order."""
    return sorted(rules, key=lambda r: r.priority, reverse=True)


def rule_base_tax(rule, taxable_amount: Decimal) -> Decimal:
    """Tax a single rule levies on the taxable base."""
    rate = to_decimal(rule.rate)
    if rule.tax_type == TAX_TYPE_PERCENTAGE:
        return taxable_amount * rate / HUNDRED
    if rule.tax_type == TAX_TYPE_FIXED:
        return rate
    # compound tax type has no base term of its own
    return ZERO


def calculate(
    request: TaxCalculationRequest,
    rules: list,
    calculated_at: datetime,
    default_method: str = METHOD_EXCLUSIVE,
) -> TaxCalculationResponse:
    """Apply already-selected, priority-sorted rules to the request amount.

    Inclusive amounts are grossed down by the summed rate of every rule,
    whatever its tax type. Compound rules additionally tax the tax
    accumulated by the rules applied before them.
    """
    method = request.method or default_method
    amount = to_decimal(request.amount)

    taxable_amount = amount
    if method == METHOD_INCLUSIVE:
        total_rate = sum((to_decimal(rule.rate) for rule in rules), ZERO)
        if any(rule.tax_type != TAX_TYPE_PERCENTAGE for rule in rules):
            logger.warning(
                "Inclusive calculation sums non-percentage rule rates as percentages: %s",
                [rule.code for rule in rules if rule.tax_type != TAX_TYPE_PERCENTAGE],
            )
        if total_rate > 0:
            taxable_amount = amount / (1 + total_rate / HUNDRED)

    total_tax = ZERO
    applied: list[AppliedTaxRuleResponse] = []
    for rule in rules:
        rule_tax = rule_base_tax(rule, taxable_amount)
        if rule.is_compound and total_tax > 0 and rule.tax_type == TAX_TYPE_PERCENTAGE:
            rule_tax += total_tax * to_decimal(rule.rate) / HUNDRED
        rule_tax = round2(rule_tax)
        total_tax += rule_tax

        applied.append(
            AppliedTaxRuleResponse(
                rule_id=str(rule.id),
                rule_name=rule.name,
                rule_code=rule.code,
                applied_rate=float(to_decimal(rule.rate)),
                taxable_amount=float(round2(taxable_amount)),
                tax_amount=float(rule_tax),
                priority=rule.priority,
            )
        )

    total_tax = round2(total_tax)
    if method == METHOD_INCLUSIVE:
        total_amount = amount
    else:
        total_amount = taxable_amount + total_tax

    effective_rate = ZERO
    if taxable_amount > 0:
        effective_rate = round2(total_tax / taxable_amount * HUNDRED)

    return TaxCalculationResponse(
        taxable_amount=float(round2(taxable_amount)),
        tax_amount=float(total_tax),
        total_amount=float(round2(total_amount)),
        effective_rate=float(effective_rate),
        method=method,
        location=format_location(
            request.country, request.state, request.city, request.postal_code
        ),
        applied_rules=applied,
        calculated_at=calculated_at,
    )


def run_calculation(
    request: TaxCalculationRequest,
    candidate_rules: list,
    now: datetime,
    default_method: str = METHOD_EXCLUSIVE,
) -> tuple[TaxCalculationResponse, list]:
    """Validate, select, order and calculate.

    ``candidate_rules`` may be a superset of the applicable rules. Returns
    the response together with the rules that were applied, in order.
    """
    validate_calculation_request(request)
    date = as_utc(request.date) if request.date else now

    rules = sort_by_priority(select_applicable_rules(candidate_rules, request, date))
    if not rules:
        raise NoApplicableRules()

    return calculate(request, rules, calculated_at=date, default_method=default_method), rules
