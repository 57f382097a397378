"""Unit tests for rule applicability predicates."""

from datetime import datetime, timezone

from taxrules.engine.matching import (
    can_delete,
    is_applicable,
    is_valid_for_amount,
    is_valid_for_customer,
    is_valid_for_date,
    is_valid_for_location,
    is_valid_for_product,
)
from taxrules.schemas.calculation import TaxCalculationRequest
from factories import make_rule

JAN = datetime(2026, 1, 1, tzinfo=timezone.utc)
DEC = datetime(2026, 12, 31, 23, 59, 59, tzinfo=timezone.utc)


def test_date_window_is_inclusive():
    rule = make_rule(valid_from=JAN, valid_to=DEC)
    assert is_valid_for_date(rule, JAN)
    assert is_valid_for_date(rule, DEC)
    assert not is_valid_for_date(rule, datetime(2025, 12, 31, tzinfo=timezone.utc))
    assert not is_valid_for_date(rule, datetime(2027, 1, 1, tzinfo=timezone.utc))


def test_naive_dates_are_utc():
    rule = make_rule(valid_from=datetime(2026, 1, 1), valid_to=None)
    assert is_valid_for_date(rule, JAN)


def test_open_date_window():
    assert is_valid_for_date(make_rule(), datetime(1999, 1, 1, tzinfo=timezone.utc))


def test_amount_bounds_inclusive():
    rule = make_rule(min_amount=10, max_amount=100)
    assert is_valid_for_amount(rule, 10)
    assert is_valid_for_amount(rule, 100)
    assert not is_valid_for_amount(rule, 9.99)
    assert not is_valid_for_amount(rule, 100.01)


def test_location_case_insensitive():
    rule = make_rule(countries=["US"], states=["CA"], cities=["Los Angeles"])
    assert is_valid_for_location(rule, "us", "ca", "los angeles")
    assert not is_valid_for_location(rule, "US", "NY", "Los Angeles")


def test_empty_scope_matches_everything():
    rule = make_rule(countries=None, states=[])
    assert is_valid_for_location(rule, "DE", "", "", "")


def test_postal_code_scope():
    rule = make_rule(postal_codes=["90001"])
    assert is_valid_for_location(rule, "US", postal_code="90001")
    assert not is_valid_for_location(rule, "US", postal_code="10001")
    assert not is_valid_for_location(rule, "US")


def test_product_list_wins_over_categories():
    rule = make_rule(product_ids=["p-1"], category_ids=["c-1"])
    assert is_valid_for_product(rule, "P-1", ["c-9"])
    assert not is_valid_for_product(rule, "p-2", ["c-1"])
    assert not is_valid_for_product(rule, None)


def test_category_scope_only_checked_when_supplied():
    rule = make_rule(category_ids=["books"])
    assert is_valid_for_product(rule, None)
    assert is_valid_for_product(rule, None, ["Books", "toys"])
    assert not is_valid_for_product(rule, None, ["toys"])


def test_customer_and_group_scopes():
    by_id = make_rule(customer_ids=["cust-1"])
    assert is_valid_for_customer(by_id, "cust-1")
    assert not is_valid_for_customer(by_id, None)

    by_group = make_rule(customer_groups=["wholesale"])
    assert is_valid_for_customer(by_group, None)
    assert is_valid_for_customer(by_group, None, ["WHOLESALE"])
    assert not is_valid_for_customer(by_group, None, ["retail"])


def test_is_applicable_combines_all_dimensions():
    rule = make_rule(countries=["US"], min_amount=50, valid_from=JAN)
    request = TaxCalculationRequest(amount=75, country="US")
    assert is_applicable(rule, request, DEC)
    assert not is_applicable(rule, request.model_copy(update={"amount": 25}), DEC)
    assert not is_applicable(rule, request, datetime(2025, 6, 1, tzinfo=timezone.utc))
    assert not is_applicable(make_rule(status="archived"), request, DEC)


def test_can_delete_only_non_active():
    assert not can_delete(make_rule(status="active"))
    assert can_delete(make_rule(status="inactive"))
    assert can_delete(make_rule(status="archived"))
