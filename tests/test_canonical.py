"""Unit tests for canonical JSON and request hashing."""

from datetime import datetime, timezone
from decimal import Decimal

from taxrules.utils.canonical import canonical_json, request_hash


def test_canonical_json_sorts_keys():
    """Canonical JSON sorts keys."""
    assert canonical_json({"b": 1, "a": 2}) == '{"a":2,"b":1}'


def test_integral_numbers_hash_alike():
    """100, 100.0 and Decimal("100.00") are the same amount."""
    h = request_hash({"amount": 100})
    assert request_hash({"amount": 100.0}) == h
    assert request_hash({"amount": Decimal("100.00")}) == h
    assert request_hash({"amount": 100.5}) != h


def test_request_hash_deterministic():
    obj = {"amount": 100, "country": "US", "category_ids": ["a", "b"]}
    assert request_hash(obj) == request_hash(dict(reversed(list(obj.items()))))
    assert len(request_hash(obj)) == 64  # SHA256 hex


def test_datetimes_serialize_iso():
    when = datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert canonical_json({"date": when}) == '{"date":"2026-01-01T00:00:00+00:00"}'


def test_list_order_matters():
    assert request_hash({"x": ["a", "b"]}) != request_hash({"x": ["b", "a"]})
