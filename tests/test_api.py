"""API tests against an in-memory SQLite database."""

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from taxrules.api import calculations
from taxrules.models import Tax, TaxRate, TaxRule, TaxRuleApplication
from factories import NOW, make_rule

CUSTOMER_ID = "3f2b8c1e-0d4a-4c8e-9a57-1b2c3d4e5f60"


def rule_payload(code: str, rate: float, priority: int = 0, **overrides) -> dict:
    payload = {
        "name": f"Rule {code}",
        "code": code,
        "type": "location",
        "tax_type": "percentage",
        "rate": rate,
        "priority": priority,
        "countries": ["US"],
    }
    payload.update(overrides)
    return payload


async def create_rule(client, base_url, code, rate, priority=0, **overrides) -> dict:
    resp = await client.post(f"{base_url}/rules", json=rule_payload(code, rate, priority, **overrides))
    assert resp.status_code == 201, resp.text
    return resp.json()


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


async def test_missing_auth_header(client, base_url):
    resp = await client.get(f"{base_url}/rules", headers={"Authorization": ""})
    assert resp.status_code == 401


async def test_unknown_api_key(client, base_url):
    resp = await client.get(f"{base_url}/rules", headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 403


async def test_tenant_mismatch_forbidden(client, tenant, other_tenant):
    resp = await client.get(f"/tenants/{other_tenant.tenant_id}/tax/rules")
    assert resp.status_code == 403


async def test_create_and_get_rule(client, base_url):
    created = await create_rule(client, base_url, "US-ST", 7.25, priority=10, states=["CA"])
    assert created["status"] == "active"
    assert created["method"] == "exclusive"
    assert created["rate"] == 7.25
    assert created["states"] == ["CA"]
    assert created["cities"] == []

    resp = await client.get(f"{base_url}/rules/{created['id']}")
    assert resp.status_code == 200
    assert resp.json()["code"] == "US-ST"

    resp = await client.get(f"{base_url}/rules/code/US-ST")
    assert resp.status_code == 200
    assert resp.json()["id"] == created["id"]


async def test_duplicate_rule_code_rejected(client, base_url):
    await create_rule(client, base_url, "DUP", 5)
    resp = await client.post(f"{base_url}/rules", json=rule_payload("DUP", 6))
    assert resp.status_code == 400
    assert resp.json()["detail"] == "tax rule code already exists"


async def test_invalid_rule_rejected(client, base_url):
    resp = await client.post(f"{base_url}/rules", json=rule_payload("BAD", -1))
    assert resp.status_code == 400
    assert resp.json()["detail"] == "invalid tax rate"

    resp = await client.post(f"{base_url}/rules/validate", json=rule_payload("OK", 1))
    assert resp.status_code == 200
    assert resp.json() == {"valid": True}


async def test_unknown_rule_is_404(client, base_url):
    resp = await client.get(f"{base_url}/rules/00000000-0000-0000-0000-000000000099")
    assert resp.status_code == 404
    resp = await client.get(f"{base_url}/rules/not-a-uuid")
    assert resp.status_code == 400


async def test_delete_active_rule_fails_until_deactivated(client, base_url):
    rule = await create_rule(client, base_url, "DEL", 5)

    resp = await client.delete(f"{base_url}/rules/{rule['id']}")
    assert resp.status_code == 400
    assert resp.json()["detail"] == "cannot delete active tax rule"

    resp = await client.put(f"{base_url}/rules/{rule['id']}", json={"status": "inactive"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "inactive"

    resp = await client.delete(f"{base_url}/rules/{rule['id']}")
    assert resp.status_code == 204
    resp = await client.get(f"{base_url}/rules/{rule['id']}")
    assert resp.status_code == 404

    # code is free again once the rule is deleted
    await create_rule(client, base_url, "DEL", 6)


async def test_calculate_records_tax_and_ordered_breakdown(client, base_url, db):
    low = await create_rule(client, base_url, "LOW", 2, priority=5)
    high = await create_rule(client, base_url, "HIGH", 8, priority=10)

    resp = await client.post(
        f"{base_url}/calculate",
        json={"amount": 100, "country": "US", "state": "CA", "customer_id": CUSTOMER_ID},
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["tax_amount"] == 10.0
    assert body["total_amount"] == 110.0
    assert body["effective_rate"] == 10.0
    assert body["location"] == "US, CA"
    assert [r["rule_id"] for r in body["applied_rules"]] == [high["id"], low["id"]]
    assert body["calculation_id"]

    assert (await db.execute(select(func.count()).select_from(Tax))).scalar_one() == 1
    applications = (
        await db.execute(select(TaxRuleApplication).order_by(TaxRuleApplication.sequence))
    ).scalars().all()
    assert [a.rule_code for a in applications] == ["HIGH", "LOW"]
    assert [a.sequence for a in applications] == [0, 1]
    assert all(str(a.tax_id) == body["calculation_id"] for a in applications)

    resp = await client.get(f"{base_url}/calculations/{body['calculation_id']}")
    assert resp.status_code == 200
    stored = resp.json()
    assert stored["tax_amount"] == 10.0
    assert [r["rule_code"] for r in stored["applied_rules"]] == ["HIGH", "LOW"]

    resp = await client.get(f"{base_url}/calculations", params={"customer_id": CUSTOMER_ID})
    assert resp.json()["total"] == 1


async def test_preview_writes_nothing(client, base_url, db):
    await create_rule(client, base_url, "PV", 10)
    payload = {"amount": 110, "country": "US", "method": "inclusive", "date": "2026-03-01T00:00:00Z"}

    first = await client.post(f"{base_url}/calculate/preview", json=payload)
    second = await client.post(f"{base_url}/calculate/preview", json=payload)
    assert first.status_code == 200
    assert first.json() == second.json()
    assert first.json()["taxable_amount"] == 100.0
    assert first.json()["calculation_id"] is None

    assert (await db.execute(select(func.count()).select_from(Tax))).scalar_one() == 0


async def test_no_applicable_rules(client, base_url):
    await create_rule(client, base_url, "US-ONLY", 10)
    resp = await client.post(f"{base_url}/calculate", json={"amount": 100, "country": "CA"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "no applicable tax rules found"


async def test_invalid_calculation_requests(client, base_url):
    await create_rule(client, base_url, "R", 10)
    resp = await client.post(f"{base_url}/calculate", json={"amount": -1, "country": "US"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "invalid amount"

    resp = await client.post(f"{base_url}/calculate", json={"amount": 10, "country": "USA"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "invalid location"


async def test_idempotent_replay_and_conflict(client, base_url, db):
    await create_rule(client, base_url, "IDEM", 10)
    payload = {"amount": 100, "country": "US", "idempotency_key": "order-1"}

    first = await client.post(f"{base_url}/calculate", json=payload)
    replay = await client.post(f"{base_url}/calculate", json=payload)
    assert first.status_code == replay.status_code == 200
    assert replay.json()["calculation_id"] == first.json()["calculation_id"]
    assert replay.json()["tax_amount"] == 10.0
    assert (await db.execute(select(func.count()).select_from(Tax))).scalar_one() == 1

    conflict = await client.post(f"{base_url}/calculate", json={**payload, "amount": 200})
    assert conflict.status_code == 409


async def test_idempotency_key_race_replays_committed_calculation(
    client, base_url, db, monkeypatch
):
    await create_rule(client, base_url, "RACE", 10)
    payload = {"amount": 100, "country": "US", "idempotency_key": "order-race"}
    first = await client.post(f"{base_url}/calculate", json=payload)
    assert first.status_code == 200

    real_lookup = calculations.get_tax_by_idempotency_key
    lookups = []

    async def lookup_before_other_commit(session, tenant_id, key):
        lookups.append(key)
        if len(lookups) == 1:
            return None
        return await real_lookup(session, tenant_id, key)

    monkeypatch.setattr(calculations, "get_tax_by_idempotency_key", lookup_before_other_commit)

    second = await client.post(f"{base_url}/calculate", json=payload)
    assert second.status_code == 200, second.text
    assert second.json()["calculation_id"] == first.json()["calculation_id"]
    assert len(lookups) == 2

    conflict = await client.post(f"{base_url}/calculate", json={**payload, "amount": 5})
    assert conflict.status_code == 409
    assert (await db.execute(select(func.count()).select_from(Tax))).scalar_one() == 1


async def test_rule_code_unique_among_live_rules(db, tenant):
    db.add(make_rule(code="UQ", tenant_id=tenant.tenant_id))
    await db.commit()

    db.add(make_rule(code="UQ", tenant_id=tenant.tenant_id))
    with pytest.raises(IntegrityError):
        await db.commit()
    await db.rollback()

    db.add(make_rule(code="UQ", tenant_id=tenant.tenant_id, status="archived", deleted_at=NOW))
    await db.commit()


async def test_applicable_rules_in_priority_order(client, base_url):
    await create_rule(client, base_url, "A", 1, priority=1)
    await create_rule(client, base_url, "B", 1, priority=9)
    await create_rule(client, base_url, "GB", 1, priority=5, countries=["GB"])

    resp = await client.post(f"{base_url}/rules/applicable", json={"amount": 10, "country": "US"})
    assert resp.status_code == 200
    assert [r["code"] for r in resp.json()["data"]] == ["B", "A"]


async def test_list_rules_pagination_and_filters(client, base_url):
    for i in range(3):
        await create_rule(client, base_url, f"P{i}", 1, priority=i)
    await create_rule(client, base_url, "FEE", 2, tax_type="fixed", countries=["GB"])

    resp = await client.get(f"{base_url}/rules", params={"page": 1, "page_size": 2})
    page = resp.json()
    assert page["total"] == 4
    assert page["total_pages"] == 2
    assert len(page["data"]) == 2

    resp = await client.get(f"{base_url}/rules", params={"country": "gb"})
    assert [r["code"] for r in resp.json()["data"]] == ["FEE"]

    resp = await client.get(f"{base_url}/rules", params={"tax_type": "fixed", "page_size": 500})
    assert resp.json()["page_size"] == 20
    assert resp.json()["total"] == 1


async def test_bulk_rule_operations(client, base_url, db):
    resp = await client.post(
        f"{base_url}/rules/bulk",
        json={"rules": [rule_payload("B1", 1), rule_payload("B2", 2)]},
    )
    assert resp.status_code == 201
    ids = [r["id"] for r in resp.json()["data"]]

    resp = await client.post(f"{base_url}/rules/bulk/delete", json={"rule_ids": ids})
    assert resp.status_code == 400

    resp = await client.post(
        f"{base_url}/rules/bulk/status", json={"rule_ids": ids, "status": "inactive"}
    )
    assert resp.json()["count"] == 2

    resp = await client.post(f"{base_url}/rules/bulk/delete", json={"rule_ids": ids})
    assert resp.json()["count"] == 2
    live = (
        await db.execute(
            select(func.count()).select_from(TaxRule).where(TaxRule.deleted_at.is_(None))
        )
    ).scalar_one()
    assert live == 0


async def test_bulk_create_is_all_or_nothing(client, base_url, db):
    resp = await client.post(
        f"{base_url}/rules/bulk",
        json={"rules": [rule_payload("OK1", 1), rule_payload("BAD", 1, type="planet")]},
    )
    assert resp.status_code == 400
    assert (await db.execute(select(func.count()).select_from(TaxRule))).scalar_one() == 0


async def test_rates_crud(client, base_url):
    rule = await create_rule(client, base_url, "RATED", 7.25)
    resp = await client.post(
        f"{base_url}/rates",
        json={
            "rule_id": rule["id"],
            "name": "LA County",
            "rate": 2.25,
            "tax_type": "percentage",
            "country": "us",
            "state": "CA",
            "city": "Los Angeles",
        },
    )
    assert resp.status_code == 201, resp.text
    rate = resp.json()
    assert rate["country"] == "US"
    assert rate["is_active"] is True

    resp = await client.get(f"{base_url}/rules/{rule['id']}/rates")
    assert [r["id"] for r in resp.json()["data"]] == [rate["id"]]

    resp = await client.put(f"{base_url}/rates/{rate['id']}", json={"rate": 2.5})
    assert resp.json()["rate"] == 2.5

    resp = await client.post(
        f"{base_url}/rates/bulk/status", json={"rate_ids": [rate["id"]], "is_active": False}
    )
    assert resp.json()["count"] == 1

    resp = await client.delete(f"{base_url}/rates/{rate['id']}")
    assert resp.status_code == 204
    resp = await client.get(f"{base_url}/rates/{rate['id']}")
    assert resp.status_code == 404


def rate_payload(rule_id: str, name: str, rate: float, **overrides) -> dict:
    payload = {"rule_id": rule_id, "name": name, "rate": rate, "tax_type": "percentage", "country": "US"}
    payload.update(overrides)
    return payload


async def test_bulk_create_rates(client, base_url):
    rule = await create_rule(client, base_url, "MULTI", 5)
    resp = await client.post(
        f"{base_url}/rates/bulk",
        json={
            "rates": [
                rate_payload(rule["id"], "CA", 7.25, state="CA"),
                rate_payload(rule["id"], "NY", 4, state="NY"),
            ]
        },
    )
    assert resp.status_code == 201, resp.text
    assert resp.json()["count"] == 2

    resp = await client.get(f"{base_url}/rules/{rule['id']}/rates")
    assert sorted(r["state"] for r in resp.json()["data"]) == ["CA", "NY"]


async def test_bulk_create_rates_is_all_or_nothing(client, base_url, db):
    rule = await create_rule(client, base_url, "ATOMIC", 5)

    resp = await client.post(
        f"{base_url}/rates/bulk",
        json={"rates": [rate_payload(rule["id"], "ok", 1), rate_payload(rule["id"], "bad", -1)]},
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "invalid tax rate"

    missing_rule = "00000000-0000-4000-8000-000000000000"
    resp = await client.post(
        f"{base_url}/rates/bulk",
        json={"rates": [rate_payload(rule["id"], "ok", 1), rate_payload(missing_rule, "orphan", 1)]},
    )
    assert resp.status_code == 404
    assert (await db.execute(select(func.count()).select_from(TaxRate))).scalar_one() == 0

    resp = await client.post(f"{base_url}/rates/bulk", json={"rates": []})
    assert resp.status_code == 400


async def test_non_finite_amount_is_bad_request(client, base_url):
    await create_rule(client, base_url, "GLOBAL", 10)
    for body in (b'{"amount": NaN, "country": "US"}', b'{"amount": Infinity, "country": "US"}'):
        resp = await client.post(
            f"{base_url}/calculate/preview",
            content=body,
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 400
        assert resp.json()["detail"] == "invalid amount"


async def test_stats_and_cleanup(client, base_url):
    await create_rule(client, base_url, "S1", 10)
    await create_rule(
        client, base_url, "EXPIRED", 5, valid_from="2020-01-01T00:00:00Z", valid_to="2020-12-31T00:00:00Z"
    )
    await client.post(f"{base_url}/calculate", json={"amount": 50, "country": "US", "state": "CA"})

    stats = (await client.get(f"{base_url}/stats")).json()
    assert stats["total_rules"] == 2
    assert stats["active_rules"] == 2
    assert stats["total_calculations"] == 1
    assert stats["total_tax_amount"] == 5.0

    by_location = (await client.get(f"{base_url}/stats/locations")).json()["data"]
    assert by_location[0]["country"] == "US"
    assert by_location[0]["state"] == "CA"

    by_type = (await client.get(f"{base_url}/stats/types")).json()["data"]
    assert by_type[0]["tax_type"] == "percentage"

    resp = await client.post(f"{base_url}/cleanup/rules")
    assert resp.json()["count"] == 1
    resp = await client.get(f"{base_url}/rules/code/EXPIRED")
    assert resp.json()["status"] == "archived"


async def test_location_endpoints(client, base_url):
    resp = await client.post(f"{base_url}/validate/location", json={"country": "US", "state": "CA"})
    assert resp.status_code == 200
    assert resp.json()["valid"] is True

    resp = await client.post(f"{base_url}/validate/location", json={"country": "USA"})
    assert resp.status_code == 400

    resp = await client.get(f"{base_url}/locations")
    assert "US" in resp.json()["countries"]
