#!/usr/bin/env python3
"""
Seed script: creates a demo tenant, API key and a small set of US/CA tax rules.
Run after migrations: python scripts/seed.py
"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import select

from taxrules.auth.middleware import hash_api_key
from taxrules.database import async_session_maker
from taxrules.models import TaxRate, TaxRule, Tenant

API_KEY = "sk_demo_taxrules_12345"  # Demo API key - print this for user

RULES = [
    {
        "code": "US-STATE",
        "name": "US state sales tax",
        "type": "location",
        "tax_type": "percentage",
        "rate": Decimal("7.25"),
        "priority": 10,
        "countries": ["US"],
        "states": ["CA"],
    },
    {
        "code": "US-LA-COUNTY",
        "name": "Los Angeles county tax",
        "type": "location",
        "tax_type": "percentage",
        "rate": Decimal("2.25"),
        "priority": 5,
        "countries": ["US"],
        "states": ["CA"],
        "cities": ["Los Angeles"],
    },
    {
        "code": "US-ENV-FEE",
        "name": "Environmental fee",
        "type": "global",
        "tax_type": "fixed",
        "rate": Decimal("1.50"),
        "priority": 1,
        "countries": ["US"],
        "min_amount": Decimal("100"),
    },
    {
        "code": "CA-GST",
        "name": "Canada GST",
        "type": "location",
        "tax_type": "percentage",
        "rate": Decimal("5"),
        "priority": 10,
        "countries": ["CA"],
    },
    {
        "code": "CA-QC-QST",
        "name": "Quebec QST",
        "type": "location",
        "tax_type": "percentage",
        "rate": Decimal("9.975"),
        "priority": 5,
        "is_compound": True,
        "countries": ["CA"],
        "states": ["QC"],
    },
]


async def seed():
    now = datetime.now(timezone.utc)
    api_key_hash = hash_api_key(API_KEY)

    async with async_session_maker() as session:
        tenant = (
            await session.execute(select(Tenant).where(Tenant.api_key_hash == api_key_hash))
        ).scalar_one_or_none()
        if tenant:
            print("Tenant already exists, using existing.")
        else:
            tenant = Tenant(
                tenant_id=str(uuid4()),
                name="Demo Tenant",
                api_key_hash=api_key_hash,
                created_at=now,
            )
            session.add(tenant)
            await session.flush()

        tenant_id = str(tenant.tenant_id)
        existing = set(
            (
                await session.execute(
                    select(TaxRule.code).where(
                        TaxRule.tenant_id == tenant_id, TaxRule.deleted_at.is_(None)
                    )
                )
            ).scalars()
        )

        created = 0
        for data in RULES:
            if data["code"] in existing:
                continue
            rule = TaxRule(
                id=str(uuid4()),
                tenant_id=tenant_id,
                description="",
                status="active",
                method="exclusive",
                created_at=now,
                updated_at=now,
                **data,
            )
            session.add(rule)
            if data["type"] == "location" and data.get("states"):
                session.add(
                    TaxRate(
                        id=str(uuid4()),
                        tenant_id=tenant_id,
                        rule_id=rule.id,
                        name=data["name"],
                        description="",
                        rate=data["rate"],
                        tax_type=data["tax_type"],
                        country=data["countries"][0],
                        state=data["states"][0],
                        city=data.get("cities", [""])[0],
                        postal_code="",
                        is_active=True,
                        created_at=now,
                        updated_at=now,
                    )
                )
            created += 1

        await session.commit()

    print(f"Tenant ID: {tenant_id}")
    print(f"API key:   {API_KEY}")
    print(f"Created {created} tax rules ({len(RULES) - created} already present).")
    print(
        f"Try: curl -X POST http://localhost:8000/tenants/{tenant_id}/tax/calculate/preview "
        f"-H 'Authorization: Bearer {API_KEY}' -H 'Content-Type: application/json' "
        "-d '{\"amount\": 100, \"country\": \"US\", \"state\": \"CA\", \"city\": \"Los Angeles\"}'"
    )


if __name__ == "__main__":
    asyncio.run(seed())
