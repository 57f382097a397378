"""Tax rate admin endpoints."""

import logging
from datetime import datetime
from typing import Annotated
from uuid import uuid4

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from taxrules.api.pagination import PageDep, paginated
from taxrules.auth.middleware import TenantScopeDep
from taxrules.config import settings
from taxrules.database import get_db
from taxrules.engine.matching import as_utc, to_decimal
from taxrules.engine.validation import parse_id, validate_tax_rate, validate_tax_rate_update
from taxrules.errors import BulkSizeExceeded, TaxRateNotFound, TaxRuleNotFound, ValidationFailed
from taxrules.models import TaxRate
from taxrules.schemas.rules import (
    BulkCreateTaxRatesRequest,
    BulkRateStatusRequest,
    CreateTaxRateRequest,
    TaxRateResponse,
    UpdateTaxRateRequest,
)
from taxrules.storage.repositories import (
    bulk_update_tax_rate_status,
    create_tax_rate,
    create_tax_rates,
    get_tax_rate,
    get_tax_rates_by_rule,
    get_tax_rule,
    list_tax_rates,
    soft_delete_tax_rate,
    utc_now,
)

logger = logging.getLogger(__name__)

router = APIRouter()


async def _load_rate(db: AsyncSession, tenant_id: str, rate_id: str) -> TaxRate:
    rate = await get_tax_rate(db, tenant_id, parse_id(rate_id, "rate id"))
    if not rate:
        raise TaxRateNotFound()
    return rate


def _new_rate(tenant_id: str, rule_id: str, body: CreateTaxRateRequest) -> TaxRate:
    now = utc_now()
    return TaxRate(
        id=str(uuid4()),
        tenant_id=tenant_id,
        rule_id=rule_id,
        name=body.name,
        description=body.description,
        rate=to_decimal(body.rate),
        tax_type=body.tax_type,
        country=body.country.upper(),
        state=body.state,
        city=body.city,
        postal_code=body.postal_code,
        valid_from=as_utc(body.valid_from) if body.valid_from else None,
        valid_to=as_utc(body.valid_to) if body.valid_to else None,
        is_active=True,
        created_at=now,
        updated_at=now,
    )


def _check_bulk_size(ids: list) -> None:
    if not ids:
        raise ValidationFailed("no items given")
    if len(ids) > settings.bulk_max_size:
        raise BulkSizeExceeded(f"bulk operation size exceeded: max {settings.bulk_max_size}")


@router.post("/rates", status_code=status.HTTP_201_CREATED, response_model=TaxRateResponse)
async def create_rate(
    body: CreateTaxRateRequest,
    tenant: TenantScopeDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Attach a location-scoped rate to an existing rule."""
    tenant_id = str(tenant.tenant_id)
    validate_tax_rate(body)
    rule_id = parse_id(body.rule_id, "rule id")
    if not await get_tax_rule(db, tenant_id, rule_id):
        raise TaxRuleNotFound()

    rate = await create_tax_rate(db, _new_rate(tenant_id, rule_id, body))
    await db.commit()
    logger.info("Created tax rate %s for rule %s", rate.id, rule_id)
    return TaxRateResponse.model_validate(rate)


@router.post("/rates/bulk", status_code=status.HTTP_201_CREATED)
async def bulk_create_rates(
    body: BulkCreateTaxRatesRequest,
    tenant: TenantScopeDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Create several rates; an invalid rate or unknown rule rejects the whole batch."""
    tenant_id = str(tenant.tenant_id)
    _check_bulk_size(body.rates)

    known: set[str] = set()
    new_rates = []
    for req in body.rates:
        validate_tax_rate(req)
        rule_id = parse_id(req.rule_id, "rule id")
        if rule_id not in known:
            if not await get_tax_rule(db, tenant_id, rule_id):
                raise TaxRuleNotFound(f"tax rule not found: {req.rule_id}")
            known.add(rule_id)
        new_rates.append(_new_rate(tenant_id, rule_id, req))

    rates = await create_tax_rates(db, new_rates)
    await db.commit()
    logger.info("Bulk created %d tax rates for tenant %s", len(rates), tenant_id)
    return {"data": [TaxRateResponse.model_validate(r) for r in rates], "count": len(rates)}


@router.post("/rates/bulk/status")
async def bulk_rate_status(
    body: BulkRateStatusRequest,
    tenant: TenantScopeDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    _check_bulk_size(body.rate_ids)
    rate_ids = [parse_id(r, "rate id") for r in body.rate_ids]
    count = await bulk_update_tax_rate_status(db, str(tenant.tenant_id), rate_ids, body.is_active)
    await db.commit()
    return {"message": "tax rate status updated", "count": count}


@router.get("/rates")
async def list_rates(
    tenant: TenantScopeDep,
    db: Annotated[AsyncSession, Depends(get_db)],
    page: PageDep,
    rule_id: Annotated[str | None, Query()] = None,
    tax_type: Annotated[str | None, Query()] = None,
    country: Annotated[str | None, Query()] = None,
    state: Annotated[str | None, Query()] = None,
    city: Annotated[str | None, Query()] = None,
    postal_code: Annotated[str | None, Query()] = None,
    is_active: Annotated[bool | None, Query()] = None,
    valid_date: Annotated[datetime | None, Query()] = None,
    search: Annotated[str | None, Query()] = None,
):
    rates, total = await list_tax_rates(
        db,
        str(tenant.tenant_id),
        page.page,
        page.page_size,
        rule_id=parse_id(rule_id, "rule id") if rule_id else None,
        tax_type=tax_type,
        country=country,
        state=state,
        city=city,
        postal_code=postal_code,
        is_active=is_active,
        valid_date=valid_date,
        search=search,
    )
    return paginated([TaxRateResponse.model_validate(r) for r in rates], total, page)


@router.get("/rates/{rate_id}", response_model=TaxRateResponse)
async def get_rate(
    rate_id: str,
    tenant: TenantScopeDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    return TaxRateResponse.model_validate(await _load_rate(db, str(tenant.tenant_id), rate_id))


@router.put("/rates/{rate_id}", response_model=TaxRateResponse)
async def update_rate(
    rate_id: str,
    body: UpdateTaxRateRequest,
    tenant: TenantScopeDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    rate = await _load_rate(db, str(tenant.tenant_id), rate_id)
    validate_tax_rate_update(body, rate)

    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    if "rate" in changes:
        changes["rate"] = to_decimal(changes["rate"])
    for field in ("valid_from", "valid_to"):
        if field in changes:
            changes[field] = as_utc(changes[field])
    for field, value in changes.items():
        setattr(rate, field, value)
    rate.updated_at = utc_now()

    await db.commit()
    return TaxRateResponse.model_validate(rate)


@router.delete("/rates/{rate_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rate(
    rate_id: str,
    tenant: TenantScopeDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    rate = await _load_rate(db, str(tenant.tenant_id), rate_id)
    await soft_delete_tax_rate(db, rate)
    await db.commit()
    logger.info("Deleted tax rate %s", rate.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/rules/{rule_id}/rates")
async def rule_rates(
    rule_id: str,
    tenant: TenantScopeDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Rates attached to one rule, oldest first."""
    tenant_id = str(tenant.tenant_id)
    rule_id = parse_id(rule_id, "rule id")
    if not await get_tax_rule(db, tenant_id, rule_id):
        raise TaxRuleNotFound()
    rates = await get_tax_rates_by_rule(db, tenant_id, rule_id)
    return {"data": [TaxRateResponse.model_validate(r) for r in rates]}
