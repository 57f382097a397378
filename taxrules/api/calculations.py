"""Tax calculation endpoints."""

import logging
from datetime import datetime
from typing import Annotated
from uuid import uuid4

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from taxrules.api.pagination import PageDep, paginated
from taxrules.auth.middleware import TenantScopeDep
from taxrules.config import settings
from taxrules.database import get_db
from taxrules.engine.calculator import (
    run_calculation,
    select_applicable_rules,
    sort_by_priority,
    validate_calculation_request,
)
from taxrules.engine.matching import as_utc, to_decimal
from taxrules.engine.validation import parse_id
from taxrules.errors import IdempotencyConflict, TaxNotFound
from taxrules.models import Tax, TaxRuleApplication
from taxrules.schemas.calculation import (
    AppliedTaxRuleResponse,
    TaxCalculationRequest,
    TaxCalculationResponse,
)
from taxrules.schemas.rules import TaxRuleResponse
from taxrules.storage.repositories import (
    get_applicable_tax_rules,
    get_tax,
    get_tax_by_idempotency_key,
    list_taxes,
    record_tax_calculation,
    utc_now,
)
from taxrules.utils.canonical import request_hash

logger = logging.getLogger(__name__)

router = APIRouter()


def _check_ids(body: TaxCalculationRequest) -> TaxCalculationRequest:
    updates = {}
    for field in ("product_id", "customer_id", "order_id"):
        value = getattr(body, field)
        if value:
            updates[field] = parse_id(value, field)
        elif value is not None:
            updates[field] = None
    return body.model_copy(update=updates)


def _tax_response(tax: Tax) -> TaxCalculationResponse:
    """Rebuild a calculation response from the stored row and its breakdown."""
    return TaxCalculationResponse(
        calculation_id=str(tax.id),
        taxable_amount=float(tax.taxable_amount),
        tax_amount=float(tax.tax_amount),
        total_amount=float(tax.total_amount),
        effective_rate=float(tax.tax_rate),
        method=tax.method,
        location=tax.location,
        applied_rules=[
            AppliedTaxRuleResponse(
                rule_id=str(a.rule_id),
                rule_name=a.rule_name,
                rule_code=a.rule_code,
                applied_rate=float(a.applied_rate),
                taxable_amount=float(a.taxable_amount),
                tax_amount=float(a.tax_amount),
                priority=a.priority,
            )
            for a in tax.applied_rules
        ],
        calculated_at=as_utc(tax.calculated_at),
    )


def _build_tax(
    tenant_id: str,
    body: TaxCalculationRequest,
    result: TaxCalculationResponse,
    rules: list,
    req_hash: str | None,
) -> tuple[Tax, list[TaxRuleApplication]]:
    now = utc_now()
    tax = Tax(
        id=str(uuid4()),
        tenant_id=tenant_id,
        order_id=body.order_id,
        product_id=body.product_id,
        customer_id=body.customer_id,
        taxable_amount=to_decimal(result.taxable_amount),
        tax_amount=to_decimal(result.tax_amount),
        total_amount=to_decimal(result.total_amount),
        tax_rate=to_decimal(result.effective_rate),
        # highest-priority rule names the tax
        tax_type=rules[0].tax_type,
        method=result.method,
        country=body.country,
        state=body.state,
        city=body.city,
        postal_code=body.postal_code,
        location=result.location,
        idempotency_key=body.idempotency_key,
        request_hash=req_hash,
        calculated_at=result.calculated_at,
        created_at=now,
    )
    applications = [
        TaxRuleApplication(
            id=str(uuid4()),
            tenant_id=tenant_id,
            rule_id=applied.rule_id,
            rule_name=applied.rule_name,
            rule_code=applied.rule_code,
            applied_rate=to_decimal(applied.applied_rate),
            taxable_amount=to_decimal(applied.taxable_amount),
            tax_amount=to_decimal(applied.tax_amount),
            priority=applied.priority,
            created_at=now,
        )
        for applied in result.applied_rules
    ]
    return tax, applications


def _replay(existing: Tax, req_hash: str, idempotency_key: str) -> TaxCalculationResponse:
    if existing.request_hash != req_hash:
        raise IdempotencyConflict()
    logger.info(
        "Replaying tax calculation %s for idempotency key %s", existing.id, idempotency_key
    )
    return _tax_response(existing)


@router.post("/calculate", response_model=TaxCalculationResponse)
async def calculate_tax(
    body: TaxCalculationRequest,
    tenant: TenantScopeDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """
    Calculate tax for a request and record it with its rule breakdown.
    Idempotent when idempotency_key is provided.
    """
    tenant_id = str(tenant.tenant_id)
    body = _check_ids(body)

    req_hash = None
    if body.idempotency_key:
        req_hash = request_hash(body.model_dump(exclude={"idempotency_key"}))
        existing = await get_tax_by_idempotency_key(db, tenant_id, body.idempotency_key)
        if existing:
            return _replay(existing, req_hash, body.idempotency_key)

    candidates = await get_applicable_tax_rules(db, tenant_id)
    result, rules = run_calculation(
        body, candidates, now=utc_now(), default_method=settings.default_calculation_method
    )

    tax, applications = _build_tax(tenant_id, body, result, rules, req_hash)
    try:
        await record_tax_calculation(db, tax, applications)
        await db.commit()
    except IntegrityError:
        # A concurrent request with the same idempotency key committed first
        await db.rollback()
        if not body.idempotency_key:
            raise
        existing = await get_tax_by_idempotency_key(db, tenant_id, body.idempotency_key)
        if not existing:
            raise
        return _replay(existing, req_hash, body.idempotency_key)

    logger.info(
        "Tax calculated tenant=%s calculation=%s rules=%d taxable=%.2f tax=%.2f total=%.2f",
        tenant_id,
        tax.id,
        len(rules),
        result.taxable_amount,
        result.tax_amount,
        result.total_amount,
    )
    return result.model_copy(update={"calculation_id": str(tax.id)})


@router.post("/calculate/preview", response_model=TaxCalculationResponse)
async def preview_tax(
    body: TaxCalculationRequest,
    tenant: TenantScopeDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Same calculation as /calculate, nothing is written."""
    body = _check_ids(body)
    candidates = await get_applicable_tax_rules(db, str(tenant.tenant_id))
    result, _ = run_calculation(
        body, candidates, now=utc_now(), default_method=settings.default_calculation_method
    )
    return result


@router.post("/rules/applicable")
async def applicable_rules(
    body: TaxCalculationRequest,
    tenant: TenantScopeDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Rules that would apply to the request, highest priority first."""
    validate_calculation_request(body)
    body = _check_ids(body)
    date = as_utc(body.date) if body.date else utc_now()
    candidates = await get_applicable_tax_rules(db, str(tenant.tenant_id))
    rules = sort_by_priority(select_applicable_rules(candidates, body, date))
    return {"data": [TaxRuleResponse.model_validate(r) for r in rules]}


@router.get("/calculations/{tax_id}", response_model=TaxCalculationResponse)
async def get_calculation(
    tax_id: str,
    tenant: TenantScopeDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Stored calculation with its ordered rule breakdown."""
    tax = await get_tax(db, str(tenant.tenant_id), parse_id(tax_id, "calculation id"))
    if not tax:
        raise TaxNotFound()
    return _tax_response(tax)


@router.get("/calculations")
async def list_calculations(
    tenant: TenantScopeDep,
    db: Annotated[AsyncSession, Depends(get_db)],
    page: PageDep,
    order_id: Annotated[str | None, Query()] = None,
    product_id: Annotated[str | None, Query()] = None,
    customer_id: Annotated[str | None, Query()] = None,
    country: Annotated[str | None, Query()] = None,
    state: Annotated[str | None, Query()] = None,
    city: Annotated[str | None, Query()] = None,
    tax_type: Annotated[str | None, Query()] = None,
    method: Annotated[str | None, Query()] = None,
    date_from: Annotated[datetime | None, Query()] = None,
    date_to: Annotated[datetime | None, Query()] = None,
):
    """Calculation history, newest first."""
    taxes, total = await list_taxes(
        db,
        str(tenant.tenant_id),
        page.page,
        page.page_size,
        order_id=parse_id(order_id, "order_id") if order_id else None,
        product_id=parse_id(product_id, "product_id") if product_id else None,
        customer_id=parse_id(customer_id, "customer_id") if customer_id else None,
        country=country,
        state=state,
        city=city,
        tax_type=tax_type,
        method=method,
        date_from=as_utc(date_from) if date_from else None,
        date_to=as_utc(date_to) if date_to else None,
    )
    return paginated([_tax_response(t) for t in taxes], total, page)
