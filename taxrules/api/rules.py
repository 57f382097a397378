"""Tax rule admin endpoints."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Annotated
from uuid import uuid4

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from taxrules.api.pagination import PageDep, paginated
from taxrules.auth.middleware import TenantScopeDep
from taxrules.config import settings
from taxrules.database import get_db
from taxrules.engine.matching import as_utc, can_delete, to_decimal
from taxrules.engine.validation import (
    parse_id,
    validate_tax_rule,
    validate_tax_rule_update,
)
from taxrules.errors import (
    BulkSizeExceeded,
    CannotDeleteRule,
    InvalidStatus,
    RuleCodeExists,
    TaxRuleNotFound,
    ValidationFailed,
)
from taxrules.models import TaxRule
from taxrules.models.tax_rule import METHOD_EXCLUSIVE, STATUS_ACTIVE, STATUSES
from taxrules.schemas.rules import (
    BulkCreateTaxRulesRequest,
    BulkRuleDeleteRequest,
    BulkRuleStatusRequest,
    CreateTaxRuleRequest,
    TaxRuleResponse,
    UpdateTaxRuleRequest,
)
from taxrules.storage.repositories import (
    bulk_update_tax_rule_status,
    check_tax_rule_code_exists,
    create_tax_rule,
    create_tax_rules,
    get_active_tax_rules,
    get_tax_rule,
    get_tax_rule_by_code,
    get_tax_rules_by_ids,
    list_tax_rules,
    soft_delete_tax_rules,
    utc_now,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_SCOPE_FIELDS = (
    "countries",
    "states",
    "cities",
    "postal_codes",
    "product_ids",
    "category_ids",
    "customer_ids",
    "customer_groups",
)


def _optional_decimal(value: float | None) -> Decimal | None:
    return None if value is None else to_decimal(value)


def _new_rule(tenant_id: str, body: CreateTaxRuleRequest) -> TaxRule:
    now = utc_now()
    rule = TaxRule(
        id=str(uuid4()),
        tenant_id=tenant_id,
        name=body.name,
        description=body.description,
        code=body.code,
        type=body.type,
        status=STATUS_ACTIVE,
        tax_type=body.tax_type,
        rate=to_decimal(body.rate),
        method=body.method or METHOD_EXCLUSIVE,
        priority=body.priority,
        is_compound=body.is_compound,
        is_inclusive=body.is_inclusive,
        valid_from=as_utc(body.valid_from) if body.valid_from else None,
        valid_to=as_utc(body.valid_to) if body.valid_to else None,
        min_amount=_optional_decimal(body.min_amount),
        max_amount=_optional_decimal(body.max_amount),
        created_at=now,
        updated_at=now,
    )
    for field in _SCOPE_FIELDS:
        setattr(rule, field, list(getattr(body, field)))
    return rule


async def _load_rule(db: AsyncSession, tenant_id: str, rule_id: str) -> TaxRule:
    rule = await get_tax_rule(db, tenant_id, parse_id(rule_id, "rule id"))
    if not rule:
        raise TaxRuleNotFound()
    return rule


def _check_bulk_size(ids: list) -> None:
    if not ids:
        raise ValidationFailed("no items given")
    if len(ids) > settings.bulk_max_size:
        raise BulkSizeExceeded(f"bulk operation size exceeded: max {settings.bulk_max_size}")


@router.post("/rules", status_code=status.HTTP_201_CREATED, response_model=TaxRuleResponse)
async def create_rule(
    body: CreateTaxRuleRequest,
    tenant: TenantScopeDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Create a tax rule; new rules start active."""
    tenant_id = str(tenant.tenant_id)
    validate_tax_rule(body)
    if await check_tax_rule_code_exists(db, tenant_id, body.code):
        raise RuleCodeExists()

    rule = await create_tax_rule(db, _new_rule(tenant_id, body))
    await db.commit()
    logger.info("Created tax rule %s (%s) for tenant %s", rule.id, rule.code, tenant_id)
    return TaxRuleResponse.model_validate(rule)


@router.post("/rules/validate")
async def validate_rule(body: CreateTaxRuleRequest, tenant: TenantScopeDep):
    """Run rule validation without creating anything."""
    validate_tax_rule(body)
    return {"valid": True}


@router.post("/rules/bulk", status_code=status.HTTP_201_CREATED)
async def bulk_create_rules(
    body: BulkCreateTaxRulesRequest,
    tenant: TenantScopeDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Create several rules; any invalid rule rejects the whole batch."""
    tenant_id = str(tenant.tenant_id)
    _check_bulk_size(body.rules)

    seen: set[str] = set()
    for req in body.rules:
        validate_tax_rule(req)
        if req.code in seen or await check_tax_rule_code_exists(db, tenant_id, req.code):
            raise RuleCodeExists(f"tax rule code already exists: {req.code}")
        seen.add(req.code)

    rules = await create_tax_rules(db, [_new_rule(tenant_id, req) for req in body.rules])
    await db.commit()
    logger.info("Bulk created %d tax rules for tenant %s", len(rules), tenant_id)
    return {"data": [TaxRuleResponse.model_validate(r) for r in rules], "count": len(rules)}


@router.post("/rules/bulk/status")
async def bulk_rule_status(
    body: BulkRuleStatusRequest,
    tenant: TenantScopeDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    _check_bulk_size(body.rule_ids)
    if body.status not in STATUSES:
        raise InvalidStatus(f"invalid status: {body.status}")
    rule_ids = [parse_id(r, "rule id") for r in body.rule_ids]
    count = await bulk_update_tax_rule_status(db, str(tenant.tenant_id), rule_ids, body.status)
    await db.commit()
    return {"message": "tax rule status updated", "count": count}


@router.post("/rules/bulk/delete")
async def bulk_rule_delete(
    body: BulkRuleDeleteRequest,
    tenant: TenantScopeDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Soft-delete rules; fails without deleting anything if one is still active."""
    tenant_id = str(tenant.tenant_id)
    _check_bulk_size(body.rule_ids)
    rule_ids = [parse_id(r, "rule id") for r in body.rule_ids]

    rules = await get_tax_rules_by_ids(db, tenant_id, rule_ids)
    for rule in rules:
        if not can_delete(rule):
            raise CannotDeleteRule(f"cannot delete active tax rule: {rule.code}")

    count = await soft_delete_tax_rules(db, tenant_id, rule_ids)
    await db.commit()
    logger.info("Bulk deleted %d tax rules for tenant %s", count, tenant_id)
    return {"message": "tax rules deleted", "count": count}


@router.get("/rules")
async def list_rules(
    tenant: TenantScopeDep,
    db: Annotated[AsyncSession, Depends(get_db)],
    page: PageDep,
    type: Annotated[str | None, Query()] = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    tax_type: Annotated[str | None, Query()] = None,
    country: Annotated[str | None, Query()] = None,
    state: Annotated[str | None, Query()] = None,
    city: Annotated[str | None, Query()] = None,
    product_id: Annotated[str | None, Query()] = None,
    category_id: Annotated[str | None, Query()] = None,
    customer_id: Annotated[str | None, Query()] = None,
    valid_date: Annotated[datetime | None, Query()] = None,
    search: Annotated[str | None, Query()] = None,
):
    rules, total = await list_tax_rules(
        db,
        str(tenant.tenant_id),
        page.page,
        page.page_size,
        type=type,
        status=status_filter,
        tax_type=tax_type,
        country=country,
        state=state,
        city=city,
        product_id=product_id,
        category_id=category_id,
        customer_id=customer_id,
        valid_date=valid_date,
        search=search,
    )
    return paginated([TaxRuleResponse.model_validate(r) for r in rules], total, page)


@router.get("/rules/active")
async def active_rules(
    tenant: TenantScopeDep,
    db: Annotated[AsyncSession, Depends(get_db)],
    date: Annotated[datetime | None, Query()] = None,
):
    """Active rules valid on ``date`` (default now)."""
    when = as_utc(date) if date else utc_now()
    rules = await get_active_tax_rules(db, str(tenant.tenant_id), when)
    return {"data": [TaxRuleResponse.model_validate(r) for r in rules]}


@router.get("/rules/code/{code}", response_model=TaxRuleResponse)
async def get_rule_by_code(
    code: str,
    tenant: TenantScopeDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    rule = await get_tax_rule_by_code(db, str(tenant.tenant_id), code)
    if not rule:
        raise TaxRuleNotFound()
    return TaxRuleResponse.model_validate(rule)


@router.get("/rules/{rule_id}", response_model=TaxRuleResponse)
async def get_rule(
    rule_id: str,
    tenant: TenantScopeDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    rule = await _load_rule(db, str(tenant.tenant_id), rule_id)
    return TaxRuleResponse.model_validate(rule)


@router.put("/rules/{rule_id}", response_model=TaxRuleResponse)
async def update_rule(
    rule_id: str,
    body: UpdateTaxRuleRequest,
    tenant: TenantScopeDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Partial update: omitted fields stay unchanged."""
    rule = await _load_rule(db, str(tenant.tenant_id), rule_id)
    validate_tax_rule_update(body, rule)

    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    for field in ("rate", "min_amount", "max_amount"):
        if field in changes:
            changes[field] = to_decimal(changes[field])
    for field in ("valid_from", "valid_to"):
        if field in changes:
            changes[field] = as_utc(changes[field])
    for field, value in changes.items():
        setattr(rule, field, value)
    rule.updated_at = utc_now()

    await db.commit()
    logger.info("Updated tax rule %s fields=%s", rule.id, sorted(changes))
    return TaxRuleResponse.model_validate(rule)


@router.delete("/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule(
    rule_id: str,
    tenant: TenantScopeDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Soft-delete a rule. Active rules must be deactivated first."""
    tenant_id = str(tenant.tenant_id)
    rule = await _load_rule(db, tenant_id, rule_id)
    if not can_delete(rule):
        raise CannotDeleteRule()
    await soft_delete_tax_rules(db, tenant_id, [rule.id])
    await db.commit()
    logger.info("Deleted tax rule %s (%s)", rule.id, rule.code)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
