"""Repository functions for tax rules, rates, calculations and statistics."""

from datetime import datetime, timezone

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from taxrules.engine.matching import as_utc, is_valid_for_date
from taxrules.models import Tax, TaxRate, TaxRule, TaxRuleApplication
from taxrules.models.tax_rule import STATUS_ACTIVE, STATUS_ARCHIVED, STATUS_INACTIVE
from taxrules.schemas.analytics import TaxByLocation, TaxByType, TaxStats


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _contains_ci(values: list | None, needle: str) -> bool:
    needle = needle.casefold()
    return any(str(v).casefold() == needle for v in values or [])


def _paginate(stmt, page: int, page_size: int):
    return stmt.offset((page - 1) * page_size).limit(page_size)


def _page_slice(items: list, page: int, page_size: int) -> list:
    start = (page - 1) * page_size
    return items[start : start + page_size]


# Tax rules


async def create_tax_rule(db: AsyncSession, rule: TaxRule) -> TaxRule:
    db.add(rule)
    await db.flush()
    return rule


async def create_tax_rules(db: AsyncSession, rules: list[TaxRule]) -> list[TaxRule]:
    """Insert several rules in the caller's transaction."""
    db.add_all(rules)
    await db.flush()
    return rules


async def get_tax_rule(db: AsyncSession, tenant_id: str, rule_id: str) -> TaxRule | None:
    """Get a non-deleted rule by ID (tenant-scoped)."""
    result = await db.execute(
        select(TaxRule).where(
            TaxRule.id == rule_id,
            TaxRule.tenant_id == tenant_id,
            TaxRule.deleted_at.is_(None),
        )
    )
    return result.scalar_one_or_none()


async def get_tax_rule_by_code(db: AsyncSession, tenant_id: str, code: str) -> TaxRule | None:
    result = await db.execute(
        select(TaxRule).where(
            TaxRule.tenant_id == tenant_id,
            TaxRule.code == code,
            TaxRule.deleted_at.is_(None),
        )
    )
    return result.scalar_one_or_none()


async def get_tax_rules_by_ids(
    db: AsyncSession, tenant_id: str, rule_ids: list[str]
) -> list[TaxRule]:
    result = await db.execute(
        select(TaxRule).where(
            TaxRule.tenant_id == tenant_id,
            TaxRule.id.in_(rule_ids),
            TaxRule.deleted_at.is_(None),
        )
    )
    return list(result.scalars().all())


async def check_tax_rule_code_exists(
    db: AsyncSession, tenant_id: str, code: str, exclude_id: str | None = None
) -> bool:
    stmt = select(func.count()).select_from(TaxRule).where(
        TaxRule.tenant_id == tenant_id,
        TaxRule.code == code,
        TaxRule.deleted_at.is_(None),
    )
    if exclude_id is not None:
        stmt = stmt.where(TaxRule.id != exclude_id)
    count = (await db.execute(stmt)).scalar_one()
    return count > 0


async def list_tax_rules(
    db: AsyncSession,
    tenant_id: str,
    page: int,
    page_size: int,
    type: str | None = None,
    status: str | None = None,
    tax_type: str | None = None,
    country: str | None = None,
    state: str | None = None,
    city: str | None = None,
    product_id: str | None = None,
    category_id: str | None = None,
    customer_id: str | None = None,
    valid_date: datetime | None = None,
    search: str | None = None,
) -> tuple[list[TaxRule], int]:
    """List rules with filters, priority DESC then newest first.

    Column filters run in SQL; scope-list filters (country, product, ...) are
    applied in Python so they behave the same on every database.
    """
    stmt = select(TaxRule).where(
        TaxRule.tenant_id == tenant_id,
        TaxRule.deleted_at.is_(None),
    )
    if type:
        stmt = stmt.where(TaxRule.type == type)
    if status:
        stmt = stmt.where(TaxRule.status == status)
    if tax_type:
        stmt = stmt.where(TaxRule.tax_type == tax_type)
    if search:
        term = f"%{search.lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(TaxRule.name).like(term),
                func.lower(TaxRule.code).like(term),
                func.lower(TaxRule.description).like(term),
            )
        )
    stmt = stmt.order_by(TaxRule.priority.desc(), TaxRule.created_at.desc())

    rules = list((await db.execute(stmt)).scalars().all())
    scope_filters = (
        (country, "countries"),
        (state, "states"),
        (city, "cities"),
        (product_id, "product_ids"),
        (category_id, "category_ids"),
        (customer_id, "customer_ids"),
    )
    for value, attr in scope_filters:
        if value:
            rules = [r for r in rules if _contains_ci(getattr(r, attr), value)]
    if valid_date is not None:
        rules = [r for r in rules if is_valid_for_date(r, valid_date)]

    return _page_slice(rules, page, page_size), len(rules)


async def get_active_tax_rules(db: AsyncSession, tenant_id: str, date: datetime) -> list[TaxRule]:
    """Active rules whose validity window contains ``date``."""
    result = await db.execute(
        select(TaxRule)
        .where(
            TaxRule.tenant_id == tenant_id,
            TaxRule.status == STATUS_ACTIVE,
            TaxRule.deleted_at.is_(None),
        )
        .order_by(TaxRule.priority.desc(), TaxRule.created_at.asc())
    )
    return [r for r in result.scalars().all() if is_valid_for_date(r, date)]


async def get_applicable_tax_rules(db: AsyncSession, tenant_id: str) -> list[TaxRule]:
    """Candidate rules for a calculation.

    Returns every active rule of the tenant in store order (priority DESC,
    created_at ASC). This is a superset: the engine applies the full
    applicability predicate.
    """
    result = await db.execute(
        select(TaxRule)
        .where(
            TaxRule.tenant_id == tenant_id,
            TaxRule.status == STATUS_ACTIVE,
            TaxRule.deleted_at.is_(None),
        )
        .order_by(TaxRule.priority.desc(), TaxRule.created_at.asc())
    )
    return list(result.scalars().all())


async def soft_delete_tax_rules(db: AsyncSession, tenant_id: str, rule_ids: list[str]) -> int:
    """Mark rules deleted and archived; returns the number of rows touched."""
    now = utc_now()
    result = await db.execute(
        update(TaxRule)
        .where(
            TaxRule.tenant_id == tenant_id,
            TaxRule.id.in_(rule_ids),
            TaxRule.deleted_at.is_(None),
        )
        .values(status=STATUS_ARCHIVED, deleted_at=now, updated_at=now)
    )
    return result.rowcount


async def bulk_update_tax_rule_status(
    db: AsyncSession, tenant_id: str, rule_ids: list[str], status: str
) -> int:
    result = await db.execute(
        update(TaxRule)
        .where(
            TaxRule.tenant_id == tenant_id,
            TaxRule.id.in_(rule_ids),
            TaxRule.deleted_at.is_(None),
        )
        .values(status=status, updated_at=utc_now())
    )
    return result.rowcount


async def archive_expired_tax_rules(db: AsyncSession, tenant_id: str, now: datetime) -> int:
    """Archive rules whose validity window has closed."""
    result = await db.execute(
        select(TaxRule).where(
            TaxRule.tenant_id == tenant_id,
            TaxRule.valid_to.is_not(None),
            TaxRule.status != STATUS_ARCHIVED,
            TaxRule.deleted_at.is_(None),
        )
    )
    expired = [r for r in result.scalars().all() if as_utc(r.valid_to) < now]
    for rule in expired:
        rule.status = STATUS_ARCHIVED
        rule.updated_at = now
    await db.flush()
    return len(expired)


# Tax rates


async def create_tax_rate(db: AsyncSession, rate: TaxRate) -> TaxRate:
    db.add(rate)
    await db.flush()
    return rate


async def create_tax_rates(db: AsyncSession, rates: list[TaxRate]) -> list[TaxRate]:
    """Insert several rates in the caller's transaction."""
    db.add_all(rates)
    await db.flush()
    return rates


async def get_tax_rate(db: AsyncSession, tenant_id: str, rate_id: str) -> TaxRate | None:
    result = await db.execute(
        select(TaxRate).where(
            TaxRate.id == rate_id,
            TaxRate.tenant_id == tenant_id,
            TaxRate.deleted_at.is_(None),
        )
    )
    return result.scalar_one_or_none()


async def list_tax_rates(
    db: AsyncSession,
    tenant_id: str,
    page: int,
    page_size: int,
    rule_id: str | None = None,
    tax_type: str | None = None,
    country: str | None = None,
    state: str | None = None,
    city: str | None = None,
    postal_code: str | None = None,
    is_active: bool | None = None,
    valid_date: datetime | None = None,
    search: str | None = None,
) -> tuple[list[TaxRate], int]:
    stmt = select(TaxRate).where(
        TaxRate.tenant_id == tenant_id,
        TaxRate.deleted_at.is_(None),
    )
    if rule_id:
        stmt = stmt.where(TaxRate.rule_id == rule_id)
    if tax_type:
        stmt = stmt.where(TaxRate.tax_type == tax_type)
    if country:
        stmt = stmt.where(func.upper(TaxRate.country) == country.upper())
    if state:
        stmt = stmt.where(TaxRate.state == state)
    if city:
        stmt = stmt.where(TaxRate.city == city)
    if postal_code:
        stmt = stmt.where(TaxRate.postal_code == postal_code)
    if is_active is not None:
        stmt = stmt.where(TaxRate.is_active == is_active)
    if search:
        term = f"%{search.lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(TaxRate.name).like(term),
                func.lower(TaxRate.description).like(term),
            )
        )
    stmt = stmt.order_by(TaxRate.country, TaxRate.state, TaxRate.city, TaxRate.created_at.desc())

    rates = list((await db.execute(stmt)).scalars().all())
    if valid_date is not None:
        rates = [r for r in rates if r.is_active and is_valid_for_date(r, valid_date)]
    return _page_slice(rates, page, page_size), len(rates)


async def get_tax_rates_by_rule(db: AsyncSession, tenant_id: str, rule_id: str) -> list[TaxRate]:
    result = await db.execute(
        select(TaxRate)
        .where(
            TaxRate.tenant_id == tenant_id,
            TaxRate.rule_id == rule_id,
            TaxRate.deleted_at.is_(None),
        )
        .order_by(TaxRate.created_at.asc())
    )
    return list(result.scalars().all())


async def soft_delete_tax_rate(db: AsyncSession, rate: TaxRate) -> None:
    now = utc_now()
    rate.deleted_at = now
    rate.is_active = False
    rate.updated_at = now
    await db.flush()


async def bulk_update_tax_rate_status(
    db: AsyncSession, tenant_id: str, rate_ids: list[str], is_active: bool
) -> int:
    result = await db.execute(
        update(TaxRate)
        .where(
            TaxRate.tenant_id == tenant_id,
            TaxRate.id.in_(rate_ids),
            TaxRate.deleted_at.is_(None),
        )
        .values(is_active=is_active, updated_at=utc_now())
    )
    return result.rowcount


async def deactivate_expired_tax_rates(db: AsyncSession, tenant_id: str, now: datetime) -> int:
    result = await db.execute(
        select(TaxRate).where(
            TaxRate.tenant_id == tenant_id,
            TaxRate.valid_to.is_not(None),
            TaxRate.is_active.is_(True),
            TaxRate.deleted_at.is_(None),
        )
    )
    expired = [r for r in result.scalars().all() if as_utc(r.valid_to) < now]
    for rate in expired:
        rate.is_active = False
        rate.updated_at = now
    await db.flush()
    return len(expired)


# Calculations


async def record_tax_calculation(
    db: AsyncSession, tax: Tax, applications: list[TaxRuleApplication]
) -> Tax:
    """Write a calculation and its audit rows in application order.

    Rows are only flushed; the request-scoped session commits them together.
    """
    for sequence, application in enumerate(applications):
        application.tax_id = tax.id
        application.sequence = sequence
    tax.applied_rules = applications
    db.add(tax)
    await db.flush()
    return tax


async def get_tax(db: AsyncSession, tenant_id: str, tax_id: str) -> Tax | None:
    result = await db.execute(
        select(Tax).where(
            Tax.id == tax_id,
            Tax.tenant_id == tenant_id,
        )
    )
    return result.scalar_one_or_none()


async def get_tax_by_idempotency_key(
    db: AsyncSession, tenant_id: str, idempotency_key: str
) -> Tax | None:
    result = await db.execute(
        select(Tax).where(
            Tax.tenant_id == tenant_id,
            Tax.idempotency_key == idempotency_key,
        )
    )
    return result.scalar_one_or_none()


async def list_taxes(
    db: AsyncSession,
    tenant_id: str,
    page: int,
    page_size: int,
    order_id: str | None = None,
    product_id: str | None = None,
    customer_id: str | None = None,
    country: str | None = None,
    state: str | None = None,
    city: str | None = None,
    tax_type: str | None = None,
    method: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> tuple[list[Tax], int]:
    conditions = [Tax.tenant_id == tenant_id]
    if order_id:
        conditions.append(Tax.order_id == order_id)
    if product_id:
        conditions.append(Tax.product_id == product_id)
    if customer_id:
        conditions.append(Tax.customer_id == customer_id)
    if country:
        conditions.append(Tax.country == country)
    if state:
        conditions.append(Tax.state == state)
    if city:
        conditions.append(Tax.city == city)
    if tax_type:
        conditions.append(Tax.tax_type == tax_type)
    if method:
        conditions.append(Tax.method == method)
    if date_from is not None:
        conditions.append(Tax.calculated_at >= date_from)
    if date_to is not None:
        conditions.append(Tax.calculated_at <= date_to)

    total = (
        await db.execute(select(func.count()).select_from(Tax).where(*conditions))
    ).scalar_one()
    stmt = _paginate(
        select(Tax).where(*conditions).order_by(Tax.calculated_at.desc(), Tax.created_at.desc()),
        page,
        page_size,
    )
    taxes = list((await db.execute(stmt)).scalars().all())
    return taxes, total


# Statistics


async def _count(db: AsyncSession, model, *conditions) -> int:
    return (await db.execute(select(func.count()).select_from(model).where(*conditions))).scalar_one()


async def get_tax_stats(db: AsyncSession, tenant_id: str) -> TaxStats:
    live_rule = (TaxRule.tenant_id == tenant_id, TaxRule.deleted_at.is_(None))
    live_rate = (TaxRate.tenant_id == tenant_id, TaxRate.deleted_at.is_(None))

    totals = (
        await db.execute(
            select(
                func.count(Tax.id),
                func.coalesce(func.sum(Tax.tax_amount), 0),
                func.coalesce(func.avg(Tax.tax_rate), 0),
            ).where(Tax.tenant_id == tenant_id)
        )
    ).one()

    return TaxStats(
        total_rules=await _count(db, TaxRule, *live_rule),
        active_rules=await _count(db, TaxRule, *live_rule, TaxRule.status == STATUS_ACTIVE),
        inactive_rules=await _count(db, TaxRule, *live_rule, TaxRule.status == STATUS_INACTIVE),
        total_rates=await _count(db, TaxRate, *live_rate),
        active_rates=await _count(db, TaxRate, *live_rate, TaxRate.is_active.is_(True)),
        total_calculations=totals[0],
        total_tax_amount=round(float(totals[1]), 2),
        average_tax_rate=round(float(totals[2]), 2),
    )


async def get_tax_stats_by_location(
    db: AsyncSession, tenant_id: str, limit: int
) -> list[TaxByLocation]:
    total_tax = func.sum(Tax.tax_amount).label("total_tax")
    result = await db.execute(
        select(
            Tax.country,
            Tax.state,
            Tax.city,
            func.count(Tax.id).label("calculations"),
            total_tax,
            func.avg(Tax.tax_rate).label("average_rate"),
        )
        .where(Tax.tenant_id == tenant_id)
        .group_by(Tax.country, Tax.state, Tax.city)
        .order_by(total_tax.desc())
        .limit(limit)
    )
    return [
        TaxByLocation(
            country=row.country,
            state=row.state or "",
            city=row.city or "",
            calculations=row.calculations,
            total_tax=round(float(row.total_tax or 0), 2),
            average_rate=round(float(row.average_rate or 0), 2),
        )
        for row in result.all()
    ]


async def get_tax_stats_by_type(db: AsyncSession, tenant_id: str) -> list[TaxByType]:
    total_tax = func.sum(Tax.tax_amount).label("total_tax")
    result = await db.execute(
        select(
            Tax.tax_type,
            func.count(Tax.id).label("calculations"),
            total_tax,
            func.avg(Tax.tax_rate).label("average_rate"),
        )
        .where(Tax.tenant_id == tenant_id)
        .group_by(Tax.tax_type)
        .order_by(total_tax.desc())
    )
    return [
        TaxByType(
            tax_type=row.tax_type,
            calculations=row.calculations,
            total_tax=round(float(row.total_tax or 0), 2),
            average_rate=round(float(row.average_rate or 0), 2),
        )
        for row in result.all()
    ]
