"""Tax statistics, maintenance and location endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from taxrules.auth.middleware import TenantScopeDep
from taxrules.config import settings
from taxrules.database import get_db
from taxrules.engine.validation import validate_location
from taxrules.schemas.analytics import CleanupResponse, TaxStats
from taxrules.schemas.calculation import LocationValidationRequest
from taxrules.storage.repositories import (
    archive_expired_tax_rules,
    deactivate_expired_tax_rates,
    get_tax_stats,
    get_tax_stats_by_location,
    get_tax_stats_by_type,
    utc_now,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/stats", response_model=TaxStats)
async def tax_stats(
    tenant: TenantScopeDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    return await get_tax_stats(db, str(tenant.tenant_id))


@router.get("/stats/locations")
async def tax_stats_by_location(
    tenant: TenantScopeDep,
    db: Annotated[AsyncSession, Depends(get_db)],
    limit: Annotated[int, Query()] = 10,
):
    """Top locations by tax collected."""
    if limit <= 0 or limit > 100:
        limit = 10
    return {"data": await get_tax_stats_by_location(db, str(tenant.tenant_id), limit)}


@router.get("/stats/types")
async def tax_stats_by_type(
    tenant: TenantScopeDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    return {"data": await get_tax_stats_by_type(db, str(tenant.tenant_id))}


@router.post("/cleanup/rules", response_model=CleanupResponse)
async def cleanup_expired_rules(
    tenant: TenantScopeDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Archive rules whose validity window has closed."""
    count = await archive_expired_tax_rules(db, str(tenant.tenant_id), utc_now())
    await db.commit()
    logger.info("Archived %d expired tax rules for tenant %s", count, tenant.tenant_id)
    return CleanupResponse(message="expired tax rules archived", count=count)


@router.post("/cleanup/rates", response_model=CleanupResponse)
async def cleanup_expired_rates(
    tenant: TenantScopeDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    count = await deactivate_expired_tax_rates(db, str(tenant.tenant_id), utc_now())
    await db.commit()
    logger.info("Deactivated %d expired tax rates for tenant %s", count, tenant.tenant_id)
    return CleanupResponse(message="expired tax rates deactivated", count=count)


@router.post("/validate/location")
async def validate_location_endpoint(body: LocationValidationRequest, tenant: TenantScopeDep):
    validate_location(body.country, body.state, body.city, body.zip_code)
    return {
        "valid": True,
        "country": body.country,
        "state": body.state,
        "city": body.city,
        "zip_code": body.zip_code,
    }


@router.get("/locations")
async def supported_locations(tenant: TenantScopeDep):
    return {"countries": settings.supported_countries}
