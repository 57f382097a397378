"""Health and metrics endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from taxrules.database import get_db

router = APIRouter()

SERVICE_NAME = "taxrules"
SERVICE_VERSION = "0.1.0"


@router.get("/health")
async def health(db: Annotated[AsyncSession, Depends(get_db)]):
    """Liveness plus a database round trip."""
    await db.execute(text("SELECT 1"))
    return {"status": "ok"}


@router.get("/metrics")
async def metrics():
    """Basic metrics endpoint for observability."""
    return {"service": SERVICE_NAME, "version": SERVICE_VERSION}
