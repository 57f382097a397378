"""API key authentication and tenant scoping."""

import hashlib
from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, Path, status
from fastapi.security import APIKeyHeader
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taxrules.config import settings
from taxrules.database import get_db
from taxrules.models.tenant import Tenant

API_KEY_HEADER = APIKeyHeader(name="Authorization", auto_error=False)


def hash_api_key(api_key: str) -> str:
    """Hash API key with salt for storage/lookup."""
    return hashlib.sha256(f"{settings.api_key_hash_salt}:{api_key}".encode()).hexdigest()


async def get_tenant_from_bearer(
    db: Annotated[AsyncSession, Depends(get_db)],
    auth_header: str | None = Depends(API_KEY_HEADER),
) -> Tenant:
    """Extract tenant from Bearer token (API key)."""
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid Authorization header",
        )
    api_key = auth_header[7:].strip()
    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key",
        )
    result = await db.execute(select(Tenant).where(Tenant.api_key_hash == hash_api_key(api_key)))
    tenant = result.scalar_one_or_none()
    if not tenant:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )
    return tenant


async def get_scoped_tenant(
    tenant_id: Annotated[str, Path()],
    tenant: Annotated[Tenant, Depends(get_tenant_from_bearer)],
) -> Tenant:
    """Tenant from the API key, which must own the tenant_id in the path."""
    try:
        requested = UUID(tenant_id)
    except ValueError:
        requested = None
    if requested != UUID(str(tenant.tenant_id)):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="API key does not grant access to this tenant",
        )
    return tenant


TenantScopeDep = Annotated[Tenant, Depends(get_scoped_tenant)]
