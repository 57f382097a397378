"""Tax rules FastAPI application."""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from taxrules.api.analytics import router as analytics_router
from taxrules.api.calculations import router as calculations_router
from taxrules.api.health import SERVICE_VERSION
from taxrules.api.health import router as health_router
from taxrules.api.rates import router as rates_router
from taxrules.api.rules import router as rules_router
from taxrules.config import settings
from taxrules.errors import TaxError

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

TAX_PREFIX = "/tenants/{tenant_id}/tax"

app = FastAPI(
    title="Tax Rules Service",
    description="Multi-tenant tax rule management and auditable tax calculation",
    version=SERVICE_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TaxError)
async def tax_error_handler(request: Request, exc: TaxError):
    logger.warning("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(health_router, tags=["Health"])
app.include_router(calculations_router, prefix=TAX_PREFIX, tags=["Calculations"])
app.include_router(rules_router, prefix=TAX_PREFIX, tags=["Rules"])
app.include_router(rates_router, prefix=TAX_PREFIX, tags=["Rates"])
app.include_router(analytics_router, prefix=TAX_PREFIX, tags=["Analytics"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {"service": "Tax Rules Service", "version": SERVICE_VERSION, "docs": "/docs"}
