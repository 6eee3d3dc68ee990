"""SeeMyCity API - FastAPI Entry Point."""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.config import settings
from app.database import engine, Base
from app.middleware.error_capture import ErrorCaptureMiddleware
from app.api import municipalities, scoring
from app.api.municipalities import limiter
from app.schemas import HealthResponse
from app.services.muni_money.adapter import FinancialDataSource, get_financial_data_source

# Register every model on Base.metadata before create_all
from app import models  # noqa: F401

API_VERSION = "0.1.0"

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup (dev only); production schemas are provisioned separately."""
    if settings.environment == "development":
        async with engine.begin() as conn:
            await conn.execute(text("CREATE EXTENSION IF NOT EXISTS postgis"))
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Development schema ready")
    logger.info(
        "SeeMyCity API started (provider=%s, default year=%s)",
        settings.financial_data_provider, settings.default_financial_year,
    )
    yield
    await engine.dispose()


app = FastAPI(
    title="SeeMyCity API",
    description="Financial health scores for South African municipalities",
    version=API_VERSION,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ── Security headers middleware ──────────────────────────────────
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds standard security headers to every response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if settings.environment != "development":
            response.headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains"
        return response


# Error capture middleware (persists unhandled errors)
app.add_middleware(ErrorCaptureMiddleware)

# Security headers
app.add_middleware(SecurityHeadersMiddleware)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Accept"],
)

# Routers
app.include_router(municipalities.router, prefix="/api/municipalities", tags=["Municipalities"])
app.include_router(scoring.router, prefix="/api/scoring", tags=["Scoring"])


@app.get("/api/health", response_model=HealthResponse)
async def health_check(source: FinancialDataSource = Depends(get_financial_data_source)):
    """Liveness plus a reachability check of the upstream financial data source."""
    upstream_ok = await source.check_health()
    if not upstream_ok:
        logger.warning("Health check: %s upstream unreachable", source.provider_name)
    return HealthResponse(
        status="healthy" if upstream_ok else "degraded",
        service="seemycity-api",
        version=API_VERSION,
        upstream=source.provider_name,
        upstream_reachable=upstream_ok,
    )
