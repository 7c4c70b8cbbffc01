"""
LA Plumb Prep - Pricing API
Referral commissions, bulk enrollment and employer job-posting pricing
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
import os
import logging
from contextlib import asynccontextmanager
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Import API routers
from app.api import referrals, bulk_enrollment, employers, billing, stripe_webhook
from app.api.admin import bulk_tiers, bulk_enrollment as admin_bulk_enrollment, referrals as admin_referrals
from app.utils.database import engine, create_tables, ping_database
from app.utils.errors import PricingError, InvalidStatusTransitionError, PersistenceError

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup; tiers are seeded by the migration, not here
    if os.getenv("AUTO_CREATE_TABLES", "false").lower() == "true":
        await create_tables()
    yield
    # Shutdown
    await engine.dispose()

# Initialize FastAPI app
app = FastAPI(
    title="LA Plumb Prep",
    description="Pricing engine for the plumbing certification platform",
    version="1.0.0",
    docs_url="/api/docs" if os.getenv("DEBUG", "false").lower() == "true" else None,
    lifespan=lifespan
)

# Middleware
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Error handlers
@app.exception_handler(PricingError)
async def pricing_error_handler(request: Request, exc: PricingError):
    logger.warning(f"Rejected {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})

@app.exception_handler(InvalidStatusTransitionError)
async def status_transition_error_handler(request: Request, exc: InvalidStatusTransitionError):
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})

@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.error(f"Persistence failure on {request.method} {request.url.path}: {exc}", exc_info=exc.__cause__)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": "Something went wrong while saving. Please try again."}
    )

# API Routes
app.include_router(referrals.router, prefix="/api/v1/referrals", tags=["referrals"])
app.include_router(bulk_enrollment.router, prefix="/api/v1", tags=["bulk-enrollment"])
app.include_router(employers.router, prefix="/api/v1/employers", tags=["employers"])
app.include_router(billing.router, prefix="/api/v1/billing", tags=["billing"])
app.include_router(stripe_webhook.router, prefix="/api/v1", tags=["stripe"])

# Admin Routes
app.include_router(bulk_tiers.router, prefix="/admin/bulk-tiers", tags=["admin-bulk-tiers"])
app.include_router(admin_bulk_enrollment.router, prefix="/admin/bulk-enrollment", tags=["admin-bulk-enrollment"])
app.include_router(admin_referrals.router, prefix="/admin/referrals", tags=["admin-referrals"])

@app.get("/health")
async def health_check():
    """Health check endpoint"""
    database_ok = await ping_database()
    return {
        "status": "healthy" if database_ok else "degraded",
        "service": "plumbprep-pricing",
        "database": "ok" if database_ok else "unreachable",
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8011")),
        reload=os.getenv("DEBUG", "false").lower() == "true"
    )
