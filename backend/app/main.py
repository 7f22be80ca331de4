"""
Download Entitlements - FastAPI Application

Main entry point for the backend API.
Provides the plan catalog, subscription ledger, Stripe checkout and
webhooks, quota-enforced downloads and admin analytics.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from app.config.settings import settings
from app.infrastructure.exceptions import (
    AuthenticationFailedError,
    ConflictError,
    EntitlementsError,
    ForbiddenError,
    NotFoundError,
    PaymentProviderError,
    TransientError,
    ValidationError,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    logger.info(f"Entitlements service starting in {settings.environment} mode...")

    if settings.database_url:
        try:
            from app.infrastructure.db.database import init_db
            await init_db()
            logger.info("Database connection pool initialized")
        except Exception as e:
            logger.warning(f"Database initialization skipped: {e}")
    else:
        logger.warning("DATABASE_URL not set; database-backed endpoints will fail")

    yield

    # Shutdown
    if settings.database_url:
        try:
            from app.infrastructure.db.database import close_db
            await close_db()
            logger.info("Database connection pool closed")
        except Exception as e:
            logger.warning(f"Database shutdown error: {e}")

    logger.info("Entitlements service shutting down...")


app = FastAPI(
    title="Download Entitlements",
    description="Subscription plans, Stripe reconciliation and daily download quotas",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS configuration from Settings
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Exception Handlers
# ============================================================================

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    """Handle validation errors."""
    return JSONResponse(
        status_code=400,
        content=exc.to_dict(),
    )


@app.exception_handler(AuthenticationFailedError)
async def authentication_failed_handler(request: Request, exc: AuthenticationFailedError):
    """Bad or missing webhook signature."""
    logger.warning(f"Webhook authentication failed: {exc.message}")
    return JSONResponse(
        status_code=400,
        content=exc.to_dict(),
    )


@app.exception_handler(NotFoundError)
async def not_found_error_handler(request: Request, exc: NotFoundError):
    """Handle not found errors."""
    return JSONResponse(
        status_code=404,
        content=exc.to_dict(),
    )


@app.exception_handler(ConflictError)
async def conflict_error_handler(request: Request, exc: ConflictError):
    return JSONResponse(
        status_code=409,
        content=exc.to_dict(),
    )


@app.exception_handler(ForbiddenError)
async def forbidden_error_handler(request: Request, exc: ForbiddenError):
    """Privilege or quota denial; quota denials carry ``remaining``."""
    return JSONResponse(
        status_code=403,
        content=exc.to_dict(),
    )


@app.exception_handler(TransientError)
async def transient_error_handler(request: Request, exc: TransientError):
    """Retryable failure; clients and Stripe should retry with backoff."""
    logger.warning(f"Transient failure: {exc.message}")
    return JSONResponse(
        status_code=503,
        content=exc.to_dict(),
        headers={"Retry-After": "5"},
    )


@app.exception_handler(OperationalError)
async def database_unavailable_handler(request: Request, exc: OperationalError):
    """Connection-level database failure raised outside a session dependency."""
    logger.warning(f"Database unavailable: {exc}")
    error = TransientError("Database unavailable", operation="request", original_error=exc)
    return JSONResponse(
        status_code=503,
        content=error.to_dict(),
        headers={"Retry-After": "5"},
    )


@app.exception_handler(PaymentProviderError)
async def payment_provider_error_handler(request: Request, exc: PaymentProviderError):
    logger.error(f"Payment provider error: {exc.message}")
    return JSONResponse(
        status_code=502,
        content=exc.to_dict(),
    )


@app.exception_handler(EntitlementsError)
async def general_error_handler(request: Request, exc: EntitlementsError):
    """Handle all other application errors (configuration included)."""
    logger.error(f"Unhandled application error: {exc.message}")
    return JSONResponse(
        status_code=500,
        content=exc.to_dict(),
    )


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "download-entitlements"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Download Entitlements API",
        "version": "1.0.0",
        "docs": "/docs",
    }


# ============================================================================
# Import and register routers
# ============================================================================

from app.api.routes import admin, analytics, downloads, payments, plans, subscriptions, webhooks  # noqa: E402

app.include_router(plans.router, prefix="/api", tags=["Plans"])
app.include_router(subscriptions.router, prefix="/api", tags=["Subscriptions"])
app.include_router(payments.router, prefix="/api", tags=["Payments"])
app.include_router(webhooks.router, prefix="/api", tags=["Webhooks"])
app.include_router(downloads.router, prefix="/api", tags=["Downloads"])
app.include_router(analytics.router, prefix="/api")
app.include_router(admin.router, prefix="/api")
