"""FastAPI main application."""

import logging
from contextlib import asynccontextmanager
from decimal import Decimal

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1 import debts
from app.config import settings
from app.core.database import close_db, init_db
from app.core.logging_config import setup_logging
from app.middleware.error_handler import ErrorHandlerMiddleware
from app.services.ledger_store import InvalidLoanTermsError

_logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    setup_logging()
    _logger.info("Starting %s %s", settings.APP_NAME, settings.APP_VERSION)

    await init_db()

    yield

    # Shutdown
    _logger.info("Shutting down %s", settings.APP_NAME)
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_url="/openapi.json" if settings.DEBUG else None,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Error handler - Catch uncaught exceptions
app.add_middleware(ErrorHandlerMiddleware)


def _make_json_serializable(obj):
    """Recursively convert non-JSON-serializable types to serializable ones."""
    if isinstance(obj, dict):
        return {k: _make_json_serializable(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_make_json_serializable(i) for i in obj]
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, type):
        return str(obj)
    if isinstance(obj, Exception):
        return str(obj)
    return obj


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc):
    _logger.debug("Validation error on %s: %s", request.url, exc.errors())
    errors = _make_json_serializable(exc.errors())
    return JSONResponse(
        status_code=422,
        content={"detail": errors},
    )


@app.exception_handler(InvalidLoanTermsError)
async def invalid_loan_terms_handler(request, exc):
    _logger.warning("Invalid loan terms on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=422,
        content={"detail": "Debt account has invalid loan terms", "account_id": str(exc.account_id)},
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


app.include_router(debts.router, prefix="/api/v1/debts", tags=["Debts"])
