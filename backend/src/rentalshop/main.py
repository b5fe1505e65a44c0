"""FastAPI application entry point."""
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from rentalshop.api.v1 import health, plan_limits, plans, subscriptions
from rentalshop.config import settings
from rentalshop.exceptions import RentalShopError
from rentalshop.middleware.logging import LoggingMiddleware, get_request_id, setup_logging
from rentalshop.middleware.metrics import MetricsMiddleware
from rentalshop.schemas.error import REMEDIATION_HINTS, ErrorCode, ErrorDetail, ErrorResponse, get_error_message

setup_logging()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    logger.info("application_starting", env=settings.app_env)
    yield
    logger.info("application_shutting_down")


app = FastAPI(
    title="Rental Shop Billing",
    description="Subscription billing and pricing engine for rental shop merchants",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(MetricsMiddleware)
app.add_middleware(LoggingMiddleware)

metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)


def _error_response(
    request: Request,
    status_code: int,
    code: ErrorCode,
    message: str,
    details: Any = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(
        error=code.value,
        message=message,
        details=details,
        remediation=REMEDIATION_HINTS.get(code),
        request_id=get_request_id(request),
    )
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body), headers=headers)


@app.exception_handler(RentalShopError)
async def rentalshop_exception_handler(request: Request, exc: RentalShopError) -> JSONResponse:
    """Domain errors carry their own code and HTTP status."""
    logger.info(
        "request_rejected",
        error_code=exc.code.value,
        status_code=exc.status_code,
        error_message=exc.message,
    )
    return _error_response(request, exc.status_code, exc.code, exc.message, exc.details or None)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle Pydantic validation errors with structured response.

    Returns 422 with field-level details.
    """
    details = []
    for error in exc.errors():
        code = ErrorCode.MISSING_REQUIRED_FIELD if error["type"] == "missing" else ErrorCode.INVALID_INPUT
        details.append(
            ErrorDetail(
                code=code.value,
                message=error["msg"],
                field=".".join(str(loc) for loc in error["loc"]),
                value=error.get("input"),
            ).model_dump()
        )

    logger.warning("validation_error", error_count=len(details))
    return _error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        ErrorCode.VALIDATION_ERROR,
        "Request validation failed",
        details,
    )


@app.exception_handler(IntegrityError)
async def integrity_exception_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """Unique and foreign key violations that slipped past service checks."""
    logger.warning("integrity_error", error_message=str(exc.orig))
    return _error_response(
        request,
        status.HTTP_409_CONFLICT,
        ErrorCode.DUPLICATE_ENTRY,
        get_error_message(ErrorCode.DUPLICATE_ENTRY),
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """
    Handle database errors.

    Returns 503 Service Unavailable for database connection issues.
    """
    logger.error(
        "database_error",
        error_type=type(exc).__name__,
        error_message=str(exc),
    )

    # Don't expose internal database details in production
    message = get_error_message(ErrorCode.DATABASE_ERROR) if settings.app_env == "production" else str(exc)
    return _error_response(
        request,
        status.HTTP_503_SERVICE_UNAVAILABLE,
        ErrorCode.DATABASE_ERROR,
        message,
        headers={"Retry-After": "30"},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle all other uncaught exceptions.

    Logs the full stack trace but returns a safe message to the client.
    """
    logger.exception(
        "unhandled_exception",
        exception_type=type(exc).__name__,
        exception_message=str(exc),
    )
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        ErrorCode.INTERNAL_SERVER_ERROR,
        str(exc) if settings.debug else get_error_message(ErrorCode.INTERNAL_SERVER_ERROR),
    )


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint with API information."""
    return {
        "service": "Rental Shop Billing",
        "version": "0.1.0",
        "status": "operational",
        "docs": "/docs",
    }


app.include_router(health.router)
app.include_router(plans.router, prefix="/v1")
app.include_router(subscriptions.router, prefix="/v1")
app.include_router(plan_limits.router, prefix="/v1")
