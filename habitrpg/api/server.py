"""FastAPI application setup"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import psycopg

from habitrpg import __version__
from habitrpg.api.routes import router
from habitrpg.api.middleware import setup_cors, setup_rate_limiting
from habitrpg.db.connection import db
from habitrpg.config import LOG_LEVEL, validate_config
from habitrpg.exceptions import (
    AuthenticationError,
    ConnectionError,
    HabitRPGError,
    LimitReachedError,
    RecordNotFoundError,
    TransientError,
    ValidationError,
    wrap_external_exception,
)
from habitrpg.observability.metrics import errors_total, init_metrics
from habitrpg.observability.metrics_middleware import setup_metrics_middleware
from habitrpg.services.container import init_container

# Configure logging
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO)
)

logger = logging.getLogger(__name__)

# Most specific first
ERROR_STATUS = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (LimitReachedError, status.HTTP_400_BAD_REQUEST),
    (RecordNotFoundError, status.HTTP_404_NOT_FOUND),
    (AuthenticationError, status.HTTP_401_UNAUTHORIZED),
    (TransientError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ConnectionError, status.HTTP_503_SERVICE_UNAVAILABLE),
]

INTERNAL_ERROR_MESSAGE = "An unexpected error occurred"


def status_for_error(exc: HabitRPGError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for FastAPI application"""
    # Startup
    logger.info("Starting API server...")
    validate_config()
    await db.init_pool()
    logger.info("Database pool initialized")

    init_container(db)
    init_metrics()

    yield

    # Shutdown
    logger.info("Shutting down API server...")
    await db.close_pool()
    logger.info("Database pool closed")


def create_api_application() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="HabitRPG API",
        description="Habit tracking with XP, levels and streaks",
        version=__version__,
        lifespan=lifespan
    )

    # Setup middleware
    setup_cors(app)
    setup_rate_limiting(app)
    setup_metrics_middleware(app)

    # Include routes
    app.include_router(router)

    @app.exception_handler(HabitRPGError)
    async def habitrpg_exception_handler(request: Request, exc: HabitRPGError):
        status_code = status_for_error(exc)
        errors_total.labels(error_type=type(exc).__name__, component="api").inc()

        headers = None
        if status_code == status.HTTP_503_SERVICE_UNAVAILABLE:
            headers = {"Retry-After": "1"}

        return JSONResponse(status_code=status_code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(psycopg.OperationalError)
    async def database_unavailable_handler(request: Request, exc: psycopg.OperationalError):
        error = wrap_external_exception(exc, operation=f"{request.method} {request.url.path}")
        errors_total.labels(error_type=type(error).__name__, component="database").inc()
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=error.to_dict(),
            headers={"Retry-After": "1"}
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "Invalid request")
        logger.info(f"Rejected request to {request.url.path}: {errors}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"message": f"{location}: {message}" if location else message}
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": exc.detail},
            headers=getattr(exc, "headers", None)
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
        errors_total.labels(error_type=type(exc).__name__, component="api").inc()
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": INTERNAL_ERROR_MESSAGE}
        )

    logger.info("FastAPI application created")

    return app
