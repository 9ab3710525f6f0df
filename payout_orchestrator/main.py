"""
FastAPI application main module.
Middleware, domain error mapping and health checks for the payout orchestrator.
"""
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import time
import os
from contextlib import asynccontextmanager
from sqlalchemy import text
from sqlalchemy.orm import Session
from payout_orchestrator import __version__
from payout_orchestrator.api.deps import get_db
from payout_orchestrator.api.v1 import api_router
from payout_orchestrator.config import QUOTE_PROVIDER_SETTINGS
from payout_orchestrator.database import Base, engine
from payout_orchestrator.errors import (
    CsvValidationError,
    InvalidStateError,
    NotFoundError,
    PayoutError,
)
from payout_orchestrator.utils import setup_logging, get_logger
from payout_orchestrator.utils.circuit_breaker import GLOBAL_CIRCUIT_BREAKER
from payout_orchestrator.utils.observability import REQUEST_ID_HEADER, ensure_request_id, request_id_from

# Import models so their tables are registered on Base.metadata
import payout_orchestrator.models.db  # noqa: F401

# Setup logging before creating the app
setup_logging(
    log_level=os.getenv("LOG_LEVEL", "INFO"),
    log_file=os.getenv("LOG_FILE"),
    enable_console=True
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Creates tables on startup.
    """
    logger.info("Application startup initiated")
    try:
        logger.info("Creating database tables")
        Base.metadata.create_all(bind=engine)
        logger.info(
            "Application startup completed successfully",
            quote_provider=QUOTE_PROVIDER_SETTINGS["provider"],
        )
        yield
    except Exception as e:  # pragma: no cover
        logger.error("Application startup failed", error=str(e), exc_info=True)
        raise
    finally:
        logger.info("Application shutdown completed")


app = FastAPI(
    title="Payout Orchestrator",
    description="""
    Cross-chain stablecoin payout orchestration.

    ## Flow
    * **Create** a batch from CSV rows (recipient, destination chain, token, amount)
    * **Plan** it into routing groups with HUB or DIRECT execution mode
    * **Quote** every item and check it against the batch policy
    * **Execute** quoted items idempotently, with a bounded retry budget per item
    * **Export** results as JSON or CSV
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/api/v1/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(GZipMiddleware, minimum_size=1000)


# Request ID and request/response logging middleware
@app.middleware("http")
async def add_request_context_and_logging(request: Request, call_next):
    request_id = ensure_request_id(request.headers)
    request.state.request_id = request_id
    request.state.start_time = time.time()

    logger.info(
        "Request started",
        method=request.method,
        url=str(request.url),
        user_agent=request.headers.get("User-Agent"),
        remote_addr=request.client.host if request.client else "unknown",
        request_id=request_id
    )

    response = await call_next(request)

    process_time = time.time() - request.state.start_time
    response.headers[REQUEST_ID_HEADER] = request_id
    response.headers["X-Process-Time"] = str(round(process_time * 1000, 2))
    response.headers["X-Content-Type-Options"] = "nosniff"

    logger.info(
        "Request completed",
        method=request.method,
        url=str(request.url),
        status_code=response.status_code,
        process_time_ms=round(process_time * 1000, 2),
        request_id=request_id
    )
    return response


def _error_response(request: Request, status_code: int, message: str, **extra) -> JSONResponse:
    request_id = request_id_from(request)
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, "request_id": request_id, **extra},
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    logger.warning("Entity not found", entity=exc.entity, entity_id=exc.entity_id, url=str(request.url))
    return _error_response(request, 404, str(exc))


@app.exception_handler(InvalidStateError)
async def invalid_state_handler(request: Request, exc: InvalidStateError):
    logger.warning(
        "Invalid state for operation",
        entity=exc.entity,
        entity_id=exc.entity_id,
        current=exc.current,
        url=str(request.url),
        method=request.method,
    )
    return _error_response(request, 409, str(exc), current_status=exc.current)


@app.exception_handler(CsvValidationError)
async def csv_validation_handler(request: Request, exc: CsvValidationError):
    logger.warning("CSV validation failed", error_count=len(exc.errors), url=str(request.url))
    return _error_response(request, 400, str(exc), details=exc.errors)


@app.exception_handler(PayoutError)
async def payout_error_handler(request: Request, exc: PayoutError):
    logger.warning("Payout operation failed", error=str(exc), error_type=type(exc).__name__, url=str(request.url))
    return _error_response(request, 400, str(exc))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors."""
    logger.warning(
        "Request validation failed",
        errors=exc.errors(),
        request_id=request_id_from(request),
        url=str(request.url),
        method=request.method
    )
    return _error_response(request, 422, "Request validation failed", details=jsonable_errors(exc))


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may hold exception instances that are not JSON serializable
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    logger.warning(
        "HTTP exception",
        status_code=exc.status_code,
        detail=exc.detail,
        url=str(request.url),
        method=request.method
    )
    return _error_response(request, exc.status_code, exc.detail)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(
        "Unhandled exception",
        error=str(exc),
        error_type=type(exc).__name__,
        request_id=request_id_from(request),
        url=str(request.url),
        method=request.method,
        exc_info=True
    )
    return _error_response(request, 500, "Internal server error")


@app.get("/health", tags=["health"], summary="Basic health check")
async def health_check(db: Session = Depends(get_db)):
    """Health check with database reachability and quote provider breaker state."""
    status = "healthy"
    checks = {}
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except Exception as e:
        checks["database"] = f"unhealthy: {str(e)}"
        status = "degraded"
    checks["circuit_breaker"] = GLOBAL_CIRCUIT_BREAKER.snapshot()
    return {
        "status": status,
        "service": "payout-orchestrator",
        "version": __version__,
        "timestamp": time.time(),
        "quote_provider": QUOTE_PROVIDER_SETTINGS["provider"],
        "checks": checks,
    }


app.include_router(api_router, prefix="/api/v1")

# Development server configuration
if __name__ == "__main__":
    import uvicorn

    logger.info("Starting development server")

    uvicorn.run(
        "payout_orchestrator.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
        access_log=True
    )
