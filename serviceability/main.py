"""Main FastAPI application for the Serviceability API"""

import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response as StarletteResponse

from serviceability.config import settings
from serviceability.database import engine, Base
from serviceability.middleware import LoggingMiddleware, SecurityMiddleware
from serviceability.routers import catalog, health, serviceability
from serviceability.services.errors import InvalidQueryError, UpstreamUnavailableError

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer() if settings.log_format == "json" else structlog.dev.ConsoleRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

# Rate limiting
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"]
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("Starting Serviceability API", version=settings.app_version)

    # Create database tables
    Base.metadata.create_all(bind=engine)

    logger.info("Serviceability API started successfully", timezone=settings.service_timezone)

    yield

    logger.info("Shutting down Serviceability API")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Geofence and base-location serviceability resolution for delivery and lab collection",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
    lifespan=lifespan
)

# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add middleware
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(LoggingMiddleware)
app.add_middleware(SecurityMiddleware)

# Include routers
app.include_router(serviceability.router, prefix="/serviceability", tags=["serviceability"])
app.include_router(catalog.router, prefix="/catalog", tags=["catalog"])
app.include_router(health.router, prefix="", tags=["health"])


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint"""
    return StarletteResponse(
        generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def _run_id(request: Request) -> str:
    return getattr(request.state, 'run_id', str(uuid.uuid4()))


@app.exception_handler(InvalidQueryError)
async def invalid_query_handler(request: Request, exc: InvalidQueryError):
    """Bad query input is a client error, never 'not serviceable'"""
    run_id = _run_id(request)
    logger.warning("Invalid query", run_id=run_id, field=exc.field, detail=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=400,
        content={
            "error": str(exc),
            "code": exc.code,
            "details": {"field": exc.field} if exc.field else None,
            "trace_id": run_id
        }
    )


@app.exception_handler(UpstreamUnavailableError)
async def upstream_unavailable_handler(request: Request, exc: UpstreamUnavailableError):
    """Catalog or capacity store could not be reached"""
    run_id = _run_id(request)
    logger.error("Upstream unavailable", run_id=run_id, code=exc.code, detail=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=503,
        content={
            "error": "Serviceability data is temporarily unavailable",
            "code": exc.code,
            "trace_id": run_id
        }
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Global HTTP exception handler"""
    run_id = _run_id(request)

    logger.error(
        "HTTP exception",
        run_id=run_id,
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
        method=request.method
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.detail,
            "code": f"HTTP_{exc.status_code}",
            "trace_id": run_id
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    run_id = _run_id(request)

    logger.error(
        "Unhandled exception",
        run_id=run_id,
        exception=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "code": "INTERNAL_ERROR",
            "trace_id": run_id
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "serviceability.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
