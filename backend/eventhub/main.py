"""
EventHub Reservations API - Main Application Entry Point

Event browsing and spot reservation with:
- A capacity ledger that never oversells the last spot under concurrent load
- A confirmed/canceled reservation state machine
- Redis caching invalidated through a single post-commit hook
- Structured logging with request correlation
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from eventhub.core.config import get_settings
from eventhub.core.exceptions import ErrorKind, ReservationError
from eventhub.core.logging import setup_logging, get_logger
from eventhub.core.metrics import metrics_endpoint
from eventhub.api.router import api_router
from eventhub.api.middleware import RequestLoggingMiddleware
from eventhub.services.cache_service import get_redis, close_redis, get_cache_stats

settings = get_settings()
logger = get_logger(__name__)

ERROR_STATUS = {
    ErrorKind.EVENT_NOT_FOUND: 404,
    ErrorKind.RESERVATION_NOT_FOUND: 404,
    ErrorKind.EVENT_IN_PAST: 400,
    ErrorKind.SELF_RESERVATION_FORBIDDEN: 400,
    ErrorKind.NO_CAPACITY: 400,
    ErrorKind.ALREADY_CANCELED: 400,
    ErrorKind.CAPACITY_BELOW_RESERVED_FLOOR: 400,
    ErrorKind.ALREADY_RESERVED: 409,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.USER_NOT_FOUND: 404,
    ErrorKind.EMAIL_TAKEN: 409,
    ErrorKind.SELF_DELETION_FORBIDDEN: 400,
    ErrorKind.STORAGE_FAILURE: 500,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without cache")

    yield

    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Event reservation API with a concurrency-safe capacity ledger",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)


@app.exception_handler(ReservationError)
async def reservation_error_handler(request: Request, exc: ReservationError) -> JSONResponse:
    """Map core error kinds to client-facing responses."""
    status_code = ERROR_STATUS.get(exc.kind, 400)
    if exc.kind == ErrorKind.STORAGE_FAILURE:
        # Details were logged where the transaction failed
        return JSONResponse(
            status_code=status_code,
            content={"error": exc.kind.value, "detail": "Internal server error"},
        )
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.kind.value, "detail": exc.message},
    )


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
