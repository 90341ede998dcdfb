"""
examguard Service - FastAPI application hosting the infraction Authority
"""
import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config import settings
from .proctor.api import get_authority, router as proctor_router, shutdown_authority
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


app = FastAPI(
    title=settings.APP_NAME,
    description="Real-time exam proctoring authority",
    version=__version__,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None
)


# ============================================================================
# Request Logging Middleware
# ============================================================================

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming requests with timing."""
    start = time.time()
    method = request.method
    path = request.url.path

    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(f"{method} {path} failed: {e}")
        raise

    if path not in ["/health", "/favicon.ico"]:
        duration_ms = int((time.time() - start) * 1000)
        logger.info(f"{method} {path} -> {response.status_code} in {duration_ms}ms")
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(proctor_router)


@app.on_event("startup")
async def startup_event():
    """Configure logging and load the persisted ledger."""
    setup_logging(
        service_name=settings.APP_NAME,
        level=settings.LOG_LEVEL,
        log_to_file=settings.LOG_TO_FILE,
        log_dir=settings.LOG_DIR,
    )
    logger.info(f"Ledger backend: {settings.LEDGER_BACKEND}")
    logger.info(f"Infraction threshold: {settings.INFRACTION_THRESHOLD}")
    await get_authority().start()


@app.on_event("shutdown")
async def shutdown_event():
    await shutdown_authority()


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": __version__
    }


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "examguard proctoring service",
        "docs": "/docs" if settings.DEBUG else "Disabled in production"
    }
