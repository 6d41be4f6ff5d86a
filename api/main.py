"""
FastAPI application initialization
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from api.middleware import RequestContextMiddleware
from api.routes import health, sync, formations, stats
from core.config import settings, DatabaseProvider
from core.context import build_context
from core.database import create_tables
from core.exceptions import SyncException, AuthenticationError, TransientFetchError
from core.logging import setup_logging
from schemas.api import ErrorResponse
from scraper.scheduler import SyncScheduler
import logging

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Formation Sync API",
    description="Imports drone show formations from a third-party platform and exports them to show formats",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

# Include routers
app.include_router(health.router)
app.include_router(sync.router)
app.include_router(formations.router)
app.include_router(stats.router)


@app.exception_handler(SyncException)
async def sync_exception_handler(request: Request, exc: SyncException):
    """Structured body for pipeline errors that reach a route"""
    status_code = 502 if isinstance(exc, (AuthenticationError, TransientFetchError)) else 500
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    body = ErrorResponse(
        error=type(exc).__name__,
        detail=exc.message,
        request_id=getattr(request.state, "request_id", None),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    setup_logging()
    logger.info("Starting Formation Sync API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    context = build_context(settings)
    if settings.DATABASE_PROVIDER == DatabaseProvider.SQLITE:
        await create_tables(context.engine)

    app.state.context = context
    app.state.scheduler = SyncScheduler(context)
    app.state.scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Formation Sync API")
    app.state.scheduler.stop()
    await app.state.context.dispose()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Formation Sync API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "sync": "/sync",
            "formations": "/formations",
            "stats": "/stats"
        }
    }
