"""
Arcod Downloads API - Main application entry point.

Download job lifecycle with guest quotas and a cleanup watchdog.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from arcod.core.config import get_settings
from arcod.core.database import Database
from arcod.core.exceptions import AppException, StoreUnavailableException, ValidationException
from arcod.access.views import router as guest_router
from arcod.admin.views import router as admin_router
from arcod.jobs.views import router as downloads_router

settings = get_settings()
API_PREFIX = "/api/v1"

logging.basicConfig(
    level=getattr(logging, (settings.LOG_LEVEL or "INFO").upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown events."""
    # Startup
    await Database.connect()
    yield
    # Shutdown
    await Database.disconnect()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
## Arcod Downloads API

Request an album or track download, poll its progress and fetch the result.

- Guests are limited per hour and per address; accounts are not.
- Jobs that never start, or stop making progress, are failed automatically.
- Failed and cancelled jobs are purged after a day; completed downloads are kept.
    """,
    lifespan=lifespan,
    debug=settings.DEBUG,
    docs_url=f"{API_PREFIX}/docs",
    redoc_url=f"{API_PREFIX}/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    return JSONResponse(
        {"error": exc.code, "message": exc.detail, **exc.extra},
        status_code=exc.status_code,
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{location}: {first.get('msg')}" if location else str(first.get("msg") or "Bad request")
    return await app_exception_handler(request, ValidationException(message))


@app.exception_handler(PyMongoError)
async def store_exception_handler(request: Request, exc: PyMongoError):
    logger.error(f"Job store error on {request.method} {request.url.path}: {exc}")
    return await app_exception_handler(request, StoreUnavailableException())


# Include routers
routers = [
    downloads_router,
    guest_router,
    admin_router,
]

for router in routers:
    app.include_router(router, prefix=API_PREFIX)


@app.get("/", tags=["Health"])
async def root():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "database": "connected" if Database.client else "disconnected",
        "version": settings.APP_VERSION,
    }
