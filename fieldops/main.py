"""
Field Operations API - Main Application

Tickets, notes, photos and reports for mold and water-damage field work.
Stores and services are built once per application in the lifespan and
shared through ``app.state.services``.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from fieldops.api.v2.router import api_router
from fieldops.config import settings
from fieldops.database import async_session_maker, init_db
from fieldops.exceptions import FieldOpsException, create_exception_handlers
from fieldops.middleware.correlation import CorrelationIdMiddleware, CorrelationLogFilter
from fieldops.services.container import build_services

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] [ticket %(ticket_id)s] %(message)s",
)
for handler in logging.getLogger().handlers:
    handler.addFilter(CorrelationLogFilter())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting Field Operations API...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    if settings.DATABASE_URL:
        logger.info(f"Database URL prefix: {settings.DATABASE_URL[:30]}...")
    await init_db()
    logger.info("Database initialized successfully")

    services = build_services(settings, async_session_maker)
    app.state.services = services
    await services.sync_mirrors()
    logger.info(f"Ticket mirror loaded ({len(services.tickets_mirror)} tickets)")
    yield
    # Shutdown
    logger.info("Shutting down Field Operations API...")
    await services.aclose()


docs_url = "/docs" if settings.DOCS_ENABLED else None
redoc_url = "/redoc" if settings.DOCS_ENABLED else None

app = FastAPI(
    title="Field Operations API",
    description="Tickets, inspections and remediation for mold and water-damage jobs",
    version="2.0.0",
    docs_url=docs_url,
    redoc_url=redoc_url,
    lifespan=lifespan,
)

# CORS middleware
allowed_origins = [
    settings.FRONTEND_URL,
    "http://localhost:8081",  # Expo dev server
    "http://localhost:19006",  # Expo web
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

# RFC 7807 error responses
handlers = create_exception_handlers(settings.DEBUG)
app.add_exception_handler(FieldOpsException, handlers["fieldops"])
app.add_exception_handler(StarletteHTTPException, handlers["http"])
app.add_exception_handler(RequestValidationError, handlers["validation"])
app.add_exception_handler(Exception, handlers["generic"])

# Include routers
app.include_router(api_router, prefix="/api/v2")


@app.get("/")
async def root():
    """Root endpoint - API info."""
    response = {
        "name": "Field Operations API",
        "version": "2.0.0",
        "health": "/health",
    }
    if settings.DOCS_ENABLED:
        response["docs"] = "/docs"
    return response


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": "2.0.0",
        "environment": settings.ENVIRONMENT,
    }


# For running with uvicorn directly (development only)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "fieldops.main:app",
        host="0.0.0.0",
        port=5001,
        reload=settings.DEBUG,
    )
