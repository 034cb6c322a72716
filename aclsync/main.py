"""
Main FastAPI application entry point.
"""
import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from aclsync.core.config import settings
from aclsync.core.database import engine, Base, SessionLocal
from aclsync.core.logging_config import setup_logging
from aclsync.api.v1.router import api_router
from aclsync.middleware.request_logging import RequestLoggingMiddleware
from aclsync.services.connector import Connector
from aclsync.services.scheduler import Scheduler

# Import all models to ensure they register with Base.metadata
from aclsync.models import AccessControlListResource, ReconcileEvent  # noqa: F401

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, then run the reconciliation scheduler for the app's lifetime."""
    logger.info("Starting up ACL Sync API...")

    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created/verified successfully")
    except SQLAlchemyError as e:
        # Let the health endpoint report the issue
        logger.error(f"Failed to create database tables: {e}", exc_info=True)

    scheduler = Scheduler(SessionLocal, Connector(settings))
    app.state.scheduler = scheduler
    if settings.RECONCILE_ENABLED:
        scheduler.start()
    else:
        logger.info("RECONCILE_ENABLED is off, ACLs are only reconciled on request")

    yield

    logger.info("Shutting down ACL Sync API...")
    scheduler.stop()


app = FastAPI(
    title="ACL Sync API",
    description="Declare Kafka ACLs and keep the cluster reconciled against them",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    redirect_slashes=False,
)

# Request logging middleware (must be added before other middleware)
app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors with trace_id."""
    trace_id = getattr(request.state, "trace_id", str(uuid.uuid4()))

    logger.error(
        f"[{trace_id}] Unhandled exception: {type(exc).__name__}: {exc}",
        exc_info=True
    )

    if isinstance(exc, HTTPException):
        raise exc
    if isinstance(exc, SQLAlchemyError):
        error_detail = "Database error: check DATABASE_URL"
        error_type = "DatabaseError"
    else:
        error_detail = str(exc) if settings.DEBUG else "Internal Server Error"
        error_type = type(exc).__name__

    return JSONResponse(
        status_code=500,
        content={
            "detail": error_detail,
            "trace_id": trace_id,
            "error": error_type,
        },
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "ACL Sync API",
        "version": "1.0.0",
        "docs": "/docs",
    }
