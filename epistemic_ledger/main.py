"""FastAPI application entry point."""

import logging
import os

import httpx
from alembic import command
from alembic.config import Config
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import inspect

from epistemic_ledger.database import engine
from epistemic_ledger.errors import LedgerError
from epistemic_ledger.routes import arguments, audit, community_notes, facts

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

ALEMBIC_INI = os.path.join(os.path.dirname(os.path.dirname(__file__)), "alembic.ini")

# Create FastAPI app
app = FastAPI(
    title="Epistemic Ledger",
    description="Confidence ledger for arguments, fact claims and community notes",
    version="0.1.0",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(arguments.router)
app.include_router(facts.router)
app.include_router(community_notes.router)
app.include_router(audit.router)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    """Render ledger errors as structured JSON."""
    logger.warning(f"{request.method} {request.url.path} failed: {exc.code}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.detail},
    )


@app.exception_handler(httpx.HTTPError)
async def upstream_error_handler(request: Request, exc: httpx.HTTPError):
    """Platform lookups that fail surface as 503 rather than 500."""
    logger.error(f"{request.method} {request.url.path} upstream failure: {exc}")
    return JSONResponse(
        status_code=503,
        content={"error": "upstream_unavailable", "detail": str(exc)},
    )


def _schema_ready() -> bool:
    """The audit log is the last table the initial migration creates."""
    return inspect(engine).has_table("confidence_audit_log")


@app.on_event("startup")
async def startup_event():
    """Bring the ledger schema up to date before serving."""
    logger.info("Starting epistemic ledger...")

    try:
        if _schema_ready():
            logger.info("Ledger schema present, skipping migrations")
            return

        logger.info("Ledger schema missing, running alembic upgrade")
        command.upgrade(Config(ALEMBIC_INI), "head")
        logger.info("Ledger schema migrated to head")
    except Exception as e:
        logger.error(f"Startup schema check/migration failed: {e}")
        logger.info("Continuing startup - assuming database is ready")


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/")
def root():
    """Service banner."""
    return {
        "name": "Epistemic Ledger",
        "version": "0.1.0",
        "status": "running",
    }
