"""Sakila rentals API — FastAPI entry point.

Registers middleware, routers, and lifecycle hooks. The customer surface
lives under /customer and the staff back office under /staff/api.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import CallerMiddleware
from core.database import close_db, get_session_context, init_db
from core.observability.otel_setup import setup_otel

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS", "http://localhost:3000,http://localhost:3001"
).split(",")
DEBUG = os.getenv("DEBUG", "true").lower() == "true"
CREATE_TABLES = os.getenv("DB_CREATE_TABLES", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG" if DEBUG else "INFO").upper()

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("sakila.api")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown hooks."""
    from verticals.sakila.config import config
    from verticals.sakila.maintenance import LedgerMaintenance

    if CREATE_TABLES:
        await init_db()

    app.state.tracer = setup_otel()

    async with get_session_context() as session:
        report = await LedgerMaintenance(session, config).run_if_enabled("startup")
    if report is not None:
        logger.info(
            "Startup ledger repair: %d statuses normalised, %d amounts repaired",
            report.normalized_statuses,
            report.repaired_amounts,
        )

    logger.info("Sakila rentals API started")
    yield
    await close_db()
    logger.info("Sakila rentals API shutting down")


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Sakila Rentals",
    description="DVD rental storefront and back office: rental lifecycle engine",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Caller identity middleware
app.add_middleware(CallerMiddleware)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

from verticals.sakila.router import customer_router, staff_router  # noqa: E402

app.include_router(customer_router, prefix="/customer", tags=["Customer"])
app.include_router(staff_router, prefix="/staff/api", tags=["Staff"])


# ---------------------------------------------------------------------------
# Health & root
# ---------------------------------------------------------------------------

@app.get("/health")
async def health():
    return {"status": "healthy", "version": "0.1.0"}


@app.get("/")
async def root():
    return {
        "name": "Sakila Rentals",
        "version": "0.1.0",
        "docs": "/docs",
        "surfaces": ["customer", "staff"],
    }
