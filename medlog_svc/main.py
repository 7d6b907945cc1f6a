"""
FastAPI application entry point for the MedLog API.

This module configures and creates the FastAPI application with:
- Structured JSON Logging: Request/response logging with request ids
- Dependency Injection: Services and repositories injected via Depends()
- Exception Handling: Consistent error responses via setup_exception_handlers()
- CORS Middleware: Allows the web client to call the API
- Lifespan Management: Database initialization and the startup auto backup

Architecture Overview:
    ┌─────────────────────────────────────────────────────────────┐
    │                     FastAPI Application                      │
    ├─────────────────────────────────────────────────────────────┤
    │  Middleware Stack (order matters!)                          │
    │    ├── LoggingMiddleware  - Request logging & request ids   │
    │    └── CORSMiddleware     - Cross-origin support            │
    ├─────────────────────────────────────────────────────────────┤
    │  Routers (api/routers/)                                     │
    │    ├── health.py      - /health, /ready                     │
    │    ├── records.py     - Visit records, attachments, OCR     │
    │    ├── medications.py - Medication courses and dose logs    │
    │    ├── assistant.py   - Rule-based and Gemini Q&A           │
    │    ├── backups.py     - Encrypted backup and restore        │
    │    ├── stats.py       - Record statistics                   │
    │    └── meta.py        - Form choice lists                   │
    ├─────────────────────────────────────────────────────────────┤
    │  Services (services/)     ← Injected via Depends()          │
    │    ├── RecordService / MedicationService                    │
    │    ├── IntentEngine       - Chinese intent matching         │
    │    ├── BackupService      - AES-GCM backup codec and files  │
    │    ├── OcrService         - Attachment OCR via Gemini       │
    │    └── StatsService                                         │
    ├─────────────────────────────────────────────────────────────┤
    │  Repositories (repositories/)   ← Injected into Services    │
    │    ├── RecordRepository       - Records and attachments     │
    │    ├── MedicationRepository   - Medications and dose logs   │
    │    └── PreferencesRepository  - Key/value preferences       │
    ├─────────────────────────────────────────────────────────────┤
    │  Database (SQLite)              ← Injected into Repositories│
    └─────────────────────────────────────────────────────────────┘
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from core.config import API_HOST, API_PORT, API_RELOAD
from core.dependencies import (
    get_backup_manager,
    get_backup_service,
    get_database,
    get_preferences_repository,
    get_record_repository,
)
from core.exceptions import setup_exception_handlers
from core.logging_config import setup_logging
from core.middleware import LoggingMiddleware
from api.routers import (
    assistant_router,
    backups_router,
    health_router,
    medications_router,
    meta_router,
    records_router,
    stats_router,
)


def run_startup_backup(logger: logging.Logger) -> None:
    """Write an automatic backup if enabled. Failures are logged, never raised."""
    db = get_database()
    backup_service = get_backup_service(
        record_repo=get_record_repository(db),
        preferences_repo=get_preferences_repository(db),
        manager=get_backup_manager(),
    )
    try:
        file_name = backup_service.run_auto_backup()
    except Exception:
        logger.exception("Automatic backup failed")
        return
    if file_name:
        logger.info("Automatic backup written", extra={"file_name": file_name})


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for FastAPI application.

    Startup:
        - Configures structured JSON logging
        - Initializes database connection (triggers schema creation)
        - Writes the automatic backup when it is enabled

    Shutdown:
        - Logs shutdown message
    """
    # Configure structured logging FIRST (before any other logging)
    setup_logging(level="INFO", json_format=True)

    logger = logging.getLogger(__name__)
    logger.info("Starting MedLog API...")

    db = get_database()
    logger.info(
        "Database initialized",
        extra={"db_path": db.db_path}
    )

    run_startup_backup(logger)

    yield  # Application runs here

    logger.info("MedLog API shutting down...")


app = FastAPI(
    title="MedLog API",
    description="Personal medical visit log: visit records with attachments and costs, "
                "medication reminders, a Chinese question assistant and encrypted backups.",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan
)

# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================
# MedLogError and its subclasses are converted to HTTP responses.
setup_exception_handlers(app)

# =============================================================================
# MIDDLEWARE
# =============================================================================
# Middleware is executed in REVERSE order of registration.

# 1. CORS Middleware (innermost - closest to routes)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 2. Logging Middleware (outermost - captures all requests)
app.add_middleware(LoggingMiddleware)

# =============================================================================
# ROUTERS
# =============================================================================
app.include_router(health_router)
app.include_router(records_router)
app.include_router(medications_router)
app.include_router(assistant_router)
app.include_router(backups_router)
app.include_router(stats_router)
app.include_router(meta_router)


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=API_HOST,
        port=API_PORT,
        reload=API_RELOAD
    )
