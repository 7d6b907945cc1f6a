"""
Shared pytest fixtures.

Key patterns:

1. Database Isolation: Each test gets a fresh temporary database
2. Fixed Clock: Services receive a clock returning FIXED_NOW
3. DI Override: app.dependency_overrides injects the test database and services

Fixture Hierarchy:
    temp_db → repositories → services → test_app → client
"""
import os
import tempfile
from datetime import datetime, timezone

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

# Settings are read on first import of core.config; these must be set before it.
TEST_API_KEY = "test-api-key-for-testing-purposes-12345678"
os.environ.setdefault("MEDLOG_API_KEY", TEST_API_KEY)
os.environ.setdefault("MEDLOG_DB_DIR", tempfile.mkdtemp(prefix="medlog-db-"))
os.environ.setdefault("MEDLOG_BACKUP_DIR", tempfile.mkdtemp(prefix="medlog-backups-"))
os.environ.setdefault("GEMINI_API_KEY", "")

from repositories import Database, MedicationRepository, PreferencesRepository, RecordRepository
from services import BackupCodec, BackupManager, BackupService, MedicationService, RecordService
from models.record import CostLineItem, VisitRecord
from core.exceptions import setup_exception_handlers
from core import dependencies as deps
from core.auth import verify_api_key

FIXED_NOW = datetime(2024, 6, 15, 9, 30, tzinfo=timezone.utc)
TEST_KDF_ITERATIONS = 1000


def fixed_clock() -> datetime:
    return FIXED_NOW


@pytest.fixture
def clock():
    """Clock returning FIXED_NOW, for services built inside a test."""
    return fixed_clock


@pytest.fixture
def temp_db():
    """
    Create a temporary database for testing.

    A fresh SQLite file per test keeps tests fully isolated.
    """
    fd, db_path = tempfile.mkstemp(suffix='.db')
    os.close(fd)

    db = Database(db_path=db_path)
    yield db

    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(db_path + suffix):
            os.unlink(db_path + suffix)


@pytest.fixture
def record_repo(temp_db):
    return RecordRepository(db=temp_db)


@pytest.fixture
def medication_repo(temp_db):
    return MedicationRepository(db=temp_db)


@pytest.fixture
def preferences_repo(temp_db):
    return PreferencesRepository(db=temp_db)


@pytest.fixture
def record_service(record_repo):
    return RecordService(record_repository=record_repo, clock=fixed_clock)


@pytest.fixture
def medication_service(medication_repo):
    return MedicationService(medication_repository=medication_repo, clock=fixed_clock)


@pytest.fixture
def backup_manager(tmp_path):
    """Backup directory under tmp_path; file names use FIXED_NOW."""
    return BackupManager(
        backup_dir=str(tmp_path / "backups"),
        max_auto_backups=30,
        clock=lambda: FIXED_NOW.replace(tzinfo=None),
    )


@pytest.fixture
def backup_service(record_repo, preferences_repo, backup_manager):
    return BackupService(
        record_repository=record_repo,
        preferences_repository=preferences_repo,
        manager=backup_manager,
        codec=BackupCodec(iterations=TEST_KDF_ITERATIONS),
        clock=fixed_clock,
    )


@pytest.fixture
def make_record(record_service):
    """
    Factory storing a record with a single cost line item.

    Usage:
        record = make_record("2024-03-01", hospital="协和医院", self_pay="20")
    """
    def _make(date, self_pay="0", pool_pay="0", personal_pay="0", **fields):
        items = []
        if any(value not in ("0", 0, None) for value in (self_pay, pool_pay, personal_pay)):
            items.append(CostLineItem(self_pay=self_pay, pool_pay=pool_pay, personal_pay=personal_pay))
        return record_service.add_record(VisitRecord(date=date, cost_items=items, **fields))
    return _make


@pytest.fixture
def test_app(temp_db, backup_service):
    """
    Create a FastAPI test app with dependency overrides.

    - Uses the real routers (testing actual endpoint code)
    - Injects the test database; every repository and service built on it follows
    - Skips API key verification (see test_auth.py for the real check)
    """
    from api.routers import (
        assistant_router,
        backups_router,
        health_router,
        medications_router,
        meta_router,
        records_router,
        stats_router,
    )

    app = FastAPI(title="MedLog API Test")
    setup_exception_handlers(app)

    app.dependency_overrides[deps.get_database] = lambda: temp_db
    app.dependency_overrides[deps.get_backup_service] = lambda: backup_service
    app.dependency_overrides[deps.get_optional_gemini_service] = lambda: None

    async def skip_auth():
        return TEST_API_KEY
    app.dependency_overrides[verify_api_key] = skip_auth

    for router in (
        health_router,
        records_router,
        medications_router,
        assistant_router,
        backups_router,
        stats_router,
        meta_router,
    ):
        app.include_router(router)

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
def client(test_app):
    """Create a test client for the API."""
    return TestClient(test_app)
