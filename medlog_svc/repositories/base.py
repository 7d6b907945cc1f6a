"""
Base database connection and initialization.

This module handles database connection management and schema initialization
for the four collections (records, attachments, medications, medication_logs)
plus the small preferences table.

Schema evolution is additive: tables are created with IF NOT EXISTS and
columns introduced after the first release are added in place when missing.
Existing rows are never migrated.

IMPORTANT: Database instantiation should be done through the DI layer.
Use core.dependencies.get_database() instead of instantiating directly.
"""
import sqlite3
import logging
from contextlib import contextmanager
from typing import Dict, Iterator, Optional
from pathlib import Path

logger = logging.getLogger(__name__)


_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS records (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        date TEXT NOT NULL,
        hospital TEXT NOT NULL DEFAULT '',
        department TEXT NOT NULL DEFAULT '',
        doctor TEXT,
        type TEXT NOT NULL DEFAULT '',
        title TEXT NOT NULL DEFAULT '',
        diagnosis TEXT,
        medical_advice TEXT,
        notes TEXT NOT NULL DEFAULT '',
        cost_items TEXT NOT NULL DEFAULT '[]',
        cost_self TEXT NOT NULL DEFAULT '0',
        cost_pool TEXT NOT NULL DEFAULT '0',
        cost_personal TEXT NOT NULL DEFAULT '0',
        cost_total TEXT NOT NULL DEFAULT '0',
        timestamp TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_records_date ON records (date)",
    """
    CREATE TABLE IF NOT EXISTS attachments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        record_id INTEGER NOT NULL REFERENCES records (id) ON DELETE CASCADE,
        name TEXT NOT NULL DEFAULT '',
        mime_type TEXT NOT NULL DEFAULT 'application/octet-stream',
        data BLOB NOT NULL,
        ocr_text TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_attachments_record ON attachments (record_id)",
    """
    CREATE TABLE IF NOT EXISTS medications (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        dosage TEXT NOT NULL DEFAULT '',
        per_dose TEXT NOT NULL DEFAULT '',
        frequency TEXT NOT NULL DEFAULT '',
        times TEXT NOT NULL DEFAULT '[]',
        start_date TEXT NOT NULL,
        duration INTEGER NOT NULL,
        end_date TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'active',
        linked_record_id INTEGER,
        notes TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL,
        stopped_at TEXT,
        completed_at TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_medications_status ON medications (status)",
    """
    CREATE TABLE IF NOT EXISTS medication_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        medication_id INTEGER NOT NULL REFERENCES medications (id) ON DELETE CASCADE,
        date TEXT NOT NULL,
        time TEXT NOT NULL,
        status TEXT NOT NULL,
        timestamp TEXT NOT NULL,
        UNIQUE (medication_id, date, time)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_medication_logs_date ON medication_logs (date)",
    """
    CREATE TABLE IF NOT EXISTS preferences (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
    """,
)

# Columns added after the first schema; added in place on older databases.
_ADDITIVE_COLUMNS: Dict[str, Dict[str, str]] = {
    "attachments": {
        "ocr_status": "TEXT NOT NULL DEFAULT 'idle'",
        "module": "TEXT",
    },
    "medications": {
        "usage": "TEXT",
    },
}


class Database:
    """
    SQLite database connection manager.

    Features:
    - WAL mode for concurrent readers during writes
    - Busy timeout to wait on lock contention instead of failing
    - Foreign key constraints enabled on every connection
    - transaction() context manager for all-or-nothing multi-table writes

    Usage:
        # Via dependency injection (recommended):
        from core.dependencies import get_database
        db = get_database()

        # Direct instantiation (for testing):
        db = Database(db_path="/tmp/test.db")
    """

    def __init__(self, db_path: Optional[str] = None, busy_timeout: Optional[int] = None):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file. Defaults to config DATABASE_PATH.
            busy_timeout: SQLite busy timeout in milliseconds. Defaults to config value.
        """
        if db_path is None or busy_timeout is None:
            from core.config import DATABASE_PATH, DATABASE_BUSY_TIMEOUT
            db_path = db_path or DATABASE_PATH
            busy_timeout = busy_timeout if busy_timeout is not None else DATABASE_BUSY_TIMEOUT

        self.db_path = db_path
        self.busy_timeout = busy_timeout

        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._init_db()

    def _configure_connection(self, conn: sqlite3.Connection) -> None:
        conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout}")
        conn.execute("PRAGMA foreign_keys = ON")
        conn.row_factory = sqlite3.Row

    def _init_db(self) -> None:
        """Create missing tables and columns and enable WAL mode."""
        conn = sqlite3.connect(self.db_path)
        self._configure_connection(conn)
        cursor = conn.cursor()

        # WAL mode persists in the database file
        cursor.execute("PRAGMA journal_mode = WAL")
        result = cursor.fetchone()
        if result and result[0].lower() == 'wal':
            logger.info(f"SQLite WAL mode enabled for {self.db_path}")
        else:
            logger.warning(f"Failed to enable WAL mode, current mode: {result}")

        for statement in _SCHEMA:
            cursor.execute(statement)

        for table, columns in _ADDITIVE_COLUMNS.items():
            existing = {row["name"] for row in cursor.execute(f"PRAGMA table_info({table})")}
            for column, ddl in columns.items():
                if column not in existing:
                    cursor.execute(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}")
                    logger.info(f"Added column {table}.{column}")

        conn.commit()
        conn.close()

        logger.info(
            f"Database initialized: {self.db_path} "
            f"(busy_timeout={self.busy_timeout}ms)"
        )

    def get_connection(self) -> sqlite3.Connection:
        """
        Get a new database connection with foreign keys enabled, busy timeout
        set and rows returned as sqlite3.Row.
        """
        conn = sqlite3.connect(self.db_path)
        self._configure_connection(conn)
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run a block of writes as one transaction.

        Commits when the block exits normally; rolls back and re-raises on any
        exception, so callers never observe a partially applied write.
        """
        conn = self.get_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
