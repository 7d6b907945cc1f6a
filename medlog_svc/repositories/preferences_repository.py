"""
Key/value storage for user preferences (backup password, auto-backup flag).
"""
import logging
from typing import Optional

from repositories.base import Database

logger = logging.getLogger(__name__)


class PreferencesRepository:
    """Thin wrapper over the preferences table."""

    def __init__(self, db: Database):
        self._db = db

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        conn = self._db.get_connection()
        try:
            row = conn.execute("SELECT value FROM preferences WHERE key = ?", (key,)).fetchone()
        finally:
            conn.close()
        return row["value"] if row else default

    def set(self, key: str, value: str) -> None:
        conn = self._db.get_connection()
        try:
            conn.execute(
                """
                INSERT INTO preferences (key, value) VALUES (?, ?)
                ON CONFLICT (key) DO UPDATE SET value = excluded.value
                """,
                (key, value),
            )
            conn.commit()
        finally:
            conn.close()

    def delete(self, key: str) -> None:
        conn = self._db.get_connection()
        try:
            conn.execute("DELETE FROM preferences WHERE key = ?", (key,))
            conn.commit()
        finally:
            conn.close()
