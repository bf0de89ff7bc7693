"""
Persistent key/value preference store backed by SQLite.
"""

import os
import sqlite3
import time
from contextlib import contextmanager
from typing import Dict, Optional

from .logging_setup import get_logger

logger = get_logger(__name__)

DEFAULT_PREFERENCES_DB = os.path.join("~", ".local", "share", "lmstudio_ai", "preferences.db")


def default_preferences_path() -> str:
    """
    Location of the preferences database when none is configured.

    ``LMSTUDIO_AI_PREFERENCES_DB`` overrides the built-in location.
    """
    return os.path.abspath(os.path.expanduser(
        os.environ.get("LMSTUDIO_AI_PREFERENCES_DB", DEFAULT_PREFERENCES_DB)
    ))


class PreferenceStore:
    """Class to handle reading and writing persisted preferences."""

    def __init__(self, db_path: Optional[str] = None, busy_timeout: int = 5000, max_retries: int = 3):
        """
        Initialize the preference store.

        Args:
            db_path: Path to the preferences database; the default location is used when omitted
            busy_timeout: SQLite busy timeout in milliseconds
            max_retries: Number of retries when the database is locked
        """
        self.db_path = os.path.abspath(os.path.expanduser(db_path)) if db_path else default_preferences_path()
        self.busy_timeout = busy_timeout
        self.max_retries = max_retries

    def _connect(self) -> sqlite3.Connection:
        db_dir = os.path.dirname(self.db_path)
        if db_dir and not os.path.isdir(db_dir):
            os.makedirs(db_dir, exist_ok=True)

        conn = sqlite3.connect(self.db_path)
        conn.execute(f"PRAGMA busy_timeout={self.busy_timeout}")
        conn.execute(
            "CREATE TABLE IF NOT EXISTS Preferences ("
            " name TEXT PRIMARY KEY COLLATE NOCASE,"
            " value TEXT NOT NULL)"
        )
        return conn

    @contextmanager
    def cursor(self):
        """
        Get a cursor as a context manager.

        Each call opens a new connection, commits on success, rolls back on
        error and closes. Locked databases are retried with exponential backoff.
        """
        retry_count = 0
        while True:
            try:
                conn = self._connect()
                break
            except sqlite3.OperationalError as e:
                if "locked" in str(e) and retry_count < self.max_retries:
                    retry_count += 1
                    wait_time = 0.1 * (2 ** retry_count)
                    logger.warning(f"Preferences database locked, retrying in {wait_time:.2f}s "
                                   f"(attempt {retry_count}/{self.max_retries})")
                    time.sleep(wait_time)
                else:
                    raise

        cursor = conn.cursor()
        try:
            yield cursor
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """
        Read a preference.

        Args:
            name: Preference name (case-insensitive)
            default: Value returned when the preference is not stored

        Returns:
            Stored string value or ``default``
        """
        with self.cursor() as cursor:
            cursor.execute("SELECT value FROM Preferences WHERE name = ?", (name,))
            row = cursor.fetchone()
        if row is None:
            return default
        return row[0]

    def set(self, name: str, value: str) -> None:
        """Create or update a preference."""
        with self.cursor() as cursor:
            cursor.execute(
                "INSERT INTO Preferences (name, value) VALUES (?, ?) "
                "ON CONFLICT(name) DO UPDATE SET value = excluded.value",
                (name, value)
            )
        logger.debug(f"Stored preference {name} in {self.db_path}")

    def remove(self, name: str) -> bool:
        """Delete a preference. Returns True if it existed."""
        with self.cursor() as cursor:
            cursor.execute("DELETE FROM Preferences WHERE name = ?", (name,))
            return cursor.rowcount > 0

    def all(self) -> Dict[str, str]:
        """All stored preferences."""
        with self.cursor() as cursor:
            cursor.execute("SELECT name, value FROM Preferences ORDER BY name")
            return {name: value for name, value in cursor.fetchall()}
