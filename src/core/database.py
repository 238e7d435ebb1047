"""
Local persistence for the expense application.
Keeps JSON-encoded collections in a small SQLite key/value table.
"""

import json
import sqlite3
import logging
from contextlib import contextmanager
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

KEY_EXPENSES = "expenseFlow_expenses_v1"
KEY_ARCHIVE = "expenseFlow_archive_v1"
KEY_TRIP = "expenseFlow_trip_v1"
KEY_LAST_SYNC = "expenseFlow_last_sync_v1"


class DatabaseManager:
    """Manages the key/value table backing the local mirror."""

    def __init__(self, db_path: str = "expenses.db"):
        """Initialize database manager.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self.logger = logger

    @contextmanager
    def get_connection(self):
        """Context manager for database connections with automatic cleanup."""
        conn = None
        try:
            conn = sqlite3.connect(self.db_path)
            conn.row_factory = sqlite3.Row
            yield conn
        except Exception as e:
            if conn:
                conn.rollback()
            self.logger.error(f"Database error: {str(e)}")
            raise
        finally:
            if conn:
                conn.close()

    def initialize_database(self) -> None:
        """Create the key/value table if it does not exist."""
        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS kv_store (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)
                conn.commit()
                self.logger.info("Database initialized successfully")

        except Exception as e:
            self.logger.error(f"Failed to initialize database: {str(e)}")
            raise

    def get_raw(self, key: str) -> Optional[str]:
        """Return the stored text for a key, or None if absent."""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
            row = cursor.fetchone()
            return row["value"] if row else None

    def set_raw(self, key: str, value: str) -> None:
        """Insert or replace the stored text for a key."""
        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    INSERT INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = CURRENT_TIMESTAMP
                """, (key, value))
                conn.commit()

        except Exception as e:
            self.logger.error(f"Failed to write key {key}: {str(e)}")
            raise

    def read_json(self, key: str, default: Any = None) -> Any:
        """Read and decode a JSON entry.

        Malformed content is treated as absence.

        Args:
            key: Storage key
            default: Value returned when the key is missing or unparsable

        Returns:
            Decoded JSON value or the default
        """
        raw = self.get_raw(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            self.logger.warning(f"Ignoring unparsable value under {key}: {str(e)}")
            return default

    def write_json(self, key: str, value: Any) -> None:
        """Encode a value as JSON and store it under a key."""
        self.set_raw(key, json.dumps(value, ensure_ascii=False))
        self.logger.debug(f"Persisted {key}")

    def write_many(self, values: Dict[str, Any]) -> None:
        """Encode and store several keys in a single transaction.

        Either every key is written or none is.
        """
        rows = [(key, json.dumps(value, ensure_ascii=False)) for key, value in values.items()]
        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()
                cursor.executemany("""
                    INSERT INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = CURRENT_TIMESTAMP
                """, rows)
                conn.commit()

        except Exception as e:
            self.logger.error(f"Failed to write keys {', '.join(values)}: {str(e)}")
            raise
        self.logger.debug(f"Persisted {', '.join(values)}")
