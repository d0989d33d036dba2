"""
Database Manager Module - GFI Tracker Dashboard Service

This module handles the local SQLite store of the dashboard service.
The remote GFI API owns every business record; this store only keeps the
client-side state that would otherwise live in browser storage: cached API
responses, the last approval statuses a user has seen, and spreadsheet
imports waiting to be sent.

Features:
- SQLite connection management (thread-local, shared for in-memory stores)
- Idempotent schema creation
- API response cache per user
- Approval status snapshots for change detection
- Time-table import drafts
- Transaction support
"""

import sqlite3
import logging
import threading
import json
import os
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, List, Any, Optional


class DatabaseManager:
    """
    Local database management class for the dashboard service.
    Handles connection management, schema creation and the small set of
    client-state tables used by the managers.
    """

    def __init__(self, db_path):
        """
        Initialize the database manager with the specified database path.

        Args:
            db_path (str): Path to the SQLite database file, or ':memory:'
        """
        self.db_path = str(db_path)
        self.logger = logging.getLogger(__name__)
        self._local = threading.local()
        self._shared_connection = None
        self._lock = threading.RLock()

        directory = os.path.dirname(self.db_path)
        if self.db_path != ':memory:' and directory:
            os.makedirs(directory, exist_ok=True)

        self.initialize_database()

    def _connect(self):
        connection = sqlite3.connect(
            self.db_path,
            check_same_thread=False,
            timeout=30.0
        )
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON")
        return connection

    @contextmanager
    def get_connection(self):
        """
        Context manager for database connections with automatic rollback.
        File databases get one connection per thread; an in-memory database
        is a single connection shared by every thread.

        Yields:
            sqlite3.Connection: Database connection object
        """
        if self.db_path == ':memory:':
            with self._lock:
                if self._shared_connection is None:
                    self._shared_connection = self._connect()
                connection = self._shared_connection
                try:
                    yield connection
                except Exception as e:
                    connection.rollback()
                    self.logger.error(f"Database operation failed: {str(e)}")
                    raise
            return

        if not hasattr(self._local, 'connection'):
            self._local.connection = self._connect()

        try:
            yield self._local.connection
        except Exception as e:
            self._local.connection.rollback()
            self.logger.error(f"Database operation failed: {str(e)}")
            raise

    def initialize_database(self):
        """
        Create the client-state tables. Safe to call repeatedly.
        """
        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS api_cache (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        owner VARCHAR(64) NOT NULL,
                        cache_key TEXT NOT NULL,
                        payload TEXT NOT NULL,
                        cached_at REAL NOT NULL,
                        UNIQUE(owner, cache_key)
                    )
                """)

                # Last seen approval status per slot / approval id
                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS status_snapshots (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        owner VARCHAR(64) NOT NULL,
                        scope VARCHAR(100) NOT NULL,
                        item_key VARCHAR(100) NOT NULL,
                        status VARCHAR(20) NOT NULL,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        UNIQUE(owner, scope, item_key)
                    )
                """)

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS import_drafts (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        owner VARCHAR(64) NOT NULL,
                        file_name VARCHAR(255),
                        entries TEXT NOT NULL,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                cursor.execute("CREATE INDEX IF NOT EXISTS idx_cache_owner ON api_cache(owner)")
                cursor.execute("CREATE INDEX IF NOT EXISTS idx_snapshots_scope ON status_snapshots(owner, scope)")

                conn.commit()
                self.logger.info("Database initialized successfully")

        except Exception as e:
            self.logger.error(f"Database initialization failed: {str(e)}")
            raise

    def execute_query(self, query, params=None, fetch_all=True):
        """
        Execute a SELECT query and return results.

        Args:
            query (str): SQL query string
            params (tuple): Query parameters
            fetch_all (bool): Whether to fetch all results or just one

        Returns:
            list or dict: Query results
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params or ())

            if fetch_all:
                return [dict(row) for row in cursor.fetchall()]

            result = cursor.fetchone()
            return dict(result) if result else None

    def execute_update(self, query, params=None):
        """
        Execute an INSERT, UPDATE, or DELETE query.

        Returns:
            int: lastrowid for INSERT, affected rows otherwise
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params or ())
            conn.commit()

            if query.strip().upper().startswith('INSERT'):
                return cursor.lastrowid
            return cursor.rowcount

    def execute_many(self, query, params_list):
        """Execute a query with several parameter sets in one commit."""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.executemany(query, params_list)
            conn.commit()
            return cursor.rowcount

    @contextmanager
    def transaction(self):
        """
        Context manager for database transactions.
        Commits on success, rolls back on any exception.
        """
        with self.get_connection() as conn:
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    # API response cache

    def get_cached_response(self, owner: str, cache_key: str) -> Optional[Dict[str, Any]]:
        """
        Look up a cached API response.

        Returns:
            Optional[Dict[str, Any]]: {'payload': ..., 'cached_at': epoch seconds} or None
        """
        row = self.execute_query(
            "SELECT payload, cached_at FROM api_cache WHERE owner = ? AND cache_key = ?",
            (owner, cache_key),
            fetch_all=False
        )
        if not row:
            return None

        try:
            payload = json.loads(row['payload'])
        except ValueError:
            self.logger.warning(f"Discarding unreadable cache entry: {cache_key}")
            self.delete_cached_response(owner, cache_key)
            return None

        return {'payload': payload, 'cached_at': row['cached_at']}

    def store_cached_response(self, owner: str, cache_key: str, payload_text: str,
                              cached_at: float = None) -> None:
        """Insert or replace a cached response (payload already JSON encoded)."""
        self.execute_update("""
            INSERT INTO api_cache (owner, cache_key, payload, cached_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(owner, cache_key) DO UPDATE SET
                payload = excluded.payload,
                cached_at = excluded.cached_at
        """, (owner, cache_key, payload_text, cached_at if cached_at is not None else time.time()))

    def delete_cached_response(self, owner: str, cache_key: str) -> int:
        return self.execute_update(
            "DELETE FROM api_cache WHERE owner = ? AND cache_key = ?",
            (owner, cache_key)
        )

    def clear_cache(self, owner: str = None, keep: str = None) -> int:
        """
        Remove cached responses.

        Args:
            owner (str): Only clear this user's entries (all users when None)
            keep (str): Cache key to leave in place

        Returns:
            int: Number of removed entries
        """
        query = "DELETE FROM api_cache WHERE 1 = 1"
        params = []
        if owner is not None:
            query += " AND owner = ?"
            params.append(owner)
        if keep is not None:
            query += " AND cache_key != ?"
            params.append(keep)

        removed = self.execute_update(query, tuple(params))
        self.logger.info(f"Cleared {removed} cached responses")
        return removed

    # Approval status snapshots

    def get_status_snapshot(self, owner: str, scope: str) -> Dict[str, str]:
        rows = self.execute_query(
            "SELECT item_key, status FROM status_snapshots WHERE owner = ? AND scope = ?",
            (owner, scope)
        )
        return {row['item_key']: row['status'] for row in rows}

    def save_status_snapshot(self, owner: str, scope: str, statuses: Dict[str, str]) -> None:
        """Replace the stored snapshot of a scope with the given statuses."""
        now = datetime.now().isoformat()
        with self.transaction() as conn:
            conn.execute(
                "DELETE FROM status_snapshots WHERE owner = ? AND scope = ?",
                (owner, scope)
            )
            conn.executemany("""
                INSERT INTO status_snapshots (owner, scope, item_key, status, updated_at)
                VALUES (?, ?, ?, ?, ?)
            """, [(owner, scope, key, status, now) for key, status in statuses.items()])

    # Time-table import drafts

    def save_import_draft(self, owner: str, file_name: str, entries: List[Dict[str, Any]]) -> int:
        return self.execute_update(
            "INSERT INTO import_drafts (owner, file_name, entries, created_at) VALUES (?, ?, ?, ?)",
            (owner, file_name, json.dumps(entries), datetime.now().isoformat())
        )

    def get_import_draft(self, draft_id: int, owner: str) -> Optional[Dict[str, Any]]:
        row = self.execute_query(
            "SELECT * FROM import_drafts WHERE id = ? AND owner = ?",
            (draft_id, owner),
            fetch_all=False
        )
        if not row:
            return None
        row['entries'] = json.loads(row['entries'])
        return row

    def update_import_draft(self, draft_id: int, owner: str, entries: List[Dict[str, Any]]) -> bool:
        updated = self.execute_update(
            "UPDATE import_drafts SET entries = ? WHERE id = ? AND owner = ?",
            (json.dumps(entries), draft_id, owner)
        )
        return updated > 0

    def delete_import_draft(self, draft_id: int, owner: str) -> bool:
        removed = self.execute_update(
            "DELETE FROM import_drafts WHERE id = ? AND owner = ?",
            (draft_id, owner)
        )
        return removed > 0

    def close_all_connections(self):
        """Close the database connections held by this manager."""
        if hasattr(self._local, 'connection'):
            self._local.connection.close()
            delattr(self._local, 'connection')
        if self._shared_connection is not None:
            self._shared_connection.close()
            self._shared_connection = None
