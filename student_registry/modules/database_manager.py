"""
Database Manager Module - Student Registry

This module is the record store behind the student registry. It wraps a
SQLite database and exposes table-level operations: filtered select,
insert-one with a store-assigned identifier, update-by-identifier,
delete-by-identifier and an ordered full scan.

Features:
- SQLite connection management (thread-local connections)
- Students table schema creation
- Store-generated opaque identifiers and creation timestamps
- JSON columns for structured fields (previous marks)
- Typed StoreError for every failed statement
"""

import sqlite3
import logging
import threading
import json
import os
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple


class StoreError(Exception):
    """Raised when a record store operation fails."""


class DatabaseManager:
    """
    Record store for the student registry.
    Column names are checked against the table schema before they reach SQL;
    values are always bound as parameters.
    """

    # Table name -> ordered column names
    TABLES = {
        'students': (
            'id', 'name', 'class', 'roll_number', 'phone_number',
            'student_image_url', 'father_name', 'father_phone', 'father_image_url',
            'mother_name', 'mother_phone', 'mother_image_url',
            'previous_marks', 'qr_code', 'created_at'
        )
    }

    # Columns persisted as JSON text
    JSON_COLUMNS = {'previous_marks'}

    # Columns the store owns; never written by callers
    STORE_COLUMNS = {'id', 'created_at'}

    def __init__(self, db_path):
        """
        Initialize the database manager with the specified database path.

        Args:
            db_path (str): Path to the SQLite database file, or ':memory:'
        """
        self.db_path = str(db_path)
        self.logger = logging.getLogger(__name__)
        self._local = threading.local()

        # Ensure database directory exists
        directory = os.path.dirname(self.db_path)
        if self.db_path != ':memory:' and directory:
            os.makedirs(directory, exist_ok=True)

        self.initialize_database()

    @contextmanager
    def get_connection(self):
        """
        Context manager for database connections.
        Provides thread-local connections for thread safety.

        Yields:
            sqlite3.Connection: Database connection object
        """
        if not hasattr(self._local, 'connection'):
            self._local.connection = sqlite3.connect(
                self.db_path,
                check_same_thread=False,
                timeout=30.0
            )
            self._local.connection.row_factory = sqlite3.Row

        try:
            yield self._local.connection
        except Exception as e:
            self._local.connection.rollback()
            self.logger.error(f"Database operation failed: {str(e)}")
            raise

    def initialize_database(self):
        """
        Create the students table and its indexes.
        This method is idempotent and can be called multiple times safely.
        """
        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS students (
                        id VARCHAR(32) PRIMARY KEY,
                        name VARCHAR(100) NOT NULL,
                        class VARCHAR(20) NOT NULL,
                        roll_number VARCHAR(20) NOT NULL,
                        phone_number VARCHAR(20),
                        student_image_url TEXT,
                        father_name VARCHAR(100),
                        father_phone VARCHAR(20),
                        father_image_url TEXT,
                        mother_name VARCHAR(100),
                        mother_phone VARCHAR(20),
                        mother_image_url TEXT,
                        previous_marks TEXT,
                        qr_code TEXT,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                cursor.execute("CREATE INDEX IF NOT EXISTS idx_students_class ON students(class, roll_number)")

                conn.commit()
                self.logger.info("Database initialized successfully")

        except sqlite3.Error as e:
            self.logger.error(f"Failed to initialize database: {str(e)}")
            raise StoreError(f"Failed to initialize database: {e}") from e

    def _columns(self, table: str) -> Tuple[str, ...]:
        if table not in self.TABLES:
            raise StoreError(f"Unknown table: {table}")
        return self.TABLES[table]

    def _check_columns(self, table: str, columns: Iterable[str]):
        known = self._columns(table)
        for column in columns:
            if column not in known:
                raise StoreError(f"Unknown column for {table}: {column}")

    def _encode(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        encoded = {}
        for column, value in payload.items():
            if column in self.JSON_COLUMNS and value is not None:
                value = json.dumps(value)
            encoded[column] = value
        return encoded

    def _decode(self, row: sqlite3.Row) -> Dict[str, Any]:
        record = dict(row)
        for column in self.JSON_COLUMNS:
            if record.get(column) is not None:
                record[column] = json.loads(record[column])
        return record

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
        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute(query, params or ())

                if fetch_all:
                    return [self._decode(row) for row in cursor.fetchall()]
                result = cursor.fetchone()
                return self._decode(result) if result else None

        except sqlite3.Error as e:
            self.logger.error(f"Query execution failed: {str(e)}")
            raise StoreError(str(e)) from e

    def execute_update(self, query, params=None):
        """
        Execute an INSERT, UPDATE, or DELETE query.

        Args:
            query (str): SQL query string
            params (tuple): Query parameters

        Returns:
            int: Number of affected rows
        """
        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute(query, params or ())
                conn.commit()
                return cursor.rowcount

        except sqlite3.Error as e:
            self.logger.error(f"Update execution failed: {str(e)}")
            raise StoreError(str(e)) from e

    def select(self, table: str, filters: Optional[Dict[str, Any]] = None,
               order_by: Sequence[str] = (), fetch_all: bool = True):
        """
        Select records matching every exact-equality filter.

        Args:
            table (str): Table name
            filters (dict): Column -> value equality filters
            order_by (Sequence[str]): Columns to sort by, ascending
            fetch_all (bool): Return a list, or a single record (or None)

        Returns:
            list or dict: Matching records
        """
        filters = filters or {}
        self._check_columns(table, filters)
        self._check_columns(table, order_by)

        query = f"SELECT * FROM {table}"
        if filters:
            query += " WHERE " + " AND ".join(f'"{column}" = ?' for column in filters)
        if order_by:
            query += " ORDER BY " + ", ".join(f'"{column}" ASC' for column in order_by)

        return self.execute_query(query, tuple(filters.values()), fetch_all=fetch_all)

    def select_ordered(self, table: str, order_by: Sequence[str]) -> List[Dict[str, Any]]:
        """Full scan of a table sorted ascending by the given columns."""
        return self.select(table, order_by=order_by)

    def insert(self, table: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert one record and return it as stored.
        The identifier and creation timestamp are assigned here.

        Args:
            table (str): Table name
            payload (dict): Column values (without id/created_at)

        Returns:
            dict: The inserted record including its assigned id
        """
        values = {k: v for k, v in payload.items() if k not in self.STORE_COLUMNS}
        self._check_columns(table, values)

        record_id = uuid.uuid4().hex
        values = dict(id=record_id, **self._encode(values))

        columns = ", ".join(f'"{column}"' for column in values)
        placeholders = ", ".join("?" for _ in values)
        self.execute_update(
            f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
            tuple(values.values())
        )

        self.logger.debug(f"Inserted {table} record {record_id}")
        return self.select(table, {'id': record_id}, fetch_all=False)

    def update(self, table: str, record_id: str, payload: Dict[str, Any]) -> int:
        """
        Update one record by identifier.

        Returns:
            int: Number of affected rows (0 when the identifier is unknown)
        """
        values = {k: v for k, v in payload.items() if k not in self.STORE_COLUMNS}
        self._check_columns(table, values)
        if not values:
            return 0

        assignments = ", ".join(f'"{column}" = ?' for column in values)
        params = tuple(self._encode(values).values()) + (record_id,)
        return self.execute_update(f"UPDATE {table} SET {assignments} WHERE id = ?", params)

    def delete(self, table: str, record_id: str) -> int:
        """
        Delete one record by identifier.

        Returns:
            int: Number of affected rows (0 when the identifier is unknown)
        """
        self._columns(table)
        return self.execute_update(f"DELETE FROM {table} WHERE id = ?", (record_id,))

    def close_all_connections(self):
        """Close the current thread's database connection."""
        if hasattr(self._local, 'connection'):
            try:
                self._local.connection.close()
            except sqlite3.Error as e:
                self.logger.error(f"Error closing connections: {str(e)}")
            del self._local.connection
