"""
SQLite document store for congregation entity collections.

Every entity collection lives in its own table holding one JSON document
per row. The store exposes the three bulk operations the snapshot
subsystem needs (find-all, delete-all, bulk-insert) plus staging tables
used to restore a snapshot without exposing a half-loaded store.
"""

import json
import re
import sqlite3
import threading
import uuid
from collections.abc import Generator, Iterable, Sequence
from contextlib import contextmanager
from typing import Any, Optional

from congregation_backup.utils.serialization import serialize_record

# Table layout shared by every entity collection and its staging copy
TABLE_SCHEMA = """
CREATE TABLE IF NOT EXISTS {table} (
    id INTEGER PRIMARY KEY,
    doc_id TEXT NOT NULL UNIQUE,
    document TEXT NOT NULL
)
"""

STAGING_SUFFIX = "__staging"

# Seconds a connection waits on a locked database before failing
BUSY_TIMEOUT = 30.0

_TABLE_NAME_RE = re.compile(r"^[a-z][a-z0-9_]*$")


class StoreError(Exception):
    """Raised when a read, delete or insert against the store fails."""

    pass


class BulkWriteError(StoreError):
    """
    Raised when some records of a bulk insert could not be written.

    Attributes:
        table: Table the insert targeted
        inserted: Number of records that were written
        errors: (index, message) pairs for every rejected record
    """

    def __init__(self, table: str, inserted: int, errors: list[tuple[int, str]]):
        self.table = table
        self.inserted = inserted
        self.errors = errors
        first_index, first_message = errors[0]
        super().__init__(
            f"{len(errors)} record(s) rejected by {table} "
            f"(first at index {first_index}: {first_message})"
        )


class RecordValidationError(StoreError):
    """Raised when validation is requested and a record is not a document."""

    pass


def staging_table_name(table: str) -> str:
    """Get the name of the staging copy of a table."""
    return f"{table}{STAGING_SUFFIX}"


def _check_table(table: str) -> str:
    if not _TABLE_NAME_RE.match(table):
        raise ValueError(f"Invalid table name: {table!r}")
    return table


def _document_id(document: dict[str, Any]) -> str:
    doc_id = document["_id"]
    if isinstance(doc_id, str):
        return doc_id
    return json.dumps(doc_id, sort_keys=True)


class CongregationDatabase:
    """
    SQLite database manager for congregation entity collections.

    Provides methods for:
    - Creating one document table per entity collection
    - Reading, wiping and bulk-loading a collection
    - Consistent multi-table reads
    - Staging tables that can be promoted to live in one transaction

    Usage:
        db = CongregationDatabase('/path/to/congregation.db')
        db.initialize(["members", "groups"])

        # Or use in-memory for testing:
        db = CongregationDatabase(':memory:')
        db.initialize(["members"])
    """

    def __init__(self, db_path: str):
        """
        Initialize the database manager.

        Args:
            db_path: Path to SQLite database file, or ':memory:' for in-memory database
        """
        self.db_path = db_path
        self._shared_connection: Optional[sqlite3.Connection] = None
        self._shared_lock = threading.RLock()

    @property
    def is_shared(self) -> bool:
        return self.db_path == ":memory:"

    def _get_connection(self) -> sqlite3.Connection:
        """
        Get a database connection.

        For in-memory databases, returns a shared connection to ensure
        data persists across operations. For file databases, creates
        a new connection each time so worker threads never share one.

        Returns:
            sqlite3.Connection: Database connection
        """
        if self.is_shared:
            if self._shared_connection is None:
                self._shared_connection = sqlite3.connect(
                    ":memory:", check_same_thread=False
                )
                self._shared_connection.row_factory = sqlite3.Row
            return self._shared_connection

        conn = sqlite3.connect(self.db_path, timeout=BUSY_TIMEOUT)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for database connections.

        Commits on success and rolls back on error. SQLite errors are
        re-raised as StoreError.

        Yields:
            sqlite3.Connection: Database connection

        Usage:
            with db.connection() as conn:
                conn.execute("SELECT COUNT(*) FROM members")
        """
        with self._shared_lock if self.is_shared else _no_lock():
            try:
                conn = self._get_connection()
            except sqlite3.Error as e:
                raise StoreError(f"Cannot open database {self.db_path}: {e}") from e
            try:
                yield conn
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise StoreError(str(e)) from e
            except Exception:
                conn.rollback()
                raise
            finally:
                if not self.is_shared:
                    conn.close()

    def initialize(self, tables: Iterable[str]) -> None:
        """
        Create the document table for every given collection.

        Safe to call repeatedly; existing tables are left untouched.
        """
        with self.connection() as conn:
            for table in tables:
                conn.execute(TABLE_SCHEMA.format(table=_check_table(table)))

    def close(self) -> None:
        """Close the shared in-memory connection, discarding its data."""
        with self._shared_lock:
            if self._shared_connection is not None:
                self._shared_connection.close()
                self._shared_connection = None

    # =========================================================================
    # Collection Operations
    # =========================================================================

    def find_all(self, table: str) -> list[dict[str, Any]]:
        """
        Read every document of a collection in insertion order.

        Args:
            table: Collection table name

        Returns:
            List of documents
        """
        with self.connection() as conn:
            return self._read_table(conn, table)

    def delete_all(self, table: str) -> int:
        """
        Delete every document of a collection.

        Returns:
            Number of documents deleted
        """
        with self.connection() as conn:
            cursor = conn.execute(
                f"DELETE FROM {_check_table(table)}"  # nosec B608
            )
            return cursor.rowcount

    def insert_many(
        self,
        table: str,
        records: Sequence[Any],
        ordered: bool = False,
        validate: bool = False,
    ) -> int:
        """
        Insert many documents into a collection, preserving input order.

        Records without an ``_id`` are assigned one. A record fails when its
        ``_id`` is already present or it cannot be serialized.

        Args:
            table: Collection table name
            records: Documents to insert
            ordered: If True, stop at the first failing record. If False,
                     skip failing records and keep inserting.
            validate: If True, reject the whole batch before writing when
                      any record is not a document.

        Returns:
            Number of documents inserted

        Raises:
            RecordValidationError: If validate is set and a record is invalid
            BulkWriteError: If any record was rejected; the records that
                            could be written stay written
        """
        _check_table(table)

        if validate:
            for index, record in enumerate(records):
                if not isinstance(record, dict):
                    raise RecordValidationError(
                        f"Record {index} for {table} is not a document: "
                        f"{type(record).__name__}"
                    )

        inserted = 0
        errors: list[tuple[int, str]] = []

        with self.connection() as conn:
            for index, record in enumerate(records):
                try:
                    document = serialize_record(record)
                    if "_id" not in document:
                        document["_id"] = uuid.uuid4().hex
                    conn.execute(
                        f"INSERT INTO {table} (doc_id, document) "  # nosec B608
                        "VALUES (?, ?)",
                        (
                            _document_id(document),
                            json.dumps(document, ensure_ascii=False),
                        ),
                    )
                    inserted += 1
                except (sqlite3.IntegrityError, TypeError, ValueError) as e:
                    errors.append((index, str(e)))
                    if ordered:
                        break

        if errors:
            raise BulkWriteError(table, inserted, errors)
        return inserted

    def count(self, table: str) -> int:
        """Get the number of documents in a collection."""
        with self.connection() as conn:
            cursor = conn.execute(
                f"SELECT COUNT(*) FROM {_check_table(table)}"  # nosec B608
            )
            result: int = cursor.fetchone()[0]
            return result

    def consistent_read(self, tables: Sequence[str]) -> dict[str, list[dict[str, Any]]]:
        """
        Read several collections inside a single read transaction.

        Unlike separate find_all calls, no write can land between the
        reads of two collections.

        Returns:
            Mapping of table name to its documents
        """
        with self.connection() as conn:
            conn.execute("BEGIN")
            return {table: self._read_table(conn, table) for table in tables}

    # =========================================================================
    # Staging Operations
    # =========================================================================

    def create_staging(self, table: str) -> str:
        """
        Create an empty staging copy of a collection table.

        Any leftover staging table from an earlier run is replaced.

        Returns:
            Name of the staging table
        """
        staging = staging_table_name(_check_table(table))
        with self.connection() as conn:
            conn.execute(f"DROP TABLE IF EXISTS {staging}")
            conn.execute(TABLE_SCHEMA.format(table=staging))
        return staging

    def promote_staging(self, tables: Sequence[str]) -> dict[str, int]:
        """
        Replace live collections with their staging copies atomically.

        In a single transaction every live table is emptied, refilled from
        its staging table, and the staging table is dropped. If any step
        fails the transaction is rolled back and the live tables keep
        their previous contents.

        Returns:
            Mapping of table name to the number of documents replaced
        """
        replaced: dict[str, int] = {}
        with self.connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            for table in tables:
                staging = staging_table_name(_check_table(table))
                cursor = conn.execute(f"DELETE FROM {table}")  # nosec B608
                replaced[table] = cursor.rowcount
                conn.execute(
                    f"INSERT INTO {table} (doc_id, document) "  # nosec B608
                    f"SELECT doc_id, document FROM {staging} ORDER BY id"
                )
            for table in tables:
                conn.execute(f"DROP TABLE {staging_table_name(table)}")
        return replaced

    def drop_staging(self, tables: Iterable[str]) -> None:
        """Drop the staging copies of the given tables, if present."""
        with self.connection() as conn:
            for table in tables:
                staging = staging_table_name(_check_table(table))
                conn.execute(f"DROP TABLE IF EXISTS {staging}")

    def _read_table(
        self, conn: sqlite3.Connection, table: str
    ) -> list[dict[str, Any]]:
        cursor = conn.execute(
            f"SELECT document FROM {_check_table(table)} ORDER BY id"  # nosec B608
        )
        return [json.loads(row["document"]) for row in cursor.fetchall()]


@contextmanager
def _no_lock() -> Generator[None, None, None]:
    yield


class EntityStore:
    """
    Store handle bound to a single entity collection.

    Carries the find-all, delete-all and bulk-insert capabilities for one
    collection so callers never deal with table names directly.
    """

    def __init__(self, db: CongregationDatabase, table: str):
        self.db = db
        self.table = _check_table(table)

    def find_all(self) -> list[dict[str, Any]]:
        return self.db.find_all(self.table)

    def delete_all(self) -> int:
        return self.db.delete_all(self.table)

    def insert_many(
        self, records: Sequence[Any], ordered: bool = False, validate: bool = False
    ) -> int:
        return self.db.insert_many(
            self.table, records, ordered=ordered, validate=validate
        )

    def count(self) -> int:
        return self.db.count(self.table)

    def staging(self) -> "EntityStore":
        """Create a fresh staging table and return a handle bound to it."""
        return EntityStore(self.db, self.db.create_staging(self.table))

    def __repr__(self) -> str:
        return f"EntityStore(table={self.table!r})"
