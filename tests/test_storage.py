"""
Unit tests for the storage module.

Tests the CongregationDatabase class and EntityStore handles for
collection reads, wipes, bulk inserts and staging tables.
"""

from datetime import datetime

import pytest

from congregation_backup.storage.db import (
    STAGING_SUFFIX,
    BulkWriteError,
    CongregationDatabase,
    EntityStore,
    RecordValidationError,
    StoreError,
    staging_table_name,
)


def table_exists(db: CongregationDatabase, table: str) -> bool:
    with db.connection() as conn:
        cursor = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
        )
        return cursor.fetchone() is not None


@pytest.fixture
def db():
    """Create an initialized in-memory database."""
    database = CongregationDatabase(":memory:")
    database.initialize(["members", "groups"])
    yield database
    database.close()


class TestCongregationDatabaseInitialization:
    """Tests for database initialization."""

    def test_create_in_memory_database(self):
        """Test creating an in-memory database."""
        database = CongregationDatabase(":memory:")
        assert database.db_path == ":memory:"
        assert database.is_shared is True

    def test_create_file_database(self, tmp_path):
        """Test creating a file-based database."""
        db_path = str(tmp_path / "test.db")
        database = CongregationDatabase(db_path)
        assert database.db_path == db_path
        assert database.is_shared is False

    def test_initialize_creates_tables(self, db):
        """Test that initialize creates one table per collection."""
        assert table_exists(db, "members")
        assert table_exists(db, "groups")

    def test_initialize_is_idempotent(self, db):
        """Test that initializing twice keeps existing data."""
        db.insert_many("members", [{"_id": "m1"}])
        db.initialize(["members", "groups"])
        assert db.count("members") == 1

    def test_invalid_table_name_rejected(self):
        """Test that table names outside [a-z0-9_] are refused."""
        database = CongregationDatabase(":memory:")
        with pytest.raises(ValueError, match="Invalid table name"):
            database.initialize(["members; DROP TABLE groups"])

    def test_unopenable_file_raises_store_error(self, tmp_path):
        """Test a database path that cannot be opened raises StoreError."""
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        database = CongregationDatabase(str(blocker / "test.db"))
        with pytest.raises(StoreError):
            database.initialize(["members"])

    def test_file_database_persists(self, tmp_path):
        """Test that documents survive reopening a file database."""
        db_path = str(tmp_path / "test.db")
        first = CongregationDatabase(db_path)
        first.initialize(["members"])
        first.insert_many("members", [{"_id": "m1", "fullName": "Jane Doe"}])

        second = CongregationDatabase(db_path)
        assert second.find_all("members") == [{"_id": "m1", "fullName": "Jane Doe"}]


class TestCollectionOperations:
    """Tests for find_all, delete_all, insert_many and count."""

    def test_find_all_empty(self, db):
        """Test reading an empty collection."""
        assert db.find_all("members") == []

    def test_insert_preserves_order(self, db):
        """Test that documents come back in insertion order."""
        records = [{"_id": f"m{i}", "n": i} for i in (3, 1, 2)]
        assert db.insert_many("members", records) == 3
        assert db.find_all("members") == records

    def test_insert_assigns_missing_id(self, db):
        """Test that documents without _id get a generated one."""
        db.insert_many("members", [{"fullName": "Jane Doe"}])
        (member,) = db.find_all("members")
        assert member["fullName"] == "Jane Doe"
        assert isinstance(member["_id"], str)
        assert len(member["_id"]) == 32

    def test_insert_does_not_modify_input(self, db):
        """Test that the caller's records are left untouched."""
        record = {"fullName": "Jane Doe"}
        db.insert_many("members", [record])
        assert record == {"fullName": "Jane Doe"}

    def test_insert_serializes_values(self, db):
        """Test that datetimes are stored as ISO strings."""
        db.insert_many(
            "members", [{"_id": "m1", "baptizedDate": datetime(2019, 3, 2, 10, 0)}]
        )
        assert db.find_all("members") == [
            {"_id": "m1", "baptizedDate": "2019-03-02T10:00:00"}
        ]

    def test_non_string_ids(self, db):
        """Test that numeric and structured ids are accepted and kept."""
        db.insert_many("members", [{"_id": 7}, {"_id": {"$oid": "abc"}}])
        assert [m["_id"] for m in db.find_all("members")] == [7, {"$oid": "abc"}]

    def test_delete_all_returns_count(self, db):
        """Test delete_all removes every document and reports how many."""
        db.insert_many("members", [{"_id": "m1"}, {"_id": "m2"}])
        assert db.delete_all("members") == 2
        assert db.count("members") == 0

    def test_delete_all_empty(self, db):
        """Test delete_all on an empty collection."""
        assert db.delete_all("groups") == 0

    def test_count(self, db):
        """Test counting documents."""
        db.insert_many("groups", [{"_id": "g1"}, {"_id": "g2"}, {"_id": "g3"}])
        assert db.count("groups") == 3
        assert db.count("members") == 0

    def test_missing_table_raises_store_error(self, db):
        """Test that reading an unknown table raises StoreError."""
        with pytest.raises(StoreError):
            db.find_all("territories")


class TestBulkInsertFailures:
    """Tests for partial bulk insert failures."""

    def test_unordered_insert_continues_past_duplicates(self, db):
        """Test that unordered inserts write every valid record."""
        records = [{"_id": "m1"}, {"_id": "m1"}, {"_id": "m2"}]

        with pytest.raises(BulkWriteError) as exc_info:
            db.insert_many("members", records, ordered=False)

        assert exc_info.value.inserted == 2
        assert [index for index, _ in exc_info.value.errors] == [1]
        assert exc_info.value.table == "members"
        assert [m["_id"] for m in db.find_all("members")] == ["m1", "m2"]

    def test_ordered_insert_stops_at_first_failure(self, db):
        """Test that ordered inserts stop at the first bad record."""
        records = [{"_id": "m1"}, {"_id": "m1"}, {"_id": "m2"}]

        with pytest.raises(BulkWriteError) as exc_info:
            db.insert_many("members", records, ordered=True)

        assert exc_info.value.inserted == 1
        assert [m["_id"] for m in db.find_all("members")] == ["m1"]

    def test_non_document_rejected_without_validation(self, db):
        """Test that a non-document record fails on its own."""
        with pytest.raises(BulkWriteError) as exc_info:
            db.insert_many("members", [{"_id": "m1"}, "oops", {"_id": "m2"}])

        assert exc_info.value.inserted == 2
        assert exc_info.value.errors[0][0] == 1
        assert "Record must be a mapping" in exc_info.value.errors[0][1]

    def test_validation_rejects_whole_batch(self, db):
        """Test that validation refuses the batch before writing anything."""
        with pytest.raises(RecordValidationError, match="Record 1"):
            db.insert_many("members", [{"_id": "m1"}, "oops"], validate=True)
        assert db.count("members") == 0

    def test_bulk_write_error_is_store_error(self):
        """Test the error hierarchy and message."""
        error = BulkWriteError("members", 1, [(2, "UNIQUE constraint failed")])
        assert isinstance(error, StoreError)
        assert "1 record(s) rejected by members" in str(error)
        assert "index 2" in str(error)


class TestConsistentRead:
    """Tests for reading several collections in one transaction."""

    def test_reads_every_table(self, db):
        """Test that every requested table is returned."""
        db.insert_many("members", [{"_id": "m1"}])
        db.insert_many("groups", [{"_id": "g1"}, {"_id": "g2"}])

        result = db.consistent_read(["members", "groups"])

        assert result == {
            "members": [{"_id": "m1"}],
            "groups": [{"_id": "g1"}, {"_id": "g2"}],
        }

    def test_file_database(self, tmp_path):
        """Test consistent reads against a file database."""
        database = CongregationDatabase(str(tmp_path / "test.db"))
        database.initialize(["members"])
        database.insert_many("members", [{"_id": "m1"}])
        assert database.consistent_read(["members"]) == {"members": [{"_id": "m1"}]}


class TestStagingTables:
    """Tests for staging tables and promotion."""

    def test_staging_table_name(self):
        """Test staging table naming."""
        assert staging_table_name("members") == f"members{STAGING_SUFFIX}"

    def test_create_staging_replaces_leftover(self, db):
        """Test that a leftover staging table is recreated empty."""
        staging = db.create_staging("members")
        db.insert_many(staging, [{"_id": "old"}])

        db.create_staging("members")

        assert db.count(staging) == 0

    def test_promote_replaces_live_tables(self, db):
        """Test that promotion swaps staged documents into live tables."""
        db.insert_many("members", [{"_id": "old1"}, {"_id": "old2"}])
        members_staging = db.create_staging("members")
        groups_staging = db.create_staging("groups")
        db.insert_many(members_staging, [{"_id": "new2"}, {"_id": "new1"}])

        replaced = db.promote_staging(["members", "groups"])

        assert replaced == {"members": 2, "groups": 0}
        assert db.find_all("members") == [{"_id": "new2"}, {"_id": "new1"}]
        assert db.find_all("groups") == []
        assert not table_exists(db, members_staging)
        assert not table_exists(db, groups_staging)

    def test_failed_promotion_leaves_live_tables(self, db):
        """Test that a failed promotion rolls back every table."""
        db.insert_many("members", [{"_id": "old"}])
        staging = db.create_staging("members")
        db.insert_many(staging, [{"_id": "new"}])

        # groups has no staging table, so promotion fails part way
        with pytest.raises(StoreError):
            db.promote_staging(["members", "groups"])

        assert db.find_all("members") == [{"_id": "old"}]
        assert table_exists(db, staging)

    def test_drop_staging(self, db):
        """Test dropping staging tables, present or not."""
        staging = db.create_staging("members")
        db.drop_staging(["members", "groups"])
        assert not table_exists(db, staging)


class TestEntityStore:
    """Tests for the EntityStore handle."""

    def test_operations_delegate_to_table(self, db):
        """Test that a store reads and writes its own table."""
        store = EntityStore(db, "members")
        assert store.insert_many([{"_id": "m1"}, {"_id": "m2"}]) == 2
        assert store.count() == 2
        assert store.find_all() == [{"_id": "m1"}, {"_id": "m2"}]
        assert store.delete_all() == 2
        assert db.count("groups") == 0

    def test_staging_store(self, db):
        """Test that staging() returns a store bound to a fresh staging table."""
        staging = EntityStore(db, "members").staging()
        assert staging.table == "members__staging"
        assert staging.find_all() == []

    def test_invalid_table(self, db):
        """Test that a store refuses an invalid table name."""
        with pytest.raises(ValueError):
            EntityStore(db, "Members")

    def test_repr(self, db):
        """Test the string representation."""
        assert repr(EntityStore(db, "members")) == "EntityStore(table='members')"
