"""
Integration tests for backup/restore functionality.

These tests run complete backup workflows against real file databases
(no mocks):
- Snapshot, archive, restore into a second database
- Export of a restored database
- Loading legacy snapshot files
"""

import json
from datetime import date

import pytest

from congregation_backup.auth.session import StaticSession, User
from congregation_backup.backup.archive import BackupArchive
from congregation_backup.backup.export import ExportFormatter
from congregation_backup.backup.registry import EntityRegistry
from congregation_backup.backup.service import BackupService
from congregation_backup.storage.db import CongregationDatabase

SECRETARY = User(id="sec-1", name="Secretary")


def open_registry(path) -> EntityRegistry:
    registry = EntityRegistry(CongregationDatabase(str(path)))
    registry.initialize()
    return registry


def seed(registry: EntityRegistry) -> None:
    """Fill a few related collections the way the app would."""
    registry.get("groups").store.insert_many(
        [{"_id": "g1", "name": "North", "overseer": {"fullName": "John Smith"}}]
    )
    registry.get("members").store.insert_many(
        [
            {
                "_id": "m1",
                "fullName": "Jane Doe",
                "email": "jane@example.com",
                "groupId": "g1",
                "baptizedDate": "2015-06-20T00:00:00Z",
                "pioneerStatus": "regular",
            },
            {"_id": "m2", "fullName": 'Tom "TJ" Jones', "groupId": "g1"},
        ]
    )
    registry.get("territoryAssignments").store.insert_many(
        [{"_id": "ta1", "territoryId": "t1", "memberId": "m1"}]
    )
    registry.get("fieldServiceReports").store.insert_many(
        [{"_id": "r1", "month": "2024-05", "hours": 12, "memberId": "m1"}]
    )


@pytest.fixture
def source(tmp_path):
    registry = open_registry(tmp_path / "source.db")
    seed(registry)
    yield registry
    registry.db.close()


@pytest.fixture
def target(tmp_path):
    registry = open_registry(tmp_path / "target.db")
    registry.get("members").store.insert_many([{"_id": "stale"}])
    registry.get("expenses").store.insert_many([{"_id": "e1", "amount": 5}])
    yield registry
    registry.db.close()


@pytest.fixture
def archive(tmp_path):
    return BackupArchive(tmp_path / "backups", retention_count=3)


class TestBackupRestoreCycle:
    """Tests for moving a database through a snapshot file."""

    def test_full_cycle(self, source, target, archive):
        """Test a saved snapshot restores into another database unchanged."""
        created = BackupService(source, StaticSession(SECRETARY)).create_backup()
        assert created.success
        backup_path = archive.save(created.data)

        loaded = archive.load(backup_path)
        result = BackupService(target, StaticSession(SECRETARY)).restore_backup(loaded)

        assert result.success, result.error
        for entry in source:
            assert entry.store.find_all() == target.get(entry.name).store.find_all()

    def test_restore_empties_collections_missing_from_snapshot(
        self, source, target, archive
    ):
        """Test records present only in the target are removed."""
        snapshot = BackupService(source, StaticSession(SECRETARY)).create_backup().data
        loaded = archive.load(archive.save(snapshot))

        BackupService(target, StaticSession(SECRETARY)).restore_backup(loaded)

        assert target.get("expenses").store.count() == 0
        assert {"_id": "stale"} not in target.get("members").store.find_all()

    def test_snapshot_file_layout(self, source, archive):
        """Test the saved file carries version, timestamp, data and metadata."""
        snapshot = BackupService(source, StaticSession(SECRETARY)).create_backup().data
        payload = json.loads(archive.save(snapshot).read_text())

        assert payload["version"] == "2.0"
        assert payload["timestamp"].endswith("Z") or "+00:00" in payload["timestamp"]
        assert len(payload["data"]) == 42
        assert payload["metadata"]["createdBy"] == "sec-1"
        assert payload["metadata"]["totalRecords"] == 5
        assert payload["metadata"]["counts"]["members"] == 2

    def test_restored_database_exports(self, source, target, archive):
        """Test a restored database exports the same member CSV."""
        formatter = ExportFormatter(today=lambda: date(2024, 6, 1))
        source_service = BackupService(
            source, StaticSession(SECRETARY), formatter=formatter
        )
        target_service = BackupService(
            target, StaticSession(SECRETARY), formatter=formatter
        )
        snapshot = source_service.create_backup().data
        target_service.restore_backup(archive.load(archive.save(snapshot)))

        before = source_service.export_backup_file("csv", "members").data
        after = target_service.export_backup_file("csv", "members").data

        assert after.filename == "congregation-members-2024-06-01.csv"
        assert after.content == before.content
        assert '"Jane Doe","jane@example.com","","","2015-06-20","regular",""' in (
            after.content
        )
        assert '"Tom ""TJ"" Jones"' in after.content

    def test_retention_across_backups(self, source, archive):
        """Test only the newest snapshot files are kept."""
        service = BackupService(source, StaticSession(SECRETARY))
        for _ in range(5):
            archive.save(service.create_backup().data)

        assert len(archive.list_backups()) == 3


class TestLegacySnapshots:
    """Tests for restoring snapshot files written by older versions."""

    def test_legacy_file_restores_renamed_collections(self, target, tmp_path):
        """Test 'assignments' and 'reports' fill their renamed collections."""
        legacy = tmp_path / "legacy.json"
        legacy.write_text(
            json.dumps(
                {
                    "timestamp": "2020-01-01T00:00:00Z",
                    "data": {
                        "members": [{"_id": "m1", "fullName": "Old Member"}],
                        "assignments": [{"_id": "a1", "territoryId": "t9"}],
                        "reports": [{"_id": "r1", "month": "2019-12"}],
                    },
                }
            )
        )
        snapshot = BackupArchive(tmp_path / "backups").load(legacy)
        assert snapshot is not None
        assert snapshot.version == "1.0"

        result = BackupService(target, StaticSession(SECRETARY)).restore_backup(
            snapshot
        )

        assert result.success, result.error
        assert target.get("territoryAssignments").store.find_all() == [
            {"_id": "a1", "territoryId": "t9"}
        ]
        assert target.get("fieldServiceReports").store.find_all() == [
            {"_id": "r1", "month": "2019-12"}
        ]
        assert target.get("members").store.find_all() == [
            {"_id": "m1", "fullName": "Old Member"}
        ]

    def test_legacy_reports_export(self, target, tmp_path):
        """Test report CSVs read restored legacy reports."""
        service = BackupService(target, StaticSession(SECRETARY))
        service.restore_backup(
            {
                "version": "1.0",
                "data": {"reports": [{"month": "2019-12", "hours": 3}]},
            }
        )

        export = service.export_backup_file("csv", "reports").data

        assert export.content.startswith(
            "Month,Publisher,Hours,Bible Students,Auxiliary Pioneer\n"
        )
        assert '"2019-12"' in export.content
