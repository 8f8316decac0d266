"""
Tests for one-time legacy data migration.
"""
import json
import os
import stat
from pathlib import Path

import pytest

from tasknest.core.exceptions import IntegrityCheckError
from tasknest.database.backup_manager import BackupManager
from tasknest.database.integrity import IntegrityChecker
from tasknest.database import migration
from tasknest.database.migration import LegacyMigrator, copy_file_exclusive


@pytest.fixture
def legacy_dir(tmp_dir):
    return tmp_dir / "home" / ".tasknest"


@pytest.fixture
def data_dir(tmp_dir):
    return tmp_dir / "data"


@pytest.fixture
def legacy_db(make_db, legacy_dir):
    db_path = make_db(legacy_dir / "tasknest.db", tickets=3)
    attachments = legacy_dir / "attachments"
    attachments.mkdir()
    (attachments / "screenshot.png").write_bytes(b"\x89PNG fake")
    (attachments / "notes.txt").write_text("hello")
    return db_path


@pytest.fixture
def migrator(legacy_dir, data_dir, tmp_dir, clock):
    manager = BackupManager(data_dir / "tasknest.db", tmp_dir / "backups", clock=clock)
    return LegacyMigrator(legacy_dir, data_dir, manager)


class TestShortCircuits:
    def test_no_legacy_data(self, migrator):
        result = migrator.migrate()
        assert result.success
        assert not result.migrated
        assert result.message == "No legacy data to migrate"

    def test_destination_already_populated(self, migrator, legacy_db, make_db, data_dir):
        existing = make_db(data_dir / "tasknest.db", tickets=1)
        before = existing.read_bytes()

        result = migrator.migrate()

        assert result.success
        assert not result.migrated
        assert existing.read_bytes() == before
        assert migrator.marker_path.exists()

    def test_unreadable_destination_is_left_unmarked(
        self, migrator, legacy_db, make_corrupt_file, data_dir
    ):
        make_corrupt_file(data_dir / "tasknest.db")

        result = migrator.migrate()

        assert result.success
        assert not result.migrated
        assert not migrator.marker_path.exists()


class TestMigrate:
    def test_copies_database_and_attachments(self, migrator, legacy_db, data_dir):
        result = migrator.migrate()

        assert result.success
        assert result.migrated
        assert result.details.database_copied
        assert result.details.integrity_verified
        assert result.details.backup_created
        assert result.details.attachments_copied == 2

        checker = IntegrityChecker()
        assert checker.database_stats(data_dir / "tasknest.db")["tickets"] == 3
        assert (data_dir / "attachments" / "screenshot.png").read_bytes() == b"\x89PNG fake"

    def test_pre_migration_backup_is_created(self, migrator, legacy_db, tmp_dir):
        result = migrator.migrate()
        backup = result.details.pre_migration_backup_path
        assert backup.parent == tmp_dir / "backups"
        assert backup.name.startswith("tasknest-pre-migration-")

    def test_writes_marker_last(self, migrator, legacy_db, data_dir):
        migrator.migrate()

        marker = json.loads(migrator.marker_path.read_text())
        assert set(marker) == {"migratedAt", "migratedTo", "note"}
        assert marker["migratedTo"] == str(data_dir)

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    def test_marker_is_owner_only(self, migrator, legacy_db):
        migrator.migrate()
        assert stat.S_IMODE(migrator.marker_path.stat().st_mode) == 0o600

    def test_idempotent_and_preserves_legacy(self, migrator, legacy_db, legacy_dir):
        first = migrator.migrate()
        legacy_bytes = legacy_db.read_bytes()

        second = migrator.migrate()

        assert first.migrated
        assert second.success
        assert not second.migrated
        assert second.message == "Migration already complete"
        assert legacy_db.read_bytes() == legacy_bytes
        assert (legacy_dir / "attachments" / "notes.txt").exists()

    def test_copies_companion_files(self, migrator, legacy_db, data_dir, monkeypatch):
        Path(f"{legacy_db}-shm").write_bytes(b"\0" * 32)
        monkeypatch.setattr(migrator.checker, "verify", lambda path, full=False: None)

        result = migrator.migrate()

        assert result.migrated
        assert Path(f"{data_dir / 'tasknest.db'}-shm").exists()


class TestMigrationFailures:
    def test_verification_failure_is_retryable(self, migrator, legacy_db, data_dir, monkeypatch):
        def broken_verify(path, full=False):
            raise IntegrityCheckError("database disk image is malformed")

        monkeypatch.setattr(migrator.checker, "verify", broken_verify)

        result = migrator.migrate()

        assert not result.success
        assert not result.migrated
        assert "integrity check failed" in result.message
        assert not (data_dir / "tasknest.db").exists()
        assert not migrator.marker_path.exists()
        assert legacy_db.exists()

        monkeypatch.undo()
        retry = migrator.migrate()
        assert retry.migrated

    def test_marker_failure_is_completed_on_next_run(
        self, migrator, legacy_db, data_dir, monkeypatch
    ):
        def failing_marker():
            raise PermissionError("read-only legacy directory")

        monkeypatch.setattr(migrator, "_write_marker", failing_marker)

        result = migrator.migrate()

        assert not result.success
        assert result.details.integrity_verified
        assert (data_dir / "tasknest.db").exists()
        assert not migrator.marker_path.exists()

        monkeypatch.undo()
        retry = migrator.migrate()

        assert retry.success
        assert not retry.migrated
        assert migrator.marker_path.exists()
        assert IntegrityChecker().database_stats(data_dir / "tasknest.db")["tickets"] == 3
        assert migrator.migrate().message == "Migration already complete"

    def test_attachment_failure_is_counted(self, migrator, legacy_db, monkeypatch):
        def flaky_copy(source, dest):
            if Path(source).name == "notes.txt":
                raise PermissionError("permission denied")
            return copy_file_exclusive(source, dest)

        monkeypatch.setattr(migration, "copy_file_exclusive", flaky_copy)

        result = migrator.migrate()

        assert result.success
        assert result.migrated
        assert result.details.attachments_copied == 1
        assert result.details.attachments_failed == 1
        assert migrator.marker_path.exists()


class TestCopyFileExclusive:
    def test_refuses_to_overwrite(self, tmp_dir):
        source = tmp_dir / "a.txt"
        dest = tmp_dir / "b.txt"
        source.write_text("new")
        dest.write_text("old")

        with pytest.raises(FileExistsError):
            copy_file_exclusive(source, dest)
        assert dest.read_text() == "old"
