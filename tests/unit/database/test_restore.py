"""
Tests for the restore protocol: validate, snapshot, swap, verify, rollback.
"""
import os
import stat
from pathlib import Path

import pytest

from tasknest.core.exceptions import IntegrityCheckError
from tasknest.database.backup_manager import BackupManager, BackupResult
from tasknest.database.integrity import IntegrityChecker


@pytest.fixture
def backup_dir(tmp_dir):
    return tmp_dir / "backups"


@pytest.fixture
def live_db(make_db, tmp_dir):
    return make_db(tmp_dir / "data" / "tasknest.db", tickets=2)


@pytest.fixture
def manager(live_db, backup_dir, clock):
    return BackupManager(live_db, backup_dir, clock=clock)


@pytest.fixture
def stats():
    return IntegrityChecker().database_stats


class TestRestoreRoundTrip:
    def test_restore_into_fresh_location(self, make_db, tmp_dir, backup_dir, clock, stats):
        source = make_db(tmp_dir / "source.db", tickets=5)
        backup = BackupManager(source, backup_dir, clock=clock).create_backup()

        target = tmp_dir / "fresh" / "tasknest.db"
        outcome = BackupManager(target, backup_dir, clock=clock).restore_from_backup(
            backup.backup_path
        )

        assert outcome.success
        assert outcome.pre_restore_backup_path is None
        assert IntegrityChecker().quick_check(target).success
        assert stats(target) == stats(source)

    def test_restore_replaces_live_and_keeps_safety_copy(
        self, manager, make_db, tmp_dir, live_db, stats
    ):
        candidate = make_db(tmp_dir / "candidate.db", tickets=7)
        before = stats(live_db)

        outcome = manager.restore_from_backup(candidate)

        assert outcome.success
        assert stats(live_db)["tickets"] == 7
        safety = outcome.pre_restore_backup_path
        assert safety is not None
        assert safety.name.startswith("tasknest-pre-restore-")
        assert stats(safety) == before

    def test_companions_are_removed(self, manager, make_db, tmp_dir, live_db):
        stale_wal = Path(f"{live_db}-wal")
        stale_wal.write_bytes(b"\0" * 128)
        candidate = make_db(tmp_dir / "candidate.db")

        outcome = manager.restore_from_backup(candidate)

        assert outcome.success
        assert not stale_wal.exists()

    def test_safety_copy_is_not_listed_as_daily_backup(self, manager, make_db, tmp_dir):
        manager.restore_from_backup(make_db(tmp_dir / "candidate.db"))
        assert manager.list_backups() == []


class TestRestoreRejection:
    def test_missing_candidate(self, manager, tmp_dir, live_db):
        before = live_db.read_bytes()

        outcome = manager.restore_from_backup(tmp_dir / "nope.db")

        assert not outcome.success
        assert outcome.error == "BackupNotFoundError"
        assert live_db.read_bytes() == before

    def test_corrupt_candidate_leaves_live_untouched(
        self, manager, make_corrupt_file, live_db, backup_dir
    ):
        before = live_db.read_bytes()

        outcome = manager.restore_from_backup(make_corrupt_file())

        assert not outcome.success
        assert outcome.error == "BackupCorruptedError"
        assert outcome.pre_restore_backup_path is None
        assert live_db.read_bytes() == before
        assert not backup_dir.exists() or list(backup_dir.iterdir()) == []


class TestRestoreRollback:
    def test_failed_post_restore_verification_rolls_back(
        self, manager, make_db, tmp_dir, live_db, stats, monkeypatch
    ):
        candidate = make_db(tmp_dir / "candidate.db", tickets=9)
        before = stats(live_db)
        real_verify = manager.checker.verify

        def verify(path, full=False):
            if Path(path) == live_db:
                raise IntegrityCheckError("database disk image is malformed")
            return real_verify(path, full=full)

        monkeypatch.setattr(manager.checker, "verify", verify)

        outcome = manager.restore_from_backup(candidate)

        assert not outcome.success
        assert outcome.error == "IntegrityCheckError"
        assert outcome.pre_restore_backup_path is not None
        assert outcome.pre_restore_backup_path.exists()
        assert "Previous database restored" in outcome.message
        assert stats(live_db) == before

    def test_snapshot_failure_does_not_abort_restore(
        self, manager, make_db, tmp_dir, live_db, stats, monkeypatch
    ):
        candidate = make_db(tmp_dir / "candidate.db", tickets=4)
        real_create = manager.create_backup

        def failing_snapshot(source_path=None, target_path=None):
            if target_path is not None and "pre-restore" in Path(target_path).name:
                return BackupResult(success=False, created=False, message="disk full")
            return real_create(source_path, target_path)

        monkeypatch.setattr(manager, "create_backup", failing_snapshot)

        outcome = manager.restore_from_backup(candidate)

        assert outcome.success
        assert outcome.pre_restore_backup_path is None
        assert stats(live_db)["tickets"] == 4


@pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
class TestRestoreDirectoryModes:
    def test_existing_parent_keeps_its_mode(self, make_db, tmp_dir, backup_dir, clock):
        project = tmp_dir / "project"
        project.mkdir()
        os.chmod(project, 0o755)
        candidate = make_db(tmp_dir / "candidate.db")

        outcome = BackupManager(project / "tasks.db", backup_dir, clock=clock).restore_from_backup(
            candidate
        )

        assert outcome.success
        assert stat.S_IMODE(project.stat().st_mode) == 0o755

    def test_backup_into_existing_directory_keeps_its_mode(self, manager, tmp_dir):
        shared = tmp_dir / "shared"
        shared.mkdir()
        os.chmod(shared, 0o755)

        result = manager.create_backup(target_path=shared / "copy.db")

        assert result.success
        assert stat.S_IMODE(shared.stat().st_mode) == 0o755
