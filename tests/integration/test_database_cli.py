#!/usr/bin/env python3
"""
Integration tests for the database administration CLI (nestdb).

Tests the commands end to end against real SQLite files in a temporary
directory: init, backup, restore, health checks, migration and watch.
"""
import json
import sqlite3

import pytest
from click.testing import CliRunner

from tasknest.database.cli import cli
from tasknest.database.integrity import IntegrityChecker


class TestDatabaseCLI:
    """Test database CLI commands with a temporary database."""

    @pytest.fixture
    def runner(self):
        """Create Click test runner."""
        return CliRunner()

    @pytest.fixture
    def test_dirs(self, tmp_path):
        """Create temporary directories for testing."""
        return {
            "db_path": tmp_path / "data" / "tasknest.db",
            "backup_dir": tmp_path / "backups",
            "log_dir": tmp_path / "logs",
            "legacy_dir": tmp_path / "home" / ".tasknest",
        }

    @pytest.fixture
    def populated(self, test_dirs, make_db):
        """A populated live database at the configured path."""
        return make_db(test_dirs["db_path"], tickets=3)

    def invoke_cli(self, runner, test_dirs, args, **kwargs):
        """Helper to invoke CLI with test configuration."""
        base_args = [
            "--db-path", str(test_dirs["db_path"]),
            "--backup-dir", str(test_dirs["backup_dir"]),
            "--log-dir", str(test_dirs["log_dir"]),
            "--legacy-dir", str(test_dirs["legacy_dir"]),
        ]
        return runner.invoke(cli, base_args + args, **kwargs)

    def test_cli_help(self, runner):
        """Test that CLI help message works."""
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "backups" in result.output
        assert "restore" in result.output

    def test_init_command(self, runner, test_dirs):
        """Test 'init' creates a database that passes every check."""
        result = self.invoke_cli(runner, test_dirs, ["init"])

        assert result.exit_code == 0
        assert "Initializing database schema" in result.output
        assert "Database initialized" in result.output
        assert IntegrityChecker().table_check(test_dirs["db_path"]).success

    def test_backup_flow(self, runner, test_dirs, populated):
        """Test backup creation and listing."""
        result = self.invoke_cli(runner, test_dirs, ["backup"])
        assert result.exit_code == 0
        assert "Backup created" in result.output

        files = list(test_dirs["backup_dir"].glob("tasknest-*.db"))
        assert len(files) == 1

        result = self.invoke_cli(runner, test_dirs, ["backups"])
        assert result.exit_code == 0
        assert files[0].name in result.output
        assert "Total backups: 1" in result.output

    def test_backup_if_needed_is_daily(self, runner, test_dirs, populated):
        """A second --if-needed backup on the same day is a no-op."""
        self.invoke_cli(runner, test_dirs, ["backup", "--if-needed"])
        result = self.invoke_cli(runner, test_dirs, ["backup", "--if-needed"])

        assert result.exit_code == 0
        assert "already" in result.output
        assert len(list(test_dirs["backup_dir"].glob("tasknest-*.db"))) == 1

    def test_backup_missing_database(self, runner, test_dirs):
        result = self.invoke_cli(runner, test_dirs, ["backup"])
        assert result.exit_code == 1
        assert "BackupError" in result.output

    def test_backups_empty(self, runner, test_dirs):
        result = self.invoke_cli(runner, test_dirs, ["backups"])
        assert result.exit_code == 0
        assert "No backups found" in result.output

    def test_restore_latest(self, runner, test_dirs, populated):
        """Restore puts the backed-up data back and keeps a safety copy."""
        self.invoke_cli(runner, test_dirs, ["backup"])
        conn = sqlite3.connect(populated)
        conn.execute("DELETE FROM ticket_comments")
        conn.execute("DELETE FROM tickets WHERE id > 1")
        conn.commit()
        conn.close()

        result = self.invoke_cli(runner, test_dirs, ["restore", "--latest", "--yes"])

        assert result.exit_code == 0, result.output
        assert "tickets: 3" in result.output
        assert "Previous database saved to" in result.output
        assert "Database restored successfully" in result.output
        assert IntegrityChecker().database_stats(populated)["tickets"] == 3
        assert list(test_dirs["backup_dir"].glob("tasknest-pre-restore-*.db"))

    def test_restore_prompt_can_abort(self, runner, test_dirs, populated, make_db, tmp_path):
        candidate = make_db(tmp_path / "candidate.db", tickets=5)

        result = self.invoke_cli(runner, test_dirs, ["restore", str(candidate)], input="n\n")

        assert result.exit_code == 1
        assert IntegrityChecker().database_stats(populated)["tickets"] == 3

    def test_restore_corrupt_backup_is_rejected(
        self, runner, test_dirs, populated, make_corrupt_file
    ):
        """A corrupt file is refused before the user is asked anything."""
        before = populated.read_bytes()

        result = self.invoke_cli(runner, test_dirs, ["restore", str(make_corrupt_file())])

        assert result.exit_code == 1
        assert "BackupCorruptedError" in result.output
        assert "Continue?" not in result.output
        assert populated.read_bytes() == before

    def test_restore_latest_without_backups(self, runner, test_dirs, populated):
        result = self.invoke_cli(runner, test_dirs, ["restore", "--latest", "--yes"])
        assert result.exit_code == 1
        assert "BackupNotFoundError" in result.output

    def test_restore_requires_exactly_one_source(self, runner, test_dirs, populated):
        result = self.invoke_cli(runner, test_dirs, ["restore"])
        assert result.exit_code == 2

    def test_cleanup(self, runner, test_dirs):
        test_dirs["backup_dir"].mkdir()
        for day in range(1, 6):
            (test_dirs["backup_dir"] / f"tasknest-2026-01-{day:02d}.db").write_bytes(b"x")

        result = self.invoke_cli(runner, test_dirs, ["cleanup", "--keep-days", "2"])

        assert result.exit_code == 0
        remaining = sorted(p.name for p in test_dirs["backup_dir"].iterdir())
        assert remaining == ["tasknest-2026-01-04.db", "tasknest-2026-01-05.db"]

    def test_cleanup_rejects_zero(self, runner, test_dirs):
        result = self.invoke_cli(runner, test_dirs, ["cleanup", "--keep-days", "0"])
        assert result.exit_code == 2

    def test_check_quick(self, runner, test_dirs, populated):
        result = self.invoke_cli(runner, test_dirs, ["check"])
        assert result.exit_code == 0
        assert "Database integrity verified" in result.output

    def test_check_quick_corrupt(self, runner, test_dirs, make_corrupt_file):
        make_corrupt_file(test_dirs["db_path"])
        result = self.invoke_cli(runner, test_dirs, ["check"])
        assert result.exit_code == 1
        assert "Integrity check failed" in result.output

    def test_check_full_report(self, runner, test_dirs, populated):
        result = self.invoke_cli(runner, test_dirs, ["check", "--full"])

        assert result.exit_code == 0
        assert "Database Health Report" in result.output
        assert "Overall: OK" in result.output

    def test_check_full_corrupt_suggests_restore(
        self, runner, test_dirs, populated, make_corrupt_file
    ):
        self.invoke_cli(runner, test_dirs, ["backup"])
        make_corrupt_file(test_dirs["db_path"])

        result = self.invoke_cli(runner, test_dirs, ["check", "--full"])

        assert result.exit_code == 1
        assert "Overall: ERROR" in result.output
        assert "nestdb restore --latest" in result.output

    def test_check_full_json(self, runner, test_dirs, populated):
        result = self.invoke_cli(runner, test_dirs, ["check", "--full", "--json"])

        assert result.exit_code == 0
        report = json.loads(result.output)
        assert report["overall_status"] == "ok"
        assert report["integrity"]["success"] is True

    def test_checkpoint(self, runner, test_dirs, populated):
        result = self.invoke_cli(runner, test_dirs, ["checkpoint"])
        assert result.exit_code == 0
        assert "Checkpoint (TRUNCATE)" in result.output

    def test_migrate(self, runner, test_dirs, make_db):
        legacy_db = make_db(test_dirs["legacy_dir"] / "tasknest.db", tickets=4)

        result = self.invoke_cli(runner, test_dirs, ["migrate"])

        assert result.exit_code == 0, result.output
        assert "Pre-migration backup" in result.output
        assert legacy_db.exists()
        assert IntegrityChecker().database_stats(test_dirs["db_path"])["tickets"] == 4

        again = self.invoke_cli(runner, test_dirs, ["migrate"])
        assert again.exit_code == 0
        assert "Migration already complete" in again.output

    def test_migrate_nothing_to_do(self, runner, test_dirs):
        result = self.invoke_cli(runner, test_dirs, ["migrate"])
        assert result.exit_code == 0
        assert "No legacy data to migrate" in result.output

    def test_watch_times_out(self, runner, test_dirs, populated):
        result = self.invoke_cli(runner, test_dirs, ["watch", "--timeout", "0.3"])
        assert result.exit_code == 0
        assert "No deletion detected" in result.output

    def test_watch_missing_database(self, runner, test_dirs):
        result = self.invoke_cli(runner, test_dirs, ["watch", "--timeout", "0.3"])
        assert result.exit_code == 1
        assert "DatabaseNotFoundError" in result.output

    def test_commands_write_log_file(self, runner, test_dirs, populated):
        self.invoke_cli(runner, test_dirs, ["backup"])
        log_file = test_dirs["log_dir"] / "nestdb.log"
        assert log_file.exists()
        assert "backup_created" in log_file.read_text()
