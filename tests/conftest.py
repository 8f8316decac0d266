"""
conftest.py
-----------
Shared pytest fixtures for TaskNest tests.

Provides fixtures for:
- Temporary directories and resolved application paths
- Populated and corrupt SQLite database files
- A controllable UTC clock
"""
from datetime import datetime, timedelta, timezone
from pathlib import Path
from tempfile import TemporaryDirectory

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from tasknest.core.paths import AppPaths
from tasknest.database.models import (
    Epic,
    Project,
    Setting,
    Ticket,
    TicketComment,
    create_schema,
)


# ----- Path Fixtures -----

@pytest.fixture
def tmp_dir():
    """Create a temporary directory for test file operations."""
    with TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def app_paths(tmp_dir):
    """Resolved application paths rooted in a temporary home."""
    home = tmp_dir / "home"
    return AppPaths.resolve(
        platform="linux",
        env={
            "XDG_DATA_HOME": str(home / "data"),
            "XDG_CONFIG_HOME": str(home / "config"),
            "XDG_CACHE_HOME": str(home / "cache"),
            "XDG_STATE_HOME": str(home / "state"),
        },
        home=home,
    )


# ----- Database Fixtures -----

def populate_database(db_path: Path, tickets: int = 2) -> Path:
    """Create the schema and a small, consistent data set."""
    create_schema(db_path)
    engine = create_engine(f"sqlite:///{db_path}")
    try:
        with Session(engine) as session:
            project = Project(name="Demo", path="/tmp/demo")
            epic = Epic(title="Launch", project=project)
            session.add_all([project, epic])
            session.flush()
            for i in range(tickets):
                ticket = Ticket(title=f"Ticket {i}", project=project, epic_id=epic.id)
                session.add(ticket)
                session.flush()
                session.add(TicketComment(ticket_id=ticket.id, content=f"Comment {i}"))
            session.add(Setting(key="theme", value="dark"))
            session.commit()
    finally:
        engine.dispose()
    return db_path


@pytest.fixture
def make_db(tmp_dir):
    """Factory creating populated databases: make_db(path=None, tickets=2)."""

    def _make(path=None, tickets=2):
        path = Path(path) if path else tmp_dir / "tasknest.db"
        path.parent.mkdir(parents=True, exist_ok=True)
        return populate_database(path, tickets=tickets)

    return _make


@pytest.fixture
def sample_db(make_db):
    """A populated database at <tmp>/tasknest.db."""
    return make_db()


@pytest.fixture
def make_corrupt_file(tmp_dir):
    """Factory writing a file SQLite refuses to open as a database."""

    def _make(path=None):
        path = Path(path) if path else tmp_dir / "corrupt.db"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"this is not a sqlite database" * 200)
        return path

    return _make


# ----- Clock Fixtures -----

class FakeClock:
    """Callable returning a settable aware UTC datetime."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    """Clock fixed at 2026-01-12 10:00 UTC."""
    return FakeClock(datetime(2026, 1, 12, 10, 0, tzinfo=timezone.utc))
