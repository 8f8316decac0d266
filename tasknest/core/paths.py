#!/usr/bin/env python3
"""
paths.py
-------------------
Platform-aware path resolution for the TaskNest project.

TaskNest stores its database and attachments in the operating system's
conventional per-user locations instead of a single dotted directory in
the home folder. Resolution is a pure function of the platform, the
environment and the home directory; nothing is created until
``AppPaths.ensure_directories()`` is called.

Layout:
    data/               # tasknest.db, attachments/
    config/             # user settings
    cache/              # disposable data
    state/
    ├── backups/        # daily backups, safety copies, .last-backup
    └── logs/           # rotating log files
    ~/.tasknest/        # legacy location (read-only source for migration)

Platform rules:
    linux   XDG base directory variables with the standard fallbacks
    darwin  ~/Library/Application Support and ~/Library/Caches
    win32   %APPDATA% and %LOCALAPPDATA%

Unknown platforms follow the Linux rules.
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

# ----- Application naming -----
APP_NAME = "tasknest"
DB_FILENAME = "tasknest.db"
LEGACY_DIRNAME = ".tasknest"
ATTACHMENTS_DIRNAME = "attachments"
BACKUPS_DIRNAME = "backups"
LOGS_DIRNAME = "logs"

# Owner-only permissions for every directory we create
DIR_MODE = 0o700

SUPPORTED_PLATFORMS = ("linux", "darwin", "win32")


def get_platform(platform: Optional[str] = None) -> str:
    """
    Normalize a platform identifier.

    Args:
        platform: Explicit platform string (defaults to ``sys.platform``)

    Returns:
        One of "linux", "darwin" or "win32"
    """
    value = platform or sys.platform
    if value.startswith("win") or value == "cygwin":
        return "win32"
    if value == "darwin":
        return "darwin"
    return "linux"


def _env(env: Optional[Mapping[str, str]]) -> Mapping[str, str]:
    return os.environ if env is None else env


def _home(home: Optional[Path]) -> Path:
    return Path(home) if home is not None else Path.home()


def _env_dir(env: Mapping[str, str], name: str) -> Optional[Path]:
    """Return an environment directory only if it is set and absolute."""
    value = env.get(name)
    if value and os.path.isabs(value):
        return Path(value)
    return None


def get_data_dir(
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """
    Resolve the directory holding the database and attachments.

    Args:
        platform: Platform override
        env: Environment mapping override
        home: Home directory override

    Returns:
        Data directory path (not created)
    """
    plat = get_platform(platform)
    env = _env(env)
    home = _home(home)

    if plat == "darwin":
        return home / "Library" / "Application Support" / APP_NAME
    if plat == "win32":
        base = _env_dir(env, "APPDATA") or home / "AppData" / "Roaming"
        return base / APP_NAME

    base = _env_dir(env, "XDG_DATA_HOME") or home / ".local" / "share"
    return base / APP_NAME


def get_config_dir(
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Resolve the per-user configuration directory."""
    plat = get_platform(platform)
    env = _env(env)
    home = _home(home)

    if plat == "darwin":
        return home / "Library" / "Application Support" / APP_NAME
    if plat == "win32":
        base = _env_dir(env, "APPDATA") or home / "AppData" / "Roaming"
        return base / APP_NAME

    base = _env_dir(env, "XDG_CONFIG_HOME") or home / ".config"
    return base / APP_NAME


def get_cache_dir(
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Resolve the per-user cache directory."""
    plat = get_platform(platform)
    env = _env(env)
    home = _home(home)

    if plat == "darwin":
        return home / "Library" / "Caches" / APP_NAME
    if plat == "win32":
        base = _env_dir(env, "LOCALAPPDATA") or home / "AppData" / "Local"
        return base / APP_NAME / "cache"

    base = _env_dir(env, "XDG_CACHE_HOME") or home / ".cache"
    return base / APP_NAME


def get_state_dir(
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """
    Resolve the state directory (backups and logs live beneath it).

    Args:
        platform: Platform override
        env: Environment mapping override
        home: Home directory override

    Returns:
        State directory path (not created)
    """
    plat = get_platform(platform)
    env = _env(env)
    home = _home(home)

    if plat == "darwin":
        return home / "Library" / "Application Support" / APP_NAME / "state"
    if plat == "win32":
        base = _env_dir(env, "LOCALAPPDATA") or home / "AppData" / "Local"
        return base / APP_NAME / "state"

    base = _env_dir(env, "XDG_STATE_HOME") or home / ".local" / "state"
    return base / APP_NAME


def get_legacy_dir(home: Optional[Path] = None) -> Path:
    """Return the pre-XDG location used by older releases (all platforms)."""
    return _home(home) / LEGACY_DIRNAME


def get_database_path(
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Return the path of the live database file."""
    return get_data_dir(platform, env, home) / DB_FILENAME


def get_backups_dir(
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Return the directory holding daily backups and safety copies."""
    return get_state_dir(platform, env, home) / BACKUPS_DIRNAME


def get_logs_dir(
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Return the directory holding rotating log files."""
    return get_state_dir(platform, env, home) / LOGS_DIRNAME


def ensure_directory(path: Path) -> Path:
    """
    Create a directory (and parents) with owner-only permissions.

    Only a directory created here gets mode 0700; an existing directory
    (for instance one the user chose with ``--db-path``) keeps its mode.

    Args:
        path: Directory to create

    Returns:
        The same path
    """
    path = Path(path)
    if path.is_dir():
        return path
    path.mkdir(parents=True, exist_ok=True, mode=DIR_MODE)
    if os.name != "nt":
        # mkdir's mode is filtered by the umask
        os.chmod(path, DIR_MODE)
    return path


@dataclass(frozen=True)
class AppPaths:
    """
    Resolved directory set for one TaskNest installation.

    Attributes:
        data_dir: Database and attachments
        config_dir: User settings
        cache_dir: Disposable data
        state_dir: Backups and logs
        legacy_dir: Pre-XDG installation directory
    """

    data_dir: Path
    config_dir: Path
    cache_dir: Path
    state_dir: Path
    legacy_dir: Path

    @classmethod
    def resolve(
        cls,
        platform: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        home: Optional[Path] = None,
    ) -> "AppPaths":
        """Resolve every directory for the given platform and environment."""
        return cls(
            data_dir=get_data_dir(platform, env, home),
            config_dir=get_config_dir(platform, env, home),
            cache_dir=get_cache_dir(platform, env, home),
            state_dir=get_state_dir(platform, env, home),
            legacy_dir=get_legacy_dir(home),
        )

    @property
    def db_path(self) -> Path:
        return self.data_dir / DB_FILENAME

    @property
    def attachments_dir(self) -> Path:
        return self.data_dir / ATTACHMENTS_DIRNAME

    @property
    def backups_dir(self) -> Path:
        return self.state_dir / BACKUPS_DIRNAME

    @property
    def logs_dir(self) -> Path:
        return self.state_dir / LOGS_DIRNAME

    @property
    def legacy_db_path(self) -> Path:
        return self.legacy_dir / DB_FILENAME

    def ensure_directories(self) -> None:
        """Create data, config, cache, state, backups and logs (mode 0700)."""
        for directory in (
            self.data_dir,
            self.config_dir,
            self.cache_dir,
            self.state_dir,
            self.backups_dir,
            self.logs_dir,
        ):
            ensure_directory(directory)


# ----- Module-level defaults -----
# Resolved once at import for CLI option defaults; code that needs a
# different environment calls AppPaths.resolve() directly.
DEFAULT_PATHS = AppPaths.resolve()
DB_PATH = DEFAULT_PATHS.db_path
BACKUP_DIR = DEFAULT_PATHS.backups_dir
LOG_DIR = DEFAULT_PATHS.logs_dir
DATA_DIR = DEFAULT_PATHS.data_dir
LEGACY_DIR = DEFAULT_PATHS.legacy_dir
