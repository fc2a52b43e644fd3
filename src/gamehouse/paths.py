"""Where the tracker keeps its database, presence file and logs."""

from __future__ import annotations

import os
from pathlib import Path

from platformdirs import PlatformDirs


APP_NAME = "Gamehouse"
HOME_ENV = "GAMEHOUSE_HOME"

DB_FILENAME = "sessions.sqlite3"
LOG_FILENAME = "tracker.log"
PRESENCE_FILENAME = "presence.json"


def get_data_dir() -> Path:
    """Return the data directory, creating it on first use.

    ``GAMEHOUSE_HOME`` overrides the per-user platform location, which lets
    several trackers (or a test run) keep separate databases.
    """
    override = os.environ.get(HOME_ENV)
    if override:
        path = Path(override).expanduser()
    else:
        path = Path(PlatformDirs(appname=APP_NAME, appauthor=False).user_data_path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def data_file(name: str) -> Path:
    return get_data_dir() / name


def get_db_path() -> Path:
    return data_file(DB_FILENAME)


def get_log_path() -> Path:
    return data_file(LOG_FILENAME)


def get_presence_path() -> Path:
    return data_file(PRESENCE_FILENAME)
