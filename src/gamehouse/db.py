"""SQLite database layer for game session records."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Protocol, Sequence, Union

from .models import SessionRecord


DATETIME_FMT = "%Y-%m-%d %H:%M:%S.%f"

_SESSION_COLUMNS = (
    "id, identity, display_name, activity, start_time, accumulated_seconds, active"
)


class SessionStoreError(RuntimeError):
    """Raised when a session record cannot be read or persisted."""


class SessionStore(Protocol):
    def save(self, record: SessionRecord) -> SessionRecord: ...

    def find_active(self, identity: str) -> list[SessionRecord]: ...

    def find_all(self) -> list[SessionRecord]: ...

    def find_all_active(self) -> list[SessionRecord]: ...


def open_database(
    path: Union[Path, str], *, check_same_thread: bool = True
) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    initialize_schema(conn)
    return conn


@contextmanager
def database_connection(
    path: Union[Path, str], *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS game_sessions (
            id INTEGER PRIMARY KEY,
            identity TEXT NOT NULL,
            display_name TEXT NOT NULL,
            activity TEXT NOT NULL,
            start_time TEXT NOT NULL,
            accumulated_seconds REAL NOT NULL DEFAULT 0,
            active INTEGER NOT NULL DEFAULT 1
        );

        CREATE INDEX IF NOT EXISTS idx_sessions_identity_active
            ON game_sessions(identity, active);

        CREATE UNIQUE INDEX IF NOT EXISTS idx_sessions_one_active
            ON game_sessions(identity, activity) WHERE active = 1;
        """
    )


def format_timestamp(value: datetime) -> str:
    """Serialize as naive UTC text so lexical order matches time order."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime(DATETIME_FMT)


def parse_timestamp(value: str) -> datetime:
    return datetime.strptime(value, DATETIME_FMT).replace(tzinfo=timezone.utc)


def insert_session(conn: sqlite3.Connection, record: SessionRecord) -> int:
    cur = conn.execute(
        """
        INSERT INTO game_sessions (
            identity,
            display_name,
            activity,
            start_time,
            accumulated_seconds,
            active
        ) VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            record.identity,
            record.display_name,
            record.activity,
            format_timestamp(record.start_time),
            float(record.accumulated_seconds),
            1 if record.active else 0,
        ),
    )
    return int(cur.lastrowid)


def update_session(conn: sqlite3.Connection, record: SessionRecord) -> None:
    """Persist a transition of an open record; closed rows are never rewritten."""
    cur = conn.execute(
        """
        UPDATE game_sessions
        SET accumulated_seconds = ?, active = ?
        WHERE id = ? AND active = 1
        """,
        (
            float(record.accumulated_seconds),
            1 if record.active else 0,
            record.id,
        ),
    )
    if cur.rowcount == 0:
        raise ValueError(f"No open session found for id={record.id}")


def fetch_sessions(
    conn: sqlite3.Connection,
    *,
    identity: str | None = None,
    active_only: bool = False,
) -> list[sqlite3.Row]:
    clauses: list[str] = []
    params: list[object] = []
    if identity is not None:
        clauses.append("identity = ?")
        params.append(identity)
    if active_only:
        clauses.append("active = 1")
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return list(
        conn.execute(
            f"SELECT {_SESSION_COLUMNS} FROM game_sessions {where} ORDER BY start_time, id",
            params,
        )
    )


def row_to_record(row: sqlite3.Row) -> SessionRecord:
    return SessionRecord(
        id=row["id"],
        identity=row["identity"],
        display_name=row["display_name"],
        activity=row["activity"],
        start_time=parse_timestamp(row["start_time"]),
        accumulated_seconds=float(row["accumulated_seconds"]),
        active=bool(row["active"]),
    )


class SqliteSessionStore:
    """Session store backed by a single SQLite connection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    @classmethod
    def open(
        cls, path: Union[Path, str], *, check_same_thread: bool = True
    ) -> "SqliteSessionStore":
        try:
            conn = open_database(path, check_same_thread=check_same_thread)
        except sqlite3.Error as exc:
            raise SessionStoreError(f"Failed to open session database {path}") from exc
        return cls(conn)

    @classmethod
    def open_in_memory(cls) -> "SqliteSessionStore":
        return cls.open(":memory:")

    def close(self) -> None:
        self._conn.close()

    def save(self, record: SessionRecord) -> SessionRecord:
        try:
            if record.id is None:
                record.id = insert_session(self._conn, record)
            else:
                update_session(self._conn, record)
        except (sqlite3.Error, ValueError) as exc:
            raise SessionStoreError(
                f"Failed to save session {record.id} for {record.identity}/{record.activity}"
            ) from exc
        return record

    def find_active(self, identity: str) -> list[SessionRecord]:
        return self._fetch(identity=identity, active_only=True)

    def find_all(self) -> list[SessionRecord]:
        return self._fetch()

    def find_all_active(self) -> list[SessionRecord]:
        return self._fetch(active_only=True)

    def _fetch(self, **filters: object) -> list[SessionRecord]:
        try:
            rows = fetch_sessions(self._conn, **filters)  # type: ignore[arg-type]
        except sqlite3.Error as exc:
            raise SessionStoreError("Failed to read session records") from exc
        return [row_to_record(row) for row in rows]


def load_sessions(path: Union[Path, str], *, active_only: bool = False) -> Sequence[SessionRecord]:
    """Snapshot every stored record using a short-lived connection."""
    try:
        with database_connection(path) as conn:
            rows = fetch_sessions(conn, active_only=active_only)
    except sqlite3.Error as exc:
        raise SessionStoreError(f"Failed to read session records from {path}") from exc
    return [row_to_record(row) for row in rows]
