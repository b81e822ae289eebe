import sqlite3
import threading
from pathlib import Path
from typing import Any


class DatabaseConnection:
    """Read-only SQLite access shared by worker threads.

    Each thread gets its own connection; all of them are closed together by
    ``close``.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self.uri = f"file:{self.db_path.as_posix()}?mode=ro"
        self._local = threading.local()
        self._connections: list[sqlite3.Connection] = []
        self._lock = threading.Lock()
        self.closed = False

    def connect(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            return conn
        with self._lock:
            if self.closed:
                raise sqlite3.ProgrammingError("Cannot operate on a closed index database")
            conn = sqlite3.connect(self.uri, uri=True, check_same_thread=False)
            self._connections.append(conn)
        self._local.conn = conn
        return conn

    def close(self) -> None:
        with self._lock:
            self.closed = True
            for conn in self._connections:
                conn.close()
            self._connections.clear()

    def fetchall(self, query: str, params: tuple = ()) -> list[Any]:
        cursor = self.connect().cursor()
        try:
            cursor.execute(query, params)
            return list(cursor.fetchall())
        finally:
            cursor.close()

    def fetchone(self, query: str, params: tuple = ()) -> Any | None:
        rows = self.fetchall(query, params)
        return rows[0] if rows else None

    def table_names(self) -> set[str]:
        rows = self.fetchall("SELECT name FROM sqlite_master WHERE type = 'table'")
        return {row[0] for row in rows}
