"""Local SQLite store - the default backend, survives process restarts."""

import logging
import sqlite3
from pathlib import Path
from typing import Iterator, Optional, Sequence

from his_dashboard.errors import StorageError
from his_dashboard.models import CanonicalVisitRecord
from his_dashboard.storage.base import (
    RECORD_COLUMNS,
    VisitStore,
    record_to_row,
    row_to_record,
)

logger = logging.getLogger(__name__)

MEMORY = ":memory:"

# Forward-only migrations keyed by the schema version they produce.
# PRAGMA user_version records the last one applied.
MIGRATIONS = {
    1: [
        """
        CREATE TABLE IF NOT EXISTS visits (
            id               INTEGER PRIMARY KEY AUTOINCREMENT,
            admitted_at      INTEGER NOT NULL,
            discharged_at    INTEGER,
            department       TEXT    NOT NULL,
            revenue          INTEGER NOT NULL DEFAULT 0,
            clinician        TEXT,
            diagnosis_code   TEXT,
            diagnosis_name   TEXT,
            service_group    TEXT,
            treatment_result TEXT,
            discharge_status TEXT,
            patient_type     TEXT
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_visits_admitted_at ON visits (admitted_at)",
    ],
}
SCHEMA_VERSION = max(MIGRATIONS)

_INSERT_SQL = (
    f"INSERT INTO visits ({', '.join(RECORD_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in RECORD_COLUMNS)})"
)


class SqliteVisitStore(VisitStore):
    """Visit records in one SQLite table with an index on admitted_at."""

    def __init__(self, path: str = MEMORY, fetch_size: int = 5000) -> None:
        self.path = str(path)
        self.fetch_size = fetch_size
        self._conn: Optional[sqlite3.Connection] = None

    def open(self) -> None:
        if self._conn is not None:
            return

        try:
            if self.path != MEMORY:
                Path(self.path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.path)
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open store at {self.path}: {exc}") from exc

        try:
            if self.path != MEMORY:
                conn.execute("PRAGMA journal_mode = WAL")
                conn.execute("PRAGMA synchronous = NORMAL")
            self._migrate(conn)
        except sqlite3.Error as exc:
            conn.close()
            raise StorageError(f"Cannot open store at {self.path}: {exc}") from exc
        except StorageError:
            conn.close()
            raise

        self._conn = conn
        logger.info("[store] Opened sqlite store %s (schema v%d)", self.path, SCHEMA_VERSION)

    def _migrate(self, conn: sqlite3.Connection) -> None:
        current = conn.execute("PRAGMA user_version").fetchone()[0]
        if current > SCHEMA_VERSION:
            raise StorageError(
                f"Store schema v{current} is newer than supported v{SCHEMA_VERSION}"
            )

        for version in sorted(v for v in MIGRATIONS if v > current):
            with conn:
                for ddl in MIGRATIONS[version]:
                    conn.execute(ddl)
                conn.execute(f"PRAGMA user_version = {version}")
            logger.info("[store] Migrated schema v%d -> v%d", current, version)
            current = version

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError("Store is not open")
        return self._conn

    def clear(self) -> None:
        conn = self._connection()
        try:
            with conn:
                conn.execute("DELETE FROM visits")
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot clear store: {exc}") from exc

    def insert_batch(self, records: Sequence[CanonicalVisitRecord]) -> int:
        if not records:
            return 0
        conn = self._connection()
        rows = [record_to_row(r) for r in records]
        try:
            with conn:
                conn.executemany(_INSERT_SQL, rows)
        except sqlite3.Error as exc:
            raise StorageError(f"Batch of {len(rows)} rows rolled back: {exc}") from exc
        return len(rows)

    def query_range(
        self, start: Optional[int] = None, end: Optional[int] = None
    ) -> Iterator[CanonicalVisitRecord]:
        conn = self._connection()
        clauses, params = [], []
        if start is not None:
            clauses.append("admitted_at >= ?")
            params.append(start)
        if end is not None:
            clauses.append("admitted_at <= ?")
            params.append(end)

        sql = f"SELECT {', '.join(RECORD_COLUMNS)} FROM visits"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY admitted_at, id"

        try:
            cursor = conn.execute(sql, params)
            while True:
                rows = cursor.fetchmany(self.fetch_size)
                if not rows:
                    break
                for row in rows:
                    yield row_to_record(row)
        except sqlite3.Error as exc:
            raise StorageError(f"Range query failed: {exc}") from exc

    def count(self) -> int:
        try:
            return self._connection().execute("SELECT COUNT(*) FROM visits").fetchone()[0]
        except sqlite3.Error as exc:
            raise StorageError(f"Count failed: {exc}") from exc

    def schema_version(self) -> int:
        return self._connection().execute("PRAGMA user_version").fetchone()[0]
