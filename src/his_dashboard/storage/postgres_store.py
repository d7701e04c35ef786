"""
Postgres backend for the visit store.

Same contract as the SQLite store, for deployments where several dashboard
processes read one shared copy of the export.
 - Batch inserts go through execute_values (fast, single round-trip per page)
 - Range scans use a server-side named cursor so large result sets stream
 - Schema version lives in his_schema_version
"""

import logging
import os
from typing import Iterator, Optional, Sequence

import psycopg2
import psycopg2.extras

from his_dashboard.errors import StorageError
from his_dashboard.models import CanonicalVisitRecord
from his_dashboard.storage.base import (
    RECORD_COLUMNS,
    VisitStore,
    record_to_row,
    row_to_record,
)

logger = logging.getLogger(__name__)

MIGRATIONS = {
    1: [
        """
        CREATE TABLE IF NOT EXISTS his_visits (
            id               BIGSERIAL PRIMARY KEY,
            admitted_at      BIGINT  NOT NULL,
            discharged_at    BIGINT,
            department       TEXT    NOT NULL,
            revenue          BIGINT  NOT NULL DEFAULT 0,
            clinician        TEXT,
            diagnosis_code   TEXT,
            diagnosis_name   TEXT,
            service_group    TEXT,
            treatment_result TEXT,
            discharge_status TEXT,
            patient_type     TEXT
        )
        """,
        """
        CREATE INDEX IF NOT EXISTS idx_his_visits_admitted_at
            ON his_visits (admitted_at)
        """,
    ],
}
SCHEMA_VERSION = max(MIGRATIONS)

_INSERT_SQL = f"INSERT INTO his_visits ({', '.join(RECORD_COLUMNS)}) VALUES %s"


def _pg_conn():
    """Return a live psycopg2 connection from env vars."""
    return psycopg2.connect(
        host=os.getenv("POSTGRES_HOST"),
        port=int(os.getenv("POSTGRES_PORT", 5432)),
        dbname=os.getenv("POSTGRES_DB"),
        user=os.getenv("POSTGRES_USER"),
        password=os.getenv("POSTGRES_PASSWORD"),
    )


class PostgresVisitStore(VisitStore):
    """Visit records in the his_visits table."""

    def __init__(self, page_size: int = 500, itersize: int = 5000) -> None:
        self.page_size = page_size
        self.itersize = itersize
        self._conn = None

    def open(self) -> None:
        if self._conn is not None:
            return
        try:
            conn = _pg_conn()
        except psycopg2.Error as exc:
            raise StorageError(f"Cannot open postgres store: {exc}") from exc

        try:
            self._migrate(conn)
        except psycopg2.Error as exc:
            conn.close()
            raise StorageError(f"Cannot open postgres store: {exc}") from exc
        except StorageError:
            conn.close()
            raise
        self._conn = conn
        logger.info("[store] Opened postgres store (schema v%d)", SCHEMA_VERSION)

    def _migrate(self, conn) -> None:
        with conn.cursor() as cur:
            cur.execute(
                "CREATE TABLE IF NOT EXISTS his_schema_version (version INTEGER NOT NULL)"
            )
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM his_schema_version")
            current = cur.fetchone()[0]
        conn.commit()

        if current > SCHEMA_VERSION:
            raise StorageError(
                f"Store schema v{current} is newer than supported v{SCHEMA_VERSION}"
            )

        for version in sorted(v for v in MIGRATIONS if v > current):
            with conn.cursor() as cur:
                for ddl in MIGRATIONS[version]:
                    cur.execute(ddl)
                cur.execute(
                    "INSERT INTO his_schema_version (version) VALUES (%s)", (version,)
                )
            conn.commit()
            logger.info("[store] Migrated schema v%d -> v%d", current, version)
            current = version

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _connection(self):
        if self._conn is None:
            raise StorageError("Store is not open")
        return self._conn

    def clear(self) -> None:
        conn = self._connection()
        try:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM his_visits")
            conn.commit()
        except psycopg2.Error as exc:
            conn.rollback()
            raise StorageError(f"Cannot clear store: {exc}") from exc

    def insert_batch(self, records: Sequence[CanonicalVisitRecord]) -> int:
        if not records:
            return 0
        conn = self._connection()
        rows = [record_to_row(r) for r in records]
        try:
            with conn.cursor() as cur:
                psycopg2.extras.execute_values(
                    cur, _INSERT_SQL, rows, page_size=self.page_size
                )
            conn.commit()
        except psycopg2.Error as exc:
            conn.rollback()
            raise StorageError(f"Batch of {len(rows)} rows rolled back: {exc}") from exc
        return len(rows)

    def query_range(
        self, start: Optional[int] = None, end: Optional[int] = None
    ) -> Iterator[CanonicalVisitRecord]:
        conn = self._connection()
        clauses, params = [], []
        if start is not None:
            clauses.append("admitted_at >= %s")
            params.append(start)
        if end is not None:
            clauses.append("admitted_at <= %s")
            params.append(end)

        sql = f"SELECT {', '.join(RECORD_COLUMNS)} FROM his_visits"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY admitted_at, id"

        try:
            with conn.cursor(name="his_visits_range") as cur:
                cur.itersize = self.itersize
                cur.execute(sql, params)
                for row in cur:
                    yield row_to_record(row)
            conn.commit()
        except psycopg2.Error as exc:
            conn.rollback()
            raise StorageError(f"Range query failed: {exc}") from exc

    def count(self) -> int:
        conn = self._connection()
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT COUNT(*) FROM his_visits")
                total = cur.fetchone()[0]
            conn.commit()
            return total
        except psycopg2.Error as exc:
            conn.rollback()
            raise StorageError(f"Count failed: {exc}") from exc
