"""
Store contract for canonical visit records.

Backends hide the storage technology behind five operations:
  - open()                 idempotent; creates/migrates schema and the time index
  - clear()                delete every record
  - insert_batch(records)  one transaction, all-or-nothing
  - query_range(start, end) inclusive admission-time scan, lazy iterator
  - count()

There is no upsert and no dedup. Partial / incremental behaviour belongs to
the sync orchestrator, not here.
"""

from abc import ABC, abstractmethod
from typing import Iterator, Optional, Sequence

from his_dashboard.config import SyncConfig
from his_dashboard.models import CanonicalVisitRecord, Department

# Column order shared by every backend's INSERT / SELECT
RECORD_COLUMNS = (
    "admitted_at",
    "discharged_at",
    "department",
    "revenue",
    "clinician",
    "diagnosis_code",
    "diagnosis_name",
    "service_group",
    "treatment_result",
    "discharge_status",
    "patient_type",
)


def record_to_row(record: CanonicalVisitRecord) -> tuple:
    return (
        record.admitted_at,
        record.discharged_at,
        record.department.value,
        record.revenue,
        record.clinician,
        record.diagnosis_code,
        record.diagnosis_name,
        record.service_group,
        record.treatment_result,
        record.discharge_status,
        record.patient_type,
    )


def row_to_record(row: Sequence) -> CanonicalVisitRecord:
    return CanonicalVisitRecord(
        admitted_at=row[0],
        discharged_at=row[1],
        department=Department(row[2]),
        revenue=row[3],
        clinician=row[4] or "",
        diagnosis_code=row[5] or "",
        diagnosis_name=row[6] or "",
        service_group=row[7] or "",
        treatment_result=row[8] or "",
        discharge_status=row[9] or "",
        patient_type=row[10] or "",
    )


class VisitStore(ABC):
    """Abstract persistent collection of visit records."""

    @abstractmethod
    def open(self) -> None:
        """Connect and ensure schema + index exist. Safe to call repeatedly."""

    @abstractmethod
    def clear(self) -> None:
        """Remove all records."""

    @abstractmethod
    def insert_batch(self, records: Sequence[CanonicalVisitRecord]) -> int:
        """
        Insert records in a single transaction.
        Either every record commits or none does. Returns rows inserted.
        """

    @abstractmethod
    def query_range(
        self, start: Optional[int] = None, end: Optional[int] = None
    ) -> Iterator[CanonicalVisitRecord]:
        """Yield records with start <= admitted_at <= end (bounds optional)."""

    @abstractmethod
    def count(self) -> int:
        """Total stored records."""

    def close(self) -> None:
        """Release the connection. Default: nothing to release."""

    def __enter__(self) -> "VisitStore":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def build_store(config: SyncConfig) -> VisitStore:
    """Backend selected by config.store_backend, not yet opened."""
    backend = config.store_backend.lower()
    if backend == "sqlite":
        from his_dashboard.storage.sqlite_store import SqliteVisitStore

        store = SqliteVisitStore(config.db_path)
    elif backend == "postgres":
        from his_dashboard.storage.postgres_store import PostgresVisitStore

        store = PostgresVisitStore()
    else:
        raise ValueError(f"Unknown store backend: {config.store_backend!r}")
    return store


def open_store(config: SyncConfig) -> VisitStore:
    store = build_store(config)
    store.open()
    return store
