import sqlite3

import pytest

import his_dashboard.storage.sqlite_store as sqlite_module
from his_dashboard.config import SyncConfig
from his_dashboard.errors import StorageError
from his_dashboard.models import CanonicalVisitRecord, Department
from his_dashboard.storage.base import build_store, open_store
from his_dashboard.storage.sqlite_store import SCHEMA_VERSION, SqliteVisitStore


def _visit(admitted_at, revenue=0, department=Department.INTERNAL, **extra):
    return CanonicalVisitRecord(
        admitted_at=admitted_at, department=department, revenue=revenue, **extra
    )


def test_open_is_idempotent(store):
    store.insert_batch([_visit(1000)])
    store.open()
    store.open()
    assert store.count() == 1
    assert store.schema_version() == SCHEMA_VERSION


def test_operations_require_open_store():
    s = SqliteVisitStore()
    with pytest.raises(StorageError):
        s.count()


def test_round_trip_keeps_every_field(store):
    record = _visit(
        1_700_000_000_000,
        revenue=125000,
        department=Department.EMERGENCY,
        discharged_at=1_700_086_400_000,
        clinician="BS. Hoa",
        diagnosis_code="A09",
        diagnosis_name="Tiêu chảy",
        service_group="Thủ thuật",
        treatment_result="1",
        discharge_status="1",
        patient_type="2",
    )
    store.insert_batch([record])
    assert list(store.query_range()) == [record]


def test_query_range_bounds_are_inclusive(store):
    store.insert_batch([_visit(t) for t in (100, 200, 300, 400)])

    assert [r.admitted_at for r in store.query_range(200, 300)] == [200, 300]
    assert [r.admitted_at for r in store.query_range(start=300)] == [300, 400]
    assert [r.admitted_at for r in store.query_range(end=100)] == [100]
    assert [r.admitted_at for r in store.query_range(500, 600)] == []


def test_bounded_scan_is_ordered_by_admission(store):
    store.insert_batch([_visit(t) for t in (300, 100, 200)])
    assert [r.admitted_at for r in store.query_range(0, 1000)] == [100, 200, 300]


def test_query_range_is_lazy_across_fetch_pages():
    s = SqliteVisitStore(fetch_size=2)
    s.open()
    s.insert_batch([_visit(t) for t in range(1, 8)])

    it = s.query_range()
    first = next(it)
    assert first.admitted_at == 1
    assert len(list(it)) == 6
    s.close()


def test_clear_removes_everything(store):
    store.insert_batch([_visit(1), _visit(2)])
    store.clear()
    assert store.count() == 0
    assert list(store.query_range()) == []


def test_insert_batch_is_all_or_nothing(store):
    store.insert_batch([_visit(1)])
    # admitted_at is NOT NULL, so the second row fails the whole batch
    bad = [_visit(2), _visit(None), _visit(3)]

    with pytest.raises(StorageError):
        store.insert_batch(bad)
    assert store.count() == 1


def test_empty_batch_is_a_noop(store):
    assert store.insert_batch([]) == 0
    assert store.count() == 0


def test_records_survive_reopen(tmp_path):
    path = tmp_path / "nested" / "his.db"
    with SqliteVisitStore(path) as s:
        s.insert_batch([_visit(10, revenue=5), _visit(20, revenue=7)])

    with SqliteVisitStore(path) as s:
        assert s.count() == 2
        assert sum(r.revenue for r in s.query_range()) == 12


def test_newer_schema_is_refused(tmp_path):
    path = tmp_path / "future.db"
    conn = sqlite3.connect(path)
    conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION + 1}")
    conn.close()

    with pytest.raises(StorageError, match="newer"):
        SqliteVisitStore(path).open()


def test_open_store_from_config(tmp_path):
    config = SyncConfig(db_path=str(tmp_path / "cfg.db"))
    s = open_store(config)
    try:
        assert s.count() == 0
    finally:
        s.close()


def test_unknown_backend_rejected():
    with pytest.raises(ValueError):
        build_store(SyncConfig(store_backend="mongo"))


def test_refused_schema_closes_the_connection(tmp_path, monkeypatch):
    path = tmp_path / "future.db"
    conn = sqlite3.connect(path)
    conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION + 1}")
    conn.close()

    opened = []
    real_connect = sqlite3.connect

    class TrackedConnection:
        def __init__(self, target):
            self._conn = real_connect(target)
            self.closed = False
            opened.append(self)

        def execute(self, *args):
            return self._conn.execute(*args)

        def close(self):
            self.closed = True
            self._conn.close()

    monkeypatch.setattr(sqlite_module.sqlite3, "connect", TrackedConnection)

    with pytest.raises(StorageError, match="newer"):
        SqliteVisitStore(path).open()
    assert opened and opened[0].closed
