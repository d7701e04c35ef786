"""Shared fixtures: in-memory store, byte-chunk sources and CSV builders."""

from contextlib import contextmanager

import pytest

from his_dashboard.errors import SourceConnectionError
from his_dashboard.ingestion.sources import CsvSource
from his_dashboard.storage.sqlite_store import SqliteVisitStore

HEADER = (
    "NGAY_VAO_VIEN,NGAY_RA_VIEN,TEN_KHOA,THANH_TIEN,TEN_BAC_SY,MA_BENH,"
    "TEN_BENH,TEN_NHOM,KET_QUA_DTRI,TINH_TRANG_RV,MA_LOAI_KCB"
)


class BytesSource(CsvSource):
    """Serves fixed payloads split into small chunks, keyed by resource id."""

    def __init__(self, payloads, chunk_size=7, fail_with=None):
        self.payloads = payloads
        self.chunk_size = chunk_size
        self.fail_with = fail_with
        self.opened = []

    @contextmanager
    def stream(self, resource_id):
        self.opened.append(resource_id)
        if self.fail_with is not None:
            raise self.fail_with
        if resource_id not in self.payloads:
            raise SourceConnectionError(f"HTTP Error 404 fetching {resource_id}")
        data = self.payloads[resource_id]
        if isinstance(data, str):
            data = data.encode("utf-8")
        yield (
            data[i : i + self.chunk_size] for i in range(0, len(data), self.chunk_size)
        )


def csv_text(rows, header=HEADER):
    """Join a header and rows (lists or preformatted strings) into export text."""
    lines = [header]
    for row in rows:
        lines.append(row if isinstance(row, str) else ",".join(str(v) for v in row))
    return "\n".join(lines) + "\n"


def visit_row(
    admitted="20251014144355",
    discharged="",
    dept="Khoa Nội",
    revenue=100000,
    doctor="BS. An",
    icd="I10",
    icd_name="Tăng huyết áp",
    group="Khám bệnh",
    result="",
    status="",
    ptype="1",
):
    return [admitted, discharged, dept, revenue, doctor, icd, icd_name, group, result, status, ptype]


@pytest.fixture
def store():
    s = SqliteVisitStore(":memory:")
    s.open()
    yield s
    s.close()


@pytest.fixture
def bytes_source():
    return BytesSource


@pytest.fixture
def make_csv():
    return csv_text


@pytest.fixture
def make_row():
    return visit_row
