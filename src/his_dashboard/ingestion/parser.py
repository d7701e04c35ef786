"""
Streaming parser for HIS CSV exports.

Bytes arrive in arbitrary network chunks. The parser keeps a decode buffer,
splits complete lines out of it and carries the trailing fragment over to the
next chunk, so row parsing never sees a chunk boundary.

Header handling
 - The first non-empty line is the header, tokens lower-cased and trimmed
 - Each column role is resolved by the first header token matching its rule
 - Only the admission-date column is mandatory (FormatError otherwise)

Row handling
 - Lines without a quote are split on commas; quoted lines go through csv
 - Quoted fields that span several lines are not supported
 - Rows with too few tokens or an unparseable admission date are dropped
"""

import codecs
import csv
import logging
import math
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from his_dashboard.classify import map_department
from his_dashboard.errors import FormatError, PartialRowError
from his_dashboard.models import CanonicalVisitRecord

logger = logging.getLogger(__name__)

ADMITTED_AT = "admitted_at"

# (role, header predicate) - first matching header wins for each role
COLUMN_RULES: List[Tuple[str, Callable[[str], bool]]] = [
    (ADMITTED_AT, lambda h: h in ("ngay_vao_vien", "ngay_vao", "ngay_kham")),
    ("discharged_at", lambda h: h in ("ngay_ra_vien", "ngay_ra")),
    ("department", lambda h: "khoa" in h or "ma_khoa" in h),
    ("revenue", lambda h: "thanh_tien" in h or "tong_tien" in h),
    (
        "clinician",
        lambda h: h in ("bac_sy", "ten_bac_sy", "ten_bs") or "ten_nhan_vien" in h,
    ),
    ("diagnosis_code", lambda h: "ma_benh" in h or "chan_doan" in h),
    (
        "diagnosis_name",
        lambda h: "ten_benh" in h or ("chan_doan" in h and "ma" not in h),
    ),
    ("service_group", lambda h: "ten_nhom" in h or "nhom" in h),
    ("treatment_result", lambda h: "ket_qua" in h or "kq_dtri" in h),
    ("discharge_status", lambda h: "tinh_trang" in h or "tt_rv" in h),
    ("patient_type", lambda h: h == "ma_loai_kcb" or "loai_kcb" in h),
]

MIN_COLUMN_RATIO = 0.5


def tokenize_line(line: str) -> List[str]:
    """Split one CSV line. Fast path for the common unquoted case."""
    if '"' not in line:
        return line.split(",")
    return next(csv.reader([line], skipinitialspace=True), [])


def parse_his_date(raw: Optional[str]) -> int:
    """
    Parse the HIS timestamp layout yyyyMMdd[HHmmss] as local time.

    Returns epoch milliseconds, or 0 for anything short, non-numeric or
    calendar-invalid.
    """
    raw = (raw or "").strip()
    if len(raw) < 8:
        return 0

    digits = raw[:14] if len(raw) >= 14 else raw[:8]
    if not (digits.isascii() and digits.isdigit()):
        return 0

    hour = minute = second = 0
    if len(digits) == 14:
        hour, minute, second = int(digits[8:10]), int(digits[10:12]), int(digits[12:14])

    try:
        moment = datetime(
            int(digits[0:4]), int(digits[4:6]), int(digits[6:8]), hour, minute, second
        )
        millis = int(moment.timestamp()) * 1000
    except (ValueError, OverflowError, OSError):
        return 0
    return millis if millis > 0 else 0


def parse_revenue(raw: Optional[str]) -> int:
    """Whole currency units; anything unparseable or negative becomes 0."""
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(value) or value <= 0:
        return 0
    return int(value)


def resolve_columns(headers: List[str]) -> Dict[str, int]:
    """Map each column role to its header index (-1 when absent)."""
    columns = {}
    for role, matches in COLUMN_RULES:
        columns[role] = next((i for i, h in enumerate(headers) if matches(h)), -1)

    if columns[ADMITTED_AT] == -1:
        raise FormatError(
            "Admission date column (NGAY_VAO_VIEN / NGAY_VAO / NGAY_KHAM) "
            "not found in export header."
        )
    return columns


class StreamParser:
    """Turns a byte stream of a HIS export into canonical visit records."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8-sig")(errors="replace")
        self._buffer = ""
        self.headers: Optional[List[str]] = None
        self.columns: Optional[Dict[str, int]] = None
        self.rows_parsed = 0
        self.rows_skipped = 0

    def feed(self, chunk: bytes) -> List[CanonicalVisitRecord]:
        """Consume one chunk; return the records of every completed line."""
        self._buffer += self._decoder.decode(chunk)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return self._parse_lines(lines)

    def finish(self) -> List[CanonicalVisitRecord]:
        """Parse whatever is left once the stream is exhausted."""
        self._buffer += self._decoder.decode(b"", final=True)
        tail, self._buffer = self._buffer, ""
        records = self._parse_lines([tail])
        if self.columns is None:
            raise FormatError("Export is empty: no header line found.")
        return records

    def _parse_lines(self, lines: List[str]) -> List[CanonicalVisitRecord]:
        records = []
        for line in lines:
            line = line.rstrip("\r")
            if not line.strip():
                continue

            if self.columns is None:
                self._read_header(line)
                continue

            try:
                records.append(self.parse_row(line))
            except PartialRowError:
                self.rows_skipped += 1

        self.rows_parsed += len(records)
        return records

    def _read_header(self, line: str) -> None:
        try:
            tokens = tokenize_line(line)
        except csv.Error as exc:
            raise FormatError(f"Export header is not valid CSV: {exc}") from exc
        self.headers = [h.strip().lower() for h in tokens]
        self.columns = resolve_columns(self.headers)
        logger.info(
            "[parser] Header resolved | columns=%d roles=%s",
            len(self.headers),
            {role: idx for role, idx in self.columns.items() if idx > -1},
        )

    def parse_row(self, line: str) -> CanonicalVisitRecord:
        """Build one record or raise PartialRowError."""
        try:
            tokens = tokenize_line(line)
        except csv.Error as exc:
            raise PartialRowError(f"unreadable CSV line: {exc}") from exc
        if len(tokens) < len(self.headers) * MIN_COLUMN_RATIO:
            raise PartialRowError(
                f"expected ~{len(self.headers)} columns, got {len(tokens)}"
            )

        def field(role: str) -> str:
            idx = self.columns[role]
            return tokens[idx].strip() if -1 < idx < len(tokens) else ""

        admitted_at = parse_his_date(field(ADMITTED_AT))
        if not admitted_at:
            raise PartialRowError(f"bad admission date {field(ADMITTED_AT)!r}")

        return CanonicalVisitRecord(
            admitted_at=admitted_at,
            discharged_at=parse_his_date(field("discharged_at")) or None,
            department=map_department(field("department")),
            revenue=parse_revenue(field("revenue")),
            clinician=field("clinician"),
            diagnosis_code=field("diagnosis_code").split(";")[0].strip(),
            diagnosis_name=field("diagnosis_name"),
            service_group=field("service_group"),
            treatment_result=field("treatment_result"),
            discharge_status=field("discharge_status"),
            patient_type=field("patient_type"),
        )
