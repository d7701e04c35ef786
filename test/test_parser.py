from datetime import datetime

import pytest

from his_dashboard.errors import FormatError
from his_dashboard.ingestion.parser import (
    StreamParser,
    parse_his_date,
    parse_revenue,
    resolve_columns,
    tokenize_line,
)
from his_dashboard.models import Department


def _local_ms(*args):
    return int(datetime(*args).timestamp()) * 1000


def _parse_all(text, chunk_size=None):
    data = text.encode("utf-8")
    parser = StreamParser()
    records = []
    if chunk_size is None:
        records += parser.feed(data)
    else:
        for i in range(0, len(data), chunk_size):
            records += parser.feed(data[i : i + chunk_size])
    records += parser.finish()
    return parser, records


def test_parse_his_date_full_timestamp_is_local_time():
    assert parse_his_date("20251014144355") == _local_ms(2025, 10, 14, 14, 43, 55)


def test_parse_his_date_date_only():
    assert parse_his_date("20251014") == _local_ms(2025, 10, 14)


@pytest.mark.parametrize(
    "raw", ["2025101", "", None, "abcdefgh", "2025-10-14", "20251345", "20250230"]
)
def test_parse_his_date_invalid_returns_zero(raw):
    assert parse_his_date(raw) == 0


def test_parse_his_date_bad_time_part_returns_zero():
    assert parse_his_date("20251014256000") == 0


def test_tokenize_fast_path():
    assert tokenize_line("a,b,c") == ["a", "b", "c"]


def test_tokenize_quoted_field_keeps_comma():
    assert tokenize_line('a,"b,c",d') == ["a", "b,c", "d"]


def test_tokenize_keeps_empty_fields():
    assert tokenize_line('a,,"x",') == ["a", "", "x", ""]


@pytest.mark.parametrize(
    "raw, expected",
    [("150000", 150000), ("1500.75", 1500), ("-20", 0), ("N/A", 0), ("", 0), ("nan", 0)],
)
def test_parse_revenue_clamps(raw, expected):
    assert parse_revenue(raw) == expected


def test_resolve_columns_without_admission_raises():
    with pytest.raises(FormatError):
        resolve_columns(["ngay_ra_vien", "ten_khoa", "thanh_tien"])


def test_resolve_columns_aliases():
    headers = ["ngay_kham", "ma_khoa", "tong_tien", "ten_bs", "chan_doan", "nhom_dv"]
    cols = resolve_columns(headers)
    assert cols["admitted_at"] == 0
    assert cols["department"] == 1
    assert cols["revenue"] == 2
    assert cols["clinician"] == 3
    assert cols["diagnosis_code"] == 4
    assert cols["diagnosis_name"] == 4
    assert cols["service_group"] == 5
    assert cols["discharged_at"] == -1
    assert cols["patient_type"] == -1


def test_header_is_lowercased_and_trimmed():
    parser, records = _parse_all(" Ngay_Vao_Vien , Ten_Khoa \n20251014,Khoa Nhi\n")
    assert parser.headers == ["ngay_vao_vien", "ten_khoa"]
    assert records[0].department is Department.PEDIATRICS


def test_missing_admission_column_aborts_before_rows():
    parser = StreamParser()
    with pytest.raises(FormatError):
        parser.feed(b"NGAY_RA_VIEN,TEN_KHOA\n20251014,Khoa Nhi\n")
    assert parser.rows_parsed == 0


def test_empty_export_is_a_format_error():
    parser = StreamParser()
    parser.feed(b"\n\n")
    with pytest.raises(FormatError):
        parser.finish()


def test_record_fields(make_csv, make_row):
    text = make_csv(
        [
            make_row(
                discharged="20251016080000",
                dept="Khoa Khám bệnh",
                revenue="250000",
                doctor=" BS. Lan ",
                icd="J06.9; I10",
                group="Xét nghiệm",
                result="1",
                status="2",
                ptype="2",
            )
        ]
    )
    _, records = _parse_all(text)
    (r,) = records
    assert r.admitted_at == _local_ms(2025, 10, 14, 14, 43, 55)
    assert r.discharged_at == _local_ms(2025, 10, 16, 8, 0, 0)
    assert r.department is Department.EXAMINATION
    assert r.revenue == 250000
    assert r.clinician == "BS. Lan"
    assert r.diagnosis_code == "J06.9"
    assert r.service_group == "Xét nghiệm"
    assert (r.treatment_result, r.discharge_status, r.patient_type) == ("1", "2", "2")


def test_unparseable_discharge_becomes_none(make_csv, make_row):
    _, records = _parse_all(make_csv([make_row(discharged="garbage")]))
    assert records[0].discharged_at is None


def test_chunk_boundaries_are_transparent(make_csv, make_row):
    rows = [make_row(revenue=i * 1000, icd_name='"Viêm dạ dày, tá tràng"') for i in range(50)]
    text = make_csv(rows)

    _, whole = _parse_all(text)
    for size in (1, 3, 17, 64):
        _, chunked = _parse_all(text, chunk_size=size)
        assert chunked == whole
    assert len(whole) == 50
    assert whole[0].diagnosis_name == "Viêm dạ dày, tá tràng"


def test_multibyte_characters_split_across_chunks():
    text = "NGAY_VAO_VIEN,TEN_KHOA\n20251014,Khoa Khám bệnh\n"
    _, records = _parse_all(text, chunk_size=1)
    assert records[0].department is Department.EXAMINATION


def test_crlf_line_endings():
    text = "NGAY_VAO_VIEN,TEN_KHOA,THANH_TIEN\r\n20251014,Khoa Nội,500\r\n"
    _, records = _parse_all(text)
    assert records[0].revenue == 500


def test_last_row_without_newline_is_kept(make_csv, make_row):
    text = make_csv([make_row(), make_row()]).rstrip("\n")
    _, records = _parse_all(text, chunk_size=5)
    assert len(records) == 2


def test_bad_rows_are_skipped_and_counted(make_csv, make_row):
    text = make_csv(
        [
            make_row(),
            make_row(admitted="2025101"),
            "20251014,Khoa Nội",  # 2 of 11 columns
            make_row(admitted="abcdefgh"),
            "",
            make_row(),
        ]
    )
    parser, records = _parse_all(text)
    assert len(records) == 2
    assert parser.rows_parsed == 2
    assert parser.rows_skipped == 3


def test_row_with_half_the_columns_is_kept():
    text = "NGAY_VAO_VIEN,TEN_KHOA,THANH_TIEN,TEN_BAC_SY\n20251014,Khoa Nội\n"
    _, records = _parse_all(text)
    assert len(records) == 1
    assert records[0].revenue == 0
    assert records[0].clinician == ""


def test_utf8_bom_is_ignored():
    text = "\ufeffNGAY_VAO_VIEN,TEN_KHOA\n20251014,Khoa Nhi\n"
    parser, records = _parse_all(text)
    assert parser.headers[0] == "ngay_vao_vien"
    assert len(records) == 1


def test_tokenize_skips_space_before_quote():
    assert tokenize_line('a, "b,c",d') == ["a", "b,c", "d"]


def test_oversized_quoted_field_drops_only_its_row(make_csv, make_row):
    huge = '"' + "x" * 200_000 + '"'
    text = make_csv([make_row(revenue=1), make_row(revenue=2, icd_name=huge), make_row(revenue=3)])

    parser, records = _parse_all(text, chunk_size=4096)

    assert [r.revenue for r in records] == [1, 3]
    assert parser.rows_skipped == 1


def test_unreadable_header_is_a_format_error():
    parser = StreamParser()
    with pytest.raises(FormatError):
        parser.feed(('NGAY_VAO_VIEN,"' + "x" * 200_000 + '"\n').encode("utf-8"))
