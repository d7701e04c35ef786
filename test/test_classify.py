import pytest

from his_dashboard.classify import (
    OTHER,
    classify_discharge,
    classify_patient_type,
    classify_treatment,
    is_ancillary_group,
    is_exam_group,
    map_department,
)
from his_dashboard.models import Department


@pytest.mark.parametrize("raw", ["Khoa Khám bệnh", "PHÒNG KHÁM", "khám ngoại", "Khám Nhi"])
def test_examination_wins_regardless_of_case(raw):
    assert map_department(raw) is Department.EXAMINATION


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Khoa Nội tổng hợp", Department.INTERNAL),
        ("Khoa Ngoại", Department.SURGERY),
        ("Khoa GMHS", Department.SURGERY),
        ("Khoa Nhi", Department.PEDIATRICS),
        ("Khoa Sản", Department.OBSTETRICS),
        ("Khoa Lây", Department.INFECTIOUS),
        ("Khoa Cấp cứu", Department.EMERGENCY),
        ("Khoa YHCT", Department.TRADITIONAL),
        ("Khoa Xét nghiệm", Department.LABORATORY),
        ("Khoa Chẩn đoán hình ảnh", Department.IMAGING),
    ],
)
def test_department_keywords(raw, expected):
    assert map_department(raw) is expected


@pytest.mark.parametrize("raw", ["", "Phòng Tài chính", "ABC"])
def test_unknown_department_is_center_wide(raw):
    assert map_department(raw) is Department.CENTER_WIDE


def test_department_rule_order_is_respected():
    # "truyền nhiễm" also contains "nhi"; the pediatrics rule sits earlier
    assert map_department("Khoa Truyền nhiễm") is Department.PEDIATRICS
    # "nội" is checked before "nhi"
    assert map_department("Nội Nhi") is Department.INTERNAL


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1", "Khỏi"),
        ("Khỏi", "Khỏi"),
        ("2", "Đỡ/Giảm"),
        ("đỡ", "Đỡ/Giảm"),
        ("3", "Không đổi"),
        ("4", "Nặng hơn"),
        ("Nặng", "Nặng hơn"),
        ("5", "Tử vong"),
        ("9", OTHER),
        ("", OTHER),
    ],
)
def test_treatment_outcomes(raw, expected):
    assert classify_treatment(raw) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1", "Ra viện"),
        ("2", "Chuyển tuyến"),
        ("Chuyển viện", "Chuyển tuyến"),
        ("3", "Trốn viện"),
        ("4", "Xin về"),
        ("x", OTHER),
    ],
)
def test_discharge_outcomes(raw, expected):
    assert classify_discharge(raw) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [("1", "Ngoại trú"), ("2", "Nội trú"), (" 3 ", "Khám sức khỏe"), ("4", OTHER)],
)
def test_patient_types(raw, expected):
    assert classify_patient_type(raw) == expected


def test_group_counters():
    assert is_exam_group("Khám bệnh")
    assert is_ancillary_group("Xét nghiệm")
    assert is_ancillary_group("CDHA")
    assert not is_ancillary_group("Thuốc")
    assert not is_exam_group("Thuốc")
