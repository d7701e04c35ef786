"""
Decision tables for free-text classification.

Each table is an ordered list of (predicate, category) pairs evaluated top
to bottom; the first predicate that matches wins. Several inputs match more
than one rule (e.g. "truyền nhiễm" contains "nhi"), so order is part of the
contract.
"""

from typing import Callable, List, Sequence, Tuple

from his_dashboard.models import Department

Rule = Tuple[Callable[[str], bool], str]


def _contains(*needles: str) -> Callable[[str], bool]:
    return lambda text: any(n in text for n in needles)


def _code_or(code: str, test: Callable[[str], bool]) -> Callable[[str], bool]:
    return lambda text: text == code or test(text)


def _equals(value: str) -> Callable[[str], bool]:
    return lambda text: text == value


def _first_match(rules: Sequence[Rule], text: str, fallback):
    for predicate, category in rules:
        if predicate(text):
            return category
    return fallback


DEPARTMENT_RULES: List[Tuple[Callable[[str], bool], Department]] = [
    (_contains("khám"), Department.EXAMINATION),
    (_contains("nội"), Department.INTERNAL),
    (_contains("ngoại", "gmhs", "pt"), Department.SURGERY),
    (_contains("nhi"), Department.PEDIATRICS),
    (_contains("sản", "csskss", "đẻ"), Department.OBSTETRICS),
    (_contains("truyền nhiễm", "lây"), Department.INFECTIOUS),
    (_contains("cấp cứu", "hstc", "hồi sức"), Department.EMERGENCY),
    (_contains("yhct", "phcn", "đông y"), Department.TRADITIONAL),
    (
        _contains("xét nghiệm", "huyết học", "sinh hóa", "vi sinh"),
        Department.LABORATORY,
    ),
    (_contains("cđha", "hình ảnh", "x-quang", "siêu âm"), Department.IMAGING),
]


def map_department(raw: str) -> Department:
    """Resolve a free-text unit name; unknown text lands on CENTER_WIDE."""
    return _first_match(
        DEPARTMENT_RULES, (raw or "").lower(), Department.CENTER_WIDE
    )


OTHER = "Khác"

TREATMENT_CURED = "Khỏi"
TREATMENT_IMPROVED = "Đỡ/Giảm"
TREATMENT_UNCHANGED = "Không đổi"
TREATMENT_WORSE = "Nặng hơn"
TREATMENT_DECEASED = "Tử vong"

TREATMENT_RULES: List[Rule] = [
    (_code_or("1", _equals("khỏi")), TREATMENT_CURED),
    (_code_or("2", _equals("đỡ")), TREATMENT_IMPROVED),
    (_code_or("3", _contains("không")), TREATMENT_UNCHANGED),
    (_code_or("4", _contains("nặng")), TREATMENT_WORSE),
    (_code_or("5", _contains("tử")), TREATMENT_DECEASED),
]

DISCHARGE_HOME = "Ra viện"
DISCHARGE_TRANSFER = "Chuyển tuyến"
DISCHARGE_ABSCONDED = "Trốn viện"
DISCHARGE_ON_REQUEST = "Xin về"

DISCHARGE_RULES: List[Rule] = [
    (_code_or("1", _contains("ra")), DISCHARGE_HOME),
    (_code_or("2", _contains("chuyển")), DISCHARGE_TRANSFER),
    (_code_or("3", _contains("trốn")), DISCHARGE_ABSCONDED),
    (_code_or("4", _contains("xin")), DISCHARGE_ON_REQUEST),
]

PATIENT_OUTPATIENT = "Ngoại trú"
PATIENT_INPATIENT = "Nội trú"
PATIENT_CHECKUP = "Khám sức khỏe"

PATIENT_TYPE_RULES: List[Rule] = [
    (_equals("1"), PATIENT_OUTPATIENT),
    (_equals("2"), PATIENT_INPATIENT),
    (_equals("3"), PATIENT_CHECKUP),
]


def classify_treatment(code: str) -> str:
    return _first_match(TREATMENT_RULES, code.strip().lower(), OTHER)


def classify_discharge(code: str) -> str:
    return _first_match(DISCHARGE_RULES, code.strip().lower(), OTHER)


def classify_patient_type(code: str) -> str:
    return _first_match(PATIENT_TYPE_RULES, code.strip(), OTHER)


# Coarse service-group counters; both may fire for the same group text
ANCILLARY_GROUP_KEYWORDS = ("xét nghiệm", "cdha")
EXAM_GROUP_KEYWORDS = ("khám",)


def is_ancillary_group(group: str) -> bool:
    lowered = group.lower()
    return any(k in lowered for k in ANCILLARY_GROUP_KEYWORDS)


def is_exam_group(group: str) -> bool:
    lowered = group.lower()
    return any(k in lowered for k in EXAM_GROUP_KEYWORDS)
