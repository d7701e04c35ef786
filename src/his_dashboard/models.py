"""Core record types shared by ingestion, storage and aggregation."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Department(str, Enum):
    """Hospital units as labelled in the HIS exports."""

    CENTER_WIDE = "Toàn Trung tâm"
    EXAMINATION = "Khoa Khám bệnh"
    INTERNAL = "Khoa Nội"
    SURGERY = "Khoa Ngoại - PT - GMHS"
    PEDIATRICS = "Khoa Nhi"
    OBSTETRICS = "Khoa CSSKSS & Phụ sản"
    INFECTIOUS = "Khoa Truyền nhiễm"
    EMERGENCY = "Khoa CC - HSTC - CĐ"
    TRADITIONAL = "Khoa YHCT - PHCN"
    LABORATORY = "Khoa XN - KSNK"
    IMAGING = "Khoa CĐHA"


class ServiceGroup(str, Enum):
    """Service-group tags used by the KPI plan."""

    EXAMINATION = "Khám bệnh"
    INPATIENT = "Điều trị nội trú"
    ANCILLARY = "Cận lâm sàng"
    PROCEDURE = "Thủ thuật - Phẫu thuật"
    PHARMACY = "Thuốc - Vật tư"


@dataclass(frozen=True)
class CanonicalVisitRecord:
    """
    One normalised row of a HIS export.

    Instants are epoch milliseconds in local time. admitted_at is always > 0;
    rows without a usable admission date never become records.
    """

    admitted_at: int
    department: Department = Department.CENTER_WIDE
    revenue: int = 0
    discharged_at: Optional[int] = None
    clinician: str = ""
    diagnosis_code: str = ""
    diagnosis_name: str = ""
    service_group: str = ""
    treatment_result: str = ""
    discharge_status: str = ""
    patient_type: str = ""


@dataclass
class KPIEntry:
    """Plan-vs-actual line. simulated=True marks a demo placeholder actual."""

    id: str
    name: str
    unit: str
    department: Department
    plan_year: float
    actual: float
    group: ServiceGroup
    simulated: bool = False

    @property
    def completion_pct(self) -> float:
        if not self.plan_year:
            return 0.0
        return round(self.actual / self.plan_year * 100, 2)
