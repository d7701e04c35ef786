"""Configuration for synthetic HIS export generation."""

import os
from dataclasses import dataclass
from datetime import datetime

import pendulum


@dataclass
class GeneratorConfig:
    """Configuration parameters for export generation."""

    # Volume settings
    num_rows: int = int(os.getenv("NUM_VISITS", 20000))
    num_clinicians: int = 40

    # Date range
    start_date: datetime = pendulum.parse("2025-01-01")
    end_date: datetime = pendulum.parse("2025-12-31")

    # Business rules
    inpatient_rate: float = 0.20
    checkup_rate: float = 0.10

    # Data quality issues
    bad_admission_date_rate: float = 0.01
    bad_revenue_rate: float = 0.01
    short_row_rate: float = 0.005

    # Output settings
    output_dir: str = "data/raw"
    file_name: str = "his_export.csv"

    # Seed for reproducibility
    random_seed: int = 42


# Free-text unit names as they appear in HIS exports. The last one matches no
# department rule on purpose and lands on the center-wide bucket.
DEPARTMENT_NAMES = [
    "Khoa Khám bệnh",
    "Khoa Nội tổng hợp",
    "Khoa Ngoại - PT - GMHS",
    "Khoa Nhi",
    "Khoa Phụ sản",
    "Khoa Lây",
    "Khoa Cấp cứu",
    "Khoa YHCT - PHCN",
    "Khoa Xét nghiệm",
    "Khoa CĐHA",
    "Phòng Tài chính",
]

# Service groups and typical unit price (VND)
SERVICE_GROUPS = [
    ("Khám bệnh", 150_000),
    ("Xét nghiệm", 250_000),
    ("CDHA", 400_000),
    ("Thủ thuật - Phẫu thuật", 1_200_000),
    ("Thuốc - Vật tư", 300_000),
    ("Giường bệnh", 600_000),
]

# ICD-10 codes; a few rows carry a secondary code after ';'
DIAGNOSES = [
    ("J06.9", "Viêm đường hô hấp trên cấp"),
    ("I10", "Tăng huyết áp vô căn"),
    ("E11", "Đái tháo đường type 2"),
    ("K29.7", "Viêm dạ dày, tá tràng"),
    ("A09", "Tiêu chảy nhiễm trùng"),
    ("O80", "Đẻ thường"),
    ("S52", "Gãy xương cẳng tay"),
    ("M54.5", "Đau thắt lưng"),
]

TREATMENT_CODES = ["1", "2", "3", "4", "5"]
DISCHARGE_CODES = ["1", "2", "3", "4"]

BAD_ADMISSION_DATES = ["2025101", "abcdefgh", "20251345", "20250230", ""]
