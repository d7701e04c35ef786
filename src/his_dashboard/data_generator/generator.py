"""Synthetic HIS visit/billing export generator with intentional bad rows."""

import logging
from datetime import date
from pathlib import Path
from typing import Dict

import numpy as np
import pandas as pd
from faker import Faker

from .config import (
    BAD_ADMISSION_DATES,
    DEPARTMENT_NAMES,
    DIAGNOSES,
    DISCHARGE_CODES,
    SERVICE_GROUPS,
    TREATMENT_CODES,
    GeneratorConfig,
)

logger = logging.getLogger(__name__)

HIS_DATE_FORMAT = "%Y%m%d%H%M%S"

EXPORT_COLUMNS = [
    "NGAY_VAO_VIEN",
    "NGAY_RA_VIEN",
    "TEN_KHOA",
    "THANH_TIEN",
    "TEN_BAC_SY",
    "MA_BENH",
    "TEN_BENH",
    "TEN_NHOM",
    "KET_QUA_DTRI",
    "TINH_TRANG_RV",
    "MA_LOAI_KCB",
]


def partition_path(root: Path, partition_date: date) -> Path:
    """data/raw/YYYY/MM/DD for the given date."""
    return (
        Path(root)
        / f"{partition_date.year:04d}"
        / f"{partition_date.month:02d}"
        / f"{partition_date.day:02d}"
    )


class HisExportGenerator:
    """Generate one HIS export file shaped like the hospital's real CSV dumps."""

    def __init__(self, config: GeneratorConfig, partition_date: date):
        self.config = config
        self.partition_date = partition_date
        self.fake = Faker("vi_VN")
        Faker.seed(config.random_seed)
        np.random.seed(config.random_seed)

        self.output_dir = partition_path(Path(config.output_dir), partition_date)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        # Counts of injected issues, filled by inject_quality_issues()
        self.injected: Dict[str, int] = {}

    @property
    def expected_valid_rows(self) -> int:
        """Rows a sync should keep: everything except bad admission dates."""
        return self.config.num_rows - self.injected.get("bad_admission_date", 0)

    def generate(self) -> pd.DataFrame:
        """Generate clean visit rows."""
        n = self.config.num_rows
        logger.info(f"Generating {n} HIS export rows")

        # Admission instants spread over the configured range
        start = pd.Timestamp(self.config.start_date.naive())
        span_s = int((self.config.end_date - self.config.start_date).total_seconds())
        admitted = start + pd.to_timedelta(np.random.randint(0, span_s, size=n), unit="s")

        patient_type = np.random.choice(
            ["1", "2", "3"],
            size=n,
            p=[
                1 - self.config.inpatient_rate - self.config.checkup_rate,
                self.config.inpatient_rate,
                self.config.checkup_rate,
            ],
        )
        inpatient = patient_type == "2"

        # Length of stay (days), inpatients only
        los_days = np.clip(np.random.gamma(shape=2, scale=2, size=n), 1, 30)
        discharged = admitted + pd.to_timedelta(los_days, unit="D")
        discharged_str = np.where(
            inpatient, pd.Series(discharged).dt.strftime(HIS_DATE_FORMAT), ""
        )

        group_idx = np.random.randint(0, len(SERVICE_GROUPS), size=n)
        prices = np.array([price for _, price in SERVICE_GROUPS])[group_idx]
        revenue = (prices * np.random.lognormal(0, 0.3, size=n)).round(-3).astype(int)

        diag_idx = np.random.randint(0, len(DIAGNOSES), size=n)
        codes = np.array([code for code, _ in DIAGNOSES])[diag_idx]
        secondary = np.random.random(size=n) < 0.1
        codes = np.where(secondary, np.char.add(codes, ";E11"), codes)

        clinicians = [f"BS. {self.fake.name()}" for _ in range(self.config.num_clinicians)]

        df = pd.DataFrame(
            {
                "NGAY_VAO_VIEN": pd.Series(admitted).dt.strftime(HIS_DATE_FORMAT),
                "NGAY_RA_VIEN": discharged_str,
                "TEN_KHOA": np.random.choice(DEPARTMENT_NAMES, size=n),
                "THANH_TIEN": revenue.astype(str),
                "TEN_BAC_SY": np.random.choice(clinicians, size=n),
                "MA_BENH": codes,
                "TEN_BENH": np.array([name for _, name in DIAGNOSES])[diag_idx],
                "TEN_NHOM": np.array([g for g, _ in SERVICE_GROUPS])[group_idx],
                "KET_QUA_DTRI": np.where(
                    inpatient, np.random.choice(TREATMENT_CODES, size=n), ""
                ),
                "TINH_TRANG_RV": np.where(
                    inpatient, np.random.choice(DISCHARGE_CODES, size=n), ""
                ),
                "MA_LOAI_KCB": patient_type,
            },
            columns=EXPORT_COLUMNS,
        )
        return df

    def inject_quality_issues(self, df: pd.DataFrame) -> pd.DataFrame:
        """Corrupt a share of rows the way real exports arrive."""
        df = df.copy()
        n = len(df)

        # Unparseable admission dates: these rows must be dropped by the sync
        bad_dates = np.random.choice(
            df.index, size=int(n * self.config.bad_admission_date_rate), replace=False
        )
        df.loc[bad_dates, "NGAY_VAO_VIEN"] = np.random.choice(
            BAD_ADMISSION_DATES, size=len(bad_dates)
        )
        logger.info(f"  - {len(bad_dates)} rows with bad admission date")

        # Garbage revenue: row is kept, revenue clamps to 0
        remaining = df.index.difference(bad_dates)
        bad_revenue = np.random.choice(
            remaining, size=int(n * self.config.bad_revenue_rate), replace=False
        )
        df.loc[bad_revenue, "THANH_TIEN"] = "N/A"
        logger.info(f"  - {len(bad_revenue)} rows with unparseable revenue")

        self.injected["bad_admission_date"] = len(bad_dates)
        self.injected["bad_revenue"] = len(bad_revenue)
        return df

    def save_to_csv(self, df: pd.DataFrame) -> Path:
        """Write the export, then append truncated lines as a broken dump would."""
        filepath = self.output_dir / self.config.file_name
        df.to_csv(filepath, index=False, encoding="utf-8")

        short_rows = int(len(df) * self.config.short_row_rate)
        with open(filepath, "a", encoding="utf-8") as fh:
            for _ in range(short_rows):
                fh.write(f"{df['NGAY_VAO_VIEN'].iloc[0]},Khoa Nội\n")
        self.injected["short_row"] = short_rows

        logger.info(f"Saved {len(df)} rows (+{short_rows} truncated) to {filepath}")
        return filepath

    def generate_export(self) -> Path:
        df = self.inject_quality_issues(self.generate())
        return self.save_to_csv(df)


def main(partition_date: date, upload: bool = False):
    """Main execution function."""
    config = GeneratorConfig()
    generator = HisExportGenerator(config, partition_date)
    filepath = generator.generate_export()

    print("\n" + "=" * 60)
    print("HIS EXPORT GENERATION SUMMARY")
    print("=" * 60)
    print(f"{'file':22s}: {filepath}")
    print(f"{'rows':22s}: {config.num_rows:,}")
    for issue, count in generator.injected.items():
        print(f"{issue:22s}: {count:,}")
    print(f"{'expected after sync':22s}: {generator.expected_valid_rows:,}")

    if upload:
        from his_dashboard.utils.minio_client import MinIOClient

        key = MinIOClient().upload_export_to_bronze(str(filepath), partition_date)
        print(f"{'bronze object key':22s}: {key}")
    print("=" * 60)
