"""
Single-pass aggregation over canonical visit records.

aggregate() walks the record set once and updates every breakdown together
(department revenue, service groups, diagnoses, clinicians and the three
outcome taxonomies), so a million-row range is scanned exactly once.

The fold is commutative: results computed over disjoint time ranges can be
combined with merge() and equal the result over the union. Ranking is not
done here - see views.py.
"""

import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

from his_dashboard.classify import (
    PATIENT_INPATIENT,
    classify_discharge,
    classify_patient_type,
    classify_treatment,
    is_ancillary_group,
    is_exam_group,
)
from his_dashboard.models import CanonicalVisitRecord, Department

MS_PER_DAY = 24 * 60 * 60 * 1000


def treated_days(admitted_at: Optional[int], discharged_at: Optional[int]) -> int:
    """Day span between admission and discharge, at least 1; 0 if either is missing."""
    if not admitted_at or not discharged_at:
        return 0
    days = math.ceil(abs(discharged_at - admitted_at) / MS_PER_DAY)
    return days or 1


@dataclass
class Totals:
    count: int = 0
    revenue: int = 0

    def add(self, revenue: int) -> None:
        self.count += 1
        self.revenue += revenue

    def merge(self, other: "Totals") -> None:
        self.count += other.count
        self.revenue += other.revenue


def _merge_totals(into: Dict[str, Totals], other: Dict[str, Totals]) -> None:
    for key, totals in other.items():
        into[key].merge(totals)


@dataclass
class DiagnosisTotals:
    name: str
    count: int = 0
    revenue: int = 0
    treated_days: int = 0
    by_department: Dict[Department, Totals] = field(
        default_factory=lambda: defaultdict(Totals)
    )


@dataclass
class ClinicianTotals:
    department: Department
    count: int = 0
    revenue: int = 0
    by_group: Dict[str, Totals] = field(default_factory=lambda: defaultdict(Totals))


@dataclass
class OutcomeTotals:
    total: int = 0
    by_department: Dict[Department, int] = field(
        default_factory=lambda: defaultdict(int)
    )

    def merge(self, other: "OutcomeTotals") -> None:
        self.total += other.total
        for dept, n in other.by_department.items():
            self.by_department[dept] += n


@dataclass
class AggregationResult:
    """All breakdowns of one record set. Recomputed per query, never stored."""

    record_count: int = 0
    total_revenue: int = 0
    total_exam: int = 0
    total_ancillary: int = 0
    total_inpatient: int = 0
    department_revenue: Dict[Department, int] = field(
        default_factory=lambda: defaultdict(int)
    )
    groups: Dict[str, Totals] = field(default_factory=lambda: defaultdict(Totals))
    diagnoses: Dict[str, DiagnosisTotals] = field(default_factory=dict)
    clinicians: Dict[str, ClinicianTotals] = field(default_factory=dict)
    treatment_outcomes: Dict[str, OutcomeTotals] = field(
        default_factory=lambda: defaultdict(OutcomeTotals)
    )
    discharge_outcomes: Dict[str, OutcomeTotals] = field(
        default_factory=lambda: defaultdict(OutcomeTotals)
    )
    patient_types: Dict[str, OutcomeTotals] = field(
        default_factory=lambda: defaultdict(OutcomeTotals)
    )

    @property
    def is_empty(self) -> bool:
        return self.record_count == 0

    def add(self, v: CanonicalVisitRecord) -> None:
        """Fold one record into every breakdown."""
        dept = v.department
        self.record_count += 1
        self.total_revenue += v.revenue
        self.department_revenue[dept] += v.revenue

        if v.service_group:
            self.groups[v.service_group].add(v.revenue)
            if is_ancillary_group(v.service_group):
                self.total_ancillary += 1
            if is_exam_group(v.service_group):
                self.total_exam += 1

        if v.diagnosis_code:
            diag = self.diagnoses.get(v.diagnosis_code)
            if diag is None:
                diag = DiagnosisTotals(name=v.diagnosis_name or v.diagnosis_code)
                self.diagnoses[v.diagnosis_code] = diag
            diag.count += 1
            diag.revenue += v.revenue
            diag.treated_days += treated_days(v.admitted_at, v.discharged_at)
            diag.by_department[dept].add(v.revenue)

        if v.clinician:
            doc = self.clinicians.get(v.clinician)
            if doc is None:
                doc = ClinicianTotals(department=dept)
                self.clinicians[v.clinician] = doc
            doc.count += 1
            doc.revenue += v.revenue
            if v.service_group:
                doc.by_group[v.service_group].add(v.revenue)

        if v.treatment_result:
            self._count_outcome(
                self.treatment_outcomes, classify_treatment(v.treatment_result), dept
            )
        if v.discharge_status:
            self._count_outcome(
                self.discharge_outcomes, classify_discharge(v.discharge_status), dept
            )
        if v.patient_type:
            label = classify_patient_type(v.patient_type)
            self._count_outcome(self.patient_types, label, dept)
            if label == PATIENT_INPATIENT:
                self.total_inpatient += 1

    @staticmethod
    def _count_outcome(
        table: Dict[str, OutcomeTotals], label: str, dept: Department
    ) -> None:
        outcome = table[label]
        outcome.total += 1
        outcome.by_department[dept] += 1

    def merge(self, other: "AggregationResult") -> "AggregationResult":
        """Fold other into self (in place) and return self."""
        self.record_count += other.record_count
        self.total_revenue += other.total_revenue
        self.total_exam += other.total_exam
        self.total_ancillary += other.total_ancillary
        self.total_inpatient += other.total_inpatient

        for dept, revenue in other.department_revenue.items():
            self.department_revenue[dept] += revenue
        _merge_totals(self.groups, other.groups)

        for code, theirs in other.diagnoses.items():
            ours = self.diagnoses.setdefault(code, DiagnosisTotals(name=theirs.name))
            ours.count += theirs.count
            ours.revenue += theirs.revenue
            ours.treated_days += theirs.treated_days
            _merge_totals(ours.by_department, theirs.by_department)

        for name, theirs in other.clinicians.items():
            ours = self.clinicians.setdefault(
                name, ClinicianTotals(department=theirs.department)
            )
            ours.count += theirs.count
            ours.revenue += theirs.revenue
            _merge_totals(ours.by_group, theirs.by_group)

        for mine, theirs in (
            (self.treatment_outcomes, other.treatment_outcomes),
            (self.discharge_outcomes, other.discharge_outcomes),
            (self.patient_types, other.patient_types),
        ):
            for label, outcome in theirs.items():
                mine[label].merge(outcome)
        return self


def aggregate(records: Iterable[CanonicalVisitRecord]) -> AggregationResult:
    """One linear pass over records."""
    result = AggregationResult()
    for record in records:
        result.add(record)
    return result
