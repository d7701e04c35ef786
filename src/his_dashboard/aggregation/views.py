"""Ranked rows built from an AggregationResult for the dashboard layer."""

from dataclasses import asdict, dataclass, field
from typing import Dict, List

from his_dashboard.aggregation.engine import AggregationResult
from his_dashboard.models import Department, KPIEntry

TREATMENT = "treatment"
DISCHARGE = "discharge"
PATIENT_TYPE = "patientType"


@dataclass
class DiagnosisStat:
    code: str
    name: str
    cases: int
    revenue: int
    treated_days: int
    by_department: Dict[str, Dict[str, int]] = field(default_factory=dict)


@dataclass
class ClinicianServiceStat:
    name: str
    group: str
    count: int
    revenue: int


@dataclass
class ClinicianStat:
    id: str
    name: str
    department: Department
    revenue: int
    service_count: int
    details: List[ClinicianServiceStat] = field(default_factory=list)


@dataclass
class OutcomeStat:
    name: str
    value: int
    type: str
    by_department: Dict[str, int] = field(default_factory=dict)


@dataclass
class GroupStat:
    id: str
    name: str
    revenue: int
    count: int


@dataclass
class DashboardView:
    kpis: List[KPIEntry]
    diagnosis_stats: List[DiagnosisStat]
    clinician_stats: List[ClinicianStat]
    outcome_stats: List[OutcomeStat]
    group_stats: List[GroupStat]

    def to_dict(self) -> dict:
        return asdict(self)


def diagnosis_stats(agg: AggregationResult) -> List[DiagnosisStat]:
    rows = [
        DiagnosisStat(
            code=code,
            name=d.name or code,
            cases=d.count,
            revenue=d.revenue,
            treated_days=d.treated_days,
            by_department={
                dept.value: {"cases": t.count, "revenue": t.revenue}
                for dept, t in d.by_department.items()
            },
        )
        for code, d in agg.diagnoses.items()
    ]
    return sorted(rows, key=lambda r: r.cases, reverse=True)


def clinician_stats(agg: AggregationResult) -> List[ClinicianStat]:
    rows = []
    for name, doc in agg.clinicians.items():
        details = [
            ClinicianServiceStat(name=group, group=group, count=t.count, revenue=t.revenue)
            for group, t in doc.by_group.items()
        ]
        details.sort(key=lambda d: d.revenue, reverse=True)
        rows.append(
            ClinicianStat(
                id=name,
                name=name,
                department=doc.department,
                revenue=doc.revenue,
                service_count=doc.count,
                details=details,
            )
        )
    return sorted(rows, key=lambda r: r.revenue, reverse=True)


def outcome_stats(agg: AggregationResult) -> List[OutcomeStat]:
    rows = []
    for kind, table in (
        (TREATMENT, agg.treatment_outcomes),
        (DISCHARGE, agg.discharge_outcomes),
        (PATIENT_TYPE, agg.patient_types),
    ):
        for label, outcome in table.items():
            rows.append(
                OutcomeStat(
                    name=label,
                    value=outcome.total,
                    type=kind,
                    by_department={d.value: n for d, n in outcome.by_department.items()},
                )
            )
    return rows


def group_stats(agg: AggregationResult) -> List[GroupStat]:
    rows = [
        GroupStat(id=f"grp-{idx}", name=name, revenue=t.revenue, count=t.count)
        for idx, (name, t) in enumerate(agg.groups.items())
    ]
    return sorted(rows, key=lambda r: r.revenue, reverse=True)


def build_view(agg: AggregationResult, kpis: List[KPIEntry]) -> DashboardView:
    return DashboardView(
        kpis=kpis,
        diagnosis_stats=diagnosis_stats(agg),
        clinician_stats=clinician_stats(agg),
        outcome_stats=outcome_stats(agg),
        group_stats=group_stats(agg),
    )
