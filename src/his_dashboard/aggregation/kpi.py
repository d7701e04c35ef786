"""
KPI merger - static annual plan vs. actuals from an AggregationResult.

Center-wide rows are pseudo-metrics (total revenue, exam count, inpatient
count, ancillary test count); department rows are revenue lines. Revenue is
reported in millions of VND.

Demo mode: while the store holds no records at all, a zero actual can be
replaced by a simulated value so the dashboard is presentable before the
first import. Every such entry has simulated=True and must never be read as
real data. Disable with demo_fallback=False (env HIS_DEMO_KPIS=false).
"""

import math
import random
from dataclasses import dataclass
from typing import List, Optional

from his_dashboard.aggregation.engine import AggregationResult
from his_dashboard.models import Department, KPIEntry, ServiceGroup

REVENUE_UNIT = 1_000_000

TOTAL_REVENUE = "Tổng Doanh thu"
DEPARTMENT_REVENUE = "Doanh thu"


@dataclass(frozen=True)
class PlanTarget:
    department: Department
    name: str
    unit: str
    plan: float
    group: ServiceGroup


PLAN_2026: List[PlanTarget] = [
    PlanTarget(Department.CENTER_WIDE, TOTAL_REVENUE, "Triệu VNĐ", 54941, ServiceGroup.EXAMINATION),
    PlanTarget(Department.CENTER_WIDE, "Khám bệnh chung", "Lượt", 136961, ServiceGroup.EXAMINATION),
    PlanTarget(Department.CENTER_WIDE, "Điều trị nội trú", "Lượt", 13906, ServiceGroup.INPATIENT),
    PlanTarget(Department.CENTER_WIDE, "Xét nghiệm", "Lần", 171780, ServiceGroup.ANCILLARY),
    PlanTarget(Department.EXAMINATION, DEPARTMENT_REVENUE, "Triệu VNĐ", 20606, ServiceGroup.EXAMINATION),
    PlanTarget(Department.INTERNAL, DEPARTMENT_REVENUE, "Triệu VNĐ", 8480, ServiceGroup.INPATIENT),
    PlanTarget(Department.SURGERY, DEPARTMENT_REVENUE, "Triệu VNĐ", 6236, ServiceGroup.PROCEDURE),
    PlanTarget(Department.PEDIATRICS, DEPARTMENT_REVENUE, "Triệu VNĐ", 4367, ServiceGroup.INPATIENT),
    PlanTarget(Department.OBSTETRICS, DEPARTMENT_REVENUE, "Triệu VNĐ", 2884, ServiceGroup.INPATIENT),
    PlanTarget(Department.INFECTIOUS, DEPARTMENT_REVENUE, "Triệu VNĐ", 4316, ServiceGroup.INPATIENT),
    PlanTarget(Department.EMERGENCY, DEPARTMENT_REVENUE, "Triệu VNĐ", 4213, ServiceGroup.INPATIENT),
    PlanTarget(Department.TRADITIONAL, DEPARTMENT_REVENUE, "Triệu VNĐ", 3834, ServiceGroup.EXAMINATION),
    PlanTarget(Department.LABORATORY, DEPARTMENT_REVENUE, "Triệu VNĐ", 6640, ServiceGroup.ANCILLARY),
    PlanTarget(Department.IMAGING, DEPARTMENT_REVENUE, "Triệu VNĐ", 5163, ServiceGroup.ANCILLARY),
]

# Below this plan magnitude the simulated actual keeps one decimal
SMALL_PLAN = 20


def simulate_actual(plan: float, rng: Optional[random.Random] = None) -> float:
    """
    Placeholder actual at roughly 77.5%-112.5% of plan.

    80-110% base plus a +/-2.5% jitter. Demo use only.
    """
    rng = rng or random
    jitter = rng.random() * 0.05 - 0.025
    base = 0.8 + rng.random() * 0.3
    pct = max(0.0, base + jitter)
    if plan < SMALL_PLAN:
        return round(plan * pct, 1)
    return math.floor(plan * pct)


def resolve_actual(target: PlanTarget, agg: AggregationResult) -> float:
    """Actual for one plan line, looked up by department and metric name."""
    if target.department is Department.CENTER_WIDE:
        if target.name == TOTAL_REVENUE:
            return agg.total_revenue / REVENUE_UNIT
        if "Khám" in target.name:
            return agg.total_exam
        if "nội trú" in target.name:
            return agg.total_inpatient
        if "Xét nghiệm" in target.name:
            return agg.total_ancillary
        return 0
    if target.name == DEPARTMENT_REVENUE:
        return agg.department_revenue.get(target.department, 0) / REVENUE_UNIT
    return 0


class KpiMerger:
    """Builds fresh KPI entries for every query."""

    def __init__(
        self,
        targets: Optional[List[PlanTarget]] = None,
        demo_fallback: bool = True,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.targets = list(targets if targets is not None else PLAN_2026)
        self.demo_fallback = demo_fallback
        self.rng = rng

    def merge(self, agg: AggregationResult, store_empty: bool) -> List[KPIEntry]:
        entries = []
        for idx, target in enumerate(self.targets):
            actual = resolve_actual(target, agg)
            simulated = False
            if self.demo_fallback and store_empty and actual == 0:
                actual = simulate_actual(target.plan, self.rng)
                simulated = True

            entries.append(
                KPIEntry(
                    id=f"kpi-template-{idx}",
                    name=target.name,
                    unit=target.unit,
                    department=target.department,
                    plan_year=target.plan,
                    actual=actual,
                    group=target.group,
                    simulated=simulated,
                )
            )
        return entries
