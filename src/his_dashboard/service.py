"""
The two entry points the dashboard layer calls: sync() and query().

query() is read-only and may run alongside other queries, but not while a
sync is clearing or streaming into the same store.
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from his_dashboard.aggregation.engine import aggregate
from his_dashboard.aggregation.kpi import KpiMerger
from his_dashboard.aggregation.views import DashboardView, build_view
from his_dashboard.config import SyncConfig
from his_dashboard.ingestion.sync import SyncResult, sync
from his_dashboard.periods import PERIODS, Instant, period_bounds, to_millis
from his_dashboard.storage.base import VisitStore, open_store

logger = logging.getLogger(__name__)

__all__ = ["DashboardView", "SyncResult", "query", "sync"]


def query(
    start: Optional[Instant] = None,
    end: Optional[Instant] = None,
    *,
    config: Optional[SyncConfig] = None,
    store: Optional[VisitStore] = None,
) -> DashboardView:
    """
    Aggregate the stored visits admitted within [start, end].

    Args:
        start: Inclusive lower bound (epoch ms, datetime or date string)
        end: Inclusive upper bound
        config: Settings (default: from environment)
        store: Store to read (default: opened from config, closed afterwards)

    Returns:
        DashboardView with KPIs and ranked breakdowns
    """
    config = config or SyncConfig.from_env()
    owns_store = store is None
    if owns_store:
        store = open_store(config)
    else:
        store.open()

    try:
        agg = aggregate(store.query_range(to_millis(start), to_millis(end)))
        store_empty = agg.is_empty and store.count() == 0
        kpis = KpiMerger(demo_fallback=config.demo_kpis).merge(agg, store_empty)
    finally:
        if owns_store:
            store.close()

    logger.info(
        "[query] range=%s..%s records=%d revenue=%d demo_kpis=%s",
        start,
        end,
        agg.record_count,
        agg.total_revenue,
        any(k.simulated for k in kpis),
    )
    return build_view(agg, kpis)


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line query: his-query [--period month | --start .. --end ..]."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    parser = argparse.ArgumentParser(description="Dashboard breakdowns from the local store")
    parser.add_argument("--period", choices=PERIODS, help="Current day/week/... in local time")
    parser.add_argument("--start", help="Lower bound, e.g. 2025-10-01")
    parser.add_argument("--end", help="Upper bound, e.g. 2025-10-31T23:59:59")
    parser.add_argument("--json", action="store_true", help="Dump the full view as JSON")
    parser.add_argument("--top", type=int, default=10, help="Rows per ranking")
    args = parser.parse_args(argv)

    start, end = args.start, args.end
    if args.period:
        start, end = period_bounds(args.period)

    view = query(start, end)

    if args.json:
        json.dump(view.to_dict(), sys.stdout, ensure_ascii=False, indent=2, default=str)
        print()
        return 0

    print("\n" + "=" * 60)
    print("KPI PROGRESS")
    print("=" * 60)
    for k in view.kpis:
        flag = " (demo)" if k.simulated else ""
        print(
            f"{k.department.value[:22]:22s} {k.name[:18]:18s} "
            f"{k.actual:>12,.1f} / {k.plan_year:>10,.0f} {k.unit}{flag}"
        )

    print("\nTOP DIAGNOSES")
    for d in view.diagnosis_stats[: args.top]:
        print(f"  {d.code:8s} {d.name[:30]:30s} {d.cases:>8,} cases {d.revenue:>15,}")

    print("\nTOP CLINICIANS")
    for c in view.clinician_stats[: args.top]:
        print(f"  {c.name[:30]:30s} {c.service_count:>8,} svc {c.revenue:>15,}")

    print("\nSERVICE GROUPS")
    for g in view.group_stats[: args.top]:
        print(f"  {g.name[:30]:30s} {g.count:>8,} {g.revenue:>15,}")
    print("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
