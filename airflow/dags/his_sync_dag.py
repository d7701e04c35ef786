"""
HIS Sync DAG

Runs nightly and refreshes the local dashboard store from the HIS export:

  sync_export        full-replace sync (clear -> stream -> batch insert)
       |
       v
  dashboard_summary  month-to-date KPIs + top breakdowns in the task log

The export id comes from dag_run.conf["resource_id"] when triggered
manually, otherwise from the HIS_RESOURCE_ID environment variable.

max_active_runs=1 keeps a second sync (or the summary query) from running
while a sync is still streaming into the store.
"""

import logging
import os
from datetime import datetime, timezone

import pendulum
from airflow.operators.python import PythonOperator
from airflow.utils.trigger_rule import TriggerRule

from airflow import DAG

logger = logging.getLogger(__name__)


def _resource_id(context: dict) -> str:
    conf = (context.get("dag_run") and context["dag_run"].conf) or {}
    resource_id = conf.get("resource_id") or os.getenv("HIS_RESOURCE_ID")
    if not resource_id:
        raise ValueError("No resource_id in dag_run.conf and HIS_RESOURCE_ID is unset")
    return resource_id


# Stage 1: Sync
def run_sync(**context):
    from his_dashboard.ingestion.sync import sync

    resource_id = _resource_id(context)
    logger.info("[his] Stage 1 - Sync | resource=%s", resource_id)

    result = sync(resource_id, on_progress=lambda line: logger.info("[his] %s", line))
    if not result.success:
        raise RuntimeError(f"HIS sync failed: {result.message}")

    stats = {"rows": result.rows, "skipped": result.skipped, "message": result.message}
    context["task_instance"].xcom_push(key="sync_stats", value=stats)
    return stats


# Stage 2: Summary
def dashboard_summary(**context):
    """Query the current month and log a KPI report."""
    from his_dashboard.periods import period_bounds
    from his_dashboard.service import query

    ti = context["task_instance"]
    sync_stats = ti.xcom_pull(task_ids="sync_export", key="sync_stats") or {}

    start, end = period_bounds("month")
    view = query(start, end)

    run_ts = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    logger.info("=" * 65)
    logger.info("  HIS DASHBOARD - RUN REPORT")
    logger.info("  Completed : %s", run_ts)
    logger.info(
        "  Synced    : %s rows (%s dropped)",
        format(sync_stats.get("rows", 0), ","),
        format(sync_stats.get("skipped", 0), ","),
    )
    logger.info("=" * 65)

    logger.info("  %-24s %-18s %12s %12s", "Department", "Metric", "Actual", "Plan")
    logger.info("  %s", "-" * 70)
    for k in view.kpis:
        logger.info(
            "  %-24s %-18s %12.1f %12.0f%s",
            k.department.value[:24],
            k.name[:18],
            k.actual,
            k.plan_year,
            "  (demo)" if k.simulated else "",
        )

    logger.info("  TOP DIAGNOSES (month to date)")
    for d in view.diagnosis_stats[:5]:
        logger.info("  %-8s %-30s %8s cases", d.code, d.name[:30], format(d.cases, ","))

    logger.info("=" * 65)


# DAG definition

with DAG(
    dag_id="his_dashboard_sync",
    description="Nightly full-replace sync of the HIS export into the dashboard store.",
    schedule_interval="0 1 * * *",
    start_date=pendulum.datetime(2026, 1, 1, tz="Asia/Ho_Chi_Minh"),
    catchup=False,
    max_active_runs=1,
    tags=["healthcare", "his", "scheduled"],
    default_args={
        "owner": "data-engineering",
        "retries": 2,
        "retry_delay": pendulum.duration(minutes=5),
        "email_on_failure": False,
    },
) as dag:
    t_sync = PythonOperator(
        task_id="sync_export",
        python_callable=run_sync,
        doc_md="Clear the store and stream the HIS CSV export into it in batches.",
    )

    t_summary = PythonOperator(
        task_id="dashboard_summary",
        python_callable=dashboard_summary,
        trigger_rule=TriggerRule.ALL_SUCCESS,
        doc_md="Log month-to-date KPIs and top diagnoses.",
    )

    t_sync >> t_summary
