"""
Prefect Workflow Orchestration - Cohort Analytics

Batch workflow that:
- Loads the Sale and Customer tables
- Runs the data quality suites
- Builds the cohort view once
- Runs the three reports concurrently against it
"""

from datetime import date
from typing import Optional, Tuple

import polars as pl
from prefect import flow, task, get_run_logger
from prefect.cache_policies import NONE
from sqlalchemy.exc import OperationalError

from src.analytics.pipeline import CohortAnalyticsPipeline, ReportType
from src.config import get_settings
from src.database.connection import close_database, init_database
from src.ingestion.batch_loader import SourceData, SourceLoader

settings = get_settings()

# Only transient connection failures are retried; input and quality
# errors fail on the first attempt.
TRANSIENT_ERRORS = (OperationalError, ConnectionError, TimeoutError)


def retry_on_connection_error(task, task_run, state) -> bool:
    """Retry condition for source loading"""
    try:
        state.result()
    except TRANSIENT_ERRORS:
        return True
    except Exception:
        return False
    return False


# =============================================================================
# TASKS
# =============================================================================

@task(
    name="load_sources",
    description="Load the Sale and Customer tables",
    retries=3,
    retry_delay_seconds=30,
    retry_condition_fn=retry_on_connection_error,
    cache_policy=NONE,
)
async def load_sources(
    source: str = "files",
    input_dir: Optional[str] = None,
    database_url: Optional[str] = None,
) -> SourceData:
    """Load source tables from files or the database"""
    logger = get_run_logger()
    loader = SourceLoader()

    if source == "files":
        data = await loader.load_from_files(input_dir)
    elif source == "database":
        await init_database(database_url)
        try:
            data = await loader.load_from_database()
        finally:
            await close_database()
    else:
        raise ValueError(f"Unknown source: {source}")

    logger.info(f"Loaded {len(data.sales)} sales and {len(data.customers)} customers from {source}")
    return data


@task(
    name="build_cohort_view",
    description="Validate the sources and build the cohort view",
    cache_policy=NONE,
)
def build_cohort_view(
    pipeline: CohortAnalyticsPipeline,
    sales: pl.DataFrame,
    customers: pl.DataFrame,
) -> Tuple[pl.DataFrame, Optional[date]]:
    """Clean, validate and aggregate the sources; also return the latest sale date"""
    logger = get_run_logger()
    result = pipeline.build_view(sales, customers)
    logger.info(f"Cohort view: {result.rows} rows, latest sale {result.latest_order_date}")
    return result.data, result.latest_order_date


@task(
    name="run_report",
    description="Run one report against the cohort view",
    cache_policy=NONE,
)
def run_report(
    pipeline: CohortAnalyticsPipeline,
    report_type: ReportType,
    view: pl.DataFrame,
    latest_order_date: Optional[date] = None,
) -> dict:
    """Run a report and return its summary"""
    logger = get_run_logger()
    result = pipeline.run_report(report_type, view, latest_order_date)
    logger.info(f"{report_type.value}: {result.rows} rows in {result.duration_seconds:.2f}s")
    return {
        "report": report_type.value,
        "rows": result.rows,
        "output_path": result.output_path,
        "duration_seconds": result.duration_seconds,
    }


# =============================================================================
# FLOWS
# =============================================================================

@flow(
    name="cohort_analysis",
    description="Customer segmentation, cohort revenue and retention reports",
)
async def cohort_analysis(
    source: str = "files",
    input_dir: Optional[str] = None,
    database_url: Optional[str] = None,
    output_dir: Optional[str] = None,
    output_format: Optional[str] = None,
) -> dict:
    """
    Cohort analytics batch.

    Steps:
    1. Load source tables
    2. Validate and build the cohort view
    3. Run segmentation, cohort revenue and retention reports in parallel
    """
    logger = get_run_logger()

    pipeline = CohortAnalyticsPipeline(output_path=output_dir, output_format=output_format)
    results = {"source": source, "reports": {}}

    try:
        data = await load_sources(source, input_dir, database_url)
        view, latest_order_date = build_cohort_view(pipeline, data.sales, data.customers)

        # Reports only read the view
        futures = [
            run_report.submit(pipeline, report_type, view, latest_order_date)
            for report_type in (ReportType.SEGMENTATION, ReportType.COHORT_REVENUE, ReportType.RETENTION)
        ]
        for future in futures:
            summary = future.result()
            results["reports"][summary["report"]] = summary

        results["view_rows"] = view.height
        results["status"] = "success"

    except Exception as e:
        logger.error(f"Cohort analysis failed: {e}")
        results["status"] = "failed"
        results["error"] = str(e)
        raise

    return results


if __name__ == "__main__":
    import asyncio

    asyncio.run(cohort_analysis())
