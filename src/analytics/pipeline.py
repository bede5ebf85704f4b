"""
Cohort Analytics Pipeline

Orchestrator that builds the cohort view once and runs the segmentation,
cohort revenue and retention reports against it, optionally writing every
output to the curated zone.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional

import polars as pl
import structlog

from src.config import get_settings
from src.quality.validators import (
    create_customers_validator,
    create_sales_validator,
    ensure_valid,
)
from src.transformation.cleaners import DataCleaner
from src.transformation.cohort_view import CohortViewBuilder
from .cohort_revenue import cohort_revenue_report
from .retention import retention_report
from .segmentation import segmentation_report

logger = structlog.get_logger(__name__)
settings = get_settings()


class ReportType(str, Enum):
    """Outputs produced by the pipeline"""
    COHORT_VIEW = "cohort_view"
    SEGMENTATION = "customer_segmentation"
    COHORT_REVENUE = "cohort_revenue"
    RETENTION = "retention"


REPORTS: Dict[ReportType, Callable[[pl.DataFrame], pl.DataFrame]] = {
    ReportType.SEGMENTATION: segmentation_report,
    ReportType.COHORT_REVENUE: cohort_revenue_report,
    ReportType.RETENTION: retention_report,
}


@dataclass
class ReportResult:
    """Result of one pipeline stage"""
    report_type: ReportType
    data: pl.DataFrame
    started_at: datetime
    completed_at: datetime
    output_path: Optional[str] = None
    latest_order_date: Optional[date] = None

    @property
    def rows(self) -> int:
        return self.data.height

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()


@dataclass
class PipelineResult:
    """Result of a full pipeline run"""
    view: ReportResult
    reports: Dict[ReportType, ReportResult] = field(default_factory=dict)

    @property
    def output_paths(self) -> List[str]:
        results = [self.view, *self.reports.values()]
        return [r.output_path for r in results if r.output_path]

    def summary(self) -> Dict[str, int]:
        """Row count per output"""
        counts = {self.view.report_type.value: self.view.rows}
        counts.update({t.value: r.rows for t, r in self.reports.items()})
        return counts


class CohortAnalyticsPipeline:
    """
    Batch pipeline for cohort analytics.

    Validates the two source tables, builds the cohort view, then runs each
    report. Reports only read the view, so they may run in any order.

    Example:
        pipeline = CohortAnalyticsPipeline(write_outputs=False)
        result = pipeline.run(sales_df, customers_df)
        result.reports[ReportType.RETENTION].data
    """

    def __init__(
        self,
        output_path: Optional[str] = None,
        output_format: Optional[str] = None,
        write_outputs: bool = True,
        enable_validation: Optional[bool] = None,
    ):
        self.output_path = Path(output_path or settings.data_lake.curated_path)
        self.output_format = (output_format or settings.data_lake.default_format).lower()
        self.write_outputs = write_outputs
        self.enable_validation = (
            settings.data_quality.enable_data_quality_checks
            if enable_validation is None
            else enable_validation
        )
        self.cleaner = DataCleaner()
        self.view_builder = CohortViewBuilder(enable_validation=self.enable_validation)

        if self.output_format not in ("parquet", "csv"):
            raise ValueError(f"Unsupported output format: {self.output_format}")

        if self.write_outputs:
            self.output_path.mkdir(parents=True, exist_ok=True)

    def _write_output(self, df: pl.DataFrame, name: str) -> str:
        """Write a report to the curated zone"""
        timestamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S")
        output_file = self.output_path / f"{name}_{timestamp}.{self.output_format}"

        if self.output_format == "csv":
            df.write_csv(output_file)
        else:
            df.write_parquet(output_file, compression=settings.data_lake.compression)
        logger.info(f"Written {len(df)} rows to {output_file}")

        return str(output_file)

    def validate_sources(self, sales: pl.DataFrame, customers: pl.DataFrame) -> None:
        """
        Run the source data quality suites.

        Raises:
            DataQualityError: If an ERROR-severity check fails
        """
        ensure_valid(create_customers_validator().validate(customers), "customers")
        ensure_valid(create_sales_validator(customers).validate(sales), "sales")

    def _finish(
        self,
        report_type: ReportType,
        df: pl.DataFrame,
        started_at: datetime,
        latest_order_date: Optional[date] = None,
    ) -> ReportResult:
        output_file = self._write_output(df, report_type.value) if self.write_outputs else None
        return ReportResult(
            report_type=report_type,
            data=df,
            started_at=started_at,
            completed_at=datetime.utcnow(),
            output_path=output_file,
            latest_order_date=latest_order_date,
        )

    def build_view(self, sales: pl.DataFrame, customers: pl.DataFrame) -> ReportResult:
        """Clean, validate and aggregate the sources into the cohort view"""
        started_at = datetime.utcnow()

        sales = self.cleaner.clean_sales(sales)
        customers = self.cleaner.clean_customers(customers)
        if self.enable_validation:
            self.validate_sources(sales, customers)

        view = self.view_builder.build(sales, customers)
        return self._finish(
            ReportType.COHORT_VIEW,
            view,
            started_at,
            latest_order_date=self.view_builder.last_stats.latest_order_date,
        )

    def run_report(
        self,
        report_type: ReportType,
        view: pl.DataFrame,
        latest_order_date: Optional[date] = None,
    ) -> ReportResult:
        """
        Run a single report against an already built view.

        ``latest_order_date`` is the reference point for retention; pass the
        value recorded while building the view so sales without a customer
        still move the churn cutoff.
        """
        if report_type not in REPORTS:
            raise ValueError(f"Unknown report: {report_type}")

        started_at = datetime.utcnow()
        logger.info(f"Starting {report_type.value} report", view_rows=view.height)

        if report_type == ReportType.RETENTION:
            df = retention_report(view, reference=latest_order_date)
        else:
            df = REPORTS[report_type](view)
        return self._finish(report_type, df, started_at)

    def run(
        self,
        sales: pl.DataFrame,
        customers: pl.DataFrame,
        reports: Optional[List[ReportType]] = None,
    ) -> PipelineResult:
        """
        Run the full pipeline.

        Args:
            sales: Sale lines
            customers: Customer records
            reports: Subset of reports to run (defaults to all three)

        Returns:
            PipelineResult with the view and each report
        """
        logger.info("Starting cohort analytics pipeline", sales_rows=len(sales), customer_rows=len(customers))

        try:
            view_result = self.build_view(sales, customers)
            result = PipelineResult(view=view_result)

            for report_type in reports or list(REPORTS):
                result.reports[report_type] = self.run_report(
                    report_type, view_result.data, view_result.latest_order_date
                )
        except Exception as e:
            logger.error("Cohort analytics pipeline failed", error=str(e), error_type=type(e).__name__)
            raise

        total_duration = view_result.duration_seconds + sum(
            r.duration_seconds for r in result.reports.values()
        )
        logger.info(
            f"Cohort analytics pipeline complete, duration: {total_duration:.2f}s",
            outputs=result.summary(),
        )

        return result
