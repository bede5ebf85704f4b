"""
Unit Tests - Pipeline and Command Line
"""
from datetime import date
from pathlib import Path

import pytest
import polars as pl

from src.analytics.pipeline import CohortAnalyticsPipeline, ReportType
from src.main import main
from src.quality.validators import DataQualityError


class TestCohortAnalyticsPipeline:
    """Tests for CohortAnalyticsPipeline"""

    def test_run_all_reports(self, sample_sales_df, sample_customers_df):
        """Test every report runs against one view"""
        pipeline = CohortAnalyticsPipeline(write_outputs=False)

        result = pipeline.run(sample_sales_df, sample_customers_df)

        assert set(result.reports) == {
            ReportType.SEGMENTATION,
            ReportType.COHORT_REVENUE,
            ReportType.RETENTION,
        }
        assert result.summary() == {
            "cohort_view": 6,
            "customer_segmentation": 3,
            "cohort_revenue": 3,
            "retention": 3,
        }
        assert result.output_paths == []

    def test_report_subset(self, sample_sales_df, sample_customers_df):
        """Test a single report can be requested"""
        pipeline = CohortAnalyticsPipeline(write_outputs=False)

        result = pipeline.run(sample_sales_df, sample_customers_df, reports=[ReportType.RETENTION])

        assert list(result.reports) == [ReportType.RETENTION]

    def test_writes_parquet(self, tmp_path, sample_sales_df, sample_customers_df):
        """Test each output lands in the curated zone"""
        pipeline = CohortAnalyticsPipeline(output_path=str(tmp_path), output_format="parquet")

        result = pipeline.run(sample_sales_df, sample_customers_df)

        assert len(result.output_paths) == 4
        segmentation = result.reports[ReportType.SEGMENTATION]
        written = pl.read_parquet(segmentation.output_path)
        assert written["customer_segment"].to_list() == ["High-Value", "Mid-Value", "Low-Value"]

    def test_writes_csv(self, tmp_path, sample_sales_df, sample_customers_df):
        """Test CSV output"""
        pipeline = CohortAnalyticsPipeline(output_path=str(tmp_path), output_format="csv")

        result = pipeline.run(sample_sales_df, sample_customers_df, reports=[ReportType.COHORT_REVENUE])

        paths = [Path(p) for p in result.output_paths]
        assert all(p.suffix == ".csv" for p in paths)
        written = pl.read_csv(result.reports[ReportType.COHORT_REVENUE].output_path)
        assert written["cohort_year"].to_list() == [2022, 2023, 2024]

    def test_unsupported_format(self, tmp_path):
        """Test only parquet and csv are accepted"""
        with pytest.raises(ValueError, match="Unsupported output format"):
            CohortAnalyticsPipeline(output_path=str(tmp_path), output_format="xlsx")

    def test_unknown_report(self, sample_view_df):
        """Test the view itself is not a runnable report"""
        pipeline = CohortAnalyticsPipeline(write_outputs=False)

        with pytest.raises(ValueError, match="Unknown report"):
            pipeline.run_report(ReportType.COHORT_VIEW, sample_view_df)

    def test_duplicate_customers_fail_validation(self, sample_sales_df, sample_customers_df):
        """Test source validation blocks the run"""
        customers = pl.concat([sample_customers_df, sample_customers_df.head(1)])
        pipeline = CohortAnalyticsPipeline(write_outputs=False)

        with pytest.raises(DataQualityError, match="customers"):
            pipeline.run(sample_sales_df, customers)

    def test_validation_can_be_skipped(self, sample_sales_df, sample_customers_df):
        """Test orphans and warnings never stop a run"""
        pipeline = CohortAnalyticsPipeline(write_outputs=False, enable_validation=False)

        result = pipeline.run(sample_sales_df, sample_customers_df)

        assert result.view.rows == 6

    def test_retention_uses_latest_sale_overall(self, late_orphan_sales_df, sample_customers_df):
        """Test a customer-less latest sale sets the churn cutoff"""
        pipeline = CohortAnalyticsPipeline(write_outputs=False)

        result = pipeline.run(late_orphan_sales_df, sample_customers_df)
        retention = result.reports[ReportType.RETENTION].data

        assert result.view.latest_order_date == date(2024, 12, 31)
        # cutoff 2024-06-30: every customer is churned and the 2024 cohort is counted
        assert retention["customer_status"].unique().to_list() == ["Churned"]
        assert retention["cohort_year"].to_list() == [2022, 2023, 2024]
        assert retention["num_customers"].sum() == 4


class TestCommandLine:
    """Tests for the cohort-analytics entry point"""

    def test_generate_then_run(self, tmp_path):
        """Test generated files run end to end"""
        raw = tmp_path / "raw"
        curated = tmp_path / "curated"

        assert main(["generate", "--customers", "40", "--seed", "7", "--output-dir", str(raw)]) == 0
        assert (raw / "sales.csv").exists()
        assert (raw / "customer.parquet").exists()

        code = main([
            "--log-format", "text",
            "run",
            "--input-dir", str(raw),
            "--output-dir", str(curated),
            "--format", "csv",
            "--quiet",
        ])

        assert code == 0
        assert len(list(curated.glob("retention_*.csv"))) == 1
        assert len(list(curated.glob("cohort_view_*.csv"))) == 1

    def test_run_prints_reports(self, tmp_path, sample_sales_df, sample_customers_df, capsys):
        """Test reports are printed unless quiet"""
        sample_sales_df.write_csv(tmp_path / "sales.csv")
        sample_customers_df.write_csv(tmp_path / "customer.csv")

        code = main(["run", "--input-dir", str(tmp_path), "--no-write", "--report", "retention"])

        assert code == 0
        out = capsys.readouterr().out
        assert "retention" in out
        assert "customer_segmentation" not in out

    def test_missing_input_returns_error(self, tmp_path):
        """Test a missing source file exits non-zero"""
        assert main(["run", "--input-dir", str(tmp_path / "nowhere"), "--no-write"]) == 1
