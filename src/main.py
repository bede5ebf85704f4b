"""
Command Line Entry Point

Runs the cohort analytics batch against file or database sources, or
generates a synthetic dataset.

Usage:
    cohort-analytics run --source files --input-dir data/raw
    cohort-analytics run --source database --database-url sqlite+aiosqlite:///contoso.db
    cohort-analytics generate --customers 5000
"""

import argparse
import asyncio
import sys
from typing import List, Optional

import polars as pl
import structlog

from src.analytics.pipeline import CohortAnalyticsPipeline, PipelineResult, ReportType
from src.config import get_settings
from src.config.logging import configure_logging
from src.data.generators import DataGenerator
from src.database.connection import close_database, get_engine, init_database
from src.database.models import Base
from src.ingestion.batch_loader import SourceData, SourceLoader, seed_database
from src.quality.validators import DataQualityError

logger = structlog.get_logger(__name__)
settings = get_settings()


async def load_sources(args: argparse.Namespace) -> SourceData:
    """Load Sale and Customer from the selected source"""
    loader = SourceLoader()
    if args.source == "files":
        return await loader.load_from_files(args.input_dir)

    await init_database(args.database_url)
    try:
        return await loader.load_from_database()
    finally:
        await close_database()


def print_reports(result: PipelineResult) -> None:
    """Print every report as a table"""
    with pl.Config(tbl_rows=50, tbl_cols=12):
        for report_type, report in result.reports.items():
            print(f"\n{report_type.value}")
            print(report.data)


def cmd_run(args: argparse.Namespace) -> int:
    sources = asyncio.run(load_sources(args))

    pipeline = CohortAnalyticsPipeline(
        output_path=args.output_dir,
        output_format=args.format,
        write_outputs=not args.no_write,
        enable_validation=not args.skip_validation,
    )
    reports = [ReportType(r) for r in args.report] if args.report else None
    result = pipeline.run(sources.sales, sources.customers, reports=reports)

    if not args.quiet:
        print_reports(result)
    for path in result.output_paths:
        logger.info("Report written", path=path)
    return 0


async def _seed(url: Optional[str], data: dict) -> None:
    await init_database(url)
    try:
        async with get_engine().begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        await seed_database(data["sales"], data["customer"])
    finally:
        await close_database()


def cmd_generate(args: argparse.Namespace) -> int:
    generator = DataGenerator(output_dir=args.output_dir, seed=args.seed)
    data = generator.generate_all(n_customers=args.customers, save=not args.no_files)

    if args.to_database:
        asyncio.run(_seed(args.database_url, data))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cohort-analytics",
        description="Customer segmentation, cohort revenue and retention reports",
    )
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--log-format", choices=["json", "text"], default=None)
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Build the cohort view and run the reports")
    run.add_argument("--source", choices=["files", "database"], default="files")
    run.add_argument("--input-dir", default=None, help="Directory with sales and customer files")
    run.add_argument("--database-url", default=None, help="Override the configured database URL")
    run.add_argument("--output-dir", default=None, help="Where reports are written")
    run.add_argument("--format", choices=["parquet", "csv"], default=None)
    run.add_argument(
        "--report",
        action="append",
        choices=[t.value for t in ReportType if t != ReportType.COHORT_VIEW],
        help="Run only this report (repeatable)",
    )
    run.add_argument("--no-write", action="store_true", help="Do not write outputs")
    run.add_argument("--skip-validation", action="store_true", help="Skip data quality checks")
    run.add_argument("--quiet", action="store_true", help="Do not print the reports")
    run.set_defaults(func=cmd_run)

    gen = sub.add_parser("generate", help="Generate a synthetic dataset")
    gen.add_argument("--customers", type=int, default=1000)
    gen.add_argument("--seed", type=int, default=42)
    gen.add_argument("--output-dir", default=None)
    gen.add_argument("--no-files", action="store_true", help="Do not write CSV/Parquet files")
    gen.add_argument("--to-database", action="store_true", help="Create the tables and insert the data")
    gen.add_argument("--database-url", default=None)
    gen.set_defaults(func=cmd_generate)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, args.log_format)

    try:
        return args.func(args)
    except (DataQualityError, FileNotFoundError) as e:
        logger.error("Cohort analytics failed", error=str(e), error_type=type(e).__name__)
        return 1


if __name__ == "__main__":
    sys.exit(main())
