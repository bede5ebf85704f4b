"""
Unit Tests - Source Loading
"""
import asyncio
from datetime import date

import pytest
import polars as pl

from src.analytics.retention import retention_report
from src.database.connection import close_database, get_engine, init_database
from src.database.models import Base
from src.ingestion.batch_loader import (
    COLUMN_TYPES,
    FileFormat,
    LoadStatus,
    SourceFileConfig,
    SourceLoader,
    seed_database,
)
from src.quality.validators import CUSTOMER_COLUMNS, SALES_COLUMNS, InputValidationError
from src.transformation.cohort_view import build_cohort_view


@pytest.fixture
def raw_dir(tmp_path, sample_sales_df, sample_customers_df):
    """Raw zone with Contoso-style capitalised headers and an extra column"""
    sales = sample_sales_df.with_columns(pl.lit(0).alias("linenumber"))
    sales.rename({"customerkey": "CustomerKey", "orderdate": "OrderDate"}).write_csv(tmp_path / "sales.csv")
    sample_customers_df.write_csv(tmp_path / "customer.csv")
    return tmp_path


class TestFileFormat:
    """Tests for format detection"""

    def test_from_path(self):
        assert FileFormat.from_path("data/sales.csv") == FileFormat.CSV
        assert FileFormat.from_path("data/sales.PARQUET") == FileFormat.PARQUET
        assert FileFormat.from_path("data/sales.ndjson") == FileFormat.JSONL

    def test_unsupported(self):
        with pytest.raises(ValueError, match="Unsupported"):
            FileFormat.from_path("data/sales.xlsx")


class TestFileLoading:
    """Tests for loading the raw zone"""

    def test_load_csv(self, raw_dir):
        """Test both tables load with normalised, projected columns"""
        data = asyncio.run(SourceLoader().load_from_files(raw_dir))

        assert data.sales.columns == SALES_COLUMNS
        assert data.customers.columns == CUSTOMER_COLUMNS
        assert len(data.sales) == 8
        assert len(data.customers) == 5

    def test_load_results(self, raw_dir):
        """Test audit records are produced for each file"""
        data = asyncio.run(SourceLoader().load_from_files(raw_dir))

        assert [r.status for r in data.results] == [LoadStatus.COMPLETED, LoadStatus.COMPLETED]
        assert data.results[0].rows_loaded == 8
        assert data.results[0].file_hash is not None

    def test_load_parquet(self, tmp_path, sample_sales_df):
        """Test Parquet input"""
        path = tmp_path / "sales.parquet"
        sample_sales_df.write_parquet(path)

        df, result = asyncio.run(
            SourceLoader().load_file(SourceFileConfig(file_path=path, table="sales", columns=SALES_COLUMNS))
        )

        assert result.status == LoadStatus.COMPLETED
        assert df.equals(sample_sales_df.select(SALES_COLUMNS))

    def test_missing_file(self, tmp_path):
        """Test a missing source file raises"""
        with pytest.raises(FileNotFoundError):
            asyncio.run(SourceLoader().load_from_files(tmp_path))

    def test_missing_column(self, tmp_path, sample_sales_df):
        """Test a file without a required column raises"""
        path = tmp_path / "sales.csv"
        sample_sales_df.drop("exchangerate").write_csv(path)

        with pytest.raises(InputValidationError, match="exchangerate"):
            asyncio.run(
                SourceLoader().load_file(SourceFileConfig(file_path=path, table="sales", columns=SALES_COLUMNS))
            )

    def test_loaded_files_build_view(self, raw_dir):
        """Test file sources feed the cohort view unchanged"""
        data = asyncio.run(SourceLoader().load_from_files(raw_dir))

        view = build_cohort_view(data.sales, data.customers)

        assert view.height == 6
        assert view["orderdate"].min() == date(2022, 3, 10)


class TestDatabaseLoading:
    """Tests for the database source against SQLite"""

    async def _round_trip(self, url, sales, customers):
        await init_database(url)
        try:
            async with get_engine().begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            counts = await seed_database(sales, customers, chunk_size=3)
            data = await SourceLoader().load_from_database()
        finally:
            await close_database()
        return counts, data

    def test_seed_and_load(self, tmp_path, sample_sales_df, sample_customers_df):
        """Test seeded tables read back and build the same view"""
        url = f"sqlite+aiosqlite:///{tmp_path / 'contoso.db'}"
        sales = (
            sample_sales_df.filter(pl.col("customerkey") != 99)
            .with_columns(
                pl.col("orderdate").str.strptime(pl.Date, "%Y-%m-%d"),
                pl.lit(0).alias("linenumber"),
            )
        )

        counts, data = asyncio.run(self._round_trip(url, sales, sample_customers_df))

        assert counts == {"customer": 5, "sales": 7}
        assert data.sales.columns == SALES_COLUMNS
        assert len(data.customers) == 5

        from_db = build_cohort_view(data.sales, data.customers)
        from_frames = build_cohort_view(sales, sample_customers_df)
        assert from_db.equals(from_frames)

    def test_empty_tables(self, tmp_path):
        """Test empty source tables load typed and build an empty view"""
        url = f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}"
        empty_sales = pl.DataFrame(schema={**{c: COLUMN_TYPES[c] for c in SALES_COLUMNS}, "linenumber": pl.Int64})
        empty_customers = pl.DataFrame(schema={c: COLUMN_TYPES[c] for c in CUSTOMER_COLUMNS})

        counts, data = asyncio.run(self._round_trip(url, empty_sales, empty_customers))

        assert counts == {"customer": 0, "sales": 0}
        assert data.sales.is_empty()
        assert data.sales["orderdate"].dtype == pl.Date
        assert data.customers["givenname"].dtype == pl.Utf8

        view = build_cohort_view(data.sales, data.customers)
        assert view.is_empty()
        assert retention_report(view).is_empty()

    def test_load_without_init(self):
        """Test reading before init_database raises"""
        with pytest.raises(RuntimeError, match="not initialized"):
            asyncio.run(SourceLoader().load_from_database())
