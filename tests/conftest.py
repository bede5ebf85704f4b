"""
Test Suite Configuration
"""
from datetime import date

import pytest
import polars as pl

from src.config import Settings


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
    )


@pytest.fixture
def sample_customers_df() -> pl.DataFrame:
    """
    Five customers; customer 5 never buys anything.
    """
    return pl.DataFrame({
        "customerkey": [1, 2, 3, 4, 5],
        "countryfull": ["United States", "Germany", "Canada", "France", "Italy"],
        "age": [34, 51, 27, 45, 62],
        "givenname": ["  Ann ", "Bernd", "Chloe", "Denis", "Elena"],
        "surname": [" Smith  ", "Mueller", "Tremblay", "Laurent", "Rossi"],
    })


@pytest.fixture
def sample_sales_df() -> pl.DataFrame:
    """
    Sale lines with a known outcome.

    - customer 1: two lines on 2023-01-05 (25.0), one on 2024-05-01 (100.0)
    - customer 2: 2022-03-10 (75.0), last purchase 2023-11-01 (50.0)
    - customer 3: single purchase on 2024-06-01, the latest date (60.0)
    - customer 4: single purchase on 2023-06-15 (100.0)
    - customer 99: orphan sale with no customer record
    """
    return pl.DataFrame({
        "customerkey": [1, 1, 1, 2, 2, 3, 4, 99],
        "orderkey": [101, 102, 103, 201, 202, 301, 401, 991],
        "orderdate": [
            "2023-01-05",
            "2023-01-05",
            "2024-05-01",
            "2022-03-10",
            "2023-11-01",
            "2024-06-01",
            "2023-06-15",
            "2023-02-01",
        ],
        "quantity": [2, 1, 1, 3, 1, 2, 1, 5],
        "netprice": [10.0, 5.0, 100.0, 20.0, 50.0, 30.0, 200.0, 10.0],
        "exchangerate": [1.0, 1.0, 1.0, 1.25, 1.0, 1.0, 0.5, 1.0],
    })


@pytest.fixture
def sample_view_df(sample_sales_df, sample_customers_df) -> pl.DataFrame:
    """Cohort view built from the sample sources"""
    from src.transformation.cohort_view import build_cohort_view

    return build_cohort_view(sample_sales_df, sample_customers_df)


def make_view(rows) -> pl.DataFrame:
    """
    Build a cohort view from (customerkey, orderdate, net_revenue) tuples.

    Every row is one single-line sale, so num_orders is 1.
    """
    from src.transformation.cohort_view import build_cohort_view

    keys = sorted({r[0] for r in rows})
    sales = pl.DataFrame({
        "customerkey": [r[0] for r in rows],
        "orderkey": list(range(1, len(rows) + 1)),
        "orderdate": [r[1] for r in rows],
        "quantity": [1] * len(rows),
        "netprice": [float(r[2]) for r in rows],
        "exchangerate": [1.0] * len(rows),
    })
    customers = pl.DataFrame({
        "customerkey": keys,
        "countryfull": ["United States"] * len(keys),
        "age": [30] * len(keys),
        "givenname": [f"Given{k}" for k in keys],
        "surname": [f"Sur{k}" for k in keys],
    })
    return build_cohort_view(sales, customers)


@pytest.fixture
def view_factory():
    """Factory fixture for hand-built cohort views"""
    return make_view


@pytest.fixture
def reference_day() -> date:
    return date(2024, 6, 1)


@pytest.fixture
def late_orphan_sales_df(sample_sales_df) -> pl.DataFrame:
    """Sample sales plus the dataset's latest sale, placed by an unknown customer"""
    late = pl.DataFrame({
        "customerkey": [99],
        "orderkey": [992],
        "orderdate": ["2024-12-31"],
        "quantity": [1],
        "netprice": [10.0],
        "exchangerate": [1.0],
    })
    return pl.concat([sample_sales_df, late])
