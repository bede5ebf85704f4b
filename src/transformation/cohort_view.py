"""
Cohort View Builder

Builds the canonical working dataset for every report: one row per customer
per order date, carrying that day's net revenue and the customer's
first-purchase date and cohort year.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

import polars as pl
import structlog

from src.quality.validators import (
    CUSTOMER_COLUMNS,
    SALES_COLUMNS,
    InputValidationError,
    create_cohort_view_validator,
    ensure_valid,
)
from .cleaners import DataCleaner

logger = structlog.get_logger(__name__)


COHORT_VIEW_COLUMNS = [
    "customerkey",
    "orderdate",
    "net_revenue",
    "num_orders",
    "countryfull",
    "age",
    "cleaned_name",
    "first_purchase_date",
    "cohort_year",
]


@dataclass
class CohortViewStats:
    """Row accounting for one view build"""
    sales_rows: int
    customer_rows: int
    joined_rows: int
    orphan_sales: int
    view_rows: int
    customers: int
    duration_seconds: float
    latest_order_date: Optional[date] = None  # across all sales, orphans included


class CohortViewBuilder:
    """
    Joins sales to customers and aggregates to (customer, order date).

    Sales without a matching customer, and customers without sales, are
    dropped by the inner join. The orphan count is logged and kept in
    ``last_stats`` but never raised.

    Customer attributes are reduced with ``max`` per (customer, date). The
    result is only meaningful when the customer table holds one row per
    customerkey; with conflicting rows the chosen value is undefined.

    Example:
        builder = CohortViewBuilder()
        view = builder.build(sales_df, customers_df)
    """

    def __init__(self, enable_validation: bool = True):
        self.enable_validation = enable_validation
        self.cleaner = DataCleaner()
        self.last_stats: Optional[CohortViewStats] = None

    @staticmethod
    def _require_columns(df: pl.DataFrame, columns, name: str) -> None:
        missing = [c for c in columns if c not in df.columns]
        if missing:
            raise InputValidationError(f"{name} is missing required columns: {missing}")

    def _daily_revenue(self, joined: pl.DataFrame) -> pl.DataFrame:
        """Aggregate sale lines to one row per customer and order date"""
        return joined.group_by(["customerkey", "orderdate"]).agg(
            (pl.col("quantity") * pl.col("netprice") * pl.col("exchangerate"))
            .sum()
            .alias("net_revenue"),
            pl.len().alias("num_orders"),
            pl.col("countryfull").max(),
            pl.col("age").max(),
            pl.col("givenname").max(),
            pl.col("surname").max(),
        )

    @staticmethod
    def _first_purchases(daily: pl.DataFrame) -> pl.DataFrame:
        """One row per customer with first purchase date and cohort year"""
        return (
            daily.group_by("customerkey")
            .agg(pl.col("orderdate").min().alias("first_purchase_date"))
            .with_columns(pl.col("first_purchase_date").dt.year().alias("cohort_year"))
        )

    def build(self, sales: pl.DataFrame, customers: pl.DataFrame) -> pl.DataFrame:
        """
        Build the cohort view.

        Args:
            sales: Sale lines (customerkey, orderkey, orderdate, quantity,
                netprice, exchangerate)
            customers: Customer records (customerkey, countryfull, age,
                givenname, surname)

        Returns:
            DataFrame with COHORT_VIEW_COLUMNS, sorted by customer and date

        Raises:
            InputValidationError: On missing columns or missing/unparseable
                order dates
        """
        started_at = datetime.utcnow()

        sales = self.cleaner.clean_sales(sales)
        customers = self.cleaner.clean_customers(customers)
        self._require_columns(sales, SALES_COLUMNS, "sales")
        self._require_columns(customers, CUSTOMER_COLUMNS, "customers")

        joined = sales.select(SALES_COLUMNS).join(
            customers.select(CUSTOMER_COLUMNS),
            on="customerkey",
            how="inner",
        )
        orphan_sales = sales.filter(
            ~pl.col("customerkey").is_in(customers["customerkey"].unique().to_list())
        ).height
        if orphan_sales:
            logger.warning("Dropping sales without a matching customer", orphan_sales=orphan_sales)

        daily = self._daily_revenue(joined).with_columns(
            pl.concat_str(
                [
                    pl.col("givenname").str.strip_chars(),
                    pl.col("surname").str.strip_chars(),
                ],
                separator=" ",
            ).alias("cleaned_name")
        )

        view = (
            daily.join(self._first_purchases(daily), on="customerkey", how="left")
            .select(COHORT_VIEW_COLUMNS)
            .sort(["customerkey", "orderdate"])
        )

        if self.enable_validation:
            ensure_valid(create_cohort_view_validator().validate(view), "cohort view")

        completed_at = datetime.utcnow()
        self.last_stats = CohortViewStats(
            sales_rows=sales.height,
            customer_rows=customers.height,
            joined_rows=joined.height,
            orphan_sales=orphan_sales,
            view_rows=view.height,
            customers=view["customerkey"].n_unique(),
            duration_seconds=(completed_at - started_at).total_seconds(),
            latest_order_date=sales["orderdate"].max(),
        )

        logger.info(
            "Cohort view built",
            sales_rows=sales.height,
            view_rows=view.height,
            customers=self.last_stats.customers,
            duration_seconds=round(self.last_stats.duration_seconds, 3),
        )

        return view


def build_cohort_view(
    sales: pl.DataFrame,
    customers: pl.DataFrame,
    enable_validation: bool = True,
) -> pl.DataFrame:
    """
    Convenience function to build the cohort view.

    Args:
        sales: Raw or cleaned sales DataFrame
        customers: Raw or cleaned customers DataFrame
        enable_validation: Assert the view invariants after building

    Returns:
        Cohort view DataFrame
    """
    return CohortViewBuilder(enable_validation=enable_validation).build(sales, customers)
