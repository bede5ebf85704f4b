"""
Cohort Revenue

Revenue and customer counts per cohort year, measured on each customer's
first purchase date only. This isolates acquisition value from repeat
purchases; it is not lifetime value.
"""

import polars as pl
import structlog

logger = structlog.get_logger(__name__)


def first_purchase_rows(view: pl.DataFrame) -> pl.DataFrame:
    """Rows of the cohort view that fall on the customer's first purchase date"""
    return view.filter(pl.col("orderdate") == pl.col("first_purchase_date"))


def cohort_revenue_report(view: pl.DataFrame) -> pl.DataFrame:
    """
    Aggregate first-purchase revenue by cohort year.

    Args:
        view: Cohort view

    Returns:
        One row per cohort_year with total_revenue, total_customers and
        customer_revenue (revenue per customer, null for a cohort with no
        customers), ordered by cohort_year
    """
    first = first_purchase_rows(view)

    report = (
        first.group_by("cohort_year")
        .agg(
            pl.col("net_revenue").sum().alias("total_revenue"),
            pl.col("customerkey").n_unique().alias("total_customers"),
        )
        .with_columns(
            pl.when(pl.col("total_customers") > 0)
            .then(pl.col("total_revenue") / pl.col("total_customers"))
            .otherwise(None)
            .alias("customer_revenue")
        )
        .sort("cohort_year")
    )

    logger.info(
        "Cohort revenue report computed",
        cohorts=report.height,
        customers=first["customerkey"].n_unique(),
    )

    return report
