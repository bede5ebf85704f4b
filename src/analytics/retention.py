"""
Retention Analysis

Classifies customers as active or churned from the date of their most
recent purchase and reports the split per cohort year.

The reference point is the latest order date across all sales, not the
wall clock, so a historical snapshot produces the same report every time
it is analysed. Sales dropped by the cohort view join still count toward
it, so callers holding the sales table should pass that date explicitly.
"""

from datetime import date
from enum import Enum
from typing import Optional

import polars as pl
import structlog

from src.config import get_settings

logger = structlog.get_logger(__name__)
settings = get_settings()


class CustomerStatus(str, Enum):
    """Retention status of a customer"""
    ACTIVE = "Active"
    CHURNED = "Churned"


RETENTION_SCHEMA = {
    "cohort_year": pl.Int32,
    "customer_status": pl.Utf8,
    "num_customers": pl.UInt32,
    "total_customers": pl.UInt32,
    "status_percentage": pl.Float64,
}


def reference_date(df: pl.DataFrame) -> date:
    """Latest order date in a sales table or, failing that, a cohort view"""
    if df.is_empty():
        raise ValueError("Cannot determine a reference date from an empty table")
    return df["orderdate"].max()


def churn_cutoff(reference: date, months: Optional[int] = None) -> date:
    """
    Subtract whole calendar months from the reference date.

    Day-of-month is clamped to the end of the target month, so 2024-08-31
    minus six months is 2024-02-29.
    """
    if months is None:
        months = settings.analytics.churn_threshold_months
    return pl.Series("reference", [reference], dtype=pl.Date).dt.offset_by(f"-{months}mo")[0]


def classify_customers(
    view: pl.DataFrame,
    months: Optional[int] = None,
    reference: Optional[date] = None,
) -> pl.DataFrame:
    """
    Label each eligible customer Active or Churned.

    A customer is Churned when their last purchase is strictly before the
    cutoff. Customers whose first purchase is on or after the cutoff have
    not had a full window in which to churn and are left out.

    Args:
        view: Cohort view
        months: Inactivity threshold (defaults to settings, 6)
        reference: Latest order date across all sales (defaults to the
            latest order date in ``view``)

    Returns:
        One row per eligible customer with customerkey, cleaned_name,
        first_purchase_date, last_purchase_date, cohort_year and
        customer_status
    """
    reference = reference or reference_date(view)
    cutoff = churn_cutoff(reference, months)

    last_purchases = view.group_by("customerkey").agg(
        pl.col("cleaned_name").first(),
        pl.col("first_purchase_date").first(),
        pl.col("orderdate").max().alias("last_purchase_date"),
        pl.col("cohort_year").first(),
    )

    classified = (
        last_purchases.filter(pl.col("first_purchase_date") < cutoff)
        .with_columns(
            pl.when(pl.col("last_purchase_date") < cutoff)
            .then(pl.lit(CustomerStatus.CHURNED.value))
            .otherwise(pl.lit(CustomerStatus.ACTIVE.value))
            .alias("customer_status")
        )
        .sort("customerkey")
    )

    logger.debug(
        "Customers classified",
        reference_date=str(reference),
        cutoff=str(cutoff),
        eligible=classified.height,
        excluded=last_purchases.height - classified.height,
    )

    return classified


def retention_report(
    view: pl.DataFrame,
    months: Optional[int] = None,
    reference: Optional[date] = None,
    decimals: Optional[int] = None,
) -> pl.DataFrame:
    """
    Active/churned customer counts and shares per cohort year.

    Args:
        view: Cohort view
        months: Inactivity threshold (defaults to settings, 6)
        reference: Latest order date across all sales (defaults to the
            latest order date in ``view``)
        decimals: Rounding of status_percentage (defaults to settings, 2)

    Returns:
        One row per (cohort_year, customer_status) with num_customers,
        total_customers for the cohort and status_percentage as a fraction
        of that total, ordered by cohort_year then status
    """
    if decimals is None:
        decimals = settings.analytics.percentage_decimals

    if view.is_empty():
        logger.warning("Retention report requested for an empty cohort view")
        return pl.DataFrame(schema=RETENTION_SCHEMA)

    classified = classify_customers(view, months=months, reference=reference)

    report = (
        classified.group_by(["cohort_year", "customer_status"])
        .agg(pl.len().alias("num_customers"))
        .with_columns(
            pl.col("num_customers").sum().over("cohort_year").alias("total_customers")
        )
        .with_columns(
            (pl.col("num_customers") / pl.col("total_customers"))
            .round(decimals)
            .alias("status_percentage")
        )
        .sort(["cohort_year", "customer_status"])
    )

    churned = classified.filter(pl.col("customer_status") == CustomerStatus.CHURNED.value).height
    logger.info(
        "Retention report computed",
        cohorts=report["cohort_year"].n_unique(),
        customers=classified.height,
        churned=churned,
    )

    return report
