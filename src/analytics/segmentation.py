"""
Customer Segmentation

Splits customers into Low/Mid/High value tiers by the quartiles of their
lifetime value and summarises revenue per tier.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import polars as pl
import structlog

from src.config import get_settings

logger = structlog.get_logger(__name__)
settings = get_settings()


class ValueTier(str, Enum):
    """Customer value tiers, declared in report order"""
    HIGH = "High-Value"
    MID = "Mid-Value"
    LOW = "Low-Value"

    @property
    def rank(self) -> int:
        return list(ValueTier).index(self)


@dataclass(frozen=True)
class LTVThresholds:
    """Percentile cut points of the lifetime value distribution"""
    lower: Optional[float]
    upper: Optional[float]


def customer_lifetime_values(view: pl.DataFrame) -> pl.DataFrame:
    """Total net revenue per customer across all of their order dates"""
    return (
        view.group_by("customerkey")
        .agg(pl.col("net_revenue").sum().alias("total_ltv"))
        .sort("customerkey")
    )


def compute_ltv_thresholds(
    ltv: pl.DataFrame,
    lower_percentile: Optional[float] = None,
    upper_percentile: Optional[float] = None,
) -> LTVThresholds:
    """
    Continuous percentiles of ``total_ltv``.

    Linear interpolation between closest ranks, the same definition as
    SQL ``PERCENTILE_CONT``: for n sorted values and fraction p the position
    is p * (n - 1).
    """
    if lower_percentile is None:
        lower_percentile = settings.analytics.low_value_percentile
    if upper_percentile is None:
        upper_percentile = settings.analytics.high_value_percentile
    if lower_percentile > upper_percentile:
        raise ValueError(
            f"Lower percentile {lower_percentile} exceeds upper percentile {upper_percentile}"
        )

    values = ltv["total_ltv"]
    return LTVThresholds(
        lower=values.quantile(lower_percentile, interpolation="linear"),
        upper=values.quantile(upper_percentile, interpolation="linear"),
    )


def assign_value_tiers(ltv: pl.DataFrame, thresholds: LTVThresholds) -> pl.DataFrame:
    """
    Label each customer with a ValueTier.

    Below the lower threshold is Low-Value; up to and including the upper
    threshold is Mid-Value; everything above is High-Value.
    """
    if ltv.is_empty():
        return ltv.with_columns(pl.lit(None, dtype=pl.Utf8).alias("customer_segment"))

    return ltv.with_columns(
        pl.when(pl.col("total_ltv") < thresholds.lower)
        .then(pl.lit(ValueTier.LOW.value))
        .when(pl.col("total_ltv") <= thresholds.upper)
        .then(pl.lit(ValueTier.MID.value))
        .otherwise(pl.lit(ValueTier.HIGH.value))
        .alias("customer_segment")
    )


def segmentation_report(
    view: pl.DataFrame,
    lower_percentile: Optional[float] = None,
    upper_percentile: Optional[float] = None,
) -> pl.DataFrame:
    """
    Summarise lifetime value per value tier.

    Args:
        view: Cohort view
        lower_percentile: Low/Mid boundary (defaults to settings, 0.25)
        upper_percentile: Mid/High boundary (defaults to settings, 0.75)

    Returns:
        Three rows ordered High, Mid, Low with columns customer_segment,
        total_ltv, customer_count, avg_ltv. Empty tiers report a zero
        total, zero count and a null average.
    """
    ltv = customer_lifetime_values(view)
    thresholds = compute_ltv_thresholds(ltv, lower_percentile, upper_percentile)
    segmented = assign_value_tiers(ltv, thresholds)

    summary = segmented.group_by("customer_segment").agg(
        pl.col("total_ltv").sum().alias("total_ltv"),
        pl.len().alias("customer_count"),
    )

    tiers = pl.DataFrame(
        {
            "customer_segment": [tier.value for tier in ValueTier],
            "tier_rank": [tier.rank for tier in ValueTier],
        }
    )

    report = (
        tiers.join(summary, on="customer_segment", how="left")
        .with_columns(
            pl.col("total_ltv").cast(pl.Float64).fill_null(0.0),
            pl.col("customer_count").cast(pl.UInt32).fill_null(0),
        )
        .with_columns(
            pl.when(pl.col("customer_count") > 0)
            .then(pl.col("total_ltv") / pl.col("customer_count"))
            .otherwise(None)
            .alias("avg_ltv")
        )
        .sort("tier_rank")
        .drop("tier_rank")
    )

    logger.info(
        "Segmentation report computed",
        customers=ltv.height,
        p_lower=thresholds.lower,
        p_upper=thresholds.upper,
    )

    return report
