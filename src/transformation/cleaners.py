"""
Data Cleaning Module

Cleaning transformations applied to the raw sales and customer tables
before the cohort view is built.
Handles:
- Column name normalization
- Whitespace trimming
- Numeric type standardization
- Strict date parsing
"""

from typing import Dict, List, Optional

import polars as pl
import structlog

from src.quality.validators import InputValidationError

logger = structlog.get_logger(__name__)


DATE_FORMATS = [
    "%Y-%m-%d",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%m/%d/%Y",
    "%d-%m-%Y",
]

SALES_NUMERIC_TYPES: Dict[str, pl.DataType] = {
    "customerkey": pl.Int64,
    "orderkey": pl.Int64,
    "quantity": pl.Float64,
    "netprice": pl.Float64,
    "exchangerate": pl.Float64,
}

CUSTOMER_NUMERIC_TYPES: Dict[str, pl.DataType] = {
    "customerkey": pl.Int64,
    "age": pl.Int64,
}


class DataCleaner:
    """
    Cleaner for the sales and customer source tables.

    Cleaning never drops rows: anything that cannot be repaired is raised
    as an InputValidationError.

    Example:
        cleaner = DataCleaner()
        sales = cleaner.clean_sales(raw_sales)
    """

    def __init__(self, date_formats: Optional[List[str]] = None):
        self.date_formats = date_formats or DATE_FORMATS

    def _normalize_columns(self, df: pl.DataFrame) -> pl.DataFrame:
        """Lower-case and strip column names (CustomerKey -> customerkey)"""
        mapping = {col: col.strip().lower() for col in df.columns}
        renamed = sum(1 for old, new in mapping.items() if old != new)
        if renamed:
            logger.debug("Normalized column names", renamed=renamed)
        return df.rename(mapping)

    def _trim_strings(self, df: pl.DataFrame, columns: Optional[List[str]] = None) -> pl.DataFrame:
        """Trim whitespace from string columns"""
        string_cols = columns or [
            col for col, dtype in zip(df.columns, df.dtypes)
            if dtype == pl.Utf8
        ]

        for col in string_cols:
            if col in df.columns:
                df = df.with_columns(
                    pl.col(col).str.strip_chars().alias(col)
                )

        return df

    def _cast_numeric(self, df: pl.DataFrame, types: Dict[str, pl.DataType]) -> pl.DataFrame:
        """Cast numeric columns, failing loudly on values that do not convert"""
        for col, dtype in types.items():
            if col not in df.columns or df[col].dtype == dtype:
                continue
            try:
                df = df.with_columns(pl.col(col).cast(dtype, strict=True).alias(col))
            except pl.exceptions.PolarsError as e:
                raise InputValidationError(f"Column '{col}' cannot be cast to {dtype}: {e}") from e

        return df

    def _standardize_dates(self, df: pl.DataFrame, date_columns: List[str]) -> pl.DataFrame:
        """
        Convert date columns to pl.Date.

        String columns are tried against each known format in turn; the first
        format that parses every non-null value wins. Missing values are
        rejected rather than imputed.
        """
        for col in date_columns:
            if col not in df.columns:
                raise InputValidationError(f"Column '{col}' not found")

            dtype = df[col].dtype
            if dtype == pl.Utf8:
                df = df.with_columns(self._parse_date_strings(df[col]).alias(col))
            elif dtype == pl.Null:
                df = df.with_columns(pl.col(col).cast(pl.Date).alias(col))
            elif dtype == pl.Datetime:
                df = df.with_columns(pl.col(col).dt.date().alias(col))
            elif dtype != pl.Date:
                raise InputValidationError(f"Column '{col}' has unsupported type {dtype} for a date")

            null_count = df[col].null_count()
            if null_count:
                raise InputValidationError(f"Column '{col}' has {null_count} missing dates")

        return df

    def _parse_date_strings(self, series: pl.Series) -> pl.Series:
        for fmt in self.date_formats:
            try:
                return series.str.strptime(pl.Datetime, fmt, strict=True).dt.date()
            except pl.exceptions.PolarsError:
                continue

        sample = series.drop_nulls().head(3).to_list()
        raise InputValidationError(
            f"Column '{series.name}' has values matching none of {self.date_formats}: {sample}"
        )

    def clean_sales(self, df: pl.DataFrame) -> pl.DataFrame:
        """Apply sales-specific cleaning transformations"""
        df = self._normalize_columns(df)
        df = self._trim_strings(df)
        df = self._cast_numeric(df, SALES_NUMERIC_TYPES)
        df = self._standardize_dates(df, ["orderdate"])
        return df

    def clean_customers(self, df: pl.DataFrame) -> pl.DataFrame:
        """Apply customer-specific cleaning transformations"""
        df = self._normalize_columns(df)
        df = self._trim_strings(df)
        df = self._cast_numeric(df, CUSTOMER_NUMERIC_TYPES)
        return df


def clean_dataframe(
    df: pl.DataFrame,
    data_type: str = "generic",
    cleaner: Optional[DataCleaner] = None,
) -> pl.DataFrame:
    """
    Convenience function to clean a DataFrame.

    Args:
        df: Input DataFrame
        data_type: "sales", "customers", or "generic"

    Returns:
        Cleaned DataFrame
    """
    cleaner = cleaner or DataCleaner()

    if data_type == "sales":
        return cleaner.clean_sales(df)
    elif data_type == "customers":
        return cleaner.clean_customers(df)
    else:
        df = cleaner._normalize_columns(df)
        return cleaner._trim_strings(df)
