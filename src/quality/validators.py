"""
Data Validation Module

Rule-based data quality validation for the sales and customer sources and
the derived cohort view.

Features:
- Schema (required column) validation
- Null checks
- Business rule validation
- Referential integrity checks
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

import polars as pl
import structlog

from src.config import get_settings

logger = structlog.get_logger(__name__)
settings = get_settings()


SALES_COLUMNS = ["customerkey", "orderkey", "orderdate", "quantity", "netprice", "exchangerate"]
CUSTOMER_COLUMNS = ["customerkey", "countryfull", "age", "givenname", "surname"]


class DataQualityError(Exception):
    """Raised when input or derived data fails an ERROR-severity check"""

    def __init__(self, message: str, result: Optional["ValidationResult"] = None):
        super().__init__(message)
        self.result = result


class InputValidationError(DataQualityError):
    """Raised for malformed source data: missing columns, missing or unparseable dates"""


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"  # Critical - blocks pipeline
    WARNING = "warning"  # Non-critical - logged but continues
    INFO = "info"  # Informational only


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class ValidationCheck:
    """Single validation check result"""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Optional[Dict[str, Any]] = None
    failed_rows: int = 0
    total_rows: int = 0


@dataclass
class ValidationResult:
    """Complete validation suite result"""
    status: ValidationStatus
    total_checks: int
    passed_checks: int
    failed_checks: int
    warning_count: int
    checks: List[ValidationCheck] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        """Percentage of passed checks"""
        if self.total_checks == 0:
            return 100.0
        return (self.passed_checks / self.total_checks) * 100

    @property
    def errors(self) -> List[ValidationCheck]:
        """Failed checks that block the pipeline"""
        return [c for c in self.checks if not c.passed and c.severity == ValidationSeverity.ERROR]


def _missing_column(name: str, column: str, severity: ValidationSeverity) -> ValidationCheck:
    return ValidationCheck(
        name=name,
        passed=False,
        severity=severity,
        message=f"Column '{column}' not found",
    )


class DataValidator:
    """
    Data validator with a chainable check suite.

    Validates data quality through:
    - Required column checks
    - Null checks
    - Range/boundary checks
    - Uniqueness checks
    - Referential integrity
    - Custom business rules

    Example:
        validator = DataValidator()
        validator.add_not_null_check("customerkey")
        validator.add_range_check("netprice", min_value=0)
        result = validator.validate(df)
    """

    def __init__(self, strict_mode: bool = False):
        self.strict_mode = strict_mode  # Fail on any warning
        self._checks: List[Callable] = []

    def add_required_columns_check(
        self,
        columns: Sequence[str],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check that every listed column is present"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            missing = [c for c in columns if c not in df.columns]
            passed = not missing

            return ValidationCheck(
                name="required_columns",
                passed=passed,
                severity=severity,
                message=f"Missing columns: {missing}" if not passed else "All required columns present",
                details={"missing": missing},
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def add_not_null_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for null values in column"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return _missing_column(f"not_null_{column}", column, severity)

            null_count = df[column].null_count()
            total = len(df)
            passed = null_count == 0

            return ValidationCheck(
                name=f"not_null_{column}",
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {null_count} null values" if not passed else f"Column '{column}' has no null values",
                details={"null_count": null_count, "null_percentage": (null_count / total) * 100 if total > 0 else 0},
                failed_rows=null_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_unique_check(
        self,
        columns: Sequence[str],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for uniqueness of a column or column combination"""
        columns = [columns] if isinstance(columns, str) else list(columns)
        name = "unique_" + "_".join(columns)

        def check(df: pl.DataFrame) -> ValidationCheck:
            absent = [c for c in columns if c not in df.columns]
            if absent:
                return _missing_column(name, absent[0], severity)

            total = len(df)
            unique_count = df.select(columns).unique().height
            duplicate_count = total - unique_count
            passed = duplicate_count == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Columns {columns} have {duplicate_count} duplicate values" if not passed else f"Columns {columns} are unique",
                details={"unique_count": unique_count, "duplicate_count": duplicate_count},
                failed_rows=duplicate_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_range_check(
        self,
        column: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for values within specified range"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return _missing_column(f"range_{column}", column, severity)

            conditions = []
            if min_value is not None:
                conditions.append(pl.col(column) < min_value)
            if max_value is not None:
                conditions.append(pl.col(column) > max_value)

            if not conditions:
                return ValidationCheck(
                    name=f"range_{column}",
                    passed=True,
                    severity=severity,
                    message="No range specified",
                )

            # Combine conditions with OR
            combined = conditions[0]
            for cond in conditions[1:]:
                combined = combined | cond

            out_of_range = df.filter(combined).height
            total = len(df)
            passed = out_of_range == 0

            return ValidationCheck(
                name=f"range_{column}",
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {out_of_range} values outside range [{min_value}, {max_value}]" if not passed else "All values in range",
                details={"min": min_value, "max": max_value, "out_of_range_count": out_of_range},
                failed_rows=out_of_range,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_positive_check(
        self,
        column: str,
        allow_zero: bool = True,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for positive values"""
        min_val = 0 if allow_zero else 0.0001
        return self.add_range_check(column, min_value=min_val, severity=severity)

    def add_custom_check(
        self,
        name: str,
        check_func: Callable[[pl.DataFrame], bool],
        message_on_fail: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add custom validation check"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            try:
                passed = bool(check_func(df))
                return ValidationCheck(
                    name=name,
                    passed=passed,
                    severity=severity,
                    message="Check passed" if passed else message_on_fail,
                    total_rows=len(df),
                )
            except Exception as e:
                return ValidationCheck(
                    name=name,
                    passed=False,
                    severity=severity,
                    message=f"Check failed with error: {str(e)}",
                )

        self._checks.append(check)
        return self

    def add_referential_integrity_check(
        self,
        column: str,
        reference_df: pl.DataFrame,
        reference_column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add referential integrity check"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return _missing_column(f"ref_integrity_{column}", column, severity)

            # Get reference values
            ref_values = reference_df[reference_column].unique().to_list()

            # Find orphan records
            orphans = df.filter(
                ~pl.col(column).is_in(ref_values) & pl.col(column).is_not_null()
            ).height
            total = len(df)
            passed = orphans == 0

            return ValidationCheck(
                name=f"ref_integrity_{column}",
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {orphans} orphan records" if not passed else "Referential integrity maintained",
                details={"orphan_count": orphans},
                failed_rows=orphans,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def validate(self, df: pl.DataFrame) -> ValidationResult:
        """
        Run all validation checks on DataFrame.

        Args:
            df: DataFrame to validate

        Returns:
            ValidationResult with all check results
        """
        started_at = datetime.utcnow()
        results = []

        logger.info(f"Running {len(self._checks)} validation checks on {len(df)} rows")

        for check_func in self._checks:
            result = check_func(df)
            results.append(result)

            if not result.passed:
                logger.warning(
                    f"Validation failed: {result.name}",
                    message=result.message,
                    severity=result.severity.value,
                )

        completed_at = datetime.utcnow()

        passed_checks = sum(1 for r in results if r.passed)
        failed_checks = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.ERROR)
        warning_count = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.WARNING)

        if failed_checks > 0:
            status = ValidationStatus.FAILED
        elif warning_count > 0 and self.strict_mode:
            status = ValidationStatus.FAILED
        elif warning_count > 0:
            status = ValidationStatus.PARTIAL
        else:
            status = ValidationStatus.PASSED

        validation_result = ValidationResult(
            status=status,
            total_checks=len(results),
            passed_checks=passed_checks,
            failed_checks=failed_checks,
            warning_count=warning_count,
            checks=results,
            started_at=started_at,
            completed_at=completed_at,
        )

        logger.info(
            f"Validation complete: {status.value}",
            passed=passed_checks,
            failed=failed_checks,
            warnings=warning_count,
        )

        return validation_result


def ensure_valid(result: ValidationResult, dataset: str) -> ValidationResult:
    """
    Raise if a validation run failed.

    Args:
        result: Output of DataValidator.validate
        dataset: Name used in the error message

    Raises:
        DataQualityError: If the result status is FAILED
    """
    if result.status == ValidationStatus.FAILED:
        messages = "; ".join(c.message for c in result.checks if not c.passed)
        raise DataQualityError(f"{dataset} failed data quality checks: {messages}", result)
    return result


# Pre-built validators for the source tables and the derived view
def create_sales_validator(customers_df: Optional[pl.DataFrame] = None) -> DataValidator:
    """Create pre-configured validator for sales data"""
    validator = (
        DataValidator()
        .add_required_columns_check(SALES_COLUMNS)
        .add_not_null_check("customerkey")
        .add_not_null_check("orderkey")
        .add_not_null_check("orderdate")
        .add_positive_check("quantity")
        .add_positive_check("netprice")
        .add_positive_check("exchangerate", allow_zero=False)
    )
    if customers_df is not None:
        severity = (
            ValidationSeverity.ERROR
            if settings.data_quality.fail_on_orphans
            else ValidationSeverity.WARNING
        )
        validator.add_referential_integrity_check(
            "customerkey", customers_df, "customerkey", severity=severity
        )
    return validator


def create_customers_validator() -> DataValidator:
    """Create pre-configured validator for customer data"""
    return (
        DataValidator()
        .add_required_columns_check(CUSTOMER_COLUMNS)
        .add_not_null_check("customerkey")
        .add_unique_check(["customerkey"])
        .add_range_check("age", min_value=0, severity=ValidationSeverity.WARNING)
    )


def _first_purchase_is_constant(df: pl.DataFrame) -> bool:
    per_customer = df.group_by("customerkey").agg(
        pl.col("first_purchase_date").n_unique().alias("n_first"),
        (pl.col("first_purchase_date") == pl.col("orderdate").min()).all().alias("is_min"),
    )
    return per_customer.filter((pl.col("n_first") != 1) | ~pl.col("is_min")).height == 0


def create_cohort_view_validator() -> DataValidator:
    """Create validator asserting the cohort view invariants"""
    return (
        DataValidator()
        .add_unique_check(["customerkey", "orderdate"])
        .add_range_check("num_orders", min_value=1)
        .add_custom_check(
            "cohort_year_matches_first_purchase",
            lambda df: df.filter(
                pl.col("cohort_year") != pl.col("first_purchase_date").dt.year()
            ).height == 0,
            "cohort_year differs from the year of first_purchase_date",
        )
        .add_custom_check(
            "first_purchase_constant_per_customer",
            _first_purchase_is_constant,
            "first_purchase_date is not the per-customer minimum order date",
        )
    )
