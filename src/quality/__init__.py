"""
Data Quality Module
"""
from .validators import (
    DataQualityError,
    DataValidator,
    InputValidationError,
    ValidationResult,
    ensure_valid,
)

__all__ = [
    "DataQualityError",
    "DataValidator",
    "InputValidationError",
    "ValidationResult",
    "ensure_valid",
]
