"""
Data Transformation Module
"""
from .cleaners import DataCleaner, clean_dataframe
from .cohort_view import COHORT_VIEW_COLUMNS, CohortViewBuilder, build_cohort_view

__all__ = [
    "DataCleaner",
    "clean_dataframe",
    "COHORT_VIEW_COLUMNS",
    "CohortViewBuilder",
    "build_cohort_view",
]
