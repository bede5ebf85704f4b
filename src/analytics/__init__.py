"""
Cohort Analytics Reports
"""
from .cohort_revenue import cohort_revenue_report
from .pipeline import CohortAnalyticsPipeline, PipelineResult, ReportResult, ReportType
from .retention import CustomerStatus, classify_customers, retention_report
from .segmentation import ValueTier, segmentation_report

__all__ = [
    "cohort_revenue_report",
    "CohortAnalyticsPipeline",
    "PipelineResult",
    "ReportResult",
    "ReportType",
    "CustomerStatus",
    "classify_customers",
    "retention_report",
    "ValueTier",
    "segmentation_report",
]
