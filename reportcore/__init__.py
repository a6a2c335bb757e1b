"""Aggregation, grouping and history-diff engine for test reports."""

from reportcore.config import ReportConfig, load_config
from reportcore.report import Report, ReportOutcome

__all__ = [
    "Report",
    "ReportConfig",
    "ReportOutcome",
    "load_config",
]
