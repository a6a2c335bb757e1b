"""Records exchanged between readers, the store, history and plugins."""

from reportcore.model.history import HistoryDataPoint, HistoryTestResult
from reportcore.model.results import (
    DEFAULT_ENVIRONMENT,
    STATUS_ORDER,
    VALID_STATUSES,
    Attachment,
    AttachmentLink,
    Fixture,
    Label,
    Parameter,
    Step,
    TestResult,
    compute_history_id,
    first_label_value,
    label_values,
)

__all__ = [
    "DEFAULT_ENVIRONMENT",
    "STATUS_ORDER",
    "VALID_STATUSES",
    "Attachment",
    "AttachmentLink",
    "Fixture",
    "HistoryDataPoint",
    "HistoryTestResult",
    "Label",
    "Parameter",
    "Step",
    "TestResult",
    "compute_history_id",
    "first_label_value",
    "label_values",
]
