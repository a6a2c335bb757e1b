"""History diff engine and history sinks."""

from reportcore.history.diff import (
    NON_SIGNIFICANT_STATUSES,
    VALID_TRANSITIONS,
    classify_transition,
    is_flaky,
    is_new,
    last_significant_status,
    limit_history,
    match_history_for_result,
)
from reportcore.history.local import LocalHistory
from reportcore.history.points import create_history_items, create_history_point
from reportcore.history.remote import RemoteHistory

__all__ = [
    "NON_SIGNIFICANT_STATUSES",
    "VALID_TRANSITIONS",
    "LocalHistory",
    "RemoteHistory",
    "classify_transition",
    "create_history_items",
    "create_history_point",
    "is_flaky",
    "is_new",
    "last_significant_status",
    "limit_history",
    "match_history_for_result",
]
