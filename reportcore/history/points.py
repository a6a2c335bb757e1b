"""Construction of the history data point for the current run."""

from __future__ import annotations

import time
from collections.abc import Iterable
from typing import Any

from reportcore.model.history import HistoryDataPoint, HistoryTestResult
from reportcore.model.results import TestResult


DEFAULT_REPORT_NAME = "Test Report"


def create_history_items(
    test_results: Iterable[TestResult],
) -> dict[str, HistoryTestResult]:
    """Project results with a history id into history entries.

    Results without a history id cannot be correlated across runs and are
    left out. The url is always empty here; it is resolved on read.
    """
    items: dict[str, HistoryTestResult] = {}
    for tr in test_results:
        if not tr.history_id:
            continue
        items[tr.history_id] = HistoryTestResult(
            id=tr.id,
            name=tr.name,
            full_name=tr.full_name,
            environment=tr.environment,
            history_id=tr.history_id,
            status=tr.status,
            message=tr.message,
            trace=tr.trace,
            start=tr.start,
            stop=tr.stop,
            duration=tr.duration,
            labels=list(tr.labels),
            url="",
        )
    return items


def create_history_point(
    report_uuid: str,
    test_results: Iterable[TestResult],
    report_name: str = DEFAULT_REPORT_NAME,
    remote_url: str = "",
    known_test_case_ids: Iterable[str] | None = None,
    metrics: dict[str, Any] | None = None,
    timestamp: int | None = None,
) -> HistoryDataPoint:
    """Build this run's history data point.

    Args:
        report_uuid: Identity of the current report.
        test_results: Visible results of the run.
        report_name: Display name stored with the point.
        remote_url: Url of the published report, or empty.
        known_test_case_ids: Identities known at this time; defaults to
            the history ids of ``test_results``.
        metrics: Optional run-level metrics.
        timestamp: Milliseconds since the epoch; defaults to now.
    """
    results = list(test_results)
    if known_test_case_ids is None:
        known_test_case_ids = sorted({tr.history_id for tr in results if tr.history_id})

    return HistoryDataPoint(
        uuid=report_uuid,
        name=report_name,
        timestamp=timestamp if timestamp is not None else int(time.time() * 1000),
        known_test_case_ids=list(known_test_case_ids),
        test_results=create_history_items(results),
        metrics=dict(metrics or {}),
        url=remote_url,
    )
